from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clm.config import settings
from clm.database import init_db, close_db, get_db
from clm.exceptions import ContractLifecycleError
from clm.logging_config import setup_logging
from clm.middleware.correlation import CorrelationIdMiddleware

# Import models so they are registered with Base.metadata
import clm.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_clm", env=settings.ENVIRONMENT)
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers — normalize all errors to structured format:
# {"error": {"code": "...", "message": "..."}}
# ---------------------------------------------------------------------------

@app.exception_handler(ContractLifecycleError)
async def lifecycle_exception_handler(request: Request, exc: ContractLifecycleError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        detail = {"error": {"code": "HTTP_ERROR", "message": detail}}
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": exc.errors(),
            }
        },
    )


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except SQLAlchemyError as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from clm.routes.contracts import router as contracts_router  # noqa: E402
from clm.routes.agenda import router as agenda_router, vocabulary_router  # noqa: E402
from clm.routes.vendors import router as vendors_router  # noqa: E402
from clm.routes.dashboard import router as dashboard_router  # noqa: E402

app.include_router(contracts_router, prefix="/api/v1/contracts", tags=["Contracts"])
app.include_router(agenda_router, prefix="/api/v1/contracts/{contract_id}/agenda", tags=["Bid Agenda"])
app.include_router(vendors_router, prefix="/api/v1/contracts/{contract_id}/vendors", tags=["Vendors"])
app.include_router(vocabulary_router, prefix="/api/v1/agenda", tags=["Bid Agenda"])
app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["Dashboard"])

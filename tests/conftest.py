import uuid
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from jose import jwt

from clm.config import settings
from clm.middleware.auth import RequestContext


def make_token(
    user_id: str,
    email: str = "pic@example.com",
    position: str = "procurement",
    expires_in: timedelta = timedelta(hours=1),
    audience: str = None,
) -> str:
    """Token shaped like the hosted auth provider's access tokens."""
    now = datetime.utcnow()
    claims = {
        "sub": user_id,
        "email": email,
        "aud": audience or settings.JWT_AUDIENCE,
        "role": "authenticated",
        "user_metadata": {"position": position},
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def user_ctx(user_id) -> RequestContext:
    return RequestContext(user_id=user_id, email="pic@example.com", position="procurement")


@pytest.fixture
def admin_ctx() -> RequestContext:
    return RequestContext(user_id=str(uuid.uuid4()), email="admin@example.com", position="Admin")


@pytest.fixture
def auth_headers(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def mock_session() -> AsyncMock:
    session = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    return session


@pytest.fixture
def token_factory():
    return make_token

"""Central model registry — import all models so Alembic autodiscover works."""

from clm.database import Base  # noqa: F401

from clm.models.reference import Profile, Pt, ContractType  # noqa: F401
from clm.models.contract import Contract, ContractAmendment, ContractLog  # noqa: F401
from clm.models.agenda import AgendaStep  # noqa: F401
from clm.models.vendor import ContractVendor, VendorStepDate  # noqa: F401

"""
Canonical bid agenda vocabulary.

The order is load-bearing: everything up to and including "Appointed Vendor"
is Pre-Award, the rest is Post-Award. Never sort this list.
"""

from enum import Enum
from typing import Optional

from clm.exceptions import ValidationError


class Phase(str, Enum):
    PRE_AWARD = "Pre-Award"
    POST_AWARD = "Post-Award"


APPOINTED_VENDOR_STEP = "Appointed Vendor"
INTERNAL_SIGNATURE_STEP = "Internal Contract Signature Process"
VENDOR_SIGNATURE_STEP = "Vendor Contract Signature Process"

BID_AGENDA_STEPS: tuple[str, ...] = (
    "Contract Drafting",
    "Draft Completed",
    "Review & Clarification",
    "Vendor Findings",
    "KYC Review",
    "Vendor Administratif & Bid Document",
    "Price Proposal",
    "Clarification Meeting",
    "Clarification Period & Response",
    "Revised Price Proposal",
    "Technical Evaluation",
    "Price Comparison",
    APPOINTED_VENDOR_STEP,
    "Negotiation",
    "Procurement Summary Preparation",
    "Procurement Summary Management Approval",
    "Contract Finalization",
    "Vendor Contract Finalization",
    INTERNAL_SIGNATURE_STEP,
    VENDOR_SIGNATURE_STEP,
    "Contract Completed",
)

# Index of the last Pre-Award step.
AWARD_SPLIT_INDEX = BID_AGENDA_STEPS.index(APPOINTED_VENDOR_STEP)

PRE_AWARD_STEPS = BID_AGENDA_STEPS[: AWARD_SPLIT_INDEX + 1]
POST_AWARD_STEPS = BID_AGENDA_STEPS[AWARD_SPLIT_INDEX + 1 :]

# Older rows use the short signature labels.
LEGACY_STEP_ALIASES = {
    "Internal Contract Signature": INTERNAL_SIGNATURE_STEP,
    "Vendor Contract Signature": VENDOR_SIGNATURE_STEP,
}

_STEP_POSITIONS = {name: i for i, name in enumerate(BID_AGENDA_STEPS)}


def normalize_step_name(name: str) -> str:
    name = (name or "").strip()
    return LEGACY_STEP_ALIASES.get(name, name)


def is_known_step(name: str) -> bool:
    return normalize_step_name(name) in _STEP_POSITIONS


def step_index(name: str) -> Optional[int]:
    """Position in the canonical order, or None for unknown names."""
    return _STEP_POSITIONS.get(normalize_step_name(name))


def require_known_step(name: str) -> str:
    normalized = normalize_step_name(name)
    if normalized not in _STEP_POSITIONS:
        raise ValidationError(
            f"Unknown agenda step '{name}'", code="UNKNOWN_AGENDA_STEP"
        )
    return normalized


def phase_of(name: str) -> Phase:
    index = step_index(require_known_step(name))
    return Phase.PRE_AWARD if index <= AWARD_SPLIT_INDEX else Phase.POST_AWARD


def grouped_steps() -> dict[str, list[str]]:
    """Vocabulary grouped by phase, each group in canonical order."""
    return {
        Phase.PRE_AWARD.value: list(PRE_AWARD_STEPS),
        Phase.POST_AWARD.value: list(POST_AWARD_STEPS),
    }

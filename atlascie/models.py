"""
Core data models for the ATLAS Community Information Exchange.

Every record that crosses the data-access boundary is validated through
one of these models.  Optional fields are explicit: an enrollee without an
address, a referral without a response, or a risk profile without a tier
("unassessed") are all valid, first-class states.

Enrollees are the people receiving care coordination.  Resources are
community service listings.  Referrals link one enrollee to one resource
and carry a lifecycle status (see ``atlascie.referrals``).
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WELLNESS_DIMENSIONS: tuple[str, ...] = (
    "physical",
    "emotional",
    "social",
    "intellectual",
    "occupational",
    "environmental",
    "financial",
    "spiritual",
)
"""The eight fixed wellness scoring axes, in display order."""


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Role(str, enum.Enum):
    """Portal roles.

    * ``ADMIN`` -- superset of every permission.
    * ``ENROLLMENT_MANAGER`` -- case-management actions on enrollees,
      referrals and care plans.
    * ``PARTNER`` -- resource providers: view resources and referrals,
      respond to referrals.
    """

    ADMIN = "Admin"
    ENROLLMENT_MANAGER = "Enrollment Manager"
    PARTNER = "Partner"


class ReferralStatus(str, enum.Enum):
    """Lifecycle status of a referral."""

    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"


class CarePlanEntryType(str, enum.Enum):
    NOTE = "Note"
    PRAXIS_INSIGHT = "PRAXISInsight"
    ALERT = "Alert"


class InsightStatus(str, enum.Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    DISMISSED = "Dismissed"


class RiskTrend(str, enum.Enum):
    """Population-relative wellness bucket (a snapshot, not a time series)."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class Principal(BaseModel):
    """An authenticated actor issued by the identity provider."""

    uid: str = Field(..., min_length=1, description="Stable identifier.")
    email: Optional[str] = Field(default=None, description="Optional display label.")
    is_anonymous: bool = Field(default=False)

    @property
    def display_name(self) -> str:
        return self.email or "User"


class Profile(BaseModel):
    """Per-principal profile holding the role label and enrollee assignments.

    ``role`` is stored as a plain label.  Labels outside the ``Role`` enum
    are tolerated on read (legacy data) and simply carry no permissions.
    """

    uid: str = Field(..., min_length=1)
    name: str = Field(default="User")
    email: Optional[str] = Field(default=None)
    role: Optional[str] = Field(default=None)
    assigned_enrollee_ids: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Enrollees
# ---------------------------------------------------------------------------

class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class Demographics(BaseModel):
    first_name: str = Field(default="")
    last_name: str = Field(default="")
    dob: Optional[date] = Field(default=None, description="Date of birth.")
    phone: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = None
    address: Optional[Address] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class CareTeamMember(BaseModel):
    user_id: Optional[str] = None
    name: str = Field(default="")
    role: Optional[str] = None


class RiskProfile(BaseModel):
    """Risk tier, wellness scores and social-determinant codes.

    ``tier`` is ``None`` while the enrollee is unassessed.  Wellness scores
    may omit dimensions; the analytics engine documents how each aggregate
    treats a missing dimension.
    """

    tier: Optional[int] = Field(default=None, ge=1, le=3)
    wellness_scores: dict[str, int] = Field(default_factory=dict)
    z_codes: list[str] = Field(default_factory=list)
    lscmi_scores: dict[str, int] = Field(default_factory=dict)
    assessment_id: Optional[str] = None
    assessment_date: Optional[datetime] = None
    assessor: Optional[str] = None
    last_synced_at: Optional[datetime] = None

    @field_validator("wellness_scores")
    @classmethod
    def validate_wellness_scores(cls, v: dict[str, int]) -> dict[str, int]:
        for dimension, score in v.items():
            if dimension not in WELLNESS_DIMENSIONS:
                raise ValueError(
                    f"Unknown wellness dimension '{dimension}'. "
                    f"Expected one of {list(WELLNESS_DIMENSIONS)}"
                )
            if not 0 <= score <= 100:
                raise ValueError(
                    f"Wellness score for '{dimension}' must be within 0-100, got {score}"
                )
        return v


class Enrollee(BaseModel):
    """A person receiving care coordination (the case subject)."""

    enrollee_id: str = Field(default_factory=_new_id)
    demographics: Demographics = Field(default_factory=Demographics)
    care_team: list[CareTeamMember] = Field(default_factory=list)
    risk_profile: RiskProfile = Field(default_factory=RiskProfile)
    external_ids: dict[str, str] = Field(default_factory=dict)
    last_synced_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.demographics.full_name or self.enrollee_id


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

class EligibilityCriteria(BaseModel):
    """Stored eligibility rules for a resource.

    Only ``z_codes`` is enforced by the eligibility filter.  ``income`` and
    any extra keys are kept for display.
    """

    model_config = {"extra": "allow"}

    z_codes: list[str] = Field(default_factory=list)
    income: Optional[str] = None


class Resource(BaseModel):
    """A service-provider listing in the resource directory."""

    resource_id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    category: str = Field(default="")
    description: str = Field(default="")
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    services_offered: list[str] = Field(default_factory=list)
    eligibility_criteria: EligibilityCriteria = Field(default_factory=EligibilityCriteria)


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------

class Referral(BaseModel):
    """A proposed connection between an enrollee and a resource."""

    referral_id: str = Field(default_factory=_new_id)
    enrollee_id: str = Field(..., min_length=1)
    enrollee_name: str = Field(default="")
    resource_id: str = Field(..., min_length=1)
    resource_name: Optional[str] = None
    referring_user_id: str = Field(..., min_length=1)
    referring_user_name: str = Field(default="")
    status: ReferralStatus = Field(default=ReferralStatus.PENDING)
    notes: str = Field(default="")
    created_at: Optional[datetime] = None
    response_notes: Optional[str] = None
    responded_by: Optional[str] = None
    responded_at: Optional[datetime] = None


class ReferralMessage(BaseModel):
    """One entry in a referral's append-only message thread."""

    message_id: str = Field(default_factory=_new_id)
    content: str = Field(..., min_length=1)
    sender_user_id: Optional[str] = None
    sender_name: str = Field(default="User")
    timestamp: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Care plan
# ---------------------------------------------------------------------------

class CarePlanEntry(BaseModel):
    """A note, PRAXIS insight or alert attached to an enrollee.

    ``status`` is only meaningful for ``PRAXIS_INSIGHT`` entries.
    """

    entry_id: str = Field(default_factory=_new_id)
    type: CarePlanEntryType = Field(default=CarePlanEntryType.NOTE)
    content: str = Field(default="")
    author_user_id: Optional[str] = None
    author_name: str = Field(default="User")
    timestamp: Optional[datetime] = None
    status: Optional[InsightStatus] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

"""
Mapping from clinical-assessment platform records to portal models.

Assessment payloads are loosely structured dictionaries whose field names
depend on the platform's form configuration.  This module turns them into
a risk tier, the eight wellness scores, social-determinant Z-codes and the
ten LS/CMI domain scores.

Risk tier from the LS/CMI composite (0-43):

* 0-11  -> tier 1
* 12-31 -> tier 2
* 32+   -> tier 3

Numeric fields that are absent fall back to a neutral value; a field that
is present with value 0 is used as 0.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from atlascie.assessment_client import AssessmentClient, AssessmentIntegrationError
from atlascie.models import (
    Address,
    Demographics,
    Enrollee,
    RiskProfile,
    WELLNESS_DIMENSIONS,
    utcnow,
)

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
DEFAULT_FORM_NAME = "LS/CMI Assessment"
PLACEHOLDER_FORM_NAME = "Stored risk profile"
PHOTO_PLACEHOLDER_URL = "https://placehold.co/100x100/E2E8F0/64748B?text={initials}"

EDUCATION_SCORES: dict[str, int] = {
    "less_than_high_school": 30,
    "high_school": 50,
    "some_college": 65,
    "associates": 70,
    "bachelors": 80,
    "masters": 90,
    "doctorate": 95,
}

EMPLOYMENT_SCORES: dict[str, int] = {
    "full_time": 90,
    "part_time": 70,
    "self_employed": 80,
    "student": 75,
    "retired": 85,
    "unemployed_looking": 40,
    "unemployed_not_looking": 30,
    "disabled": 50,
}

HOUSING_SCORES: dict[str, int] = {
    "owned": 90,
    "rented": 80,
    "staying_with_family": 60,
    "temporary_housing": 40,
    "shelter": 20,
    "homeless": 10,
}

# LS/CMI domain -> assessment field
LSCMI_FIELDS: dict[str, str] = {
    "criminal": "criminal_history_score",
    "education": "education_employment_score",
    "financial": "financial_score",
    "family": "family_marital_score",
    "accommodation": "accommodation_score",
    "leisure": "leisure_recreation_score",
    "companions": "companions_score",
    "alcohol": "alcohol_drug_score",
    "attitudes": "procriminal_attitude_score",
    "antisocial": "antisocial_pattern_score",
}

PHQ9_MAX = 27
GAD7_MAX = 21


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class TimelineEntry(BaseModel):
    """One assessment on an enrollee's assessment timeline."""

    assessment_id: Optional[str] = None
    date: Optional[datetime] = None
    tier: int = Field(..., ge=1, le=3)
    total_score: int = 0
    assessor: Optional[str] = None
    form_name: str = DEFAULT_FORM_NAME
    scores: dict[str, int] = Field(default_factory=dict)
    wellness_scores: dict[str, int] = Field(default_factory=dict)
    z_codes: list[str] = Field(default_factory=list)
    placeholder: bool = False


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _first(record: dict[str, Any], *keys: str) -> Any:
    """Value of the first key present with a truthy value (camel/snake variants)."""
    for key in keys:
        value = record.get(key)
        if value:
            return value
    return None


def _number(record: dict[str, Any], key: str, default: float) -> float:
    value = record.get(key)
    return default if value is None else float(value)


def _clamp_score(value: float) -> int:
    return max(0, min(100, int(round(value))))


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

def calculate_risk_tier(lscmi_total: float) -> int:
    """Risk tier (1-3) from the LS/CMI composite score."""
    if lscmi_total <= 11:
        return 1
    if lscmi_total <= 31:
        return 2
    return 3


def calculate_wellness_scores(assessment: dict[str, Any]) -> dict[str, int]:
    """The eight wellness dimensions (0-100) derived from an assessment.

    Emotional wellness is the inverse of the mean normalised PHQ-9 and
    GAD-7 scores.  Intellectual, occupational and environmental wellness
    come from the education, employment and housing lookups; unrecognised
    values score 50.
    """
    phq9 = _number(assessment, "phq9_score", 0)
    gad7 = _number(assessment, "gad7_score", 0)
    scores = {
        "physical": _clamp_score(_number(assessment, "physical_health_score", NEUTRAL_SCORE)),
        "emotional": _clamp_score(100 - (phq9 / PHQ9_MAX + gad7 / GAD7_MAX) / 2 * 100),
        "social": _clamp_score(_number(assessment, "social_support_score", NEUTRAL_SCORE)),
        "intellectual": EDUCATION_SCORES.get(assessment.get("education_level"), NEUTRAL_SCORE),
        "occupational": EMPLOYMENT_SCORES.get(assessment.get("employment_status"), NEUTRAL_SCORE),
        "environmental": HOUSING_SCORES.get(assessment.get("housing_status"), NEUTRAL_SCORE),
        "financial": _clamp_score(_number(assessment, "financial_stability", NEUTRAL_SCORE)),
        "spiritual": _clamp_score(_number(assessment, "spiritual_practices", NEUTRAL_SCORE)),
    }
    return {dimension: scores[dimension] for dimension in WELLNESS_DIMENSIONS}


def extract_z_codes(assessment: dict[str, Any]) -> list[str]:
    """Social-determinant Z-codes indicated by an assessment, in rule order."""
    codes: list[str] = []
    housing = assessment.get("housing_status")
    if housing == "homeless":
        codes.append("Z59.0")
    elif housing == "temporary_housing":
        codes.append("Z59.8")
    if assessment.get("housing_quality") == "inadequate":
        codes.append("Z59.1")
    if assessment.get("food_insecurity"):
        codes.append("Z59.4")
    if assessment.get("employment_status") in ("unemployed_looking", "unemployed_not_looking"):
        codes.append("Z56.0")
    if assessment.get("job_loss_recent"):
        codes.append("Z56.9")
    financial = assessment.get("financial_stability")
    if assessment.get("low_income") or (financial is not None and financial < 30):
        codes.append("Z59.6")
    if assessment.get("educational_problems"):
        codes.append("Z55.9")
    if assessment.get("victim_of_abuse"):
        codes.append("Z91.4")
    if assessment.get("family_disruption"):
        codes.append("Z63.4")
    if assessment.get("social_isolation"):
        codes.append("Z65.1")
    return codes


def extract_lscmi_scores(assessment: dict[str, Any]) -> dict[str, int]:
    return {
        domain: int(assessment.get(field) or 0) for domain, field in LSCMI_FIELDS.items()
    }


# ---------------------------------------------------------------------------
# Record mapping
# ---------------------------------------------------------------------------

def _placeholder_photo(first_name: Optional[str], last_name: Optional[str]) -> str:
    initials = f"{(first_name or '')[:1]}{(last_name or '')[:1]}".upper()
    return PHOTO_PLACEHOLDER_URL.format(initials=initials)


def map_client_to_enrollee(client: dict[str, Any]) -> Enrollee:
    """Build a new enrollee from a platform client.

    The risk profile starts at tier 1 with neutral wellness scores until
    an assessment is mapped onto it.
    """
    first_name = _first(client, "firstName", "first_name") or ""
    last_name = _first(client, "lastName", "last_name") or ""
    address = client.get("address") or {}
    external_ids = {"assessment_platform": str(client["id"])}
    external_id = _first(client, "externalId", "external_id")
    if external_id:
        external_ids["external_id"] = str(external_id)

    return Enrollee(
        demographics=Demographics(
            first_name=first_name,
            last_name=last_name,
            dob=_first(client, "dateOfBirth", "date_of_birth"),
            phone=client.get("phone"),
            email=client.get("email"),
            photo_url=client.get("photoUrl") or _placeholder_photo(first_name, last_name),
            address=Address(
                street=address.get("street"),
                city=address.get("city"),
                state=address.get("state"),
                zip_code=address.get("zip_code"),
            ),
        ),
        risk_profile=RiskProfile(
            tier=1,
            wellness_scores={d: NEUTRAL_SCORE for d in WELLNESS_DIMENSIONS},
        ),
        external_ids=external_ids,
        last_synced_at=utcnow(),
    )


def map_assessment_to_risk_profile(assessment: dict[str, Any]) -> RiskProfile:
    lscmi = extract_lscmi_scores(assessment)
    return RiskProfile(
        tier=calculate_risk_tier(sum(lscmi.values())),
        wellness_scores=calculate_wellness_scores(assessment),
        lscmi_scores=lscmi,
        z_codes=extract_z_codes(assessment),
        assessment_id=assessment.get("id"),
        assessment_date=_first(assessment, "submittedAt", "submitted_at"),
        assessor=_first(assessment, "assessor", "submitted_by"),
        last_synced_at=utcnow(),
    )


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------

def format_assessment_for_timeline(assessment: dict[str, Any]) -> TimelineEntry:
    lscmi = extract_lscmi_scores(assessment)
    total = sum(lscmi.values())
    return TimelineEntry(
        assessment_id=assessment.get("id"),
        date=_first(assessment, "submittedAt", "submitted_at"),
        tier=calculate_risk_tier(total),
        total_score=total,
        assessor=_first(assessment, "assessor", "submitted_by"),
        form_name=_first(assessment, "formName", "form_name") or DEFAULT_FORM_NAME,
        scores=lscmi,
        wellness_scores=calculate_wellness_scores(assessment),
        z_codes=extract_z_codes(assessment),
    )


def _sort_key(entry: TimelineEntry) -> float:
    return entry.date.timestamp() if entry.date else float("-inf")


def create_assessment_timeline(assessments: list[dict[str, Any]]) -> list[TimelineEntry]:
    """Timeline entries sorted oldest first; undated entries lead."""
    return sorted(
        (format_assessment_for_timeline(a) for a in assessments), key=_sort_key
    )


def placeholder_timeline(enrollee: Enrollee) -> list[TimelineEntry]:
    """A single-entry timeline built from the enrollee's stored risk profile.

    Unassessed enrollees (no tier) get an empty timeline.
    """
    profile = enrollee.risk_profile
    if profile.tier is None:
        return []
    return [
        TimelineEntry(
            assessment_id=profile.assessment_id,
            date=profile.assessment_date,
            tier=profile.tier,
            total_score=sum(profile.lscmi_scores.values()),
            assessor=profile.assessor,
            form_name=PLACEHOLDER_FORM_NAME,
            scores=dict(profile.lscmi_scores),
            wellness_scores=dict(profile.wellness_scores),
            z_codes=list(profile.z_codes),
            placeholder=True,
        )
    ]


def load_assessment_timeline(
    client: Optional[AssessmentClient], enrollee: Enrollee
) -> list[TimelineEntry]:
    """Fetch an enrollee's assessment timeline, degrading to placeholder
    data when the integration is disabled, the enrollee is not linked to a
    platform client, the platform call fails or its payload cannot be mapped.
    """
    platform_id = enrollee.external_ids.get("assessment_platform")
    if client is None or not client.enabled or not platform_id:
        return placeholder_timeline(enrollee)
    try:
        return create_assessment_timeline(client.get_client_assessments(platform_id))
    except (AssessmentIntegrationError, ValueError, TypeError):
        # pydantic.ValidationError is a ValueError
        logger.exception(
            "Assessment timeline unavailable for enrollee %s; using stored risk profile",
            enrollee.enrollee_id,
        )
        return placeholder_timeline(enrollee)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_client(client: dict[str, Any]) -> ValidationResult:
    errors = []
    if not client.get("id"):
        errors.append("Client ID is required")
    if not _first(client, "firstName", "first_name"):
        errors.append("First name is required")
    if not _first(client, "lastName", "last_name"):
        errors.append("Last name is required")
    if not _first(client, "dateOfBirth", "date_of_birth"):
        errors.append("Date of birth is required")
    return ValidationResult(valid=not errors, errors=errors)


def validate_assessment(assessment: dict[str, Any]) -> ValidationResult:
    errors = []
    if not assessment.get("id"):
        errors.append("Assessment ID is required")
    if not _first(assessment, "clientId", "client_id"):
        errors.append("Client ID is required")
    if not _first(assessment, "submittedAt", "submitted_at"):
        errors.append("Submission date is required")
    return ValidationResult(valid=not errors, errors=errors)

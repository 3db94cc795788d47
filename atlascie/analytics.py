"""
Aggregate analytics over enrollees and referrals.

Every function here is pure and total: empty inputs produce zero/neutral
results, and every division guards its zero denominator by returning 0.
Percentages and whole-number averages round half up (so 62.5 -> 63);
one-decimal averages do the same at the first decimal place.

Two wellness aggregates deliberately treat missing dimensions differently:

* ``average_wellness`` (population) averages only the scores present.
* ``enrollee_wellness`` (one enrollee) divides by all eight dimensions,
  counting a missing dimension as 0.

``calculate_trends`` is a population-relative snapshot: each enrollee is
compared with the current population average.  No history is consulted.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, Field

from atlascie.models import (
    WELLNESS_DIMENSIONS,
    Enrollee,
    Referral,
    ReferralStatus,
    RiskTrend,
)

logger = logging.getLogger(__name__)

TOP_N = 5
TREND_BAND = 10

Z_CODE_NAMES: dict[str, str] = {
    "Z55.9": "Educational Problems",
    "Z56.0": "Unemployment",
    "Z56.9": "Employment Problems",
    "Z59.0": "Homelessness",
    "Z59.1": "Inadequate Housing",
    "Z59.4": "Lack of Adequate Food",
    "Z59.5": "Extreme Poverty",
    "Z59.6": "Low Income",
    "Z59.7": "Insufficient Social Insurance",
    "Z59.8": "Housing Instability",
    "Z59.9": "Housing Problem, Unspecified",
    "Z60.2": "Living Alone",
    "Z60.3": "Acculturation Difficulty",
    "Z63.4": "Family Disruption",
    "Z63.5": "Family Separation or Divorce",
    "Z65.0": "Civil or Criminal Conviction",
    "Z65.1": "Incarceration",
    "Z91.4": "History of Trauma",
}

GENERIC_Z_CODE_NAME = "Social determinant"


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class RiskDistribution(BaseModel):
    tier1: int = 0
    tier2: int = 0
    tier3: int = 0
    tier1_percent: int = 0
    tier2_percent: int = 0
    tier3_percent: int = 0


class CodeCount(BaseModel):
    code: str
    count: int
    name: str


class NamedCount(BaseModel):
    name: str
    count: int


class ZCodeAnalysis(BaseModel):
    total_z_codes: int = 0
    enrollees_with_z_codes: int = 0
    avg_z_codes_per_enrollee: float = 0.0
    top_z_codes: list[CodeCount] = Field(default_factory=list)


class CareTeamMetrics(BaseModel):
    total_team_members: int = 0
    enrollees_with_teams: int = 0
    avg_team_size: float = 0.0
    role_counts: dict[str, int] = Field(default_factory=dict)


class ReferralMetrics(BaseModel):
    status_counts: dict[str, int] = Field(default_factory=dict)
    acceptance_rate: int = 0
    top_resources: list[NamedCount] = Field(default_factory=list)


class TrendSummary(BaseModel):
    improving: int = 0
    stable: int = 0
    declining: int = 0
    improving_percent: int = 0
    stable_percent: int = 0
    declining_percent: int = 0


class GeographicAnalysis(BaseModel):
    top_zip_codes: list[NamedCount] = Field(default_factory=list)
    top_cities: list[NamedCount] = Field(default_factory=list)


class RiskPrediction(BaseModel):
    """Advisory tier suggestion.  Never written back to the enrollee."""

    prediction: RiskTrend
    confidence: float
    recommended_tier: int
    current_tier: Optional[int] = None


class CohortSummary(BaseModel):
    label: str
    count: int
    avg_wellness: int
    avg_risk_tier: Optional[float] = None
    avg_z_codes: Optional[float] = None


class DashboardAnalytics(BaseModel):
    total_enrollees: int
    total_referrals: int
    active_referrals: int
    avg_wellness_score: int
    wellness_dimensions: dict[str, float]
    risk_distribution: RiskDistribution
    z_code_analysis: ZCodeAnalysis
    care_team_metrics: CareTeamMetrics
    referral_metrics: ReferralMetrics
    trends: TrendSummary
    geographic_analysis: GeographicAnalysis


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def round_half_up(value: float, digits: int = 0) -> float:
    """Round to ``digits`` places, halves away from zero."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _percent(part: int, total: int) -> int:
    if total == 0:
        return 0
    return int(round_half_up(part / total * 100))


def _top(counter: Counter, n: int = TOP_N) -> list[tuple[str, int]]:
    # most_common keeps first-seen order among equal counts
    return counter.most_common(n)


def z_code_name(code: str) -> str:
    """Human-readable name for a Z-code, or a generic label if unknown."""
    return Z_CODE_NAMES.get(code, GENERIC_Z_CODE_NAME)


# ---------------------------------------------------------------------------
# Wellness
# ---------------------------------------------------------------------------

def average_wellness(enrollees: Iterable[Enrollee]) -> int:
    """Mean of every present dimension score across all enrollees."""
    total = 0
    count = 0
    for enrollee in enrollees:
        scores = enrollee.risk_profile.wellness_scores
        for dimension in WELLNESS_DIMENSIONS:
            if dimension in scores:
                total += scores[dimension]
                count += 1
    if count == 0:
        return 0
    return int(round_half_up(total / count))


def enrollee_wellness(enrollee: Enrollee) -> int:
    """Mean of the eight dimensions for one enrollee, 0 for missing ones."""
    scores = enrollee.risk_profile.wellness_scores
    total = sum(scores.get(dimension, 0) for dimension in WELLNESS_DIMENSIONS)
    return int(round_half_up(total / len(WELLNESS_DIMENSIONS)))


def wellness_dimension_averages(enrollees: Sequence[Enrollee]) -> dict[str, float]:
    """Per-dimension mean over the enrollees that have that dimension."""
    averages: dict[str, float] = {}
    for dimension in WELLNESS_DIMENSIONS:
        scores = [
            e.risk_profile.wellness_scores[dimension]
            for e in enrollees
            if dimension in e.risk_profile.wellness_scores
        ]
        averages[dimension] = sum(scores) / len(scores) if scores else 0.0
    return averages


# ---------------------------------------------------------------------------
# Distributions and frequency tables
# ---------------------------------------------------------------------------

def risk_distribution(enrollees: Sequence[Enrollee]) -> RiskDistribution:
    """Tier counts and percentages over all enrollees (unassessed included
    in the denominator)."""
    total = len(enrollees)
    counts = Counter(e.risk_profile.tier for e in enrollees)
    return RiskDistribution(
        tier1=counts[1],
        tier2=counts[2],
        tier3=counts[3],
        tier1_percent=_percent(counts[1], total),
        tier2_percent=_percent(counts[2], total),
        tier3_percent=_percent(counts[3], total),
    )


def analyze_z_codes(enrollees: Sequence[Enrollee]) -> ZCodeAnalysis:
    counts: Counter = Counter()
    with_codes = 0
    for enrollee in enrollees:
        codes = enrollee.risk_profile.z_codes
        if codes:
            with_codes += 1
            counts.update(codes)

    total_codes = sum(counts.values())
    average = round_half_up(total_codes / len(enrollees), 1) if enrollees else 0.0
    return ZCodeAnalysis(
        total_z_codes=total_codes,
        enrollees_with_z_codes=with_codes,
        avg_z_codes_per_enrollee=average,
        top_z_codes=[
            CodeCount(code=code, count=count, name=z_code_name(code))
            for code, count in _top(counts)
        ],
    )


def analyze_care_teams(enrollees: Sequence[Enrollee]) -> CareTeamMetrics:
    role_counts: Counter = Counter()
    total_members = 0
    with_teams = 0
    for enrollee in enrollees:
        if enrollee.care_team:
            with_teams += 1
            total_members += len(enrollee.care_team)
            role_counts.update(member.role or "Unknown" for member in enrollee.care_team)

    average = round_half_up(total_members / len(enrollees), 1) if enrollees else 0.0
    return CareTeamMetrics(
        total_team_members=total_members,
        enrollees_with_teams=with_teams,
        avg_team_size=average,
        role_counts=dict(role_counts),
    )


def analyze_referrals(referrals: Sequence[Referral]) -> ReferralMetrics:
    status_counts = {status.value: 0 for status in ReferralStatus}
    resource_counts: Counter = Counter()
    for referral in referrals:
        status_counts[referral.status.value] += 1
        resource_counts[referral.resource_name or "Unknown"] += 1

    return ReferralMetrics(
        status_counts=status_counts,
        acceptance_rate=_percent(status_counts[ReferralStatus.ACCEPTED.value], len(referrals)),
        top_resources=[NamedCount(name=name, count=count) for name, count in _top(resource_counts)],
    )


def analyze_geography(enrollees: Iterable[Enrollee]) -> GeographicAnalysis:
    """Top ZIP codes and cities.  Enrollees without an address are skipped."""
    zips: Counter = Counter()
    cities: Counter = Counter()
    for enrollee in enrollees:
        address = enrollee.demographics.address
        if address is None:
            continue
        if address.zip_code:
            zips[address.zip_code] += 1
        if address.city:
            cities[address.city] += 1

    return GeographicAnalysis(
        top_zip_codes=[NamedCount(name=z, count=c) for z, c in _top(zips)],
        top_cities=[NamedCount(name=city, count=c) for city, c in _top(cities)],
    )


# ---------------------------------------------------------------------------
# Trends and tier recommendation
# ---------------------------------------------------------------------------

def classify_trend(wellness: float, population_average: float) -> RiskTrend:
    if wellness > population_average + TREND_BAND:
        return RiskTrend.IMPROVING
    if wellness < population_average - TREND_BAND:
        return RiskTrend.DECLINING
    return RiskTrend.STABLE


def calculate_trends(enrollees: Sequence[Enrollee]) -> TrendSummary:
    population_average = average_wellness(enrollees)
    buckets = Counter(
        classify_trend(enrollee_wellness(e), population_average) for e in enrollees
    )
    total = len(enrollees)
    return TrendSummary(
        improving=buckets[RiskTrend.IMPROVING],
        stable=buckets[RiskTrend.STABLE],
        declining=buckets[RiskTrend.DECLINING],
        improving_percent=_percent(buckets[RiskTrend.IMPROVING], total),
        stable_percent=_percent(buckets[RiskTrend.STABLE], total),
        declining_percent=_percent(buckets[RiskTrend.DECLINING], total),
    )


def recommend_risk_tier(wellness: float, z_code_count: int) -> int:
    """Heuristic tier: 1 for high wellness with few codes, 3 for low
    wellness or many codes, otherwise 2."""
    if wellness > 70 and z_code_count <= 2:
        return 1
    if wellness < 40 or z_code_count >= 5:
        return 3
    return 2


def predict_risk_trend(enrollee: Enrollee) -> RiskPrediction:
    """Advisory prediction for one enrollee.

    The confidence reflects which branch fired: 0.75 for the improving
    branch, 0.70 for the declining branch and 0.60 otherwise.
    """
    wellness = enrollee_wellness(enrollee)
    code_count = len(enrollee.risk_profile.z_codes)

    if wellness > 70 and code_count <= 2:
        prediction, confidence = RiskTrend.IMPROVING, 0.75
    elif wellness < 40 and code_count >= 4:
        prediction, confidence = RiskTrend.DECLINING, 0.70
    else:
        prediction, confidence = RiskTrend.STABLE, 0.60

    return RiskPrediction(
        prediction=prediction,
        confidence=confidence,
        recommended_tier=recommend_risk_tier(wellness, code_count),
        current_tier=enrollee.risk_profile.tier,
    )


# ---------------------------------------------------------------------------
# Dashboard bundle
# ---------------------------------------------------------------------------

def calculate_dashboard_analytics(
    enrollees: Sequence[Enrollee], referrals: Sequence[Referral]
) -> DashboardAnalytics:
    """Compute every dashboard aggregate in one pass over the inputs."""
    enrollees = list(enrollees)
    referrals = list(referrals)
    logger.debug(
        "Computing dashboard analytics for %d enrollees, %d referrals",
        len(enrollees), len(referrals),
    )
    return DashboardAnalytics(
        total_enrollees=len(enrollees),
        total_referrals=len(referrals),
        active_referrals=sum(1 for r in referrals if r.status == ReferralStatus.PENDING),
        avg_wellness_score=average_wellness(enrollees),
        wellness_dimensions=wellness_dimension_averages(enrollees),
        risk_distribution=risk_distribution(enrollees),
        z_code_analysis=analyze_z_codes(enrollees),
        care_team_metrics=analyze_care_teams(enrollees),
        referral_metrics=analyze_referrals(referrals),
        trends=calculate_trends(enrollees),
        geographic_analysis=analyze_geography(enrollees),
    )


# ---------------------------------------------------------------------------
# Cohorts
# ---------------------------------------------------------------------------

AGE_GROUPS: tuple[tuple[str, int], ...] = (
    ("18-24", 25),
    ("25-34", 35),
    ("35-44", 45),
    ("45-54", 55),
    ("55-64", 65),
)
OLDEST_AGE_GROUP = "65+"

Z_CODE_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Housing Insecurity", "Z59"),
    ("Employment Issues", "Z56"),
    ("Educational Problems", "Z55"),
)


def calculate_age(dob: Optional[date], today: Optional[date] = None) -> int:
    """Whole years since ``dob``; 0 when the date of birth is unknown."""
    if dob is None:
        return 0
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def _avg_tier(enrollees: Sequence[Enrollee]) -> float:
    if not enrollees:
        return 0.0
    return sum(e.risk_profile.tier or 0 for e in enrollees) / len(enrollees)


def _avg_z_codes(enrollees: Sequence[Enrollee]) -> float:
    if not enrollees:
        return 0.0
    return sum(len(e.risk_profile.z_codes) for e in enrollees) / len(enrollees)


def _age_group(age: int) -> str:
    for label, upper in AGE_GROUPS:
        if age < upper:
            return label
    return OLDEST_AGE_GROUP


def analyze_by_cohort(
    enrollees: Sequence[Enrollee], cohort: str, today: Optional[date] = None
) -> list[CohortSummary]:
    """Summaries per cohort of type ``age``, ``tier`` or ``zcode``.

    An unknown cohort type yields an empty list.
    """
    if cohort == "age":
        groups: dict[str, list[Enrollee]] = {label: [] for label, _ in AGE_GROUPS}
        groups[OLDEST_AGE_GROUP] = []
        for enrollee in enrollees:
            groups[_age_group(calculate_age(enrollee.demographics.dob, today))].append(enrollee)
        return [
            CohortSummary(
                label=label,
                count=len(members),
                avg_wellness=average_wellness(members),
                avg_risk_tier=_avg_tier(members),
            )
            for label, members in groups.items()
        ]

    if cohort == "tier":
        return [
            CohortSummary(
                label=f"Tier {tier}",
                count=len(members),
                avg_wellness=average_wellness(members),
                avg_z_codes=_avg_z_codes(members),
            )
            for tier in (1, 2, 3)
            for members in [[e for e in enrollees if e.risk_profile.tier == tier]]
        ]

    if cohort == "zcode":
        categories: dict[str, list[Enrollee]] = {
            label: [
                e for e in enrollees
                if any(code.startswith(prefix) for code in e.risk_profile.z_codes)
            ]
            for label, prefix in Z_CODE_CATEGORIES
        }
        categories["No Z-Codes"] = [e for e in enrollees if not e.risk_profile.z_codes]
        return [
            CohortSummary(
                label=label,
                count=len(members),
                avg_wellness=average_wellness(members),
                avg_risk_tier=_avg_tier(members),
            )
            for label, members in categories.items()
        ]

    logger.debug("Unknown cohort type %r", cohort)
    return []

"""
Sample data loading and cleanup for demonstration tenants.

The dataset ships as YAML (``atlascie/data/sample_data.yaml``) with a
``resources`` list and an ``enrollees`` list.  Every entry is validated
through the corresponding model before anything is written.

Writes and deletes are issued one document at a time.  A failure part way
through leaves the documents written so far in place; the raised error
carries no rollback.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from atlascie.enrollment import CREATOR_TEAM_ROLE
from atlascie.identity import IdentityService
from atlascie.models import CareTeamMember, Enrollee, Principal, Resource
from atlascie.rbac import RoleLike, require_permission
from atlascie.repository import PortalRepository

logger = logging.getLogger(__name__)

DEFAULT_DATASET_PATH = Path(__file__).parent / "data" / "sample_data.yaml"


class SampleDataset(BaseModel):
    resources: list[Resource] = Field(default_factory=list)
    enrollees: list[Enrollee] = Field(default_factory=list)


class LoadSummary(BaseModel):
    resources_added: int = 0
    enrollees_added: int = 0
    enrollee_ids: list[str] = Field(default_factory=list)


class ClearSummary(BaseModel):
    resources_deleted: int = 0
    enrollees_deleted: int = 0
    referrals_deleted: int = 0


# ---------------------------------------------------------------------------
# YAML loader
# ---------------------------------------------------------------------------

def load_sample_dataset(path: str | Path | None = None) -> SampleDataset:
    """Load and validate a sample dataset.

    Example YAML structure::

        resources:
          - name: "Community Food Bank"
            category: "Food Security"
            eligibility_criteria:
              z_codes: ["Z59.4"]
        enrollees:
          - demographics: {first_name: "Sandra", last_name: "Morrison"}
            risk_profile: {tier: 1}

    Args:
        path: Path to the YAML file.  Defaults to the packaged dataset.

    Returns:
        The validated ``SampleDataset``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If any entry fails validation.
    """
    path = Path(path) if path is not None else DEFAULT_DATASET_PATH
    if not path.exists():
        raise FileNotFoundError(f"Sample data file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(
            "Sample data file must be a mapping with 'resources' and/or 'enrollees' lists."
        )
    for key in ("resources", "enrollees"):
        if key in raw and not isinstance(raw[key], list):
            raise ValueError(f"'{key}' must be a list.")

    return SampleDataset.model_validate(raw)


# ---------------------------------------------------------------------------
# Load / clear
# ---------------------------------------------------------------------------

def load_sample_data(
    repository: PortalRepository,
    identity: IdentityService,
    principal: Principal,
    actor_role: RoleLike,
    dataset: Optional[SampleDataset] = None,
) -> LoadSummary:
    """Write the sample resources and enrollees, then assign the enrollees
    to the loading principal.

    The loading principal is placed on each enrollee's care team.

    Raises:
        PermissionError: If the role lacks ``LOAD_SAMPLE_DATA``.
        atlascie.store.StoreError: If a write fails.
    """
    require_permission("LOAD_SAMPLE_DATA", actor_role)
    dataset = dataset or load_sample_dataset()
    summary = LoadSummary()

    logger.info("Loading sample data for %s", principal.uid)
    for resource in dataset.resources:
        # Fresh ids so a second load adds a second copy rather than overwriting.
        repository.add_resource(
            Resource.model_validate(resource.model_dump(exclude={"resource_id"}))
        )
        summary.resources_added += 1
        logger.debug("Added resource %s", resource.name)

    member = CareTeamMember(
        user_id=principal.uid, name=principal.display_name, role=CREATOR_TEAM_ROLE
    )
    for enrollee in dataset.enrollees:
        data = enrollee.model_dump(exclude={"enrollee_id", "care_team"})
        created = repository.add_enrollee(
            Enrollee.model_validate({**data, "care_team": [member.model_dump()]})
        )
        summary.enrollees_added += 1
        summary.enrollee_ids.append(created.enrollee_id)
        logger.debug("Added enrollee %s", created.display_name)

    identity.ensure_profile(principal)
    identity.assign_enrollees(principal.uid, summary.enrollee_ids)
    logger.info(
        "Sample data loaded: %d resources, %d enrollees",
        summary.resources_added, summary.enrollees_added,
    )
    return summary


def clear_sample_data(repository: PortalRepository, actor_role: RoleLike) -> ClearSummary:
    """Delete every resource, enrollee and referral for the tenant.

    Profiles and their assignment lists are left untouched; assignments
    pointing at deleted enrollees resolve to nothing.

    Raises:
        PermissionError: If the role lacks ``LOAD_SAMPLE_DATA``.
    """
    require_permission("LOAD_SAMPLE_DATA", actor_role)
    summary = ClearSummary()

    for resource in repository.list_resources():
        repository.delete_resource(resource.resource_id)
        summary.resources_deleted += 1
    for enrollee in repository.list_enrollees():
        repository.delete_enrollee(enrollee.enrollee_id)
        summary.enrollees_deleted += 1
    for referral in repository.list_referrals():
        repository.delete_referral(referral.referral_id)
        summary.referrals_deleted += 1

    logger.info(
        "Sample data cleared: %d resources, %d enrollees, %d referrals",
        summary.resources_deleted, summary.enrollees_deleted, summary.referrals_deleted,
    )
    return summary

"""
Enrollee roster management.

Creating an enrollee adds the creator to the enrollee's care team and to
the creator's profile assignments, so the new enrollee appears in the
creator's roster immediately.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from atlascie.identity import IdentityService
from atlascie.models import CareTeamMember, Enrollee, Principal
from atlascie.rbac import RoleLike, require_permission
from atlascie.repository import PortalRepository

logger = logging.getLogger(__name__)

CREATOR_TEAM_ROLE = "CPC"


class EnrollmentService:
    def __init__(self, repository: PortalRepository, identity: IdentityService) -> None:
        self._repo = repository
        self._identity = identity

    def create_enrollee(
        self, actor: Principal, actor_role: RoleLike, enrollee: Enrollee
    ) -> Enrollee:
        """Enroll a new case subject.

        Raises:
            PermissionError: If the role lacks ``CREATE_ENROLLEE``.
        """
        require_permission("CREATE_ENROLLEE", actor_role)
        if not any(member.user_id == actor.uid for member in enrollee.care_team):
            enrollee = enrollee.model_copy(update={
                "care_team": [
                    *enrollee.care_team,
                    CareTeamMember(
                        user_id=actor.uid, name=actor.display_name, role=CREATOR_TEAM_ROLE
                    ),
                ],
            })
        created = self._repo.add_enrollee(enrollee)
        self._identity.ensure_profile(actor)
        self._identity.assign_enrollees(actor.uid, [created.enrollee_id])
        logger.info("Enrollee %s created by %s", created.enrollee_id, actor.uid)
        return created

    def get_enrollee(self, actor_role: RoleLike, enrollee_id: str) -> Optional[Enrollee]:
        """Return the enrollee, or None if it does not exist (e.g. deleted).

        Raises:
            PermissionError: If the role lacks ``VIEW_ENROLLEE``.
        """
        require_permission("VIEW_ENROLLEE", actor_role)
        return self._repo.get_enrollee(enrollee_id)

    def list_assigned(self, principal: Principal, actor_role: RoleLike) -> list[Enrollee]:
        """The enrollees assigned to a principal's profile."""
        require_permission("VIEW_ENROLLEE", actor_role)
        profile = self._repo.get_profile(principal.uid)
        if profile is None or not profile.assigned_enrollee_ids:
            return []
        return self._repo.list_enrollees(profile.assigned_enrollee_ids)

    def list_all(self, actor_role: RoleLike) -> list[Enrollee]:
        require_permission("VIEW_ENROLLEE", actor_role)
        return self._repo.list_enrollees()

    def update_enrollee(
        self, actor_role: RoleLike, enrollee_id: str, fields: dict[str, Any]
    ) -> Enrollee:
        """Update top-level enrollee fields (demographics, risk_profile, ...).

        The merged record is validated before it is written.

        Raises:
            PermissionError: If the role lacks ``EDIT_ENROLLEE``.
            KeyError: If the enrollee does not exist.
            ValueError: If a field is unknown or is ``enrollee_id``.
        """
        require_permission("EDIT_ENROLLEE", actor_role)
        current = self._repo.get_enrollee(enrollee_id)
        if current is None:
            raise KeyError(f"Enrollee '{enrollee_id}' not found")
        if "enrollee_id" in fields:
            raise ValueError("enrollee_id cannot be changed")
        unknown = sorted(set(fields) - set(Enrollee.model_fields))
        if unknown:
            raise ValueError(f"Unknown enrollee fields: {unknown}")

        merged = Enrollee.model_validate({**current.model_dump(), **fields})
        self._repo.update_enrollee(
            enrollee_id, {key: getattr(merged, key) for key in fields}
        )
        return merged

    def delete_enrollee(self, actor: Principal, actor_role: RoleLike, enrollee_id: str) -> None:
        """Delete an enrollee and drop it from the actor's assignments.

        Raises:
            PermissionError: If the role lacks ``DELETE_ENROLLEE``.
        """
        require_permission("DELETE_ENROLLEE", actor_role)
        self._repo.delete_enrollee(enrollee_id)
        self._identity.unassign_enrollee(actor.uid, enrollee_id)
        logger.info("Enrollee %s deleted by %s", enrollee_id, actor.uid)

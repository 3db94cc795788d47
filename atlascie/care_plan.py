"""
Care plan entries attached to an enrollee.

Three entry types share one timeline: coordinator notes, PRAXIS insights
(system suggestions a coordinator accepts or dismisses) and alerts.

* Notes may be edited only by their author, and only with
  ``EDIT_CARE_NOTE``.
* Any entry may be deleted with ``DELETE_CARE_NOTE``.
* An insight moves from Pending to Accepted or Dismissed exactly once.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from atlascie.models import (
    CarePlanEntry,
    CarePlanEntryType,
    InsightStatus,
    Principal,
)
from atlascie.rbac import RoleLike, require_permission
from atlascie.repository import PortalRepository

logger = logging.getLogger(__name__)

PRAXIS_AUTHOR = "PRAXIS System"


class CarePlanService:
    def __init__(self, repository: PortalRepository) -> None:
        self._repo = repository

    def _load(self, enrollee_id: str, entry_id: str) -> CarePlanEntry:
        entry = self._repo.get_care_plan_entry(enrollee_id, entry_id)
        if entry is None:
            raise KeyError(f"Care plan entry '{entry_id}' not found")
        return entry

    def add_note(
        self, enrollee_id: str, actor: Principal, actor_role: RoleLike, content: str
    ) -> CarePlanEntry:
        require_permission("CREATE_CARE_NOTE", actor_role)
        if not content.strip():
            raise ValueError("Note content must not be empty.")
        entry = CarePlanEntry(
            type=CarePlanEntryType.NOTE,
            content=content.strip(),
            author_user_id=actor.uid,
            author_name=actor.display_name,
        )
        return self._repo.add_care_plan_entry(enrollee_id, entry)

    def add_insight(
        self, enrollee_id: str, content: str, metadata: Optional[dict[str, Any]] = None
    ) -> CarePlanEntry:
        """Record a system-generated insight awaiting coordinator review."""
        entry = CarePlanEntry(
            type=CarePlanEntryType.PRAXIS_INSIGHT,
            content=content,
            author_name=PRAXIS_AUTHOR,
            status=InsightStatus.PENDING,
            metadata=metadata or {},
        )
        return self._repo.add_care_plan_entry(enrollee_id, entry)

    def add_alert(
        self, enrollee_id: str, content: str, metadata: Optional[dict[str, Any]] = None
    ) -> CarePlanEntry:
        entry = CarePlanEntry(
            type=CarePlanEntryType.ALERT,
            content=content,
            author_name=PRAXIS_AUTHOR,
            metadata=metadata or {},
        )
        return self._repo.add_care_plan_entry(enrollee_id, entry)

    def edit_note(
        self,
        enrollee_id: str,
        entry_id: str,
        actor: Principal,
        actor_role: RoleLike,
        content: str,
    ) -> CarePlanEntry:
        """Edit a note's content.

        Raises:
            PermissionError: If the role lacks ``EDIT_CARE_NOTE`` or the
                actor is not the note's author.
            ValueError: If the entry is not a note or the content is blank.
        """
        require_permission("EDIT_CARE_NOTE", actor_role)
        entry = self._load(enrollee_id, entry_id)
        if entry.type != CarePlanEntryType.NOTE:
            raise ValueError(f"Only notes can be edited, not {entry.type.value} entries.")
        if entry.author_user_id != actor.uid:
            raise PermissionError(
                f"User '{actor.uid}' is not the author of care plan entry '{entry_id}'."
            )
        if not content.strip():
            raise ValueError("Note content must not be empty.")

        self._repo.update_care_plan_entry(enrollee_id, entry_id, {"content": content.strip()})
        return self._load(enrollee_id, entry_id)

    def delete_entry(self, enrollee_id: str, entry_id: str, actor_role: RoleLike) -> None:
        require_permission("DELETE_CARE_NOTE", actor_role)
        self._repo.delete_care_plan_entry(enrollee_id, entry_id)

    def set_insight_status(
        self,
        enrollee_id: str,
        entry_id: str,
        actor_role: RoleLike,
        status: InsightStatus,
    ) -> CarePlanEntry:
        """Accept or dismiss a pending PRAXIS insight.

        Raises:
            PermissionError: If the role lacks ``EDIT_CARE_NOTE``.
            ValueError: If the entry is not a pending insight or ``status``
                is Pending.
        """
        require_permission("EDIT_CARE_NOTE", actor_role)
        if status == InsightStatus.PENDING:
            raise ValueError("An insight can only be Accepted or Dismissed.")
        entry = self._load(enrollee_id, entry_id)
        if entry.type != CarePlanEntryType.PRAXIS_INSIGHT:
            raise ValueError(f"Entry '{entry_id}' is not a PRAXIS insight.")
        if entry.status != InsightStatus.PENDING:
            raise ValueError(
                f"Insight '{entry_id}' is already {entry.status.value if entry.status else 'resolved'}."
            )

        self._repo.update_care_plan_entry(enrollee_id, entry_id, {"status": status})
        logger.info("Insight %s on enrollee %s %s", entry_id, enrollee_id, status.value)
        return self._load(enrollee_id, entry_id)

    def list_entries(self, enrollee_id: str) -> list[CarePlanEntry]:
        """Entries newest first."""
        return sorted(
            self._repo.list_care_plan(enrollee_id),
            key=lambda e: e.timestamp.timestamp() if e.timestamp else 0.0,
            reverse=True,
        )

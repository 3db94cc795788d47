"""
Referral workflow.

A referral connects one enrollee to one resource.  Its status follows an
explicit state machine:

    Pending -> Accepted | Rejected | Cancelled

* ``respond()`` produces Accepted or Rejected and requires
  ``RESPOND_REFERRAL`` (partners and admins).  It records the response
  notes, the responder and a server timestamp.
* ``cancel()`` produces Cancelled and requires ``CANCEL_REFERRAL``.
* Every other state is terminal: no status-changing action is defined on
  it.

Every status-changing operation checks both the permission and the current
state.  Writes are not arbitrated: if two partners respond at the same
time, whichever write lands last wins.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from atlascie.models import (
    Enrollee,
    Principal,
    Referral,
    ReferralMessage,
    ReferralStatus,
    Resource,
)
from atlascie.rbac import RoleLike, require_permission
from atlascie.repository import PortalRepository
from atlascie.store import SERVER_TIMESTAMP, Subscription

logger = logging.getLogger(__name__)

DEFAULT_RESPONDER = "Resource Provider"


# ---------------------------------------------------------------------------
# Valid state transitions
# ---------------------------------------------------------------------------

_VALID_TRANSITIONS: dict[ReferralStatus, set[ReferralStatus]] = {
    ReferralStatus.PENDING: {
        ReferralStatus.ACCEPTED,
        ReferralStatus.REJECTED,
        ReferralStatus.CANCELLED,
    },
    ReferralStatus.ACCEPTED: set(),  # terminal state
    ReferralStatus.REJECTED: set(),  # terminal state
    ReferralStatus.CANCELLED: set(),  # terminal state
    ReferralStatus.COMPLETED: set(),  # terminal state
}

RESPONSE_STATUSES = frozenset({ReferralStatus.ACCEPTED, ReferralStatus.REJECTED})


def can_transition(current: ReferralStatus, target: ReferralStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class InvalidTransitionError(Exception):
    """Raised when a referral status change is not permitted."""
    pass


class ReferralNotFoundError(KeyError):
    """Raised when acting on a referral that no longer exists."""
    pass


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

class ReferralWorkflow:
    """Creates referrals and drives their status transitions."""

    def __init__(self, repository: PortalRepository) -> None:
        self._repo = repository

    # -- helpers --

    def _load(self, referral_id: str) -> Referral:
        referral = self._repo.get_referral(referral_id)
        if referral is None:
            raise ReferralNotFoundError(f"Referral '{referral_id}' not found")
        return referral

    @staticmethod
    def _validate_transition(referral: Referral, target: ReferralStatus) -> None:
        if not can_transition(referral.status, target):
            allowed = sorted(s.value for s in _VALID_TRANSITIONS.get(referral.status, set()))
            raise InvalidTransitionError(
                f"Cannot transition referral {referral.referral_id} from "
                f"{referral.status.value} to {target.value}. "
                f"Allowed transitions: {allowed}"
            )

    # -- lifecycle operations --

    def create_referral(
        self,
        actor: Principal,
        actor_role: RoleLike,
        enrollee: Enrollee,
        resource: Resource,
        notes: str = "",
    ) -> Referral:
        """Refer an enrollee to a resource.  The referral starts Pending.

        Raises:
            PermissionError: If the role lacks ``CREATE_REFERRAL``.
        """
        require_permission("CREATE_REFERRAL", actor_role)
        referral = Referral(
            enrollee_id=enrollee.enrollee_id,
            enrollee_name=enrollee.display_name,
            resource_id=resource.resource_id,
            resource_name=resource.name,
            referring_user_id=actor.uid,
            referring_user_name=actor.display_name,
            status=ReferralStatus.PENDING,
            notes=notes.strip(),
        )
        created = self._repo.add_referral(referral)
        logger.info(
            "Referral %s created: enrollee=%s resource=%s by=%s",
            created.referral_id, enrollee.enrollee_id, resource.resource_id, actor.uid,
        )
        return created

    def respond(
        self,
        referral_id: str,
        actor: Principal,
        actor_role: RoleLike,
        decision: ReferralStatus,
        response_notes: str = "",
    ) -> Referral:
        """Accept or reject a pending referral.

        Raises:
            ValueError: If ``decision`` is not Accepted or Rejected or not
                a referral status.
            PermissionError: If the role lacks ``RESPOND_REFERRAL``.
            InvalidTransitionError: If the referral is no longer Pending.
        """
        decision = ReferralStatus(decision)
        if decision not in RESPONSE_STATUSES:
            raise ValueError(
                f"A response must be Accepted or Rejected, got {decision.value}"
            )
        require_permission("RESPOND_REFERRAL", actor_role)
        referral = self._load(referral_id)
        self._validate_transition(referral, decision)

        self._repo.update_referral(referral_id, {
            "status": decision,
            "response_notes": response_notes.strip(),
            "responded_by": actor.email or DEFAULT_RESPONDER,
            "responded_at": SERVER_TIMESTAMP,
        })
        logger.info("Referral %s %s by %s", referral_id, decision.value, actor.uid)
        return self._load(referral_id)

    def cancel(self, referral_id: str, actor: Principal, actor_role: RoleLike) -> Referral:
        """Cancel a pending referral.

        Raises:
            PermissionError: If the role lacks ``CANCEL_REFERRAL``.
            InvalidTransitionError: If the referral is no longer Pending.
        """
        require_permission("CANCEL_REFERRAL", actor_role)
        referral = self._load(referral_id)
        self._validate_transition(referral, ReferralStatus.CANCELLED)

        self._repo.update_referral(referral_id, {"status": ReferralStatus.CANCELLED})
        logger.info("Referral %s cancelled by %s", referral_id, actor.uid)
        return self._load(referral_id)

    def edit_notes(self, referral_id: str, actor_role: RoleLike, notes: str) -> Referral:
        """Replace the referral notes while it is still Pending.

        Raises:
            PermissionError: If the role lacks ``EDIT_REFERRAL``.
            InvalidTransitionError: If the referral is no longer Pending.
        """
        require_permission("EDIT_REFERRAL", actor_role)
        referral = self._load(referral_id)
        if referral.status != ReferralStatus.PENDING:
            raise InvalidTransitionError(
                f"Referral {referral_id} is {referral.status.value}; "
                "notes can only be edited while Pending."
            )
        self._repo.update_referral(referral_id, {"notes": notes})
        return self._load(referral_id)

    # -- message thread --

    def post_message(
        self, referral_id: str, actor: Principal, actor_role: RoleLike, content: str
    ) -> ReferralMessage:
        """Append a message to the referral's thread.

        Raises:
            PermissionError: If the role lacks ``VIEW_REFERRAL``.
            ValueError: If the message is blank.
        """
        require_permission("VIEW_REFERRAL", actor_role)
        if not content.strip():
            raise ValueError("Message content must not be empty.")
        self._load(referral_id)
        message = ReferralMessage(
            content=content.strip(),
            sender_user_id=actor.uid,
            sender_name=actor.display_name,
        )
        return self._repo.add_message(referral_id, message)

    def list_messages(self, referral_id: str) -> list[ReferralMessage]:
        """Thread messages in chronological order."""
        messages = self._repo.list_messages(referral_id)
        return sorted(messages, key=lambda m: m.timestamp.timestamp() if m.timestamp else 0.0)

    # -- queries --

    def watch_referrals(
        self,
        callback: Callable[[list[Referral]], None],
        referring_user_id: Optional[str] = None,
    ) -> Subscription:
        """Live list of referrals, newest first.

        With ``referring_user_id`` only that principal's referrals are
        delivered (the coordinator's "my referrals" view); without it every
        referral is delivered (the partner inbox).
        """
        where = {"referring_user_id": referring_user_id} if referring_user_id else None

        def deliver(referrals: list[Referral]) -> None:
            callback(sorted(
                referrals,
                key=lambda r: r.created_at.timestamp() if r.created_at else 0.0,
                reverse=True,
            ))

        return self._repo.watch_referrals(deliver, where=where)

"""
Identity resolution: principals, sessions and profile roles.

A signed-in principal's permissions come from the ``role`` label stored on
its profile.  Absence is a handled state, not an error: a missing profile
or an empty role resolves to the default role, and the profile is created
lazily on first access.

Role changes are an administrative action (``MANAGE_USERS``).  There is no
self-service role switching.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol, Union

from atlascie.models import Principal, Profile, Role
from atlascie.rbac import RoleLike, coerce_role, require_permission
from atlascie.repository import PortalRepository

logger = logging.getLogger(__name__)

DEFAULT_ROLE: Role = Role.ENROLLMENT_MANAGER


def resolve_role(
    profile: Optional[Profile], default_role: Union[Role, str] = DEFAULT_ROLE
) -> str:
    """Resolve the role label for a principal's profile.

    Args:
        profile: The stored profile, or None if it does not exist yet.
        default_role: Label returned when no role is recorded.

    Returns:
        The stored role label if non-empty, otherwise the default label.
    """
    default_label = default_role.value if isinstance(default_role, Role) else default_role
    if profile is None or not profile.role:
        return default_label
    return profile.role


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class IdentityProvider(Protocol):
    """The identity collaborator used to establish a session."""

    def sign_in_with_token(self, token: str) -> Principal: ...

    def sign_in_anonymously(self) -> Principal: ...


def establish_session(
    provider: IdentityProvider, initial_token: Optional[str] = None
) -> Optional[Principal]:
    """Sign in with a pre-issued token, falling back to an anonymous session.

    Authentication failures never halt the portal: a rejected token falls
    back to anonymous sign-in, and if that fails too the caller receives
    None and renders a signed-out state.
    """
    if initial_token:
        try:
            return provider.sign_in_with_token(initial_token)
        except Exception:
            logger.exception("Token sign-in failed; falling back to anonymous session")
    try:
        return provider.sign_in_anonymously()
    except Exception:
        logger.exception("Anonymous sign-in failed")
        return None


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class IdentityService:
    """Profile lookups, lazy creation and administrative role assignment."""

    def __init__(
        self, repository: PortalRepository, default_role: Role = DEFAULT_ROLE
    ) -> None:
        self._repo = repository
        self.default_role = default_role

    def ensure_profile(self, principal: Principal) -> Profile:
        """Return the principal's profile, creating it with the default role
        if it does not exist yet."""
        profile = self._repo.get_profile(principal.uid)
        if profile is not None:
            return profile

        profile = Profile(
            uid=principal.uid,
            name=principal.display_name,
            email=principal.email,
            role=self.default_role.value,
            assigned_enrollee_ids=[],
        )
        self._repo.save_profile(profile)
        logger.info(
            "Created profile for %s with default role %s",
            principal.uid, self.default_role.value,
        )
        return profile

    def role_for(self, principal: Principal) -> str:
        """Resolve the role label for a principal without creating a profile."""
        return resolve_role(self._repo.get_profile(principal.uid), self.default_role)

    def assign_role(self, actor_role: RoleLike, target_uid: str, new_role: RoleLike) -> Profile:
        """Administratively assign a role to another principal.

        Raises:
            PermissionError: If the actor lacks ``MANAGE_USERS``.
            ValueError: If ``new_role`` is not a known role.
            KeyError: If the target has no profile.
        """
        require_permission("MANAGE_USERS", actor_role)
        role = coerce_role(new_role)
        if role is None:
            raise ValueError(f"Unknown role '{new_role}'")

        profile = self._repo.get_profile(target_uid)
        if profile is None:
            raise KeyError(f"No profile for user '{target_uid}'")

        self._repo.update_profile(target_uid, {"role": role.value})
        logger.info("Assigned role %s to %s", role.value, target_uid)
        return profile.model_copy(update={"role": role.value})

    def assign_enrollees(self, uid: str, enrollee_ids: Iterable[str]) -> Profile:
        """Merge enrollee ids into a profile's assignment list.

        Existing assignments keep their order; duplicates are ignored.

        Raises:
            KeyError: If the user has no profile.
        """
        profile = self._repo.get_profile(uid)
        if profile is None:
            raise KeyError(f"No profile for user '{uid}'")

        assigned = list(profile.assigned_enrollee_ids)
        for enrollee_id in enrollee_ids:
            if enrollee_id not in assigned:
                assigned.append(enrollee_id)

        self._repo.update_profile(uid, {"assigned_enrollee_ids": assigned})
        return profile.model_copy(update={"assigned_enrollee_ids": assigned})

    def unassign_enrollee(self, uid: str, enrollee_id: str) -> None:
        profile = self._repo.get_profile(uid)
        if profile is None or enrollee_id not in profile.assigned_enrollee_ids:
            return
        remaining = [e for e in profile.assigned_enrollee_ids if e != enrollee_id]
        self._repo.update_profile(uid, {"assigned_enrollee_ids": remaining})

"""
Role-Based Access Control (RBAC) for the ATLAS portal.

A static table maps each action name to the set of roles allowed to
perform it.  The table is pure data; checks are fail-closed:

* an unknown action has no allowed roles;
* an absent role, or a stored label that is not a known ``Role``, is
  never allowed anything.

**Roles:**

* ADMIN              -- allowed every defined action.
* ENROLLMENT_MANAGER -- enrollee, referral and care-plan management.
* PARTNER            -- view resources and referrals, respond to referrals.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from atlascie.models import Role

logger = logging.getLogger(__name__)

RoleLike = Union[Role, str, None]


# ---------------------------------------------------------------------------
# Permission definitions
# ---------------------------------------------------------------------------

_ADMIN = Role.ADMIN
_MANAGER = Role.ENROLLMENT_MANAGER
_PARTNER = Role.PARTNER

# Maps action -> roles allowed
PERMISSIONS: dict[str, frozenset[Role]] = {
    # Enrollee permissions
    "CREATE_ENROLLEE": frozenset({_ADMIN, _MANAGER}),
    "EDIT_ENROLLEE": frozenset({_ADMIN, _MANAGER}),
    "DELETE_ENROLLEE": frozenset({_ADMIN}),
    "VIEW_ENROLLEE": frozenset({_ADMIN, _MANAGER}),
    # Resource permissions
    "CREATE_RESOURCE": frozenset({_ADMIN}),
    "EDIT_RESOURCE": frozenset({_ADMIN}),
    "DELETE_RESOURCE": frozenset({_ADMIN}),
    "VIEW_RESOURCE": frozenset({_ADMIN, _MANAGER, _PARTNER}),
    # Referral permissions
    "CREATE_REFERRAL": frozenset({_ADMIN, _MANAGER}),
    "EDIT_REFERRAL": frozenset({_ADMIN, _MANAGER}),
    "CANCEL_REFERRAL": frozenset({_ADMIN, _MANAGER}),
    "VIEW_REFERRAL": frozenset({_ADMIN, _MANAGER, _PARTNER}),
    "RESPOND_REFERRAL": frozenset({_ADMIN, _PARTNER}),
    # Care plan permissions
    "CREATE_CARE_NOTE": frozenset({_ADMIN, _MANAGER}),
    "EDIT_CARE_NOTE": frozenset({_ADMIN, _MANAGER}),
    "DELETE_CARE_NOTE": frozenset({_ADMIN}),
    # System permissions
    "LOAD_SAMPLE_DATA": frozenset({_ADMIN}),
    "MANAGE_USERS": frozenset({_ADMIN}),
    "ADMIN_PORTAL": frozenset({_ADMIN}),
}


def coerce_role(role: RoleLike) -> Optional[Role]:
    """Convert a stored role label to a ``Role``.

    Returns None for an absent role or a label outside the enumeration.
    """
    if role is None or role == "":
        return None
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def allowed_roles(action: str) -> frozenset[Role]:
    """Return the roles allowed to perform ``action`` (empty if unknown)."""
    return PERMISSIONS.get(action, frozenset())


def is_allowed(action: str, role: RoleLike) -> bool:
    """Check whether a role may perform an action.

    Args:
        action: The action name (e.g., 'RESPOND_REFERRAL').
        role: A ``Role`` or a stored role label.

    Returns:
        True if the role is permitted to perform the action, False otherwise.
    """
    resolved = coerce_role(role)
    if resolved is None:
        return False
    return resolved in allowed_roles(action)


def require_permission(action: str, role: RoleLike) -> None:
    """Enforce a permission check; raise if denied.

    Raises:
        PermissionError: If the role is not permitted.
    """
    if not is_allowed(action, role):
        label = role.value if isinstance(role, Role) else role
        logger.warning("Permission denied: role=%r action=%s", label, action)
        raise PermissionError(
            f"Role '{label}' is not permitted to perform action '{action}'."
        )


def get_permissions_for_role(role: RoleLike) -> dict[str, bool]:
    """Return every defined action mapped to whether ``role`` may perform it."""
    return {action: is_allowed(action, role) for action in PERMISSIONS}

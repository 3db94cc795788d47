"""
Role-keyed navigation.

One table describes the navigation entries each role sees.  An entry may
name a permission; it is shown only when the role holds it.  Entries
marked ``requires_maps`` are shown only when the maps feature is
configured.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from atlascie.config import PortalSettings
from atlascie.models import Role
from atlascie.rbac import RoleLike, coerce_role, is_allowed


class NavItem(BaseModel):
    id: str
    label: str
    permission: Optional[str] = None
    divider: bool = False
    requires_maps: bool = False


_DASHBOARD = NavItem(id="dashboard", label="Dashboard")
_ENROLLEES = NavItem(id="enrollees", label="My Enrollees", permission="VIEW_ENROLLEE")
_RESOURCES = NavItem(id="resources", label="Resources", permission="VIEW_RESOURCE")
_REFERRALS = NavItem(id="referrals", label="Referrals", permission="VIEW_REFERRAL")
_CREATE = NavItem(id="create", label="New Enrollee", permission="CREATE_ENROLLEE")
_JOURNEY_MAP = NavItem(
    id="journey-map", label="Journey Map", permission="VIEW_ENROLLEE", requires_maps=True
)
_LOAD_DATA = NavItem(id="load-data", label="Load Sample Data", permission="LOAD_SAMPLE_DATA")
_PARTNER_DASHBOARD = NavItem(id="provider-dashboard", label="Partner Dashboard")
_REFERRAL_INBOX = NavItem(
    id="referral-inbox", label="Referral Inbox", permission="RESPOND_REFERRAL"
)

NAVIGATION: dict[Role, list[NavItem]] = {
    Role.ADMIN: [
        NavItem(id="admin-portal", label="Admin Portal", permission="ADMIN_PORTAL"),
        _DASHBOARD.model_copy(update={"divider": True}),
        _ENROLLEES,
        _RESOURCES,
        _REFERRALS,
        _CREATE,
        _JOURNEY_MAP,
        _PARTNER_DASHBOARD.model_copy(update={"divider": True}),
        _REFERRAL_INBOX,
        _LOAD_DATA,
    ],
    Role.ENROLLMENT_MANAGER: [
        _DASHBOARD,
        _ENROLLEES,
        _RESOURCES,
        _REFERRALS,
        _CREATE,
        _JOURNEY_MAP,
        _LOAD_DATA,
    ],
    Role.PARTNER: [
        _PARTNER_DASHBOARD,
        _REFERRAL_INBOX,
        _RESOURCES,
    ],
}


def nav_items_for(role: RoleLike, settings: PortalSettings) -> list[NavItem]:
    """Navigation entries visible to ``role``.

    An unknown or absent role sees no entries.
    """
    resolved = coerce_role(role)
    if resolved is None:
        return []
    visible = []
    for item in NAVIGATION[resolved]:
        if item.requires_maps and not settings.maps_enabled:
            continue
        if item.permission is not None and not is_allowed(item.permission, resolved):
            continue
        visible.append(item)
    return visible

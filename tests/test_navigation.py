"""
Tests for atlascie.navigation -- role-keyed navigation table.
"""

from atlascie.config import PortalSettings
from atlascie.models import Role
from atlascie.navigation import NAVIGATION, nav_items_for


def _make_settings(maps_api_key=None) -> PortalSettings:
    return PortalSettings(_env_file=None, maps_api_key=maps_api_key)


def _ids(role, settings=None):
    return [item.id for item in nav_items_for(role, settings or _make_settings())]


class TestNavigation:
    def test_every_role_has_an_entry_list(self):
        assert set(NAVIGATION) == set(Role)

    def test_partner_sees_provider_views_only(self):
        assert _ids(Role.PARTNER) == ["provider-dashboard", "referral-inbox", "resources"]

    def test_manager_does_not_see_admin_only_entries(self):
        ids = _ids(Role.ENROLLMENT_MANAGER)
        assert "load-data" not in ids
        assert "admin-portal" not in ids
        assert "referral-inbox" not in ids
        assert "create" in ids

    def test_admin_sees_admin_portal_and_inbox(self):
        ids = _ids(Role.ADMIN)
        assert ids[0] == "admin-portal"
        assert "referral-inbox" in ids
        assert "load-data" in ids

    def test_journey_map_requires_maps_key(self):
        assert "journey-map" not in _ids(Role.ENROLLMENT_MANAGER)
        assert "journey-map" in _ids(Role.ENROLLMENT_MANAGER, _make_settings("maps-key"))

    def test_unknown_role_sees_nothing(self):
        assert _ids("Certified Peer Counselor") == []
        assert _ids(None) == []

    def test_string_labels_accepted(self):
        assert _ids("Partner") == _ids(Role.PARTNER)

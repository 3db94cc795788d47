"""
Tests for the enrollee, resource directory and care plan services.

Covers: enrollee creation assigning the creator, permission-gated updates
and deletes, not-found as None, resource search and eligibility listing,
author-only note editing, and the PRAXIS insight review lifecycle.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from atlascie.care_plan import PRAXIS_AUTHOR, CarePlanService
from atlascie.enrollment import CREATOR_TEAM_ROLE, EnrollmentService
from atlascie.identity import IdentityService
from atlascie.models import (
    CarePlanEntryType,
    Demographics,
    EligibilityCriteria,
    Enrollee,
    InsightStatus,
    Principal,
    Resource,
    RiskProfile,
    Role,
)
from atlascie.repository import PortalRepository
from atlascie.resources import ResourceDirectory
from atlascie.store import InMemoryDocumentStore, TenantPaths


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

class _TickingClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def _make_repo() -> PortalRepository:
    return PortalRepository(InMemoryDocumentStore(clock=_TickingClock()), TenantPaths("test-app"))


def _make_enrollee(enrollee_id: str = "enr_1", z_codes: list[str] | None = None) -> Enrollee:
    return Enrollee(
        enrollee_id=enrollee_id,
        demographics=Demographics(first_name="Elena", last_name="Rodriguez"),
        risk_profile=RiskProfile(tier=3, z_codes=z_codes or []),
    )


def _make_resource(name: str, category: str = "", z_codes: list[str] | None = None,
                   description: str = "") -> Resource:
    return Resource(
        name=name,
        category=category,
        description=description,
        eligibility_criteria=EligibilityCriteria(z_codes=z_codes or []),
    )


COORDINATOR = Principal(uid="cpc_1", email="cpc@example.org")
OTHER_COORDINATOR = Principal(uid="cpc_2", email="other@example.org")


# ---------------------------------------------------------------------------
# 1. Enrollees
# ---------------------------------------------------------------------------

class TestEnrollmentService:
    def _service(self):
        repo = _make_repo()
        return repo, EnrollmentService(repo, IdentityService(repo))

    def test_create_assigns_enrollee_to_creator(self):
        repo, service = self._service()
        created = service.create_enrollee(COORDINATOR, Role.ENROLLMENT_MANAGER, _make_enrollee())
        assert repo.get_profile("cpc_1").assigned_enrollee_ids == [created.enrollee_id]
        assert created.care_team[0].user_id == "cpc_1"
        assert created.care_team[0].role == CREATOR_TEAM_ROLE

    def test_list_assigned_returns_only_assigned(self):
        repo, service = self._service()
        service.create_enrollee(COORDINATOR, Role.ENROLLMENT_MANAGER, _make_enrollee("a"))
        service.create_enrollee(OTHER_COORDINATOR, Role.ENROLLMENT_MANAGER, _make_enrollee("b"))
        mine = service.list_assigned(COORDINATOR, Role.ENROLLMENT_MANAGER)
        assert [e.enrollee_id for e in mine] == ["a"]
        assert len(service.list_all(Role.ADMIN)) == 2

    def test_partner_cannot_create_or_view(self):
        _, service = self._service()
        with pytest.raises(PermissionError):
            service.create_enrollee(COORDINATOR, Role.PARTNER, _make_enrollee())
        with pytest.raises(PermissionError):
            service.get_enrollee(Role.PARTNER, "enr_1")

    def test_update_validates_merged_record(self):
        repo, service = self._service()
        service.create_enrollee(COORDINATOR, Role.ENROLLMENT_MANAGER, _make_enrollee())
        updated = service.update_enrollee(
            Role.ENROLLMENT_MANAGER, "enr_1", {"risk_profile": {"tier": 2, "z_codes": ["Z59.0"]}}
        )
        assert updated.risk_profile.tier == 2
        assert repo.get_enrollee("enr_1").risk_profile.z_codes == ["Z59.0"]
        with pytest.raises(ValidationError):
            service.update_enrollee(Role.ENROLLMENT_MANAGER, "enr_1", {"risk_profile": {"tier": 7}})

    def test_update_rejects_unknown_fields(self):
        repo, service = self._service()
        service.create_enrollee(COORDINATOR, Role.ENROLLMENT_MANAGER, _make_enrollee())
        with pytest.raises(ValueError, match="nickname"):
            service.update_enrollee(Role.ADMIN, "enr_1", {"nickname": "x"})
        with pytest.raises(ValueError):
            service.update_enrollee(Role.ADMIN, "enr_1", {"enrollee_id": "other"})
        assert repo.get_enrollee("enr_1").risk_profile.tier == 3

    def test_update_missing_enrollee_raises(self):
        _, service = self._service()
        with pytest.raises(KeyError):
            service.update_enrollee(Role.ADMIN, "ghost", {"external_ids": {}})

    def test_only_admin_deletes_and_deleted_is_none(self):
        repo, service = self._service()
        service.create_enrollee(COORDINATOR, Role.ADMIN, _make_enrollee())
        with pytest.raises(PermissionError):
            service.delete_enrollee(COORDINATOR, Role.ENROLLMENT_MANAGER, "enr_1")
        service.delete_enrollee(COORDINATOR, Role.ADMIN, "enr_1")
        assert service.get_enrollee(Role.ADMIN, "enr_1") is None
        assert repo.get_profile("cpc_1").assigned_enrollee_ids == []


# ---------------------------------------------------------------------------
# 2. Resources
# ---------------------------------------------------------------------------

class TestResourceDirectory:
    def _directory(self) -> ResourceDirectory:
        directory = ResourceDirectory(_make_repo())
        directory.create_resource(
            Role.ADMIN, _make_resource("Community Food Bank", "Food Security", ["Z59.4"],
                                       "Free groceries and hot meals")
        )
        directory.create_resource(
            Role.ADMIN, _make_resource("Safe Haven Housing", "Housing Support", ["Z59.0"])
        )
        directory.create_resource(Role.ADMIN, _make_resource("Metro Health Center", "Healthcare"))
        return directory

    def test_only_admin_manages_resources(self):
        directory = ResourceDirectory(_make_repo())
        with pytest.raises(PermissionError):
            directory.create_resource(Role.ENROLLMENT_MANAGER, _make_resource("X"))

    def test_search_by_text_and_category(self):
        directory = self._directory()
        assert [r.name for r in directory.search(Role.PARTNER, "groceries")] == [
            "Community Food Bank"
        ]
        assert [r.name for r in directory.search(Role.PARTNER, category="Healthcare")] == [
            "Metro Health Center"
        ]
        assert len(directory.search(Role.PARTNER)) == 3

    def test_categories_sorted(self):
        assert self._directory().categories(Role.PARTNER) == [
            "Food Security", "Healthcare", "Housing Support",
        ]

    def test_eligible_for_enrollee(self):
        directory = self._directory()
        names = {r.name for r in directory.eligible_for(Role.ENROLLMENT_MANAGER,
                                                        _make_enrollee(z_codes=["Z59.0"]))}
        assert names == {"Safe Haven Housing", "Metro Health Center"}
        assert len(directory.eligible_for(Role.ENROLLMENT_MANAGER, None)) == 3

    def test_update_and_delete(self):
        directory = self._directory()
        resource = directory.search(Role.ADMIN, "Metro")[0]
        updated = directory.update_resource(Role.ADMIN, resource.resource_id, {"phone": "555-0100"})
        assert updated.phone == "555-0100"
        directory.delete_resource(Role.ADMIN, resource.resource_id)
        assert directory.get_resource(Role.ADMIN, resource.resource_id) is None

    def test_update_rejects_unknown_fields(self):
        directory = self._directory()
        resource = directory.search(Role.ADMIN, "Metro")[0]
        with pytest.raises(ValueError, match="hours"):
            directory.update_resource(Role.ADMIN, resource.resource_id, {"hours": "9-5"})
        assert directory.get_resource(Role.ADMIN, resource.resource_id).name == "Metro Health Center"


# ---------------------------------------------------------------------------
# 3. Care plan
# ---------------------------------------------------------------------------

class TestCarePlanService:
    def test_add_note_records_author(self):
        service = CarePlanService(_make_repo())
        note = service.add_note("enr_1", COORDINATOR, Role.ENROLLMENT_MANAGER, "Called client")
        assert note.type == CarePlanEntryType.NOTE
        assert note.author_name == "cpc@example.org"
        assert note.timestamp is not None

    def test_partner_cannot_add_note(self):
        with pytest.raises(PermissionError):
            CarePlanService(_make_repo()).add_note("enr_1", COORDINATOR, Role.PARTNER, "x")

    def test_only_author_edits_note(self):
        service = CarePlanService(_make_repo())
        note = service.add_note("enr_1", COORDINATOR, Role.ENROLLMENT_MANAGER, "Draft")
        with pytest.raises(PermissionError):
            service.edit_note("enr_1", note.entry_id, OTHER_COORDINATOR, Role.ADMIN, "Hijack")
        edited = service.edit_note(
            "enr_1", note.entry_id, COORDINATOR, Role.ENROLLMENT_MANAGER, "Final"
        )
        assert edited.content == "Final"

    def test_only_admin_deletes_entries(self):
        service = CarePlanService(_make_repo())
        note = service.add_note("enr_1", COORDINATOR, Role.ENROLLMENT_MANAGER, "Note")
        with pytest.raises(PermissionError):
            service.delete_entry("enr_1", note.entry_id, Role.ENROLLMENT_MANAGER)
        service.delete_entry("enr_1", note.entry_id, Role.ADMIN)
        assert service.list_entries("enr_1") == []

    def test_insight_accepted_once(self):
        service = CarePlanService(_make_repo())
        insight = service.add_insight("enr_1", "Consider housing referral")
        assert insight.status == InsightStatus.PENDING
        assert insight.author_name == PRAXIS_AUTHOR
        accepted = service.set_insight_status(
            "enr_1", insight.entry_id, Role.ENROLLMENT_MANAGER, InsightStatus.ACCEPTED
        )
        assert accepted.status == InsightStatus.ACCEPTED
        with pytest.raises(ValueError):
            service.set_insight_status(
                "enr_1", insight.entry_id, Role.ENROLLMENT_MANAGER, InsightStatus.DISMISSED
            )

    def test_notes_cannot_be_reviewed_as_insights(self):
        service = CarePlanService(_make_repo())
        note = service.add_note("enr_1", COORDINATOR, Role.ENROLLMENT_MANAGER, "Note")
        with pytest.raises(ValueError):
            service.set_insight_status(
                "enr_1", note.entry_id, Role.ENROLLMENT_MANAGER, InsightStatus.ACCEPTED
            )

    def test_entries_listed_newest_first(self):
        service = CarePlanService(_make_repo())
        service.add_note("enr_1", COORDINATOR, Role.ENROLLMENT_MANAGER, "first")
        service.add_alert("enr_1", "Missed appointment")
        entries = service.list_entries("enr_1")
        assert [e.type for e in entries] == [CarePlanEntryType.ALERT, CarePlanEntryType.NOTE]

"""
Tests for atlascie.identity -- role resolution, sessions and profiles.

Covers: default role for missing/empty profiles, lazy profile creation,
administrative role assignment, enrollee assignment merging, and session
fallback from token to anonymous sign-in.
"""

from __future__ import annotations

import pytest

from atlascie.identity import DEFAULT_ROLE, IdentityService, establish_session, resolve_role
from atlascie.models import Principal, Profile, Role
from atlascie.repository import PortalRepository
from atlascie.store import InMemoryDocumentStore, TenantPaths


def _make_repo() -> PortalRepository:
    return PortalRepository(InMemoryDocumentStore(), TenantPaths("test-app"))


def _make_principal(uid: str = "u1", email: str | None = "cpc@example.org") -> Principal:
    return Principal(uid=uid, email=email)


class _FakeProvider:
    def __init__(self, token_fails: bool = False, anonymous_fails: bool = False) -> None:
        self.token_fails = token_fails
        self.anonymous_fails = anonymous_fails

    def sign_in_with_token(self, token: str) -> Principal:
        if self.token_fails:
            raise RuntimeError("token rejected")
        return Principal(uid="token-user", email="user@example.org")

    def sign_in_anonymously(self) -> Principal:
        if self.anonymous_fails:
            raise RuntimeError("identity service unavailable")
        return Principal(uid="anon", is_anonymous=True)


# ---------------------------------------------------------------------------
# 1. Role resolution
# ---------------------------------------------------------------------------

class TestResolveRole:
    def test_missing_profile_gets_default(self):
        assert resolve_role(None) == DEFAULT_ROLE.value

    def test_empty_role_gets_default(self):
        assert resolve_role(Profile(uid="u1", role="")) == DEFAULT_ROLE.value
        assert resolve_role(Profile(uid="u1", role=None)) == DEFAULT_ROLE.value

    def test_stored_role_returned_as_is(self):
        assert resolve_role(Profile(uid="u1", role="Partner")) == "Partner"

    def test_unknown_stored_label_returned_unchanged(self):
        assert resolve_role(Profile(uid="u1", role="Certified Peer Counselor")) == (
            "Certified Peer Counselor"
        )

    def test_custom_default(self):
        assert resolve_role(None, Role.PARTNER) == "Partner"


# ---------------------------------------------------------------------------
# 2. Sessions
# ---------------------------------------------------------------------------

class TestEstablishSession:
    def test_token_sign_in(self):
        principal = establish_session(_FakeProvider(), "token-123")
        assert principal.uid == "token-user"

    def test_no_token_signs_in_anonymously(self):
        principal = establish_session(_FakeProvider())
        assert principal.is_anonymous is True

    def test_rejected_token_falls_back_to_anonymous(self):
        principal = establish_session(_FakeProvider(token_fails=True), "bad-token")
        assert principal.uid == "anon"

    def test_total_failure_returns_none(self):
        provider = _FakeProvider(token_fails=True, anonymous_fails=True)
        assert establish_session(provider, "bad-token") is None


# ---------------------------------------------------------------------------
# 3. Profiles
# ---------------------------------------------------------------------------

class TestIdentityService:
    def test_ensure_profile_creates_with_default_role(self):
        repo = _make_repo()
        profile = IdentityService(repo).ensure_profile(_make_principal())
        assert profile.role == DEFAULT_ROLE.value
        assert profile.name == "cpc@example.org"
        assert repo.get_profile("u1") is not None

    def test_ensure_profile_returns_existing(self):
        repo = _make_repo()
        repo.save_profile(Profile(uid="u1", role="Admin"))
        assert IdentityService(repo).ensure_profile(_make_principal()).role == "Admin"

    def test_role_for_does_not_create_profile(self):
        repo = _make_repo()
        assert IdentityService(repo).role_for(_make_principal()) == DEFAULT_ROLE.value
        assert repo.get_profile("u1") is None

    def test_admin_assigns_role(self):
        repo = _make_repo()
        service = IdentityService(repo)
        service.ensure_profile(_make_principal("target"))
        service.assign_role(Role.ADMIN, "target", Role.PARTNER)
        assert repo.get_profile("target").role == "Partner"

    def test_non_admin_cannot_assign_role(self):
        repo = _make_repo()
        service = IdentityService(repo)
        service.ensure_profile(_make_principal("u1"))
        with pytest.raises(PermissionError):
            service.assign_role(Role.ENROLLMENT_MANAGER, "u1", Role.ADMIN)
        assert repo.get_profile("u1").role == DEFAULT_ROLE.value

    def test_unknown_role_rejected(self):
        service = IdentityService(_make_repo())
        service.ensure_profile(_make_principal("target"))
        with pytest.raises(ValueError):
            service.assign_role(Role.ADMIN, "target", "Superuser")

    def test_assign_role_to_missing_profile_raises(self):
        with pytest.raises(KeyError):
            IdentityService(_make_repo()).assign_role(Role.ADMIN, "ghost", Role.PARTNER)

    def test_assign_enrollees_merges_without_duplicates(self):
        repo = _make_repo()
        service = IdentityService(repo)
        service.ensure_profile(_make_principal())
        service.assign_enrollees("u1", ["e1", "e2"])
        service.assign_enrollees("u1", ["e2", "e3"])
        assert repo.get_profile("u1").assigned_enrollee_ids == ["e1", "e2", "e3"]

    def test_unassign_enrollee(self):
        repo = _make_repo()
        service = IdentityService(repo)
        service.ensure_profile(_make_principal())
        service.assign_enrollees("u1", ["e1", "e2"])
        service.unassign_enrollee("u1", "e1")
        assert repo.get_profile("u1").assigned_enrollee_ids == ["e2"]

"""
Tests for atlascie.config -- environment-driven portal settings.

Covers: defaults, ATLAS_ environment overrides, feature degradation when
optional keys are missing, log-level normalisation, and settings caching.
"""

import pytest
from pydantic import ValidationError

from atlascie.config import PortalSettings, get_settings
from atlascie.models import Role


def _make_settings(**overrides) -> PortalSettings:
    return PortalSettings(_env_file=None, **overrides)


class TestDefaults:
    def test_defaults(self):
        settings = _make_settings()
        assert settings.app_id == "demo-app"
        assert settings.default_role == Role.ENROLLMENT_MANAGER
        assert settings.assessment_api_base == "https://api.alayacare.com/v1"
        assert settings.assessment_timeout_seconds == 30.0
        assert settings.log_level == "INFO"

    def test_features_disabled_without_keys(self):
        settings = _make_settings()
        assert settings.maps_enabled is False
        assert settings.assessment_sync_enabled is False


class TestEnvironmentOverrides:
    def test_prefixed_variables_are_read(self, monkeypatch):
        monkeypatch.setenv("ATLAS_APP_ID", "county-pilot")
        monkeypatch.setenv("ATLAS_MAPS_API_KEY", "maps-key")
        monkeypatch.setenv("ATLAS_DEFAULT_ROLE", "Partner")
        settings = _make_settings()
        assert settings.app_id == "county-pilot"
        assert settings.maps_enabled is True
        assert settings.default_role == Role.PARTNER

    def test_assessment_sync_needs_flag_and_credentials(self):
        assert _make_settings(assessment_enabled=True).assessment_sync_enabled is False
        settings = _make_settings(
            assessment_enabled=True,
            assessment_client_id="id",
            assessment_client_secret="secret",
        )
        assert settings.assessment_sync_enabled is True

    def test_credentials_without_flag_stay_disabled(self):
        settings = _make_settings(assessment_client_id="id", assessment_client_secret="secret")
        assert settings.assessment_sync_enabled is False


class TestValidation:
    def test_log_level_is_upper_cased(self):
        assert _make_settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            _make_settings(log_level="loud")

    def test_api_base_trailing_slash_stripped(self):
        settings = _make_settings(assessment_api_base="https://example.test/v1/")
        assert settings.assessment_api_base == "https://example.test/v1"

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            _make_settings(assessment_timeout_seconds=0)

    def test_empty_app_id_rejected(self):
        with pytest.raises(ValidationError):
            _make_settings(app_id="")


class TestGetSettings:
    def test_cached_instance(self, monkeypatch):
        monkeypatch.chdir("/")
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()

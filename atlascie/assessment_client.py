"""
HTTP client for the clinical-assessment platform.

Authentication is OAuth 2.0 client credentials.  The access token is cached
and reused until five minutes before its advertised expiry.  Every request
carries the bearer token and the ``X-Tenant-ID`` header.

Any transport failure, non-2xx response or unusable payload is raised as
``AssessmentIntegrationError``.  Callers that must keep working without the
integration catch it (see ``atlascie.assessment_mapper.load_assessment_timeline``).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import requests

from atlascie.config import PortalSettings, get_settings

logger = logging.getLogger(__name__)

OAUTH_SCOPE = "clients.read assessments.read care_plans.read clinical.read"
TOKEN_EXPIRY_MARGIN_SECONDS = 300


class AssessmentIntegrationError(RuntimeError):
    """Raised when the assessment platform cannot be reached or used."""

    pass


class AssessmentClient:
    """Read-only client for clients, assessments, care plans, clinical
    notes and form submissions.

    Args:
        settings: Portal settings; defaults to ``get_settings()``.
        session: HTTP session.  Tests inject a fake with ``get``/``post``.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        settings: Optional[PortalSettings] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self._clock = clock
        self._access_token: Optional[str] = None
        self._token_expiry: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.settings.assessment_sync_enabled

    @property
    def _base(self) -> str:
        return self.settings.assessment_api_base

    # -- authentication --

    def authenticate(self) -> str:
        """Return a valid access token, requesting a new one if needed.

        Raises:
            AssessmentIntegrationError: If the integration is disabled or
                the token request fails.
        """
        if not self.enabled:
            raise AssessmentIntegrationError(
                "Assessment integration is not enabled or configured"
            )
        if (
            self._access_token
            and self._token_expiry is not None
            and self._clock() < self._token_expiry
        ):
            return self._access_token

        logger.info("Authenticating with assessment platform at %s", self._base)
        try:
            response = self.session.post(
                f"{self._base}/oauth/token",
                json={
                    "grant_type": "client_credentials",
                    "client_id": self.settings.assessment_client_id,
                    "client_secret": self.settings.assessment_client_secret,
                    "scope": OAUTH_SCOPE,
                },
                headers={"Content-Type": "application/json"},
                timeout=self.settings.assessment_timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise AssessmentIntegrationError(f"Authentication request failed: {exc}") from exc

        if not response.ok:
            raise AssessmentIntegrationError(
                f"Authentication failed: {response.status_code} {response.text}"
            )

        payload = self._json(response)
        token = payload.get("access_token")
        if not token:
            raise AssessmentIntegrationError("Authentication response carried no access_token")
        expires_in = float(payload.get("expires_in", 0))
        self._access_token = token
        self._token_expiry = self._clock() + (expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
        return token

    # -- transport --

    @staticmethod
    def _json(response: Any) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise AssessmentIntegrationError("Response body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise AssessmentIntegrationError("Response body is not a JSON object")
        return payload

    def request(self, endpoint: str, params: Optional[dict[str, str]] = None) -> dict[str, Any]:
        """GET ``endpoint`` (relative to the API base) and return the JSON body."""
        token = self.authenticate()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if self.settings.assessment_tenant_id:
            headers["X-Tenant-ID"] = self.settings.assessment_tenant_id

        try:
            response = self.session.get(
                f"{self._base}{endpoint}",
                headers=headers,
                params=params or None,
                timeout=self.settings.assessment_timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise AssessmentIntegrationError(f"Request to {endpoint} failed: {exc}") from exc

        if not response.ok:
            raise AssessmentIntegrationError(
                f"API request failed: {response.status_code} {response.text}"
            )
        return self._json(response)

    @staticmethod
    def _filters(**values: Optional[str]) -> dict[str, str]:
        return {key: value for key, value in values.items() if value}

    # -- clients --

    def get_clients(self, **params: str) -> list[dict[str, Any]]:
        return self.request("/clients", params).get("clients") or []

    def get_client(self, client_id: str) -> dict[str, Any]:
        return self.request(f"/clients/{client_id}")

    def search_clients(self, term: str) -> list[dict[str, Any]]:
        return self.get_clients(search=term)

    # -- assessments --

    def get_client_assessments(
        self,
        client_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        form_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params = self._filters(start_date=start_date, end_date=end_date, form_id=form_id)
        return self.request(f"/clients/{client_id}/assessments", params).get("assessments") or []

    def get_assessment(self, assessment_id: str) -> dict[str, Any]:
        return self.request(f"/assessments/{assessment_id}")

    # -- care plans --

    def get_client_care_plans(self, client_id: str) -> list[dict[str, Any]]:
        return self.request(f"/clients/{client_id}/care_plans").get("care_plans") or []

    def get_active_care_plan(self, client_id: str) -> Optional[dict[str, Any]]:
        """The first care plan whose status is ``active``, or None."""
        for plan in self.get_client_care_plans(client_id):
            if plan.get("status") == "active":
                return plan
        return None

    # -- clinical notes --

    def get_client_clinical_notes(
        self,
        client_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        note_type: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params = self._filters(start_date=start_date, end_date=end_date, note_type=note_type)
        return (
            self.request(f"/clients/{client_id}/clinical_notes", params).get("clinical_notes")
            or []
        )

    # -- forms --

    def get_forms(self) -> list[dict[str, Any]]:
        return self.request("/forms").get("forms") or []

    def get_form_submissions(
        self,
        form_id: str,
        client_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params = self._filters(client_id=client_id, start_date=start_date, end_date=end_date)
        return self.request(f"/forms/{form_id}/submissions", params).get("submissions") or []

"""
HTTP client for the remote application backend.

Every call uses a bounded timeout. Timeouts and connection failures surface
as :class:`BackendUnreachableError`, rejected logins as
:class:`InvalidCredentialsError`; there is no silent fallback to local data.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote

import requests

DEFAULT_TIMEOUT_SECONDS = 5.0

# Remote (camelCase) keys mapped onto local record fields.
REMOTE_FIELD_MAP = {
    "id": "id",
    "projectId": "project_id",
    "lifecycleStage": "lifecycle_stage",
    "status": "status",
    "applicantName": "applicant_name",
    "fatherOrSpouseName": "father_or_spouse_name",
    "dob": "dob",
    "gender": "gender",
    "category": "category",
    "isSpecialCategory": "is_special_category",
    "aadhaar": "aadhaar",
    "pan": "pan",
    "phonePrimary": "phone_primary",
    "phoneAlt": "phone_alt",
    "income": "income",
    "bankAccount": "bank_account",
    "ifsc": "ifsc",
    "addressLine1": "address_line1",
    "addressLine2": "address_line2",
    "city": "city",
    "state": "state",
    "pincode": "pincode",
    "familyMembers": "family_members",
    "physicalReceiptTimestamp": "physical_receipt_timestamp",
    "notes": "notes",
}


class BackendError(RuntimeError):
    """Base error for remote backend failures."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BackendUnreachableError(BackendError):
    """Raised when the backend cannot be reached within the timeout."""


class InvalidCredentialsError(BackendError):
    """Raised when the backend rejects the supplied credentials or token."""


def remote_to_payload(data: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a remote application document into a local save payload."""

    payload: dict[str, Any] = {}
    for remote_key, local_key in REMOTE_FIELD_MAP.items():
        if remote_key in data:
            payload[local_key] = data[remote_key]
        elif local_key in data:
            payload[local_key] = data[local_key]
    return payload


class BackendClient:
    """Thin wrapper over :class:`requests.Session` for the backend's JSON API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("A backend base URL is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)
        self.token: str | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **kwargs) -> "BackendClient":
        return cls(
            config.get("SYNC_BACKEND_URL") or "",
            timeout=float(config.get("SYNC_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
            **kwargs,
        )

    # Public API -----------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> dict[str, Any]:
        """Log in and keep the returned bearer token for later calls."""

        response = self._request(
            "POST",
            "/auth/login",
            json={"username": username, "password": password},
            authenticated=False,
        )
        data = response.json()
        self.token = data.get("token")
        if not self.token:
            raise BackendError("Login response did not include a token", status_code=response.status_code)
        self.logger.info("Authenticated against %s as %s", self.base_url, username)
        return data

    def fetch_applications(self) -> list[dict[str, Any]]:
        response = self._request("GET", "/applications")
        data = response.json()
        if not isinstance(data, list):
            raise BackendError("Expected a list of applications from the backend")
        return data

    def check_application_exists(self, app_id: str) -> bool:
        response = self._request("GET", f"/applications/{quote(app_id, safe='')}/exists")
        return bool(response.json().get("exists"))

    # Internal helpers -----------------------------------------------------------

    def _request(self, method: str, path: str, *, authenticated: bool = True, **kwargs) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        if authenticated and self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as exc:
            self.logger.warning("Backend unreachable: %s %s (%s)", method, url, exc)
            raise BackendUnreachableError(f"Backend at {self.base_url} is unreachable") from exc

        if response.status_code in (401, 403):
            raise InvalidCredentialsError(self._error_message(response, "Invalid credentials"), status_code=response.status_code)
        if not response.ok:
            message = self._error_message(response, f"Backend request failed: {method} {path}")
            self.logger.error(
                "Backend request failed",
                extra={"status_code": response.status_code, "error": message, "path": path},
            )
            raise BackendError(message, status_code=response.status_code)
        return response

    @staticmethod
    def _error_message(response: requests.Response, default: str) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or default
        if isinstance(data, Mapping):
            return str(data.get("error") or data.get("message") or default)
        return default


__all__ = [
    "BackendClient",
    "BackendError",
    "BackendUnreachableError",
    "InvalidCredentialsError",
    "remote_to_payload",
]

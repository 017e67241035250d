"""
Tax authority API client with JWT authentication.

Handles all communication with the fiscal authority's JSON API:
- JWT login, with the token cached and refreshed once on 401
- Invoice submission
- Status query by access key
- Health probe

Every public operation returns a SubmissionResult (Authorized, Rejected or
Transient) instead of raising; the client never retries on its own, the
orchestrator decides what happens next.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

import requests
from django.core.cache import cache

from apps.common.types import AccessKey

from ..settings import invoicing_settings
from .payload import access_key_for, build_invoice_payload, validate_payload

if TYPE_CHECKING:
    from ..models import Invoice

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_NOT_FOUND = 404
HTTP_REQUEST_TIMEOUT = 408
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500

# Authority status labels
AUTHORIZED_LABELS = frozenset({"AUTORIZADO", "AUTHORIZED", "APROBADO", "APPROVED"})
RECEIVED_LABELS = frozenset({"RECIBIDA", "RECEIVED"})
PROCESSING_LABELS = frozenset({"PENDIENTE", "PROCESANDO"})
REJECTED_LABELS = frozenset({"RECHAZADO", "NO_AUTORIZADO", "DEVUELTA"})


class SubmissionOutcome(StrEnum):
    AUTHORIZED = "authorized"
    REJECTED = "rejected"
    TRANSIENT = "transient"


# ===============================================================================
# RESULTS
# ===============================================================================


@dataclass(frozen=True)
class Authorized:
    """The authority accepted the document."""

    access_key: AccessKey
    authorization_number: str
    status_label: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)

    outcome: ClassVar[SubmissionOutcome] = SubmissionOutcome.AUTHORIZED


@dataclass(frozen=True)
class Rejected:
    """The authority (or local validation) refused the content. Not retried."""

    reason: str
    status_label: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)

    outcome: ClassVar[SubmissionOutcome] = SubmissionOutcome.REJECTED


@dataclass(frozen=True)
class Transient:
    """Outcome unknown or temporarily unavailable. Safe to retry later."""

    cause: str
    access_key: AccessKey | None = None
    status_label: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)

    outcome: ClassVar[SubmissionOutcome] = SubmissionOutcome.TRANSIENT


SubmissionResult = Authorized | Rejected | Transient


# ===============================================================================
# ERRORS
# ===============================================================================


class FiscalClientError(Exception):
    """Base exception for tax authority client errors."""


class AuthenticationError(FiscalClientError):
    """Login failed or the token was refused twice."""


class NetworkError(FiscalClientError):
    """Network communication failed."""

    def __init__(self, message: str, label: str = "NETWORK_ERROR"):
        super().__init__(message)
        self.label = label


class PayloadError(FiscalClientError):
    """The invoice document failed local validation."""


# ===============================================================================
# CONFIGURATION
# ===============================================================================


@dataclass
class FiscalAuthorityConfig:
    """Connection settings for the tax authority API."""

    api_url: str
    email: str
    password: str
    timeout: int = 30
    environment: str = "1"

    @classmethod
    def from_settings(cls) -> FiscalAuthorityConfig:
        return cls(
            api_url=invoicing_settings.authority_api_url,
            email=invoicing_settings.authority_email,
            password=invoicing_settings.authority_password,
            timeout=invoicing_settings.authority_timeout,
            environment=invoicing_settings.authority_environment,
        )

    def url(self, path: str) -> str:
        return f"{self.api_url.rstrip('/')}{path}"

    def is_valid(self) -> bool:
        return bool(self.api_url and self.email and self.password)


def extract_error_message(response: requests.Response) -> str:
    """Best human-readable reason from an error response: message, error, errors, raw body."""
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        for key in ("message", "error"):
            if data.get(key):
                return str(data[key])
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(str(error.get("message", error)) if isinstance(error, dict) else str(error) for error in errors)
        if isinstance(errors, dict) and errors:
            return "; ".join(f"{key}: {value}" for key, value in errors.items())
        if errors:
            return str(errors)

    return f"HTTP {response.status_code}: {response.text[:500]}"


# ===============================================================================
# CLIENT
# ===============================================================================


class FiscalSubmissionClient:
    """
    Client for the tax authority invoice API.

    Usage:
        with FiscalSubmissionClient() as client:
            result = client.submit(invoice)
            if isinstance(result, Authorized):
                ...
    """

    TOKEN_CACHE_KEY: ClassVar[str] = "fiscal_authority_token_{env}"  # noqa: S105
    TOKEN_CACHE_SECONDS: ClassVar[int] = 50 * 60

    def __init__(self, config: FiscalAuthorityConfig | None = None):
        self.config = config or FiscalAuthorityConfig.from_settings()
        self._session: requests.Session | None = None
        self._token: str | None = None

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(
                {
                    "Accept": "application/json",
                    "User-Agent": "FiscalInvoicing/1.0",
                }
            )
        return self._session

    def close(self) -> None:
        """Close HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> FiscalSubmissionClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- Authentication ---

    @property
    def _token_cache_key(self) -> str:
        return self.TOKEN_CACHE_KEY.format(env=self.config.environment)

    def authenticate(self) -> str:
        """
        Log in and cache a fresh JWT.

        Raises:
            AuthenticationError: credentials refused or response without token
            NetworkError: the login request itself failed
        """
        if not self.config.is_valid():
            raise AuthenticationError("Tax authority credentials are not configured")

        logger.info(f"[Fiscal] Authenticating against {self.config.api_url}")
        try:
            response = self.session.post(
                self.config.url("/api/auth/login"),
                json={"email": self.config.email, "password": self.config.password},
                timeout=self.config.timeout,
            )
        except requests.Timeout as e:
            raise NetworkError(f"Login timed out: {e}", label="TIMEOUT") from e
        except requests.RequestException as e:
            raise NetworkError(f"Login failed: {e}", label="CONNECTION_ERROR") from e

        if response.status_code != HTTP_OK:
            raise AuthenticationError(f"Login refused: HTTP {response.status_code}: {response.text[:200]}")

        try:
            token = response.json().get("token")
        except (ValueError, AttributeError) as e:
            raise AuthenticationError("Login response is not valid JSON") from e
        if not token:
            raise AuthenticationError("Login response has no token")

        self._token = token
        cache.set(self._token_cache_key, token, timeout=self.TOKEN_CACHE_SECONDS)
        logger.info("✅ [Fiscal] Authenticated with the tax authority")
        return token

    def _get_token(self) -> str:
        if self._token:
            return self._token
        cached = cache.get(self._token_cache_key)
        if cached:
            self._token = cached
            return cached
        return self.authenticate()

    def _clear_token(self) -> None:
        self._token = None
        cache.delete(self._token_cache_key)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Authenticated request; a 401 clears the token and re-authenticates once."""
        kwargs.setdefault("timeout", self.config.timeout)
        url = self.config.url(path)
        extra_headers = kwargs.pop("headers", {})

        for attempt in range(2):
            headers = {"Authorization": f"Bearer {self._get_token()}", **extra_headers}
            try:
                response = self.session.request(method, url, headers=headers, **kwargs)
            except requests.Timeout as e:
                raise NetworkError(f"Request to {path} timed out: {e}", label="TIMEOUT") from e
            except requests.ConnectionError as e:
                raise NetworkError(f"Connection to the tax authority failed: {e}", label="CONNECTION_ERROR") from e
            except requests.RequestException as e:
                raise NetworkError(f"Request to {path} failed: {e}") from e

            if response.status_code != HTTP_UNAUTHORIZED:
                return response

            self._clear_token()
            if attempt == 0:
                logger.info("[Fiscal] Token refused, re-authenticating")

        raise AuthenticationError(f"Tax authority refused a fresh token for {path}")

    # --- Document Operations ---

    def submit(self, invoice: Invoice) -> SubmissionResult:
        """
        Submit an invoice document.

        Uses the invoice's stored access key when present so that every
        attempt for the same invoice carries the same key.
        """
        try:
            access_key = invoice.access_key or access_key_for(invoice)
            payload = self._build_payload(invoice, access_key)
        except (PayloadError, ValueError) as e:
            logger.warning(f"⚠️ [Fiscal] Invoice {invoice.invoice_number} failed local validation: {e}")
            return Rejected(reason=f"Invalid invoice document: {e}", status_label="LOCAL_VALIDATION")

        logger.info(f"[Fiscal] Submitting invoice {invoice.invoice_number} (access key {access_key})")
        try:
            response = self._request("POST", "/api/invoices", json=payload)
        except NetworkError as e:
            logger.warning(f"⚠️ [Fiscal] Submission of {invoice.invoice_number} failed: {e}")
            return Transient(cause=str(e), access_key=access_key, status_label=e.label)
        except AuthenticationError as e:
            logger.error(f"🔥 [Fiscal] Authentication failed submitting {invoice.invoice_number}: {e}")
            return Transient(cause=f"Authentication failed: {e}", access_key=access_key, status_label="AUTH_ERROR")

        return self._classify_response(response, access_key)

    def query_status(self, access_key: AccessKey) -> SubmissionResult | None:
        """
        Ask the authority about a previously submitted document.

        Returns:
            The document's current result, or None when the authority has
            no document with that access key
        """
        try:
            response = self._request("GET", f"/api/invoices/status/{access_key}")
        except NetworkError as e:
            return Transient(cause=str(e), access_key=access_key, status_label=e.label)
        except AuthenticationError as e:
            return Transient(cause=f"Authentication failed: {e}", access_key=access_key, status_label="AUTH_ERROR")

        if response.status_code == HTTP_NOT_FOUND:
            logger.info(f"[Fiscal] No document found for access key {access_key}")
            return None

        is_client_error = HTTP_BAD_REQUEST <= response.status_code < HTTP_SERVER_ERROR
        if is_client_error and response.status_code not in (HTTP_REQUEST_TIMEOUT, HTTP_TOO_MANY_REQUESTS):
            # A refused status query says nothing about the document itself
            return Transient(
                cause=f"Status query refused: {extract_error_message(response)}",
                access_key=access_key,
                status_label=f"HTTP_{response.status_code}",
            )

        body = self._parse_json(response)
        if isinstance(body, dict) and body.get("success") is False and not (body.get("data") or {}).get("claveAcceso"):
            return None

        return self._classify_response(response, access_key)

    def test_connection(self) -> dict[str, Any]:
        """Authenticate and hit the health endpoint."""
        try:
            self._clear_token()
            response = self._request("GET", "/api/health")
        except (NetworkError, AuthenticationError) as e:
            logger.warning(f"⚠️ [Fiscal] Connection test failed: {e}")
            return {"success": False, "status_code": None, "message": f"Connection failed: {e}", "response": None}

        success = HTTP_OK <= response.status_code < 300  # noqa: PLR2004
        return {
            "success": success,
            "status_code": response.status_code,
            "message": "Connection successful" if success else f"Health check returned HTTP {response.status_code}",
            "response": self._parse_json(response),
        }

    # --- Internal Methods ---

    def _build_payload(self, invoice: Invoice, access_key: AccessKey) -> dict[str, Any]:
        payload = build_invoice_payload(invoice, access_key)
        issues = validate_payload(payload)
        if issues:
            raise PayloadError("; ".join(issues))
        return payload

    @staticmethod
    def _parse_json(response: requests.Response) -> Any:
        try:
            return response.json()
        except (ValueError, json.JSONDecodeError):
            return None

    def _classify_response(self, response: requests.Response, access_key: AccessKey) -> SubmissionResult:
        status_code = response.status_code

        if status_code >= HTTP_SERVER_ERROR or status_code in (HTTP_REQUEST_TIMEOUT, HTTP_TOO_MANY_REQUESTS):
            logger.warning(f"⚠️ [Fiscal] Authority returned HTTP {status_code} for {access_key}")
            return Transient(
                cause=f"Authority unavailable: HTTP {status_code}",
                access_key=access_key,
                status_label=f"HTTP_{status_code}",
                raw_response={"status_code": status_code, "body": response.text[:1000]},
            )

        if status_code >= HTTP_BAD_REQUEST:
            reason = extract_error_message(response)
            logger.warning(f"⚠️ [Fiscal] Authority refused {access_key}: {reason}")
            return Rejected(
                reason=reason,
                status_label=f"HTTP_{status_code}",
                raw_response=self._parse_json(response) or {"status_code": status_code, "body": response.text[:1000]},
            )

        body = self._parse_json(response)
        if not isinstance(body, dict):
            return Transient(
                cause="Authority response is not a JSON object",
                access_key=access_key,
                status_label="INVALID_RESPONSE",
                raw_response={"body": response.text[:1000]},
            )

        return interpret_authority_response(body, access_key)


def interpret_authority_response(body: dict[str, Any], access_key: AccessKey) -> SubmissionResult:
    """Map a 2xx authority body to a SubmissionResult."""
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    if isinstance(data.get("invoice"), dict):
        data = {**data, **data["invoice"]}

    label = str(data.get("estado") or "").strip().upper()

    if body.get("success") is False:
        reason = str(body.get("message") or body.get("error") or "Authority reported the submission as unsuccessful")
        return Rejected(reason=reason, status_label=label or "UNSUCCESSFUL", raw_response=body)

    returned_key = data.get("claveAcceso")
    if not returned_key:
        return Transient(
            cause="Authority response has no claveAcceso",
            access_key=access_key,
            status_label=label or "INVALID_RESPONSE",
            raw_response=body,
        )

    authorization_number = str(data.get("numeroAutorizacion") or data.get("authorizationNumber") or "")

    if label in AUTHORIZED_LABELS:
        return Authorized(
            access_key=returned_key,
            authorization_number=authorization_number or returned_key,
            status_label=label,
            raw_response=body,
        )

    if label in RECEIVED_LABELS and authorization_number:
        return Authorized(
            access_key=returned_key,
            authorization_number=authorization_number,
            status_label=label,
            raw_response=body,
        )

    if label in REJECTED_LABELS:
        reason = _rejection_reason(body, data) or f"Authority status {label}"
        return Rejected(reason=reason, status_label=label, raw_response=body)

    cause = "Authority is still processing the document" if label in PROCESSING_LABELS | RECEIVED_LABELS else (
        f"Authority reported status {label or 'UNKNOWN'}"
    )
    return Transient(cause=cause, access_key=returned_key, status_label=label or "UNKNOWN", raw_response=body)


def _rejection_reason(body: dict[str, Any], data: dict[str, Any]) -> str:
    messages = data.get("mensajes") or data.get("errors")
    if isinstance(messages, list) and messages:
        return "; ".join(
            str(message.get("mensaje") or message.get("message") or message) if isinstance(message, dict) else str(message)
            for message in messages
        )
    return str(body.get("message") or "")

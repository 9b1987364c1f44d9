"""HTTP client for the Profile Service.

Learn: Thin wrapper over httpx.AsyncClient. Every call asks the token
provider for a fresh bearer token (the identity provider mints short-lived
tokens) and maps failures onto TransferError:

- transport errors        → TransferError(status_code=None)
- non-2xx                 → TransferError(status_code, error, details) from
                            the service's {"error", "details"} body
- 2xx with a bad body     → TransferError("Malformed response body")

404 on GET is not an error here: fetch_profile() returns None, which
callers treat as "new identity".
"""

from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from accountflow.config import settings
from accountflow.errors import TransferError
from accountflow.schemas.profile import EmailVerificationRead, ProfilePatch, ProfileRecord

logger = structlog.get_logger()

TokenProvider = Callable[[], Awaitable[str]]


class ProfileClient:
    """Talks the profile transfer protocol to a running Profile Service."""

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.token_provider = token_provider
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            base_url=(base_url or settings.api_url).rstrip("/"),
            timeout=timeout or settings.request_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "ProfileClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ─── Protocol calls ──────────────────────────────────

    async def fetch_profile(self) -> Optional[ProfileRecord]:
        """GET /profile. None when the service has no record yet."""
        response = await self._request("GET", "/profile", allow_not_found=True)
        if response is None:
            return None
        return self._parse(response, ProfileRecord)

    async def upsert_profile(self, patch: ProfilePatch) -> ProfileRecord:
        """POST /profile with only the supplied fields."""
        response = await self._request("POST", "/profile", json=patch.to_wire())
        return self._parse(response, ProfileRecord)

    async def confirm_email_verified(self) -> EmailVerificationRead:
        """POST /profile/verify-email."""
        response = await self._request("POST", "/profile/verify-email")
        return self._parse(response, EmailVerificationRead)

    # ─── Plumbing ────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[httpx.Response]:
        token = await self.token_provider()
        try:
            response = await self.http.request(
                method,
                path,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.warning("transfer.unreachable", method=method, path=path, error=str(e))
            raise TransferError(f"Profile service unreachable: {e}") from e

        if response.status_code == 404 and allow_not_found:
            logger.info("transfer.not_found", path=path)
            return None

        if not response.is_success:
            error, details = _error_body(response)
            logger.warning(
                "transfer.failed",
                method=method,
                path=path,
                status=response.status_code,
                error=error,
            )
            raise TransferError(error, status_code=response.status_code, details=details)
        return response

    @staticmethod
    def _parse(response: httpx.Response, model):
        try:
            return model.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise TransferError(
                "Malformed response body",
                status_code=response.status_code,
                details=str(e),
            ) from e


def _error_body(response: httpx.Response) -> tuple[str, Any]:
    """Pull {"error", "details"} out of a failure response, if present."""
    try:
        body = response.json()
    except ValueError:
        return f"Profile service responded with {response.status_code}", response.text or None
    if isinstance(body, dict) and "error" in body:
        return str(body["error"]), body.get("details")
    return f"Profile service responded with {response.status_code}", body

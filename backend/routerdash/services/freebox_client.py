"""
Freebox Management API Client

Thin async wrapper over the router's REST API, limited to what the
dashboard needs: system info, api version, connection status, reboot.

Session handling (app pairing, challenge/password login) is not done here:
a session token is supplied by configuration and sent as X-Fbx-App-Auth.

Every call returns an ApiResult and never raises, so callers only have to
look at `success`.
"""

from typing import Any

import httpx

from routerdash.config import Settings
from routerdash.exceptions import UpstreamError
from routerdash.logging_setup import get_service_logger
from routerdash.models.domain import ApiResult

logger = get_service_logger("freebox")


class FreeboxClient:
    """
    Async client for the box API.

    Reuses a single httpx.AsyncClient for all calls.
    """

    def __init__(
        self,
        base_url: str,
        api_version: str = "v8",
        session_token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version.strip("/")
        self.session_token = session_token
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "FreeboxClient":
        return cls(
            base_url=settings.freebox_url,
            api_version=settings.freebox_api_version,
            session_token=settings.freebox_session_token,
            timeout=settings.freebox_timeout_s,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create reusable HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.session_token:
            headers["X-Fbx-App-Auth"] = self.session_token
        return headers

    # -----------------------------
    # Endpoints
    # -----------------------------
    async def get_api_version(self) -> ApiResult:
        """Box model and API version; public, needs no session."""
        # /api_version answers with the bare object, not the usual envelope
        return await self._call("GET", "/api_version", enveloped=False)

    async def get_system_info(self) -> ApiResult:
        return await self._call("GET", self._api_path("system/"))

    async def get_connection_status(self) -> ApiResult:
        return await self._call("GET", self._api_path("connection/"))

    async def reboot(self) -> ApiResult:
        logger.warning("Requesting box reboot")
        return await self._call("POST", self._api_path("system/reboot/"))

    # -----------------------------
    # Plumbing
    # -----------------------------
    def _api_path(self, path: str) -> str:
        return f"/api/{self.api_version}/{path}"

    async def _call(self, method: str, path: str, enveloped: bool = True) -> ApiResult:
        try:
            body = await self._request(method, path)
        except UpstreamError as e:
            logger.warning(f"{method} {path} failed: {e.message}", extra={"code": e.code})
            return ApiResult.fail(e.code, e.message)

        if not enveloped:
            return ApiResult.ok(body)

        if not isinstance(body, dict):
            return ApiResult.fail("invalid_response", "Unexpected response from the box")

        if body.get("success"):
            return ApiResult.ok(body.get("result"))

        code = str(body.get("error_code") or "upstream_error")
        message = str(body.get("msg") or "The box refused the request")
        logger.warning(f"{method} {path} refused: {code} {message}")
        return ApiResult.fail(code, message)

    async def _request(self, method: str, path: str) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(method, path, headers=self._headers())
        except httpx.HTTPError as e:
            raise UpstreamError(f"Box unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        # The box answers 403 and friends with a regular error envelope
        if response.status_code >= 400 and not (isinstance(body, dict) and "success" in body):
            raise UpstreamError(
                f"HTTP {response.status_code} from the box",
                code="upstream_http_error",
                status_code=response.status_code,
            )
        if body is None:
            raise UpstreamError("Response is not JSON", code="invalid_response")
        return body

"""Authenticated HTTP gateway for the dashboard API.

Every outbound call goes through `DashboardAPIClient._request`, which waits
for any in-flight credential refresh, sends the request with the shared
cookie jar, and on a 401 coordinates exactly one `POST /auth/refresh` across
all concurrently failing requests before retrying each of them once.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from functools import partial
from http import HTTPMethod
from typing import TypeAlias

import httpx
from instrukt_ai_logging import get_logger

from tickerdesk.api.errors import (
    AUTH_REQUIRED_MESSAGE,
    APIError,
    AuthExpiredError,
    NetworkUnreachableError,
    TransientHTTPError,
    message_for_status,
)
from tickerdesk.api.refresh import RefreshCoordinator
from tickerdesk.constants import (
    AUTH_LOGIN_PATH,
    AUTH_LOGOUT_PATH,
    AUTH_ME_PATH,
    AUTH_REFRESH_PATH,
    DEFAULT_API_TIMEOUT_S,
)

logger = get_logger(__name__)

__all__ = ["DashboardAPIClient", "APIError"]

JsonValue: TypeAlias = str | int | float | bool | None | list["JsonValue"] | dict[str, "JsonValue"]
RequestSender: TypeAlias = Callable[[], Awaitable[httpx.Response]]

CONNECT_ERROR_LOG_INTERVAL_S = 10.0


class DashboardAPIClient:
    """Async HTTP client with single-flight credential refresh."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_API_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
        on_sign_out: Callable[[], None] | None = None,
    ):
        """Initialize client.

        Args:
            base_url: API root, e.g. ``https://api.example.com``
            timeout: Per-request timeout in seconds
            transport: Optional transport override (tests use httpx.MockTransport)
            on_sign_out: Called once when the user is force-signed-out
        """
        self.base_url = base_url
        self.timeout = timeout
        self.refresh = RefreshCoordinator()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._on_sign_out = on_sign_out
        self._signed_out = False
        self._last_connect_error_log: float | None = None
        self._refresh_task: asyncio.Task[None] | None = None

    async def connect(self) -> None:
        """Create the underlying httpx client (cookie jar carries credentials)."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def close(self) -> None:
        """Close connection, abandoning any refresh still in flight."""
        task = self._refresh_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])
        if self._client:
            await self._client.aclose()
            self._client = None

    def set_sign_out_handler(self, handler: Callable[[], None] | None) -> None:
        self._on_sign_out = handler

    # --- Transport ---

    async def _send(
        self,
        method: HTTPMethod | str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, JsonValue] | None = None,
        form: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send one request; transport failures become NetworkUnreachableError."""
        if not self._client:
            raise APIError("Client not connected. Call connect() first.")

        try:
            method_enum = HTTPMethod(method)
        except ValueError as e:
            raise APIError(f"Unsupported HTTP method: {method}") from e

        try:
            return await self._client.request(
                method_enum.value,
                url,
                params=params,
                json=json_body,
                data=form,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkUnreachableError(
                "API request timed out. Server may be blocked or overloaded.", detail="timed out"
            ) from e
        except httpx.TransportError as e:
            now = self._now_monotonic()
            last_log = self._last_connect_error_log
            if last_log is None or (now - last_log) >= CONNECT_ERROR_LOG_INTERVAL_S:
                self._last_connect_error_log = now
                logger.debug("API transport error on %s %s: %s", method_enum.value, url, e)
            raise NetworkUnreachableError(message_for_status(None, str(e)), detail=str(e) or type(e).__name__) from e

    def _now_monotonic(self) -> float:
        """Return a monotonic timestamp for debounce logic."""
        return time.monotonic()

    @staticmethod
    def _error_for_response(resp: httpx.Response, *, unauthorized_expires: bool = True) -> APIError:
        status_code = resp.status_code
        detail: str | None = None
        try:
            body = resp.json()
            if isinstance(body, dict) and isinstance(body.get("detail"), str):
                detail = body["detail"]
        except (json.JSONDecodeError, ValueError):
            detail = resp.text or None
        message = message_for_status(status_code, detail)
        if status_code == 401 and unauthorized_expires:
            return AuthExpiredError(message, status_code=status_code, detail=detail)
        return TransientHTTPError(message, status_code=status_code, detail=detail)

    # --- Auth coordination ---

    async def _request(
        self,
        method: HTTPMethod | str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, JsonValue] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Make an authenticated request.

        Returns:
            Successful response

        Raises:
            AuthExpiredError: Refresh failed, or the retry was still unauthorized
            TransientHTTPError: Any other error status
            NetworkUnreachableError: No response received
        """
        send = partial(self._send, method, url, params=params, json_body=json_body, timeout=timeout)

        await self.refresh.wait_until_free()
        generation = self.refresh.generation
        resp = await send()

        if resp.status_code == 401:
            resp = await self._retry_unauthorized(send, generation, url)
            if resp.status_code == 401:
                # Retried once already; never loop back into refresh.
                logger.info("Request %s still unauthorized after refresh, signing out", url)
                await self._sign_out()
                raise AuthExpiredError(AUTH_REQUIRED_MESSAGE, status_code=401)

        if not resp.is_success:
            raise self._error_for_response(resp)
        return resp

    async def _retry_unauthorized(self, send: RequestSender, generation: int, url: str) -> httpx.Response:
        """Handle a first 401: refresh once per storm, then reissue `send` once."""
        while self.refresh.locked:
            logger.debug("Refresh in progress, %s waiting to retry", url)
            await self.refresh.wait_until_free()

        if self.refresh.generation != generation:
            logger.debug("Credentials renewed while %s was in flight, retrying", url)
            return await send()

        if self.refresh.failed_at(generation):
            logger.debug("Refresh already failed for this storm, %s retrying without refresh", url)
            return await send()

        self.refresh.try_acquire()
        logger.debug("Authentication failed for %s, refreshing credentials", url)
        await self._run_refresh()
        return await send()

    async def _run_refresh(self) -> None:
        """Run one refresh in its own task; the caller must hold the refresh lock.

        The task outlives a cancelled caller, so closing the tab that started
        a refresh does not abort it for everyone waiting on it.
        """
        task = asyncio.get_running_loop().create_task(self._refresh_locked(), name="auth-refresh")
        task.add_done_callback(_consume_refresh_result)
        self._refresh_task = task
        await asyncio.shield(task)

    async def _refresh_locked(self) -> None:
        refreshed: bool | None = None
        try:
            try:
                await self._refresh_credentials()
            except APIError as e:
                refreshed = False
                logger.warning("Credential refresh failed, signing out: %s", e)
                await self._sign_out()
                raise _refresh_failure(e) from e
            refreshed = True
        finally:
            if refreshed is None:
                self.refresh.abandon()
            else:
                self.refresh.release(refreshed=refreshed)

    async def _refresh_credentials(self) -> None:
        resp = await self._send(HTTPMethod.POST, AUTH_REFRESH_PATH)
        if not resp.is_success:
            raise self._error_for_response(resp)
        self._signed_out = False
        logger.debug("Credentials refreshed")

    async def refresh_credentials(self) -> None:
        """Proactively refresh credentials, joining any refresh already running."""
        if not self.refresh.try_acquire():
            await self.refresh.wait_until_free()
            return
        await self._run_refresh()

    async def _sign_out(self) -> None:
        """Global sign-out side effect; runs at most once until the next sign-in."""
        if self._signed_out:
            return
        self._signed_out = True
        try:
            await self._send(HTTPMethod.POST, AUTH_LOGOUT_PATH)
        except APIError as e:
            logger.debug("Logout call failed during sign-out: %s", e)
        if self._client:
            self._client.cookies.clear()
        if self._on_sign_out:
            self._on_sign_out()

    # --- API Methods ---

    async def login(self, username: str, password: str) -> JsonValue:
        """Sign in with form credentials; the server sets the auth cookie.

        Raises:
            TransientHTTPError: Wrong credentials (401) or any other error status
        """
        resp = await self._send(
            HTTPMethod.POST,
            AUTH_LOGIN_PATH,
            form={"username": username, "password": password},
        )
        if not resp.is_success:
            raise self._error_for_response(resp, unauthorized_expires=False)
        self._signed_out = False
        self.refresh.mark_renewed()
        logger.info("Signed in as %s", username)
        return self._json(resp)

    async def logout(self) -> None:
        """User-initiated sign-out."""
        self._signed_out = False
        await self._sign_out()

    async def get_me(self) -> JsonValue:
        """Current user profile (`GET /auth/me`)."""
        resp = await self._request(HTTPMethod.GET, AUTH_ME_PATH)
        return self._json(resp)

    async def validate_session(self) -> bool:
        """True when the stored credentials are (or could be refreshed to be) valid."""
        try:
            await self.get_me()
        except AuthExpiredError:
            return False
        return True

    async def get_json(self, path: str, params: dict[str, str] | None = None) -> JsonValue:
        """GET a data endpoint and decode its JSON body."""
        resp = await self._request(HTTPMethod.GET, path, params=params)
        return self._json(resp)

    async def post_json(self, path: str, body: dict[str, JsonValue] | None = None) -> JsonValue:
        resp = await self._request(HTTPMethod.POST, path, json_body=body)
        return self._json(resp)

    @staticmethod
    def _json(resp: httpx.Response) -> JsonValue:
        if not resp.content:
            return None
        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise APIError("Invalid JSON in API response.", status_code=resp.status_code) from e


def _refresh_failure(error: APIError) -> AuthExpiredError:
    return AuthExpiredError(AUTH_REQUIRED_MESSAGE, status_code=error.status_code or 401, detail=error.detail)


def _consume_refresh_result(task: asyncio.Task[None]) -> None:
    """Retrieve the outcome of a refresh whose caller may have been cancelled."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.debug("Refresh task finished with %s", exc)

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError

from liftdesk.core import endpoints
from liftdesk.core.config import settings
from liftdesk.core.errors import (
    ApiError,
    ErrorKind,
    SessionExpiredError,
    envelope_failure,
    normalize_response_error,
    normalize_transport_error,
)
from liftdesk.schemas import ApiEnvelope, RefreshRequest, TokenPair
from liftdesk.services import security
from liftdesk.services.notifications import SessionNotifier
from liftdesk.services.token_store import TokenStore

logger = logging.getLogger(__name__)

AUTH_RETRY_STATUSES = (401, 403)
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."


class RequestPipeline:
    """Single entry point for every backend call.

    Attaches the bearer token, converts transport failures into ``ApiError``
    and recovers from 401/403 responses with one token refresh shared by all
    requests that fail while it is running. Each request is replayed at most
    once.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_store: TokenStore,
        *,
        notifier: Optional[SessionNotifier] = None,
        login_path: Optional[str] = None,
    ) -> None:
        self._client = client
        self._tokens = token_store
        self._notifier = notifier or SessionNotifier()
        self._login_path = login_path or settings.login_path
        self._refreshing = False
        self._waiters: List[asyncio.Future] = []
        self._session_listeners: List[Callable[[], None]] = []

    @property
    def token_store(self) -> TokenStore:
        return self._tokens

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def init(self) -> None:
        self._tokens.init()
        self.reset()

    def reset(self) -> None:
        self._settle(error=ApiError(ErrorKind.AUTHENTICATION, "The request pipeline was reset."))
        self._refreshing = False

    async def aclose(self) -> None:
        self.reset()
        await self._client.aclose()

    def add_session_listener(self, listener: Callable[[], None]) -> None:
        """Register a callback run when the session is terminated."""
        self._session_listeners.append(listener)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self._dispatch(method, path, json=json, params=params)
        return self._unwrap(response)

    async def get(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, *, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, *, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def patch(self, path: str, *, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def ensure_fresh_token(self, leeway_seconds: Optional[int] = None) -> Optional[str]:
        token = self._tokens.get_access_token()
        if token is None:
            return None
        if self._refreshing:
            return await self._wait_for_refresh()
        if not security.should_refresh(token, leeway_seconds):
            return token
        logger.info("Access token close to expiry, refreshing proactively")
        return await self._refresh(keep_tokens_on_error=True)

    async def _dispatch(
        self,
        method: str,
        path: str,
        *,
        json: Any,
        params: Optional[Dict[str, Any]],
        retried: bool = False,
        token: Optional[str] = None,
    ) -> httpx.Response:
        auth_call = endpoints.is_auth_endpoint(path)
        headers: Dict[str, str] = {}
        if not auth_call:
            token = token or self._tokens.get_access_token()
            if not token:
                raise ApiError(ErrorKind.AUTHENTICATION, code="NO_ACCESS_TOKEN")
            headers["Authorization"] = f"Bearer {token}"

        response = await self._send(method, path, json=json, params=params, headers=headers, strip_auth=auth_call)

        if response.status_code in AUTH_RETRY_STATUSES and not retried and not auth_call:
            new_token = await self._recover(token)
            logger.debug("Replaying %s %s with refreshed token", method, path)
            return await self._dispatch(method, path, json=json, params=params, retried=True, token=new_token)
        if response.is_error:
            raise normalize_response_error(response)
        return response

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        strip_auth: bool = False,
    ) -> httpx.Response:
        request = self._client.build_request(method, path, json=json, params=params, headers=headers)
        if strip_auth:
            request.headers.pop("Authorization", None)
        try:
            response = await self._client.send(request)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, type(exc).__name__)
            raise normalize_transport_error(exc) from exc
        logger.debug("%s %s -> %s", method, path, response.status_code)
        return response

    async def _recover(self, stale_token: Optional[str]) -> str:
        if self._refreshing:
            return await self._wait_for_refresh()
        current = self._tokens.get_access_token()
        if current is None:
            # session ended while this request was in flight
            raise SessionExpiredError()
        if current != stale_token:
            return current
        return await self._refresh()

    async def _wait_for_refresh(self) -> str:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter

    async def _refresh(self, *, keep_tokens_on_error: bool = False) -> str:
        self._refreshing = True
        try:
            pair = await self._exchange_refresh_token()
        except ApiError as exc:
            terminal = exc.is_auth_failure or exc.code == "NO_REFRESH_TOKEN"
            error: ApiError = SessionExpiredError(status_code=exc.status_code) if terminal else exc
            logger.warning("Token refresh failed (%s), terminal=%s", exc.kind.value, terminal)
            if terminal or not keep_tokens_on_error:
                self._tokens.clear()
            self._settle(error=error)
            if terminal:
                self._terminate_session()
            if error is exc:
                raise
            raise error from exc
        else:
            self._settle(token=pair.access_token)
            logger.info("Access token refreshed")
            return pair.access_token
        finally:
            self._refreshing = False
            if self._waiters:
                self._settle(error=ApiError(ErrorKind.AUTHENTICATION, "Token refresh was interrupted."))

    async def _exchange_refresh_token(self) -> TokenPair:
        refresh_token = self._tokens.get_refresh_token()
        if not refresh_token:
            raise ApiError(ErrorKind.AUTHENTICATION, code="NO_REFRESH_TOKEN")
        response = await self._send(
            "POST",
            endpoints.AUTH_REFRESH,
            json=RefreshRequest(refresh_token=refresh_token).to_wire(),
            strip_auth=True,
        )
        if response.is_error:
            raise normalize_response_error(response)
        data = self._unwrap(response)
        try:
            pair = TokenPair.model_validate(data)
        except ValidationError as exc:
            raise ApiError(
                ErrorKind.UNKNOWN, "Invalid refresh token response.", status_code=response.status_code
            ) from exc
        return self._tokens.set_tokens(pair.access_token, pair.refresh_token or refresh_token)

    def _settle(self, *, token: Optional[str] = None, error: Optional[ApiError] = None) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(token)

    def _terminate_session(self) -> None:
        self._tokens.clear()
        for listener in list(self._session_listeners):
            listener()
        self._notifier.session_expired(message=SESSION_EXPIRED_MESSAGE)
        self._notifier.redirect(location=self._login_path)

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            return response.text
        if ApiEnvelope.looks_like(body):
            try:
                envelope = ApiEnvelope[Any].model_validate(body)
            except ValidationError as exc:
                raise ApiError(
                    ErrorKind.UNKNOWN,
                    "Malformed response envelope from the server.",
                    status_code=response.status_code,
                ) from exc
            if envelope.success:
                return envelope.data
            raise envelope_failure(envelope.model_dump(), response.status_code)
        return body

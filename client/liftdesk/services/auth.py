from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from liftdesk.core import endpoints
from liftdesk.core.errors import ApiError, ErrorKind
from liftdesk.schemas import LoginRequest, LoginResponse, Role, SessionUser
from liftdesk.services import security
from liftdesk.services.pipeline import RequestPipeline
from liftdesk.services.security import InvalidTokenClaims

logger = logging.getLogger(__name__)


class AuthService:
    """Signed-in operator state derived from the token store."""

    def __init__(self, pipeline: RequestPipeline) -> None:
        self._pipeline = pipeline
        self._tokens = pipeline.token_store
        self._user: Optional[SessionUser] = None
        self._user_token: Optional[str] = None
        pipeline.add_session_listener(self._forget_user)

    @property
    def current_user(self) -> Optional[SessionUser]:
        token = self._tokens.get_access_token()
        if token is None:
            self._forget_user()
            return None
        if token != self._user_token:
            # a token nobody can read grants no identity
            claims = security.try_parse_claims(token)
            self._user = claims.to_user() if claims is not None else None
            self._user_token = token
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    async def login(self, username: str, password: str) -> SessionUser:
        if not username.strip() or not password:
            raise ApiError(ErrorKind.VALIDATION, "Username and password are required.", code="MISSING_CREDENTIALS")
        try:
            data = await self._pipeline.post(
                endpoints.AUTH_LOGIN,
                json=LoginRequest(username=username.strip(), password=password).to_wire(),
            )
        except ApiError as exc:
            if exc.kind is ErrorKind.AUTHENTICATION:
                raise ApiError(
                    ErrorKind.AUTHENTICATION,
                    "Invalid username or password.",
                    status_code=exc.status_code,
                    code="INVALID_CREDENTIALS",
                ) from exc
            raise

        try:
            response = LoginResponse.model_validate(data)
        except ValidationError as exc:
            raise ApiError(ErrorKind.UNKNOWN, "Unexpected login response from the server.") from exc

        user = response.session_user()
        if user is None:
            try:
                user = security.parse_claims(response.access_token).to_user()
            except InvalidTokenClaims as exc:
                raise ApiError(
                    ErrorKind.AUTHENTICATION,
                    "The server returned an unreadable session token.",
                    code=exc.code,
                ) from exc

        self._tokens.set_tokens(response.access_token, response.refresh_token)
        self._user = user
        self._user_token = response.access_token
        logger.info("Signed in as %s (%s)", user.username, user.role.value)
        return user

    def restore(self) -> Optional[SessionUser]:
        """Rebuild the session from a persisted token, discarding unreadable ones."""

        token = self._tokens.get_access_token()
        if token is None:
            return None
        try:
            claims = security.parse_claims(token)
        except InvalidTokenClaims as exc:
            logger.warning("Discarding stored session: %s", exc.code)
            self._tokens.clear()
            self._forget_user()
            return None
        self._user = claims.to_user()
        self._user_token = token
        return self._user

    def logout(self) -> None:
        self._tokens.clear()
        self._forget_user()
        logger.info("Signed out")

    def has_role(self, role: Role) -> bool:
        user = self.current_user
        return user is not None and user.satisfies(role)

    def require_role(self, role: Role) -> SessionUser:
        user = self.current_user
        if user is None:
            raise ApiError(ErrorKind.AUTHENTICATION, code="NOT_AUTHENTICATED")
        if not user.satisfies(role):
            raise ApiError(
                ErrorKind.AUTHORIZATION,
                f"This action requires the {role.value} role.",
                code="ROLE_REQUIRED",
            )
        return user

    def _forget_user(self) -> None:
        self._user = None
        self._user_token = None

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from liftdesk.schemas.common import WireModel


class Role(str, Enum):
    PATRON = "PATRON"
    PERSONEL = "PERSONEL"

    @classmethod
    def _missing_(cls, value: object) -> Optional["Role"]:
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


class LoginRequest(WireModel):
    username: str
    password: str


class RefreshRequest(WireModel):
    refresh_token: str


class TokenPair(WireModel):
    access_token: str = Field(validation_alias=AliasChoices("accessToken", "access_token", "token"))
    refresh_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("refreshToken", "refresh_token")
    )


class SessionUser(BaseModel):
    id: int
    username: str
    role: Role

    def satisfies(self, required: Role) -> bool:
        # PATRON can do everything PERSONEL can
        return self.role is Role.PATRON or self.role is required


class LoginResponse(WireModel):
    access_token: str = Field(validation_alias=AliasChoices("accessToken", "access_token", "token"))
    refresh_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("refreshToken", "refresh_token")
    )
    user_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("userId", "user_id", "id"))
    username: Optional[str] = None
    role: Optional[Role] = None
    user: Optional[SessionUser] = None

    def session_user(self) -> Optional[SessionUser]:
        if self.user is not None:
            return self.user
        if self.user_id is None or not self.username or self.role is None:
            return None
        return SessionUser(id=self.user_id, username=self.username, role=self.role)


class TokenClaims(BaseModel):
    subject: str
    user_id: Optional[int] = None
    username: Optional[str] = None
    role: Role
    expires_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None

    def to_user(self) -> SessionUser:
        user_id = self.user_id
        if user_id is None and self.subject.isdigit():
            user_id = int(self.subject)
        return SessionUser(id=user_id or 0, username=self.username or self.subject, role=self.role)

    def seconds_until_expiry(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.expires_at is None:
            return None
        current = now or datetime.now(timezone.utc)
        return max(0.0, (self.expires_at - current).total_seconds())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        remaining = self.seconds_until_expiry(now)
        return remaining is not None and remaining <= 0

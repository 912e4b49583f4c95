from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

TOKEN_ROW_ID = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredTokenPair(SQLModel, table=True):
    """The single persisted access/refresh pair of the signed-in operator."""

    __tablename__ = "stored_tokens"

    id: Optional[int] = Field(default=TOKEN_ROW_ID, primary_key=True)
    access_token: str
    refresh_token: str
    stored_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime(timezone=True))

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from liftdesk.db.session import engine as default_engine
from liftdesk.db.session import init_db
from liftdesk.models import TOKEN_ROW_ID, StoredTokenPair
from liftdesk.schemas import TokenPair

logger = logging.getLogger(__name__)


class TokenStore:
    """Holds the current token pair and mirrors it into durable storage.

    Reads are served from memory after the first load; every write replaces
    both tokens in a single transaction so a reader never sees a new access
    token next to a stale refresh token.
    """

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self._engine = engine or default_engine
        self._pair: Optional[TokenPair] = None
        self._loaded = False

    def init(self) -> None:
        init_db(self._engine)
        self._loaded = False
        self._load()

    def _load(self) -> None:
        if self._loaded:
            return
        with Session(self._engine) as session:
            row = session.get(StoredTokenPair, TOKEN_ROW_ID)
            self._pair = (
                TokenPair(access_token=row.access_token, refresh_token=row.refresh_token) if row else None
            )
        self._loaded = True

    def get_tokens(self) -> Optional[TokenPair]:
        self._load()
        return self._pair

    def get_access_token(self) -> Optional[str]:
        pair = self.get_tokens()
        return pair.access_token if pair else None

    def get_refresh_token(self) -> Optional[str]:
        pair = self.get_tokens()
        return pair.refresh_token if pair else None

    def set_tokens(self, access_token: str, refresh_token: Optional[str]) -> TokenPair:
        access_token = access_token.strip()
        refresh_token = (refresh_token or "").strip() or access_token
        with Session(self._engine) as session:
            row = session.get(StoredTokenPair, TOKEN_ROW_ID)
            if row is None:
                row = StoredTokenPair(id=TOKEN_ROW_ID, access_token=access_token, refresh_token=refresh_token)
            else:
                row.access_token = access_token
                row.refresh_token = refresh_token
                row.stored_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()
        self._pair = TokenPair(access_token=access_token, refresh_token=refresh_token)
        self._loaded = True
        logger.debug("Stored new token pair")
        return self._pair

    def clear(self) -> None:
        with Session(self._engine) as session:
            row = session.get(StoredTokenPair, TOKEN_ROW_ID)
            if row is not None:
                session.delete(row)
                session.commit()
        self._pair = None
        self._loaded = True
        logger.debug("Cleared stored tokens")

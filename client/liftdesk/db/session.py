from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from liftdesk.core.config import settings

import liftdesk.models  # noqa: F401  registers the tables on SQLModel.metadata


def build_engine(url: Optional[str] = None) -> Engine:
    database_url = url or settings.token_store_url
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, echo=False, connect_args=connect_args)


engine = build_engine()


def init_db(target: Optional[Engine] = None) -> None:
    SQLModel.metadata.create_all(target or engine)


@contextmanager
def get_session(target: Optional[Engine] = None) -> Iterator[Session]:
    with Session(target or engine) as session:
        yield session

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[3]
CLIENT_ROOT = PROJECT_ROOT / "client"

if str(CLIENT_ROOT) not in sys.path:
    sys.path.insert(0, str(CLIENT_ROOT))

from typing import Callable  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from liftdesk.core.config import Settings  # noqa: E402
from liftdesk.db.session import build_engine  # noqa: E402
from liftdesk.main import LiftDeskClient  # noqa: E402
from liftdesk.services.token_store import TokenStore  # noqa: E402
from liftdesk.tests.fake_backend import BASE_URL, FakeBackend  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def token_engine(tmp_path: Path) -> Engine:
    engine = build_engine(f"sqlite:///{tmp_path / 'tokens.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def token_store(token_engine: Engine) -> TokenStore:
    store = TokenStore(token_engine)
    store.init()
    return store


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(backend: FakeBackend, token_engine: Engine) -> LiftDeskClient:
    client = LiftDeskClient(
        Settings(api_base_url=BASE_URL, min_completion_photos=4),
        transport=httpx.ASGITransport(app=backend.app),
        engine=token_engine,
        refresh_in_background=False,
    )
    client.pipeline.init()
    return client


@pytest.fixture
def sign_in(client: LiftDeskClient, backend: FakeBackend) -> Callable[[str], None]:
    def _sign_in(username: str) -> None:
        tokens = backend.issue_tokens(username)
        client.token_store.set_tokens(tokens["accessToken"], tokens["refreshToken"])

    return _sign_in

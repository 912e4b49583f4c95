from __future__ import annotations

import logging
from typing import Optional

import httpx
from sqlalchemy.engine import Engine

from liftdesk.core.config import Settings, settings as default_settings
from liftdesk.db.session import build_engine
from liftdesk.services import (
    AuthService,
    MaintenancePlanLifecycle,
    QRSessionGate,
    RequestPipeline,
    SessionNotifier,
    TemplateService,
    TokenRefreshScheduler,
    TokenStore,
)

logger = logging.getLogger(__name__)


class LiftDeskClient:
    """Wires the services of one client session together.

    Use as an async context manager; entering it loads persisted tokens and
    starts the background token refresh, leaving it stops the scheduler and
    closes the HTTP client.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        engine: Optional[Engine] = None,
        notifier: Optional[SessionNotifier] = None,
        refresh_in_background: bool = True,
    ) -> None:
        self.settings = config or default_settings
        self.http = httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
        )
        self.token_store = TokenStore(engine or build_engine(self.settings.token_store_url))
        self.pipeline = RequestPipeline(
            self.http,
            self.token_store,
            notifier=notifier,
            login_path=self.settings.login_path,
        )
        self.auth = AuthService(self.pipeline)
        self.qr = QRSessionGate(self.pipeline, self.auth)
        self.plans = MaintenancePlanLifecycle(self.pipeline, min_photos=self.settings.min_completion_photos)
        self.templates = TemplateService(self.pipeline)
        self.scheduler = TokenRefreshScheduler(
            self.pipeline,
            self.settings.token_refresh_check_interval_seconds,
            leeway_seconds=self.settings.token_refresh_leeway_seconds,
        )
        self._refresh_in_background = refresh_in_background

    async def start(self) -> None:
        self.pipeline.init()
        user = self.auth.restore()
        if user is not None:
            logger.info("Restored session for %s", user.username)
        if self._refresh_in_background:
            self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.shutdown()
        await self.pipeline.aclose()

    async def __aenter__(self) -> "LiftDeskClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

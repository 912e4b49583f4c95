from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from liftdesk.core.config import settings
from liftdesk.core.errors import ApiError
from liftdesk.services.pipeline import RequestPipeline

logger = logging.getLogger(__name__)


class TokenRefreshScheduler:
    """Periodically refreshes the access token shortly before it expires."""

    def __init__(
        self,
        pipeline: RequestPipeline,
        interval_seconds: Optional[float] = None,
        *,
        leeway_seconds: Optional[int] = None,
    ) -> None:
        self.pipeline = pipeline
        self.interval_seconds = (
            settings.token_refresh_check_interval_seconds if interval_seconds is None else interval_seconds
        )
        self.leeway_seconds = leeway_seconds
        self._tasks: List[asyncio.Task] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tasks.append(asyncio.create_task(self._run()))

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._running = False

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.check_once()
            except asyncio.CancelledError:
                break

    async def check_once(self) -> None:
        try:
            await self.pipeline.ensure_fresh_token(self.leeway_seconds)
        except ApiError as exc:
            # the pipeline has already cleared tokens and notified on terminal failures
            logger.warning("Scheduled token refresh failed: %s", exc.kind.value)

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class SessionNotice:
    kind: str
    message: str
    location: Optional[str] = None


class SessionNotifier:
    """Sink for session-level notices raised by the request pipeline.

    The default implementation only logs; a UI layer subclasses it to show
    the notice and navigate to the sign-in screen.
    """

    def session_expired(self, *, message: str) -> SessionNotice:
        logger.warning("Session expired: %s", message)
        return SessionNotice(kind="session_expired", message=message)

    def redirect(self, *, location: str) -> SessionNotice:
        logger.info("Redirecting to %s", location)
        return SessionNotice(kind="redirect", message="", location=location)

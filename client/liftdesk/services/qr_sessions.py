from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from liftdesk.core import endpoints
from liftdesk.core.errors import ApiError, ErrorKind, TransitionRejected
from liftdesk.schemas import QRRemoteStartRequest, QRSessionResponse, QRValidateRequest, Role
from liftdesk.services.auth import AuthService
from liftdesk.services.pipeline import RequestPipeline

logger = logging.getLogger(__name__)


@dataclass
class QRSession:
    """Short-lived authorization to start or complete work on one elevator."""

    token: str = field(repr=False)
    elevator_id: int
    expires_at: Optional[datetime] = None
    issued_to: Optional[int] = None
    started_remotely: bool = False
    consumed: bool = False

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= (now or datetime.now(timezone.utc))

    def consume(self) -> str:
        if self.consumed:
            raise TransitionRejected(
                "QR_SESSION_CONSUMED",
                "This QR session was already used. Scan the elevator code again.",
                kind=ErrorKind.AUTHORIZATION,
            )
        self.consumed = True
        return self.token


class QRSessionGate:
    def __init__(self, pipeline: RequestPipeline, auth: AuthService) -> None:
        self._pipeline = pipeline
        self._auth = auth

    async def validate(self, code: str, elevator_id: int, *, plan_id: Optional[int] = None) -> QRSession:
        """Exchange a scanned or typed code for a session token.

        The returned session is bound to the elevator the server resolved the
        code to, which may differ from ``elevator_id``; the lifecycle rejects
        such a session when it is used against another elevator's plan.
        """

        normalized = (code or "").strip()
        if not normalized:
            raise ApiError(ErrorKind.VALIDATION, "Enter or scan the elevator QR code.", code="MISSING_QR_CODE")
        data = await self._pipeline.post(
            endpoints.QR_VALIDATE,
            json=QRValidateRequest(qr_code=normalized, elevator_id=elevator_id).to_wire(),
        )
        response = self._parse(data)
        if response.elevator_id is None:
            raise ApiError(
                ErrorKind.AUTHORIZATION,
                "The QR code could not be matched to an elevator.",
                code="QR_ELEVATOR_UNKNOWN",
            )
        if response.elevator_id != elevator_id:
            logger.warning("QR code for elevator %s presented for elevator %s", response.elevator_id, elevator_id)
        return QRSession(
            token=response.qr_session_token,
            elevator_id=response.elevator_id,
            expires_at=response.expires_at,
            issued_to=plan_id,
        )

    async def remote_start(self, elevator_id: int, *, plan_id: Optional[int] = None) -> QRSession:
        self._auth.require_role(Role.PATRON)
        data = await self._pipeline.post(
            endpoints.QR_REMOTE_START,
            json=QRRemoteStartRequest(elevator_id=elevator_id).to_wire(),
        )
        response = self._parse(data)
        logger.info("Remote start session issued for elevator %s", elevator_id)
        return QRSession(
            token=response.qr_session_token,
            elevator_id=response.elevator_id if response.elevator_id is not None else elevator_id,
            expires_at=response.expires_at,
            issued_to=plan_id,
            started_remotely=True,
        )

    @staticmethod
    def _parse(data: Any) -> QRSessionResponse:
        try:
            return QRSessionResponse.model_validate(data)
        except ValidationError as exc:
            raise ApiError(ErrorKind.UNKNOWN, "Unexpected QR session response from the server.") from exc

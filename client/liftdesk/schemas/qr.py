from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, Field

from liftdesk.schemas.common import WireModel


class QRValidateRequest(WireModel):
    qr_code: str
    elevator_id: int


class QRRemoteStartRequest(WireModel):
    elevator_id: int


class QRSessionResponse(WireModel):
    qr_session_token: str = Field(
        validation_alias=AliasChoices("qrSessionToken", "qr_session_token", "token")
    )
    elevator_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("elevatorId", "elevator_id")
    )
    expires_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("expiresAt", "expires_at")
    )
    started_remotely: bool = Field(
        default=False, validation_alias=AliasChoices("startedRemotely", "started_remotely")
    )

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator

from liftdesk.schemas.common import WireModel


class PlanStatus(str, Enum):
    NOT_PLANNED = "NOT_PLANNED"
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = frozenset({PlanStatus.PLANNED, PlanStatus.IN_PROGRESS, PlanStatus.COMPLETED})


class PlanEvent(str, Enum):
    CREATE = "create"
    RESCHEDULE = "reschedule"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


class MaintenancePlan(WireModel):
    id: int
    elevator_id: int = Field(validation_alias=AliasChoices("elevatorId", "elevator_id"))
    template_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("templateId", "template_id"))
    scheduled_date: date = Field(
        validation_alias=AliasChoices("plannedDate", "planned_date", "scheduledDate", "scheduled_date")
    )
    status: PlanStatus = PlanStatus.PLANNED
    note: Optional[str] = None
    completed_date: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("completedDate", "completed_date")
    )
    elevator_code: Optional[str] = Field(default=None, validation_alias=AliasChoices("elevatorCode", "elevator_code"))
    building_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("buildingName", "building_name"))

    @field_validator("scheduled_date", "completed_date", mode="before")
    @classmethod
    def _strip_time(cls, value: object) -> object:
        # backend occasionally sends LocalDateTime strings for LocalDate fields
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        if isinstance(value, datetime):
            return value.date()
        return value

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class MaintenancePlanCreate(WireModel):
    elevator_id: int = Field(gt=0)
    template_id: int = Field(gt=0)
    planned_date: date


class MaintenancePlanReschedule(WireModel):
    planned_date: date


class MaintenancePlanStatusUpdate(WireModel):
    status: PlanStatus


class StartExecutionRequest(WireModel):
    maintenance_plan_id: int
    qr_token: str
    remote_start: bool = False


class CompletionPayload(WireModel):
    photos: List[str] = Field(default_factory=list, description="References of the uploaded photos")
    note: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)


class CompleteWithQRRequest(WireModel):
    qr_code: str
    payload: CompletionPayload


class MaintenanceExecution(WireModel):
    id: int
    plan_id: int = Field(
        validation_alias=AliasChoices("maintenancePlanId", "taskId", "planId", "task_id", "plan_id")
    )
    status: str = "IN_PROGRESS"
    started_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("startedAt", "started_at"))
    started_by_user_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("startedByUserId", "started_by_user_id")
    )
    started_remotely: bool = Field(
        default=False, validation_alias=AliasChoices("startedRemotely", "remoteStart", "started_remotely")
    )

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from liftdesk.core import endpoints
from liftdesk.core.config import settings
from liftdesk.core.errors import ApiError, ErrorKind, TransitionRejected
from liftdesk.schemas import (
    CompleteWithQRRequest,
    CompletionPayload,
    MaintenanceExecution,
    MaintenancePlan,
    MaintenancePlanCreate,
    MaintenancePlanReschedule,
    MaintenancePlanStatusUpdate,
    PlanEvent,
    PlanStatus,
    StartExecutionRequest,
)
from liftdesk.services.pipeline import RequestPipeline
from liftdesk.services.qr_sessions import QRSession
from liftdesk.services.scheduling import Month, blocked_dates, find_conflict, visible_plans

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[Tuple[PlanStatus, PlanEvent], PlanStatus] = {
    (PlanStatus.NOT_PLANNED, PlanEvent.CREATE): PlanStatus.PLANNED,
    (PlanStatus.PLANNED, PlanEvent.RESCHEDULE): PlanStatus.PLANNED,
    (PlanStatus.PLANNED, PlanEvent.START): PlanStatus.IN_PROGRESS,
    (PlanStatus.PLANNED, PlanEvent.CANCEL): PlanStatus.CANCELLED,
    (PlanStatus.IN_PROGRESS, PlanEvent.COMPLETE): PlanStatus.COMPLETED,
}


def next_status(status: PlanStatus, event: PlanEvent) -> PlanStatus:
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise TransitionRejected(
            "INVALID_TRANSITION",
            f"Cannot {event.value} a maintenance plan that is {status.value}.",
        ) from None


class PlanCache:
    """Backend-sourced plan snapshots, dropped wholesale after any mutation."""

    def __init__(self) -> None:
        self._months: Dict[Month, List[MaintenancePlan]] = {}
        self._plans: Dict[int, MaintenancePlan] = {}

    def get_month(self, month: Month) -> Optional[List[MaintenancePlan]]:
        plans = self._months.get(month)
        return list(plans) if plans is not None else None

    def store_month(self, month: Month, plans: List[MaintenancePlan]) -> None:
        self._months[month] = list(plans)
        for plan in plans:
            self._plans[plan.id] = plan

    def get(self, plan_id: int) -> Optional[MaintenancePlan]:
        return self._plans.get(plan_id)

    def store(self, plan: MaintenancePlan) -> None:
        self._plans[plan.id] = plan

    def invalidate(self) -> None:
        self._months.clear()
        self._plans.clear()


class MaintenancePlanLifecycle:
    """State machine for planned maintenance visits.

    Guards run locally before any request is issued. The backend validates
    again, so a transition that passes here can still be rejected; the cache
    is invalidated after every mutating call either way and the next read
    returns the backend's view.
    """

    def __init__(
        self,
        pipeline: RequestPipeline,
        *,
        cache: Optional[PlanCache] = None,
        clock: Optional[Callable[[], date]] = None,
        min_photos: Optional[int] = None,
    ) -> None:
        self._pipeline = pipeline
        self._cache = cache or PlanCache()
        self._today = clock or date.today
        self._min_photos = settings.min_completion_photos if min_photos is None else min_photos

    @property
    def cache(self) -> PlanCache:
        return self._cache

    async def list_plans(
        self,
        *,
        month: Optional[Month] = None,
        elevator_id: Optional[int] = None,
        status: Optional[PlanStatus] = None,
    ) -> List[MaintenancePlan]:
        params: Dict[str, Any] = {}
        if month is not None:
            params["month"] = str(month)
        if elevator_id is not None:
            params["elevatorId"] = elevator_id
        if status is not None:
            params["status"] = status.value
        data = await self._pipeline.get(endpoints.MAINTENANCE_PLANS, params=params or None)
        plans = [self._parse_plan(item) for item in (data or [])]
        for plan in plans:
            self._cache.store(plan)
        return plans

    async def load_month(self, month: Month, *, refresh: bool = False) -> List[MaintenancePlan]:
        cached = None if refresh else self._cache.get_month(month)
        if cached is not None:
            return cached
        plans = await self.list_plans(month=month)
        self._cache.store_month(month, plans)
        return plans

    async def get_plan(self, plan_id: int, *, refresh: bool = False) -> MaintenancePlan:
        cached = None if refresh else self._cache.get(plan_id)
        if cached is not None:
            return cached
        data = await self._pipeline.get(endpoints.maintenance_plan(plan_id))
        plan = self._parse_plan(data)
        self._cache.store(plan)
        return plan

    async def calendar(self, month: Month) -> List[MaintenancePlan]:
        return visible_plans(await self.load_month(month), month)

    async def available_dates(self, elevator_id: int, month: Month) -> List[date]:
        plans = await self.load_month(month)
        blocked = blocked_dates(elevator_id, month, plans, self._today())
        return [day for day in month.days() if day not in blocked]

    async def create(self, elevator_id: int, template_id: int, planned_date: date) -> MaintenancePlan:
        next_status(PlanStatus.NOT_PLANNED, PlanEvent.CREATE)
        if elevator_id <= 0 or template_id <= 0:
            raise TransitionRejected(
                "INVALID_PAYLOAD", "Elevator and maintenance template must both be selected."
            )
        month = Month.of(planned_date)
        self._check_schedule(elevator_id, month, planned_date, await self.load_month(month))
        request = MaintenancePlanCreate(elevator_id=elevator_id, template_id=template_id, planned_date=planned_date)
        data = await self._mutate("POST", endpoints.MAINTENANCE_PLANS, request.to_wire())
        plan = self._parse_plan(data)
        logger.info("Planned maintenance %s for elevator %s on %s", plan.id, elevator_id, planned_date)
        return plan

    async def reschedule(self, plan_id: int, new_date: date) -> MaintenancePlan:
        plan = await self.get_plan(plan_id)
        next_status(plan.status, PlanEvent.RESCHEDULE)
        if new_date < self._today():
            raise TransitionRejected(
                "DATE_IN_PAST",
                f"{new_date.isoformat()} is in the past. Pick today or a later date.",
            )
        month = Month.of(new_date)
        self._check_schedule(
            plan.elevator_id, month, new_date, await self.load_month(month), exclude_plan_id=plan.id
        )
        request = MaintenancePlanReschedule(planned_date=new_date)
        data = await self._mutate("PATCH", endpoints.maintenance_plan_reschedule(plan.id), request.to_wire())
        updated = self._parse_plan(data)
        logger.info("Rescheduled maintenance %s from %s to %s", plan.id, plan.scheduled_date, new_date)
        return updated

    async def start(self, plan_id: int, session: QRSession) -> MaintenanceExecution:
        self._check_session(session, plan_id)
        plan = await self.get_plan(plan_id)
        next_status(plan.status, PlanEvent.START)
        self._check_binding(plan, session)
        request = StartExecutionRequest(
            maintenance_plan_id=plan.id,
            qr_token=session.consume(),
            remote_start=session.started_remotely,
        )
        data = await self._mutate("POST", endpoints.MAINTENANCE_EXECUTION_START, request.to_wire())
        execution = self._parse_execution(data)
        logger.info("Started maintenance %s (remote=%s)", plan.id, session.started_remotely)
        return execution

    async def get_execution(self, plan_id: int) -> Optional[MaintenanceExecution]:
        """Execution record of a started plan, or ``None`` when the plan was never started."""

        try:
            data = await self._pipeline.get(endpoints.maintenance_execution_for_plan(plan_id))
        except ApiError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                return None
            raise
        return self._parse_execution(data)

    async def complete(
        self,
        plan_id: int,
        session: QRSession,
        payload: CompletionPayload,
        *,
        minimum_photos: Optional[int] = None,
    ) -> MaintenancePlan:
        required = self._min_photos if minimum_photos is None else minimum_photos
        photos = [photo for photo in payload.photos if photo and photo.strip()]
        if len(photos) < required:
            raise TransitionRejected(
                "INSUFFICIENT_PHOTOS",
                f"At least {required} photos are required to complete maintenance, {len(photos)} provided.",
            )
        self._check_session(session, plan_id)
        plan = await self.get_plan(plan_id)
        next_status(plan.status, PlanEvent.COMPLETE)
        self._check_binding(plan, session)
        request = CompleteWithQRRequest(
            qr_code=session.consume(),
            payload=payload.model_copy(update={"photos": photos}),
        )
        data = await self._mutate("POST", endpoints.maintenance_plan_complete(plan.id), request.to_wire())
        completed = self._parse_plan(data)
        logger.info("Completed maintenance %s", plan.id)
        return completed

    async def cancel(self, plan_id: int) -> MaintenancePlan:
        plan = await self.get_plan(plan_id)
        next_status(plan.status, PlanEvent.CANCEL)
        request = MaintenancePlanStatusUpdate(status=PlanStatus.CANCELLED)
        data = await self._mutate("PATCH", endpoints.maintenance_plan(plan.id), request.to_wire())
        cancelled = self._parse_plan(data)
        logger.info("Cancelled maintenance %s", plan.id)
        return cancelled

    async def _mutate(self, method: str, path: str, body: Dict[str, Any]) -> Any:
        try:
            return await self._pipeline.request(method, path, json=body)
        finally:
            self._cache.invalidate()

    @staticmethod
    def _check_schedule(
        elevator_id: int,
        month: Month,
        candidate: date,
        plans: List[MaintenancePlan],
        *,
        exclude_plan_id: Optional[int] = None,
    ) -> None:
        conflict = find_conflict(elevator_id, month, candidate, plans, exclude_plan_id=exclude_plan_id)
        if conflict is None:
            return
        raise TransitionRejected(
            "SCHEDULING_CONFLICT",
            (
                f"Elevator {elevator_id} already has a {conflict.status.value} maintenance plan on "
                f"{conflict.scheduled_date.isoformat()} in {month}. Only one plan per elevator per month is "
                "allowed; pick a date in another month or cancel the existing plan."
            ),
            conflicting_plan=conflict,
        )

    def _check_session(self, session: QRSession, plan_id: int) -> None:
        if session.consumed:
            raise TransitionRejected(
                "QR_SESSION_CONSUMED",
                "This QR session was already used. Scan the elevator code again.",
                kind=ErrorKind.AUTHORIZATION,
            )
        if session.is_expired():
            raise TransitionRejected(
                "QR_SESSION_EXPIRED",
                "The QR session has expired. Scan the elevator code again.",
                kind=ErrorKind.AUTHORIZATION,
            )
        if session.issued_to is not None and session.issued_to != plan_id:
            raise TransitionRejected(
                "QR_SESSION_PLAN_MISMATCH",
                f"This QR session was issued for maintenance {session.issued_to}, not {plan_id}.",
                kind=ErrorKind.AUTHORIZATION,
            )

    @staticmethod
    def _check_binding(plan: MaintenancePlan, session: QRSession) -> None:
        if session.elevator_id != plan.elevator_id:
            raise TransitionRejected(
                "QR_ELEVATOR_MISMATCH",
                (
                    f"The QR code belongs to elevator {session.elevator_id}, not elevator {plan.elevator_id}. "
                    "Scan the code on the elevator being serviced."
                ),
                kind=ErrorKind.AUTHORIZATION,
            )

    @staticmethod
    def _parse_execution(data: Any) -> MaintenanceExecution:
        try:
            return MaintenanceExecution.model_validate(data)
        except ValidationError as exc:
            raise ApiError(ErrorKind.UNKNOWN, "Unexpected maintenance execution response.") from exc

    @staticmethod
    def _parse_plan(data: Any) -> MaintenancePlan:
        try:
            return MaintenancePlan.model_validate(data)
        except ValidationError as exc:
            raise ApiError(ErrorKind.UNKNOWN, "Unexpected maintenance plan data from the server.") from exc

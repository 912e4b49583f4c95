from __future__ import annotations

from datetime import date
from typing import Callable

import pytest

from liftdesk.core.errors import ApiError, ErrorKind, TransitionRejected
from liftdesk.main import LiftDeskClient
from liftdesk.schemas import CompletionPayload, PlanEvent, PlanStatus
from liftdesk.services.maintenance_plans import TRANSITIONS, MaintenancePlanLifecycle, next_status
from liftdesk.services.scheduling import Month
from liftdesk.tests.fake_backend import FakeBackend

pytestmark = pytest.mark.anyio

TODAY = date(2024, 5, 1)
PHOTOS = ["photo-1.jpg", "photo-2.jpg", "photo-3.jpg", "photo-4.jpg"]


@pytest.fixture
def lifecycle(client: LiftDeskClient, sign_in: Callable[[str], None]) -> MaintenancePlanLifecycle:
    sign_in("tech")
    return MaintenancePlanLifecycle(client.pipeline, clock=lambda: TODAY, min_photos=4)


@pytest.mark.parametrize("status", list(PlanStatus))
@pytest.mark.parametrize("event", list(PlanEvent))
def test_every_status_event_pair_is_decided(status: PlanStatus, event: PlanEvent) -> None:
    expected = TRANSITIONS.get((status, event))
    if expected is None:
        with pytest.raises(TransitionRejected) as exc:
            next_status(status, event)
        assert exc.value.code == "INVALID_TRANSITION"
        assert exc.value.kind is ErrorKind.VALIDATION
    else:
        assert next_status(status, event) is expected


def test_terminal_states_have_no_exits() -> None:
    for status in (PlanStatus.COMPLETED, PlanStatus.CANCELLED):
        assert not [event for (source, event) in TRANSITIONS if source is status]


async def test_create_plan_in_free_month(lifecycle: MaintenancePlanLifecycle, backend: FakeBackend) -> None:
    plan = await lifecycle.create(10, 1, date(2024, 6, 5))

    assert plan.status is PlanStatus.PLANNED
    assert plan.scheduled_date == date(2024, 6, 5)
    assert backend.plans[plan.id]["elevatorId"] == 10


async def test_create_rejected_when_month_already_planned(
    lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    existing = backend.add_plan(10, date(2024, 6, 20))

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.create(10, 1, date(2024, 6, 3))

    assert exc.value.code == "SCHEDULING_CONFLICT"
    assert exc.value.conflicting_plan.id == existing["id"]
    assert "2024-06-20" in exc.value.message
    assert backend.mutations() == []


async def test_cancelled_plan_frees_the_month(lifecycle: MaintenancePlanLifecycle, backend: FakeBackend) -> None:
    backend.add_plan(10, date(2024, 6, 20), status="CANCELLED")

    plan = await lifecycle.create(10, 1, date(2024, 6, 3))

    assert plan.status is PlanStatus.PLANNED


async def test_create_with_missing_selection_is_rejected(
    lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.create(10, 0, date(2024, 6, 3))

    assert exc.value.code == "INVALID_PAYLOAD"
    assert backend.requests == []


async def test_reschedule_into_occupied_month_keeps_original_date(
    lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    moved = backend.add_plan(10, date(2024, 6, 1))
    other = backend.add_plan(10, date(2024, 6, 20))

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.reschedule(moved["id"], date(2024, 6, 15))

    assert exc.value.code == "SCHEDULING_CONFLICT"
    assert exc.value.conflicting_plan.id == other["id"]
    assert backend.mutations() == []
    assert backend.plans[moved["id"]]["plannedDate"] == "2024-06-01"


async def test_reschedule_within_own_month(lifecycle: MaintenancePlanLifecycle, backend: FakeBackend) -> None:
    moved = backend.add_plan(10, date(2024, 6, 1))

    plan = await lifecycle.reschedule(moved["id"], date(2024, 6, 15))

    assert plan.scheduled_date == date(2024, 6, 15)
    assert backend.plans[moved["id"]]["plannedDate"] == "2024-06-15"


async def test_reschedule_into_past_is_rejected(lifecycle: MaintenancePlanLifecycle, backend: FakeBackend) -> None:
    moved = backend.add_plan(10, date(2024, 6, 1))

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.reschedule(moved["id"], date(2024, 4, 30))

    assert exc.value.code == "DATE_IN_PAST"
    assert backend.mutations() == []


async def test_start_with_qr_from_other_elevator_is_rejected(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    plan = backend.add_plan(10, date(2024, 6, 1))
    backend.qr_codes["LIFT-11"] = 11
    session = await client.qr.validate("LIFT-11", 10, plan_id=plan["id"])

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.start(plan["id"], session)

    assert exc.value.code == "QR_ELEVATOR_MISMATCH"
    assert exc.value.kind is ErrorKind.AUTHORIZATION
    assert not session.consumed
    assert backend.plans[plan["id"]]["status"] == "PLANNED"
    assert "POST /maintenance-executions/start" not in backend.requests


async def test_complete_with_qr_from_other_elevator_is_rejected(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    plan = backend.add_plan(10, date(2024, 6, 1), status="IN_PROGRESS")
    backend.qr_codes["LIFT-11"] = 11
    session = await client.qr.validate("LIFT-11", 10, plan_id=plan["id"])

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.complete(plan["id"], session, CompletionPayload(photos=PHOTOS))

    assert exc.value.code == "QR_ELEVATOR_MISMATCH"
    assert exc.value.kind is ErrorKind.AUTHORIZATION
    assert not session.consumed
    assert backend.plans[plan["id"]]["status"] == "IN_PROGRESS"
    assert f"POST /maintenance-plans/{plan['id']}/complete-with-qr" not in backend.requests


async def test_get_execution_after_start(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    plan = backend.add_plan(10, date(2024, 6, 1))
    idle = backend.add_plan(12, date(2024, 6, 2))
    backend.qr_codes["LIFT-10"] = 10
    session = await client.qr.validate("LIFT-10", 10, plan_id=plan["id"])
    started = await lifecycle.start(plan["id"], session)

    execution = await lifecycle.get_execution(plan["id"])

    assert execution is not None
    assert execution.id == started.id
    assert execution.plan_id == plan["id"]
    assert await lifecycle.get_execution(idle["id"]) is None


async def test_completion_with_too_few_photos_never_reaches_backend(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    plan = backend.add_plan(10, date(2024, 6, 1), status="IN_PROGRESS")
    backend.qr_codes["LIFT-10"] = 10
    session = await client.qr.validate("LIFT-10", 10)
    backend.requests.clear()

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.complete(plan["id"], session, CompletionPayload(photos=PHOTOS[:3]))

    assert exc.value.code == "INSUFFICIENT_PHOTOS"
    assert backend.requests == []
    assert backend.plans[plan["id"]]["status"] == "IN_PROGRESS"
    assert not session.consumed


async def test_plan_specific_photo_minimum(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    plan = backend.add_plan(10, date(2024, 6, 1), status="IN_PROGRESS")
    backend.qr_codes["LIFT-10"] = 10
    session = await client.qr.validate("LIFT-10", 10)

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.complete(plan["id"], session, CompletionPayload(photos=PHOTOS), minimum_photos=6)

    assert exc.value.code == "INSUFFICIENT_PHOTOS"
    assert "6 photos" in exc.value.message


async def test_full_visit_from_plan_to_completion(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    backend.qr_codes["LIFT-10"] = 10
    plan = await lifecycle.create(10, 1, date(2024, 6, 5))

    start_session = await client.qr.validate("LIFT-10", 10, plan_id=plan.id)
    execution = await lifecycle.start(plan.id, start_session)

    assert execution.plan_id == plan.id
    assert not execution.started_remotely
    assert start_session.consumed
    assert (await lifecycle.get_plan(plan.id)).status is PlanStatus.IN_PROGRESS

    finish_session = await client.qr.validate("LIFT-10", 10, plan_id=plan.id)
    completed = await lifecycle.complete(
        plan.id, finish_session, CompletionPayload(photos=PHOTOS, note="Door sensor adjusted")
    )

    assert completed.status is PlanStatus.COMPLETED
    assert completed.note == "Door sensor adjusted"
    calendar = await lifecycle.calendar(Month(2024, 6))
    assert [(item.id, item.status) for item in calendar] == [(plan.id, PlanStatus.COMPLETED)]


async def test_used_qr_session_cannot_be_reused(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    plan = backend.add_plan(10, date(2024, 6, 1))
    backend.qr_codes["LIFT-10"] = 10
    session = await client.qr.validate("LIFT-10", 10)
    await lifecycle.start(plan["id"], session)
    backend.plans[plan["id"]]["status"] = "PLANNED"

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.start(plan["id"], session)

    assert exc.value.code == "QR_SESSION_CONSUMED"


async def test_session_issued_for_another_plan_is_rejected(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    first = backend.add_plan(10, date(2024, 6, 1))
    second = backend.add_plan(10, date(2024, 7, 1))
    backend.qr_codes["LIFT-10"] = 10
    session = await client.qr.validate("LIFT-10", 10, plan_id=first["id"])

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.start(second["id"], session)

    assert exc.value.code == "QR_SESSION_PLAN_MISMATCH"


async def test_completing_a_planned_visit_is_invalid(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    plan = backend.add_plan(10, date(2024, 6, 1))
    backend.qr_codes["LIFT-10"] = 10
    session = await client.qr.validate("LIFT-10", 10)

    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.complete(plan["id"], session, CompletionPayload(photos=PHOTOS))

    assert exc.value.code == "INVALID_TRANSITION"
    assert "POST /maintenance-plans/%s/complete-with-qr" % plan["id"] not in backend.requests


async def test_cancel_then_cancel_again(lifecycle: MaintenancePlanLifecycle, backend: FakeBackend) -> None:
    plan = backend.add_plan(10, date(2024, 6, 1))

    cancelled = await lifecycle.cancel(plan["id"])

    assert cancelled.status is PlanStatus.CANCELLED
    with pytest.raises(TransitionRejected) as exc:
        await lifecycle.cancel(plan["id"])
    assert exc.value.code == "INVALID_TRANSITION"
    assert backend.mutations() == [f"PATCH /maintenance-plans/{plan['id']}"]


async def test_backend_rejection_invalidates_cached_month(
    lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    june = Month(2024, 6)
    assert await lifecycle.calendar(june) == []
    # planned by someone else after the calendar was loaded
    other = backend.add_plan(10, date(2024, 6, 25))

    with pytest.raises(ApiError) as exc:
        await lifecycle.create(10, 1, date(2024, 6, 3))

    assert exc.value.kind is ErrorKind.VALIDATION
    assert exc.value.status_code == 409
    assert [plan.id for plan in await lifecycle.calendar(june)] == [other["id"]]


async def test_available_dates_follow_the_conflict_rule(
    lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    june = Month(2024, 6)
    backend.add_plan(10, date(2024, 6, 20))

    assert await lifecycle.available_dates(10, june) == []
    assert await lifecycle.available_dates(11, june) == june.days()


async def test_list_plans_filters_by_elevator_and_status(
    lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    backend.add_plan(10, date(2024, 6, 1))
    wanted = backend.add_plan(11, date(2024, 6, 2), status="IN_PROGRESS")
    backend.add_plan(11, date(2024, 7, 2))

    plans = await lifecycle.list_plans(elevator_id=11, status=PlanStatus.IN_PROGRESS)

    assert [plan.id for plan in plans] == [wanted["id"]]


async def test_guard_runs_after_token_refresh(
    client: LiftDeskClient, lifecycle: MaintenancePlanLifecycle, backend: FakeBackend
) -> None:
    backend.expire_access_tokens()

    plan = await lifecycle.create(10, 1, date(2024, 6, 5))

    assert plan.status is PlanStatus.PLANNED
    assert backend.refresh_calls == 1

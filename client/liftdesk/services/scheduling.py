"""Monthly scheduling rule for maintenance plans.

An elevator may hold at most one active plan per calendar month. Every caller
that needs to know whether a date is free for an elevator (the planning
calendar, plan creation and rescheduling) goes through ``find_conflict``.
"""
from __future__ import annotations

import calendar
from datetime import date
from typing import Iterable, List, NamedTuple, Optional, Set

from liftdesk.schemas import ACTIVE_STATUSES, MaintenancePlan, PlanStatus


class Month(NamedTuple):
    year: int
    month: int

    @classmethod
    def of(cls, value: date) -> "Month":
        return cls(value.year, value.month)

    @classmethod
    def parse(cls, value: str) -> "Month":
        try:
            year_part, month_part = value.strip().split("-", 1)
            month = cls(int(year_part), int(month_part))
        except ValueError as exc:
            raise ValueError(f"Month must be formatted as YYYY-MM, got {value!r}") from exc
        if not 1 <= month.month <= 12:
            raise ValueError(f"Month out of range: {value!r}")
        return month

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def days(self) -> List[date]:
        return [date(self.year, self.month, day) for day in range(1, self.last_day.day + 1)]

    def contains(self, value: date) -> bool:
        return value.year == self.year and value.month == self.month

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def find_conflict(
    elevator_id: int,
    month: Month,
    candidate_date: date,
    existing_plans: Iterable[MaintenancePlan],
    *,
    exclude_plan_id: Optional[int] = None,
) -> Optional[MaintenancePlan]:
    """Return the active plan that blocks ``candidate_date``, if any.

    Cancelled plans never block. ``exclude_plan_id`` skips the plan being
    rescheduled. The earliest blocking plan is returned so the result does
    not depend on the order of ``existing_plans``.
    """

    if not month.contains(candidate_date):
        raise ValueError(f"{candidate_date.isoformat()} is not in {month}")
    blocking = [
        plan
        for plan in existing_plans
        if plan.elevator_id == elevator_id
        and plan.status in ACTIVE_STATUSES
        and plan.id != exclude_plan_id
        and month.contains(plan.scheduled_date)
    ]
    return min(blocking, key=lambda plan: (plan.scheduled_date, plan.id), default=None)


def has_conflict(
    elevator_id: int,
    month: Month,
    candidate_date: date,
    existing_plans: Iterable[MaintenancePlan],
    *,
    exclude_plan_id: Optional[int] = None,
) -> bool:
    return (
        find_conflict(elevator_id, month, candidate_date, existing_plans, exclude_plan_id=exclude_plan_id)
        is not None
    )


def visible_plans(plans: Iterable[MaintenancePlan], month: Optional[Month] = None) -> List[MaintenancePlan]:
    """Plans the calendar renders: everything except cancelled ones."""

    shown = [
        plan
        for plan in plans
        if plan.status is not PlanStatus.CANCELLED and (month is None or month.contains(plan.scheduled_date))
    ]
    return sorted(shown, key=lambda plan: (plan.scheduled_date, plan.elevator_id, plan.id))


def blocked_dates(
    elevator_id: int,
    month: Month,
    plans: Iterable[MaintenancePlan],
    today: date,
    *,
    exclude_plan_id: Optional[int] = None,
) -> Set[date]:
    """Dates the calendar greys out for ``elevator_id``."""

    plans = list(plans)
    days = month.days()
    if find_conflict(elevator_id, month, month.first_day, plans, exclude_plan_id=exclude_plan_id) is not None:
        return set(days)
    return {day for day in days if day < today}

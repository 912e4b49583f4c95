"""Backend paths consumed by the client, relative to ``Settings.api_base_url``."""
from __future__ import annotations

AUTH_LOGIN = "/auth/login"
AUTH_REFRESH = "/auth/refresh"
AUTH_ENDPOINTS = (AUTH_LOGIN, AUTH_REFRESH)

QR_VALIDATE = "/qr-sessions/validate"
QR_REMOTE_START = "/qr-sessions/remote-start"

MAINTENANCE_PLANS = "/maintenance-plans"
MAINTENANCE_EXECUTIONS = "/maintenance-executions"
MAINTENANCE_EXECUTION_START = f"{MAINTENANCE_EXECUTIONS}/start"

MAINTENANCE_TEMPLATES = "/maintenance-templates"
MAINTENANCE_SECTIONS = "/maintenance-sections"


def maintenance_plan(plan_id: int) -> str:
    return f"{MAINTENANCE_PLANS}/{plan_id}"


def maintenance_plan_reschedule(plan_id: int) -> str:
    return f"{MAINTENANCE_PLANS}/{plan_id}/reschedule"


def maintenance_plan_complete(plan_id: int) -> str:
    return f"{MAINTENANCE_PLANS}/{plan_id}/complete-with-qr"


def maintenance_execution_for_plan(plan_id: int) -> str:
    return f"{MAINTENANCE_EXECUTIONS}/task/{plan_id}"


def maintenance_template(template_id: int) -> str:
    return f"{MAINTENANCE_TEMPLATES}/{template_id}"


def maintenance_template_sections(template_id: int) -> str:
    return f"{MAINTENANCE_TEMPLATES}/{template_id}/sections"


def maintenance_section(section_id: int) -> str:
    return f"{MAINTENANCE_SECTIONS}/{section_id}"


def is_auth_endpoint(path: str) -> bool:
    return any(path.rstrip("/").endswith(endpoint) for endpoint in AUTH_ENDPOINTS)

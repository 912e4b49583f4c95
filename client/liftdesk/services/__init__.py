from liftdesk.services import security
from liftdesk.services.token_store import TokenStore
from liftdesk.services.notifications import SessionNotice, SessionNotifier
from liftdesk.services.pipeline import RequestPipeline
from liftdesk.services.auth import AuthService
from liftdesk.services.qr_sessions import QRSession, QRSessionGate
from liftdesk.services.scheduling import Month, blocked_dates, find_conflict, has_conflict, visible_plans
from liftdesk.services.cache import CacheEntry, CacheSnapshot, ReconcilingCache
from liftdesk.services.maintenance_plans import (
    TRANSITIONS,
    MaintenancePlanLifecycle,
    PlanCache,
    next_status,
)
from liftdesk.services.templates import TemplateNotFoundError, TemplateService
from liftdesk.services.background import TokenRefreshScheduler

__all__ = [
    "AuthService",
    "CacheEntry",
    "CacheSnapshot",
    "MaintenancePlanLifecycle",
    "Month",
    "PlanCache",
    "QRSession",
    "QRSessionGate",
    "ReconcilingCache",
    "RequestPipeline",
    "SessionNotice",
    "SessionNotifier",
    "TRANSITIONS",
    "TemplateNotFoundError",
    "TemplateService",
    "TokenRefreshScheduler",
    "TokenStore",
    "blocked_dates",
    "find_conflict",
    "has_conflict",
    "next_status",
    "security",
    "visible_plans",
]

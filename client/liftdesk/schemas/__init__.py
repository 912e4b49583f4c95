from liftdesk.schemas.auth import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    Role,
    SessionUser,
    TokenClaims,
    TokenPair,
)
from liftdesk.schemas.common import ApiEnvelope, WireModel
from liftdesk.schemas.maintenance import (
    ACTIVE_STATUSES,
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
from liftdesk.schemas.qr import QRRemoteStartRequest, QRSessionResponse, QRValidateRequest
from liftdesk.schemas.template import (
    MaintenanceSection,
    MaintenanceTemplate,
    SectionCreate,
    SectionUpdate,
)

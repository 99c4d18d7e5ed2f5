from attendme.models.attendance_session import AttendanceSession  # noqa: F401
from attendme.models.hidden_item import HiddenItem, HiddenItemType  # noqa: F401
from attendme.models.notification import (  # noqa: F401
    Notification,
    NotificationPriority,
    NotificationType,
)
from attendme.models.permission import AttendancePermission, OdCategory, PermissionType  # noqa: F401
from attendme.models.request import (  # noqa: F401
    ClassSwap,
    RequestKind,
    RequestStatus,
    Substitution,
)
from attendme.models.student_aggregate import StudentAggregate  # noqa: F401

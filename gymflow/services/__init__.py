from .access_service import AccessService
from .auth_service import AuthService
from .checkin_service import CheckinService, ScanResult, serialize_checkin
from .dashboard_service import DashboardService
from .gym_service import GymService
from .membership_service import MembershipService, serialize_membership

__all__ = [
    "AccessService",
    "AuthService",
    "CheckinService",
    "DashboardService",
    "GymService",
    "MembershipService",
    "ScanResult",
    "serialize_checkin",
    "serialize_membership",
]

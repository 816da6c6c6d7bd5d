from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from gymflow.utils import normalize_rut


class Role(str, Enum):
    USER = "USER"
    GYM_STAFF = "GYM_STAFF"
    ADMIN = "ADMIN"


# Roles with universal gym access (no membership check)
UNIVERSAL_ACCESS_ROLES = {Role.ADMIN.value, Role.GYM_STAFF.value}


class MembershipStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class SessionState(str, Enum):
    OUTSIDE = "OUTSIDE"
    INSIDE = "INSIDE"


class ScanAction(str, Enum):
    CHECKIN = "checkin"
    CHECKOUT = "checkout"


@dataclass(frozen=True)
class Credential:
    """Identity presented at a turnstile, kiosk or API call.

    When several fields are set the most specific wins: user_id, then rut, then qr_code.
    """

    user_id: Optional[str] = None
    rut: Optional[str] = None
    qr_code: Optional[str] = None

    @classmethod
    def of(
        cls,
        user_id: Optional[str] = None,
        rut: Optional[str] = None,
        qr_code: Optional[str] = None,
    ) -> "Credential":
        uid = str(user_id).strip() if user_id else None
        qr = str(qr_code).strip() if qr_code else None
        return cls(user_id=uid or None, rut=normalize_rut(rut), qr_code=qr or None)

    @property
    def is_empty(self) -> bool:
        return not (self.user_id or self.rut or self.qr_code)

    def describe(self) -> str:
        if self.user_id:
            return f"user_id={self.user_id}"
        if self.rut:
            return f"rut={self.rut}"
        if self.qr_code:
            return f"qr=***{self.qr_code[-4:]}"
        return "anonymous"


@dataclass(frozen=True)
class CapacitySnapshot:
    gym_id: str
    gym_name: str
    current: int
    max: int
    available: int
    percentage: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "gymId": self.gym_id,
            "gymName": self.gym_name,
            "current": self.current,
            "max": self.max,
            "available": self.available,
            "percentage": self.percentage,
        }


@dataclass
class AccessGrant:
    user: Any
    granted: bool = True

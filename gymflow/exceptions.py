"""
Exception hierarchy for the GymFlow engine.

Every error carries a stable ``error_code`` and the HTTP status the API
renders it with, so kiosk and dashboard clients can show the specific
denial message.
"""

from typing import Optional


class GymFlowError(Exception):
    """Base exception for all engine errors."""

    status_code: int = 400
    default_code: str = "GYMFLOW_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "ok": False,
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class NotFound(GymFlowError):
    """Entity absent (user, gym, check-in or active session)."""

    status_code = 404
    default_code = "NOT_FOUND"


class Forbidden(GymFlowError):
    """Identified but not entitled to enter the gym."""

    status_code = 403
    default_code = "FORBIDDEN"


class Unauthorized(GymFlowError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class Conflict(GymFlowError):
    status_code = 409
    default_code = "CONFLICT"


class InvalidInput(GymFlowError):
    status_code = 400
    default_code = "INVALID_INPUT"


# ===========================================
# Check-in engine
# ===========================================


class GymInactive(GymFlowError):
    status_code = 409
    default_code = "GYM_INACTIVE"

    def __init__(self, gym_id: str):
        super().__init__(
            "El gimnasio no está activo",
            details={"gym_id": gym_id},
        )


class CapacityExceeded(GymFlowError):
    status_code = 409
    default_code = "CAPACITY_EXCEEDED"

    def __init__(self, gym_id: str, current: int, maximum: int):
        super().__init__(
            "El gimnasio está en capacidad máxima",
            details={"gym_id": gym_id, "current": current, "max": maximum},
        )


class DuplicateSession(GymFlowError):
    status_code = 409
    default_code = "DUPLICATE_SESSION"

    def __init__(self, gym_id: str, user_id: str, checkin_id: Optional[str] = None):
        super().__init__(
            "Ya tienes un check-in activo en este gimnasio",
            details={"gym_id": gym_id, "user_id": user_id, "checkin_id": checkin_id},
        )


class AlreadyCheckedOut(GymFlowError):
    status_code = 409
    default_code = "ALREADY_CHECKED_OUT"

    def __init__(self, checkin_id: str):
        super().__init__(
            "Ya se realizó el check-out",
            details={"checkin_id": checkin_id},
        )


class StoreUnavailable(GymFlowError):
    """The occupancy store (or another backing service) could not be reached."""

    status_code = 503
    default_code = "CONNECTION_ERROR"

    def __init__(self, message: str = "Servicio no disponible", **kwargs):
        super().__init__(message, **kwargs)


GymFlowConnectionError = StoreUnavailable

"""
FastAPI dependencies: per-request sessions, services, the broadcaster and
the kiosk operator session.
"""

import logging
from typing import Any, Dict, Generator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from gymflow.capacity_hub import CapacityBroadcaster
from gymflow.database.connection import SessionLocal
from gymflow.exceptions import Unauthorized
from gymflow.security.tokens import verify_token
from gymflow.services.access_service import AccessService
from gymflow.services.auth_service import AuthService
from gymflow.services.checkin_service import CheckinService
from gymflow.services.dashboard_service import DashboardService
from gymflow.services.gym_service import GymService
from gymflow.services.membership_service import MembershipService

logger = logging.getLogger(__name__)


def get_db_session(request: Request) -> Generator[Session, None, None]:
    """One session per request, from the factory the app was built with."""
    factory = getattr(request.app.state, "session_factory", None) or SessionLocal
    session = factory()
    try:
        yield session
    finally:
        session.close()


def get_access_service(session: Session = Depends(get_db_session)) -> AccessService:
    return AccessService(session)


def get_checkin_service(session: Session = Depends(get_db_session)) -> CheckinService:
    return CheckinService(session)


def get_dashboard_service(session: Session = Depends(get_db_session)) -> DashboardService:
    return DashboardService(session)


def get_gym_service(session: Session = Depends(get_db_session)) -> GymService:
    return GymService(session)


def get_membership_service(session: Session = Depends(get_db_session)) -> MembershipService:
    return MembershipService(session)


def get_auth_service(session: Session = Depends(get_db_session)) -> AuthService:
    return AuthService(session)


def get_broadcaster(request: Request) -> CapacityBroadcaster:
    return request.app.state.broadcaster


def _bearer(authorization: Optional[str]) -> str:
    raw = str(authorization or "").strip()
    if raw.lower().startswith("bearer "):
        return raw[7:].strip()
    return ""


async def require_operator_session(
    authorization: Optional[str] = Header(default=None),
    x_operator_token: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """Claims of the kiosk operator token sent as Bearer or X-Operator-Token."""
    token = _bearer(authorization) or str(x_operator_token or "").strip()
    if not token:
        raise Unauthorized("Sesión de operador requerida", error_code="OPERATOR_SESSION_REQUIRED")
    claims = verify_token(token)
    if claims is None or claims.get("typ") != "operator" or not claims.get("gym_id"):
        logger.info("operator session rejected")
        raise Unauthorized("Sesión de operador inválida o expirada", error_code="INVALID_TOKEN")
    return claims

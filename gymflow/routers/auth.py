import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from gymflow.capacity_hub import CapacityBroadcaster
from gymflow.dependencies import (
    get_auth_service,
    get_broadcaster,
    get_checkin_service,
    require_operator_session,
)
from gymflow.exceptions import Forbidden
from gymflow.models.schemas import AccessRequest, LoginRequest, OperatorSessionRequest, RegisterRequest
from gymflow.routers.checkins import publish_scan
from gymflow.services.auth_service import AuthService
from gymflow.services.checkin_service import CheckinService

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, svc: AuthService = Depends(get_auth_service)):
    return await run_in_threadpool(
        svc.register, body.email, body.name, body.password, body.rut, body.gym_id
    )


@router.post("/login")
async def login(body: LoginRequest, svc: AuthService = Depends(get_auth_service)):
    return await run_in_threadpool(svc.login, body.email, body.password)


@router.post("/operator-session")
async def operator_session(body: OperatorSessionRequest, svc: AuthService = Depends(get_auth_service)):
    """Staff login at a kiosk: returns the token the kiosk sends on every scan."""

    def _run() -> Dict[str, Any]:
        user = svc.authenticate(body.email, body.password)
        return svc.issue_operator_session(user, body.gym_id)

    return await run_in_threadpool(_run)


@router.post("/access")
async def access(
    body: AccessRequest,
    operator: Dict[str, Any] = Depends(require_operator_session),
    svc: CheckinService = Depends(get_checkin_service),
    broadcaster: CapacityBroadcaster = Depends(get_broadcaster),
):
    gym_id = str(operator["gym_id"])
    if body.gym_id and str(body.gym_id) != gym_id:
        raise Forbidden(
            "La sesión de operador no corresponde a este gimnasio",
            error_code="OPERATOR_GYM_MISMATCH",
            details={"gym_id": str(body.gym_id)},
        )
    cred = body.credential()

    def _run() -> Dict[str, Any]:
        result = svc.scan(gym_id, cred, event_id=body.event_id)
        return {"result": result, "data": result.to_dict()}

    out = await run_in_threadpool(_run)
    publish_scan(broadcaster, out["result"], out["data"])
    logger.info(
        f"/api/auth/access gym={gym_id} operator={operator.get('sub')} action={out['data']['action']}"
    )
    return out["data"]

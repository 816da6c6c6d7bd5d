import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from gymflow.capacity_hub import CapacityBroadcaster
from gymflow.config import simulator_enabled
from gymflow.database.orm_models import CheckIn
from gymflow.dependencies import get_broadcaster, get_checkin_service, get_dashboard_service
from gymflow.exceptions import Forbidden
from gymflow.models.domain import ScanAction
from gymflow.models.schemas import CheckinCreate, CheckoutByIdentity, SimulateRequest
from gymflow.services.checkin_service import CheckinService, ScanResult, serialize_checkin
from gymflow.services.dashboard_service import DashboardService

router = APIRouter(prefix="/api/checkins", tags=["checkins"])
logger = logging.getLogger(__name__)


def publish_scan(broadcaster: CapacityBroadcaster, result: ScanResult, data: Dict[str, Any]) -> None:
    if result.replayed:
        return
    if result.action == ScanAction.CHECKOUT:
        broadcaster.publish_checkout(data["checkin"])
    else:
        broadcaster.publish_checkin(data["checkin"])


@router.post("", status_code=201)
async def create_checkin(
    body: CheckinCreate,
    svc: CheckinService = Depends(get_checkin_service),
    broadcaster: CapacityBroadcaster = Depends(get_broadcaster),
):
    cred = body.credential()

    def _run() -> Dict[str, Any]:
        result = svc.record_entry(body.gym_id, cred, event_id=body.event_id)
        return {"result": result, "checkin": serialize_checkin(result.checkin)}

    out = await run_in_threadpool(_run)
    publish_scan(broadcaster, out["result"], out)
    return out["checkin"]


@router.put("/{checkin_id}/checkout")
async def checkout(
    checkin_id: str,
    svc: CheckinService = Depends(get_checkin_service),
    broadcaster: CapacityBroadcaster = Depends(get_broadcaster),
):
    data = await run_in_threadpool(lambda: serialize_checkin(svc.check_out(checkin_id)))
    broadcaster.publish_checkout(data)
    return data


@router.post("/checkout")
async def checkout_by_identity(
    body: CheckoutByIdentity,
    svc: CheckinService = Depends(get_checkin_service),
    broadcaster: CapacityBroadcaster = Depends(get_broadcaster),
):
    cred = body.credential()

    def _run() -> Dict[str, Any]:
        result = svc.record_exit(body.gym_id, cred, event_id=body.event_id)
        return {"result": result, "checkin": serialize_checkin(result.checkin)}

    out = await run_in_threadpool(_run)
    publish_scan(broadcaster, out["result"], out)
    return out["checkin"]


@router.get("/gym/{gym_id}/active")
async def active_by_gym(gym_id: str, svc: CheckinService = Depends(get_checkin_service)):
    def _run() -> List[Dict[str, Any]]:
        return [serialize_checkin(r) for r in svc.get_active_sessions(gym_id)]

    return await run_in_threadpool(_run)


@router.get("/active/{gym_id}/{identifier}")
async def active_for_identifier(
    gym_id: str, identifier: str, svc: CheckinService = Depends(get_checkin_service)
):
    def _run() -> Optional[Dict[str, Any]]:
        row: Optional[CheckIn] = svc.get_active_session(gym_id, identifier)
        return serialize_checkin(row) if row is not None else None

    return await run_in_threadpool(_run)


@router.get("/gym/{gym_id}/capacity")
async def capacity(gym_id: str, svc: CheckinService = Depends(get_checkin_service)):
    snapshot = await run_in_threadpool(svc.get_current_capacity, gym_id)
    return snapshot.to_payload()


@router.get("/user/{user_id}/active")
async def user_active(user_id: str, svc: CheckinService = Depends(get_checkin_service)):
    def _run() -> List[Dict[str, Any]]:
        return [serialize_checkin(r, include_user=False) for r in svc.get_user_active_checkins(user_id)]

    return await run_in_threadpool(_run)


# Turnstile simulator (development only)
@router.post("/simulate")
async def simulate_turnstile(
    body: SimulateRequest,
    svc: CheckinService = Depends(get_checkin_service),
    broadcaster: CapacityBroadcaster = Depends(get_broadcaster),
):
    if not simulator_enabled():
        raise Forbidden("No disponible en producción", error_code="SIMULATOR_DISABLED")
    cred = body.credential()
    logger.info(f"simulate event={body.event or 'toggle'} gym={body.gym_id} {cred.describe()}")

    def _run() -> Dict[str, Any]:
        if body.event == "entry":
            result = svc.record_entry(body.gym_id, cred, event_id=body.event_id, source="simulator")
        elif body.event == "exit":
            result = svc.record_exit(body.gym_id, cred, event_id=body.event_id)
        else:
            result = svc.scan(body.gym_id, cred, event_id=body.event_id, source="simulator")
        out = result.to_dict()
        out["result"] = result
        return out

    out = await run_in_threadpool(_run)
    publish_scan(broadcaster, out.pop("result"), out)
    return out


@router.get("/dashboard/staff/{gym_id}")
async def staff_dashboard(gym_id: str, svc: DashboardService = Depends(get_dashboard_service)):
    return await run_in_threadpool(svc.staff_dashboard, gym_id)


@router.get("/dashboard/owner/{gym_id}")
async def owner_dashboard(
    gym_id: str,
    days: int = Query(default=30, ge=1, le=365),
    svc: DashboardService = Depends(get_dashboard_service),
):
    return await run_in_threadpool(svc.owner_dashboard, gym_id, days)

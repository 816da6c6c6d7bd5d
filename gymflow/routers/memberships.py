from typing import Any, Dict

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from gymflow.dependencies import get_access_service, get_gym_service, get_membership_service
from gymflow.exceptions import NotFound
from gymflow.models.schemas import ValidateRutRequest
from gymflow.services.access_service import AccessService
from gymflow.services.gym_service import GymService
from gymflow.services.membership_service import MembershipService, serialize_membership

router = APIRouter(prefix="/api/memberships", tags=["memberships"])


@router.get("/user/{user_id}")
async def user_membership(user_id: str, svc: MembershipService = Depends(get_membership_service)):
    def _run() -> Dict[str, Any]:
        m = svc.get_user_membership(user_id)
        if m is None:
            raise NotFound("El usuario no tiene membresía", details={"user_id": str(user_id)})
        return serialize_membership(m)

    return await run_in_threadpool(_run)


@router.get("/user/{user_id}/gyms")
async def user_gyms(user_id: str, svc: GymService = Depends(get_gym_service)):
    return await run_in_threadpool(svc.gyms_for_user, user_id)


@router.get("/user/{user_id}/gym/{gym_id}/validate")
async def validate_gym_access(
    user_id: str, gym_id: str, svc: AccessService = Depends(get_access_service)
):
    has_access = await run_in_threadpool(svc.has_gym_access, user_id, gym_id)
    return {"userId": user_id, "gymId": gym_id, "hasAccess": has_access}


@router.post("/validate-rut")
async def validate_rut(body: ValidateRutRequest, svc: MembershipService = Depends(get_membership_service)):
    return await run_in_threadpool(svc.validate_rut, body.rut, body.gym_id)

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from gymflow.dependencies import get_dashboard_service, get_gym_service
from gymflow.services.dashboard_service import DashboardService
from gymflow.services.gym_service import GymService

router = APIRouter(prefix="/api/gyms", tags=["gyms"])


@router.get("")
async def list_gyms(svc: GymService = Depends(get_gym_service)):
    return await run_in_threadpool(svc.list_gyms)


@router.get("/for-user/{user_id}")
async def gyms_for_user(user_id: str, svc: GymService = Depends(get_gym_service)):
    return await run_in_threadpool(svc.gyms_for_user, user_id)


@router.get("/{gym_id}")
async def get_gym(gym_id: str, svc: GymService = Depends(get_gym_service)):
    return await run_in_threadpool(svc.get_gym, gym_id)


@router.get("/{gym_id}/hourly-stats")
async def hourly_stats(gym_id: str, svc: DashboardService = Depends(get_dashboard_service)):
    return await run_in_threadpool(svc.hourly_stats, gym_id)

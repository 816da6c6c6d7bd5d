"""
GymFlow API
FastAPI backend for gym check-in/check-out and live capacity
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from gymflow.capacity_hub import CapacityBroadcaster, CapacityHub
from gymflow.config import env_list, is_production, simulator_enabled
from gymflow.database.connection import DATABASE_URL, SessionLocal, describe_database_url
from gymflow.exceptions import GymFlowError, NotFound
from gymflow.models.domain import CapacitySnapshot
from gymflow.routers import auth, checkins, gyms, memberships, realtime
from gymflow.services.checkin_service import CheckinService

# Setup logging
logging.basicConfig(level=str(os.getenv("LOG_LEVEL", "INFO")).upper())
logger = logging.getLogger(__name__)


def store_capacity_provider(session_factory: Callable[[], Session]) -> Callable[[str], Optional[CapacitySnapshot]]:
    """Fresh session per snapshot; runs in the threadpool."""

    def _provider(gym_id: str) -> Optional[CapacitySnapshot]:
        db = session_factory()
        try:
            return CheckinService(db).get_current_capacity(gym_id)
        except NotFound:
            return None
        finally:
            db.close()

    return _provider


def create_app(session_factory: Optional[Callable[[], Session]] = None) -> FastAPI:
    factory = session_factory or SessionLocal

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.broadcaster.start()
        logger.info("capacity broadcaster started")
        try:
            yield
        finally:
            await app.state.broadcaster.stop()
            logger.info("capacity broadcaster stopped")

    app = FastAPI(
        title="GymFlow API",
        description="Check-in/check-out y aforo en tiempo real",
        version="1.0.0",
        lifespan=lifespan,
    )
    hub = CapacityHub()
    app.state.session_factory = factory
    app.state.capacity_hub = hub
    app.state.broadcaster = CapacityBroadcaster(hub, store_capacity_provider(factory))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=env_list("CORS_ORIGINS", "http://localhost:3000"),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GymFlowError)
    async def gymflow_error_handler(request: Request, exc: GymFlowError):
        log = logger.warning if exc.status_code >= 500 else logger.info
        log(f"{request.method} {request.url.path} -> {exc.error_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": "INTERNAL_ERROR",
                "message": "Error interno del servidor",
                "details": {},
            },
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(auth.router)
    app.include_router(checkins.router)
    app.include_router(gyms.router)
    app.include_router(memberships.router)
    app.include_router(realtime.router)
    return app


logger.info("=" * 60)
logger.info("GYMFLOW-API STARTUP")
logger.info(f"DATABASE: {describe_database_url(DATABASE_URL)}")
logger.info(f"SESSION_SECRET: {'***configured***' if os.getenv('SESSION_SECRET') else '(NOT SET)'}")
logger.info(f"PRODUCTION: {is_production()} SIMULATOR: {simulator_enabled()}")
logger.info("=" * 60)

app = create_app()

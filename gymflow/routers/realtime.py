import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from gymflow.capacity_hub import GLOBAL_TOPIC, CapacityBroadcaster, CapacityHub, gym_topic

router = APIRouter()
logger = logging.getLogger(__name__)

RECEIVE_TIMEOUT_SECONDS = 25


def _topic_for(msg: Dict[str, Any]) -> Optional[str]:
    gym_id = str(msg.get("gymId") or msg.get("gym_id") or "").strip()
    if gym_id:
        return gym_topic(gym_id)
    if str(msg.get("topic") or "").strip().lower() == GLOBAL_TOPIC:
        return GLOBAL_TOPIC
    return None


async def _handle(websocket: WebSocket, hub: CapacityHub, broadcaster: CapacityBroadcaster, raw: str) -> None:
    try:
        msg = json.loads(raw)
    except ValueError:
        await websocket.send_json({"event": "error", "data": {"message": "Mensaje inválido"}})
        return
    if not isinstance(msg, dict):
        await websocket.send_json({"event": "error", "data": {"message": "Mensaje inválido"}})
        return

    action = str(msg.get("action") or "").strip().lower()
    topic = _topic_for(msg)
    if action not in ("subscribe", "unsubscribe") or topic is None:
        await websocket.send_json({"event": "error", "data": {"message": "Acción o tópico inválido"}})
        return

    data: Dict[str, Any] = {"topic": topic}
    if topic != GLOBAL_TOPIC:
        data["gymId"] = topic.split(":", 1)[1]

    if action == "unsubscribe":
        await hub.unsubscribe(topic, websocket)
        await websocket.send_json({"event": "unsubscribed", "data": data})
        return

    await hub.subscribe(topic, websocket)
    await websocket.send_json({"event": "subscribed", "data": data})
    if "gymId" in data:
        # initial state so the client does not wait for the next event
        try:
            snapshot = await broadcaster.snapshot(data["gymId"])
        except Exception as e:
            logger.warning(f"ws initial snapshot gym={data['gymId']} failed: {e}")
            snapshot = None
        if snapshot is not None:
            await websocket.send_json({"type": "capacity", "payload": snapshot.to_payload()})


@router.websocket("/ws/capacity")
async def ws_capacity(websocket: WebSocket):
    hub: CapacityHub = websocket.app.state.capacity_hub
    broadcaster: CapacityBroadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    try:
        while True:
            try:
                msg = await asyncio.wait_for(websocket.receive_text(), timeout=RECEIVE_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                await websocket.send_text("ping")
                continue

            if msg == "ping":
                await websocket.send_text("pong")
                continue
            if msg == "pong":
                continue
            await _handle(websocket, hub, broadcaster, msg)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("ws /ws/capacity error")
    finally:
        await hub.drop(websocket)

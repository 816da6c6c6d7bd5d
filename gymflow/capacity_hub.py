from __future__ import annotations

import asyncio
import logging
import inspect
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set, Tuple, Union

from starlette.concurrency import run_in_threadpool

from gymflow.models.domain import CapacitySnapshot

logger = logging.getLogger(__name__)

GLOBAL_TOPIC = "global"

CapacityProvider = Callable[[str], Union[Optional[CapacitySnapshot], Awaitable[Optional[CapacitySnapshot]]]]


def gym_topic(gym_id: Any) -> str:
    return f"gym:{str(gym_id).strip()}"


class CapacityHub:
    """Topic registry for realtime subscribers.

    A subscriber is anything with an async ``send_json`` (a FastAPI WebSocket
    in production). A subscriber whose send fails is dropped from every topic.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._by_topic: Dict[str, Set[Any]] = {}

    async def subscribe(self, topic: str, subscriber: Any) -> None:
        async with self._lock:
            self._by_topic.setdefault(topic, set()).add(subscriber)

    async def unsubscribe(self, topic: str, subscriber: Any) -> None:
        async with self._lock:
            subs = self._by_topic.get(topic)
            if not subs:
                return
            subs.discard(subscriber)
            if not subs:
                self._by_topic.pop(topic, None)

    async def drop(self, subscriber: Any) -> None:
        async with self._lock:
            for topic in list(self._by_topic):
                subs = self._by_topic[topic]
                subs.discard(subscriber)
                if not subs:
                    self._by_topic.pop(topic, None)

    async def subscribers(self, topic: str) -> Set[Any]:
        async with self._lock:
            return set(self._by_topic.get(topic) or ())

    async def publish(self, topic: str, message: Any) -> int:
        """Sends to every subscriber of topic concurrently; returns how many got it."""
        async with self._lock:
            targets = list(self._by_topic.get(topic) or [])

        if not targets:
            return 0

        async def _send_one(sub: Any) -> bool:
            try:
                await sub.send_json(message)
                return True
            except Exception:
                try:
                    await self.drop(sub)
                finally:
                    close = getattr(sub, "close", None)
                    if close is not None:
                        try:
                            await close()
                        except Exception:
                            pass
                return False

        results = await asyncio.gather(*(_send_one(s) for s in targets), return_exceptions=True)
        return sum(1 for r in results if r is True)


class CapacityBroadcaster:
    """Internal bus between the check-in engine and the hub.

    publish_* only enqueue and never raise; the consumer task started by
    ``start()`` turns each event into a gym-topic notification plus a fresh
    capacity snapshot for the gym topic and the global topic.
    """

    def __init__(self, hub: CapacityHub, capacity_provider: CapacityProvider, max_pending: int = 1000):
        self.hub = hub
        self.capacity_provider = capacity_provider
        self._pending: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=max(1, int(max_pending)))
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return len(self._pending)

    def publish_checkin(self, checkin: Dict[str, Any]) -> None:
        self._enqueue("checkin", checkin)

    def publish_checkout(self, checkin: Dict[str, Any]) -> None:
        self._enqueue("checkout", checkin)

    def _enqueue(self, kind: str, payload: Dict[str, Any]) -> None:
        try:
            if len(self._pending) == self._pending.maxlen:
                logger.warning("broadcast queue full, dropping oldest event")
            self._pending.append((kind, dict(payload)))
            self._wake()
        except Exception as e:
            logger.warning(f"broadcast enqueue failed: {e}")

    def _wake(self) -> None:
        loop, event = self._loop, self._wakeup
        if loop is None or event is None or loop.is_closed():
            return
        if _running_loop() is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        if self._pending:
            self._wakeup.set()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.drain()
        self._loop = None
        self._wakeup = None

    async def _run(self) -> None:
        assert self._wakeup is not None
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            await self.drain()

    async def drain(self) -> int:
        """Delivers every pending event in order; returns how many were processed."""
        done = 0
        while self._pending:
            kind, payload = self._pending.popleft()
            await self._deliver(kind, payload)
            done += 1
        return done

    async def snapshot(self, gym_id: str) -> Optional[CapacitySnapshot]:
        if inspect.iscoroutinefunction(self.capacity_provider):
            return await self.capacity_provider(gym_id)
        return await run_in_threadpool(self.capacity_provider, gym_id)

    async def _deliver(self, kind: str, payload: Dict[str, Any]) -> None:
        gym_id = payload.get("gymId")
        if not gym_id:
            logger.warning(f"broadcast {kind} without gymId, skipped")
            return
        topic = gym_topic(gym_id)
        try:
            await self.hub.publish(topic, {"type": kind, "payload": payload})
            snapshot = await self.snapshot(str(gym_id))
            if snapshot is None:
                return
            message = {"type": "capacity", "payload": snapshot.to_payload()}
            await self.hub.publish(topic, message)
            await self.hub.publish(GLOBAL_TOPIC, message)
            logger.debug(f"capacity update gym={gym_id} {snapshot.current}/{snapshot.max}")
        except Exception as e:
            logger.warning(f"broadcast {kind} gym={gym_id} failed: {e}")


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None

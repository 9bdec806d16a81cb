"""In-process change notifications for rooms, streamed to clients as SSE.

Writers publish "something changed in table X of room R"; subscribers never
patch state from the event itself, they reload the whole room snapshot.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from app.services.room_state import apply_room_snapshot, build_room_state, load_room_snapshot

logger = logging.getLogger(__name__)

PROGRESS_TABLE = "progress"
MEMBERS_TABLE = "room_members"
ROOMS_TABLE = "rooms"


@dataclass(frozen=True, slots=True)
class RoomEvent:
    room_id: int
    table: str
    event: str = "*"


class RoomEventBus:
    """Fan-out of room events to per-connection queues."""

    def __init__(self, queue_size: int = 64) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[int, set[asyncio.Queue]] = defaultdict(set)

    @asynccontextmanager
    async def subscribe(self, room_id: int) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[room_id].add(queue)
        logger.info("subscriber joined room %s (%d listening)", room_id, len(self._subscribers[room_id]))
        try:
            yield queue
        finally:
            listeners = self._subscribers.get(room_id)
            if listeners is not None:
                listeners.discard(queue)
                if not listeners:
                    del self._subscribers[room_id]
            logger.info("subscriber left room %s", room_id)

    def publish(self, room_id: int, table: str, event: str = "*") -> int:
        """Notify every subscriber of the room. Returns how many were reached."""
        message = RoomEvent(room_id=room_id, table=table, event=event)
        delivered = 0
        for queue in list(self._subscribers.get(room_id, ())):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                # a full queue already guarantees a reload
                logger.debug("queue full for a subscriber of room %s", room_id)
        return delivered

    def subscriber_count(self, room_id: int) -> int:
        return len(self._subscribers.get(room_id, ()))


def _drain(queue: asyncio.Queue) -> None:
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return


async def room_event_stream(
    bus: RoomEventBus,
    session_factory: Callable,
    room_id: int,
    user_id: int,
    keepalive_seconds: float = 15.0,
) -> AsyncIterator[str]:
    """Yield SSE frames: the room state on connect and after every change."""
    async with bus.subscribe(room_id) as queue:
        current = None
        event: RoomEvent | None = RoomEvent(room_id=room_id, table=ROOMS_TABLE, event="SNAPSHOT")
        while True:
            if event is not None:
                async with session_factory() as db:
                    current = apply_room_snapshot(current, await load_room_snapshot(db, room_id))
                payload = {
                    "table": event.table,
                    "event": event.event,
                    "state": build_room_state(current, user_id).model_dump(mode="json", by_alias=True),
                }
                yield f"data: {json.dumps(payload)}\n\n"
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                event = None
                yield ": keepalive\n\n"
            else:
                # bursts collapse into one reload
                _drain(queue)

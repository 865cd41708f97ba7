from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from fastapi import WebSocket
from pydantic import BaseModel

from botrelay.api.models import ChatMessage, ErrorNotice, PlayerRecord, StatusPayload, VitalsSnapshot
from botrelay.relay_store import RelayStore

logger = logging.getLogger(__name__)

HubEventKind = Literal["status", "chatHistory", "chatMessage", "playerList", "vitals", "errorNotice"]


class Subscriber(Protocol):
    async def send(self, message: dict[str, Any]) -> None:  # pragma: no cover
        ...


class WebSocketSubscriber:
    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)


def _jsonable(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    if isinstance(payload, (list, tuple)):
        return [_jsonable(p) for p in payload]
    return payload


def _envelope(kind: HubEventKind, payload: Any) -> dict[str, Any]:
    return {"type": kind, "payload": _jsonable(payload)}


@dataclass(slots=True)
class _Outbox:
    queue: asyncio.Queue[dict[str, Any]]
    task: asyncio.Task[None] | None = field(default=None)


class BroadcastHub:
    """In-process fan-out of relay state to every attached viewer.

    Contract:
      - `attach(sub)` queues status, chat history, roster and vitals for that
        subscriber, then adds it to the live set.
      - `publish(kind, payload)` records the latest value and queues it for every
        attached subscriber.
      - each subscriber is drained by its own task, so a slow or broken viewer
        only ever loses its own messages.
    """

    def __init__(self, store: RelayStore, *, max_pending: int = 1000) -> None:
        if max_pending < 4:
            raise ValueError("max_pending must leave room for the attach snapshot")
        self._store = store
        self._max_pending = max_pending
        self._outboxes: dict[Subscriber, _Outbox] = {}
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._outboxes)

    def is_attached(self, sub: Subscriber) -> bool:
        return sub in self._outboxes

    def attach(self, sub: Subscriber) -> None:
        if self._closed or sub in self._outboxes:
            return

        outbox = _Outbox(queue=asyncio.Queue(maxsize=self._max_pending))
        store = self._store
        # No await between queuing the snapshot and joining the live set, so the
        # subscriber sees every later publish exactly once.
        for message in (
            _envelope("status", store.status),
            _envelope("chatHistory", store.chat_history()),
            _envelope("playerList", store.roster),
            _envelope("vitals", store.vitals),
        ):
            outbox.queue.put_nowait(message)

        self._outboxes[sub] = outbox
        outbox.task = asyncio.get_running_loop().create_task(self._drain(sub, outbox))

    def detach(self, sub: Subscriber) -> None:
        outbox = self._outboxes.pop(sub, None)
        if outbox is None:
            return
        _discard_pending(outbox.queue)
        task = outbox.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def publish(self, kind: HubEventKind, payload: Any) -> None:
        self._record(kind, payload)
        message = _envelope(kind, payload)
        for sub in list(self._outboxes):
            self._enqueue(sub, message)

    def publish_status(self, status: StatusPayload) -> None:
        self.publish("status", status)

    def publish_chat(self, message: ChatMessage) -> None:
        self.publish("chatMessage", message)

    def publish_roster(self, players: Sequence[PlayerRecord]) -> None:
        self.publish("playerList", list(players))

    def publish_vitals(self, vitals: VitalsSnapshot) -> None:
        self.publish("vitals", vitals)

    def publish_error(self, message: str) -> None:
        self.publish("errorNotice", ErrorNotice(message=message))

    def send_to(self, sub: Subscriber, kind: HubEventKind, payload: Any) -> None:
        """Queue a message for one attached subscriber without touching shared state."""

        if sub in self._outboxes:
            self._enqueue(sub, _envelope(kind, payload))

    async def flush(self) -> None:
        """Wait until everything queued so far has been handed to the subscribers."""

        queues = [o.queue for o in self._outboxes.values()]
        if queues:
            await asyncio.gather(*(q.join() for q in queues))

    async def close(self) -> None:
        self._closed = True
        tasks = [o.task for o in self._outboxes.values() if o.task is not None]
        for sub in list(self._outboxes):
            self.detach(sub)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _record(self, kind: HubEventKind, payload: Any) -> None:
        store = self._store
        if kind == "status":
            store.status = payload
        elif kind == "chatMessage":
            store.append_chat(payload)
        elif kind == "playerList":
            store.roster = list(payload)
        elif kind == "vitals":
            store.vitals = payload

    def _enqueue(self, sub: Subscriber, message: dict[str, Any]) -> None:
        outbox = self._outboxes.get(sub)
        if outbox is None:
            return
        try:
            outbox.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Subscriber %r fell %d messages behind; detaching", sub, self._max_pending)
            self.detach(sub)

    async def _drain(self, sub: Subscriber, outbox: _Outbox) -> None:
        while True:
            message = await outbox.queue.get()
            try:
                await sub.send(message)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.debug("Dropping subscriber %r after failed send", sub, exc_info=True)
                self.detach(sub)
                return
            finally:
                outbox.queue.task_done()


def _discard_pending(queue: asyncio.Queue[dict[str, Any]]) -> None:
    # Keeps flush() from waiting on messages that will never be delivered.
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return
        queue.task_done()

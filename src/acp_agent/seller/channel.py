"""Socket.io subscription delivering job lifecycle events for one wallet."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from acp_agent.seller.events import JobEvent

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_URL = "https://acpx.virtuals.io"

ROOM_JOINED_EVENT = "roomJoined"
NEW_TASK_EVENT = "onNewTask"
EVALUATE_EVENT = "onEvaluate"

EventCallback = Callable[[JobEvent], Awaitable[None]]


def _default_socket_client() -> Any:
    import socketio

    return socketio.AsyncClient(reconnection=True)


class JobEventChannel:
    """Acknowledges every event immediately, then handles it as its own task.

    The ack never depends on the business outcome: a failed job is logged by
    the handler, not signalled back to the transport.
    """

    def __init__(
        self,
        *,
        url: str,
        wallet_address: str,
        on_new_task: EventCallback,
        on_evaluate: EventCallback | None = None,
        sio: Any | None = None,
    ) -> None:
        self.url = url
        self.wallet_address = wallet_address
        self._on_new_task = on_new_task
        self._on_evaluate = on_evaluate
        self._sio = sio if sio is not None else _default_socket_client()
        self._tasks: set[asyncio.Task] = set()

        self._sio.on("connect", self._handle_connect)
        self._sio.on("disconnect", self._handle_disconnect)
        self._sio.on("connect_error", self._handle_connect_error)
        self._sio.on(ROOM_JOINED_EVENT, self._handle_room_joined)
        self._sio.on(NEW_TASK_EVENT, self._handle_new_task)
        self._sio.on(EVALUATE_EVENT, self._handle_evaluate)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def connect(self) -> None:
        await self._sio.connect(
            self.url,
            auth={"walletAddress": self.wallet_address},
            transports=["websocket"],
        )

    async def close(self) -> None:
        if getattr(self._sio, "connected", False):
            await self._sio.disconnect()
        if self._tasks:
            logger.warning("closing channel with %d job handler(s) still running", len(self._tasks))
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _handle_connect(self) -> None:
        logger.info("connected to ACP socket at %s", self.url)

    async def _handle_disconnect(self, *args: Any) -> None:
        reason = args[0] if args else "unknown"
        logger.info("disconnected from ACP socket: %s", reason)

    async def _handle_connect_error(self, data: Any = None) -> None:
        logger.error("ACP socket connection error: %s", data)

    async def _handle_room_joined(self, *args: Any) -> bool:
        logger.info("joined ACP room for wallet %s", self.wallet_address)
        return True

    async def _handle_new_task(self, data: Any = None) -> bool:
        self._dispatch(NEW_TASK_EVENT, data, self._on_new_task)
        return True

    async def _handle_evaluate(self, data: Any = None) -> bool:
        if self._on_evaluate is not None:
            self._dispatch(EVALUATE_EVENT, data, self._on_evaluate)
        return True

    def _dispatch(self, name: str, data: Any, callback: EventCallback) -> None:
        try:
            event = JobEvent.model_validate(data)
        except ValidationError as exc:
            logger.warning("dropping malformed %s payload: %s", name, exc)
            return
        logger.info("%s job=%s phase=%s", name, event.id, event.phase_name)

        task = asyncio.get_running_loop().create_task(callback(event))
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._task_done(done, event))

    def _task_done(self, task: asyncio.Task, event: JobEvent) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "unhandled error while handling job %s", event.id, exc_info=exc
            )

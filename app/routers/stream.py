"""
Realtime habits stream.

WS /habits/stream  (headers: X-User-Id, optional X-User-Email)

Server → client
  {"type": "snapshot", "today": ..., "progress": {...}, "habits": [...]}   on every push
  {"type": "notice", "level": ..., "code": ..., "message": ...}
  {"type": "error", "message": ...}                                      subscription failure

Client → server
  {"action": "toggle", "habit_id": "..."}
  {"action": "create", "name": "...", "description": "..."}
  {"action": "sign_out"}

Store pushes may fire on any thread (another request's worker); they are
handed to the event loop before anything is sent on the socket.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from app.core.dates import DateKeyProvider, get_date_keys
from app.core.errors import HabitHiveException, SessionRequiredError
from app.schemas.habit import HabitOut, ProgressOut
from app.services import projection
from app.services.record_store import RecordStore, get_record_store
from app.services.session import build_session
from app.services.sync_controller import Notice, NoticeCode, Snapshot, SyncController

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stream"])

_CLOSE = object()


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------

def snapshot_message(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "type": "snapshot",
        "today": snapshot.today,
        "progress": ProgressOut.from_progress(projection.progress(snapshot.habits)).model_dump(),
        "habits": [HabitOut.from_state(h).model_dump() for h in snapshot.habits],
    }


def notice_message(notice: Notice) -> dict[str, Any]:
    return {
        "type": "notice",
        "level": notice.level,
        "code": notice.code,
        "message": notice.message,
    }


def error_message(reason: str) -> dict[str, Any]:
    return {"type": "error", "message": reason}


# ---------------------------------------------------------------------------
# Client actions (run in the threadpool: store calls block)
# ---------------------------------------------------------------------------

def _dispatch(controller: SyncController, message: Any) -> bool:
    """Apply one client message. Returns False when the session should end."""
    action = message.get("action") if isinstance(message, dict) else None
    if action == "toggle":
        controller.toggle(str(message.get("habit_id", "")))
    elif action == "create":
        try:
            controller.create(str(message.get("name") or ""), str(message.get("description") or ""))
        except HabitHiveException:
            # Already surfaced to the client as a notice.
            pass
    elif action == "sign_out":
        return False
    else:
        controller.emit(Notice("error", NoticeCode.UNKNOWN_ACTION, f"Unknown action: {action!r}"))
    return True


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        if message is _CLOSE:
            return
        await websocket.send_json(message)


# ---------------------------------------------------------------------------
# WS /habits/stream
# ---------------------------------------------------------------------------

@router.websocket("/habits/stream")
async def habit_stream(
    websocket: WebSocket,
    store: RecordStore = Depends(get_record_store),
    date_keys: DateKeyProvider = Depends(get_date_keys),
):
    try:
        session = build_session(
            websocket.headers.get("x-user-id"),
            websocket.headers.get("x-user-email"),
        )
    except SessionRequiredError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()

    def push(message: Any) -> None:
        loop.call_soon_threadsafe(outbox.put_nowait, message)

    controller = SyncController(store, date_keys, notify=lambda n: push(notice_message(n)))
    session.on_sign_out = controller.unsubscribe
    sender = asyncio.create_task(_pump(websocket, outbox))
    try:
        # Subscribing and unsubscribing take the store lock and may hit the
        # database, so they stay off the event loop like the actions do.
        await run_in_threadpool(
            controller.subscribe,
            session,
            on_snapshot=lambda s: push(snapshot_message(s)),
            on_error=lambda reason: push(error_message(reason)),
        )
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                controller.emit(Notice("error", NoticeCode.MALFORMED, "Message is not valid JSON"))
                continue
            keep_going = await run_in_threadpool(_dispatch, controller, message)
            if not keep_going:
                await run_in_threadpool(session.sign_out)
                break
        push(_CLOSE)
        await sender
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug("Habit stream for %s disconnected", session.user_id)
    finally:
        await run_in_threadpool(controller.unsubscribe)
        if not sender.done():
            sender.cancel()

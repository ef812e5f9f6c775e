"""
Habits router.

GET  /habits                : today's habits with progress
GET  /habits/history        : streak per habit
POST /habits                : create a habit
POST /habits/{id}/toggle    : mark done / not done for today
GET  /profile               : who is signed in

Every request runs a short-lived SyncController: subscribe, act, answer
from the snapshot the store pushed back, unsubscribe.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.core.dates import DateKeyProvider, get_date_keys
from app.core.errors import RecordStoreError
from app.schemas.common import ERROR_RESPONSES, ErrorResponse
from app.schemas.habit import (
    HabitCreateRequest,
    HabitHistoryItem,
    HabitHistoryResponse,
    HabitListResponse,
    HabitOut,
    ProfileResponse,
    ProgressOut,
    ToggleResponse,
)
from app.services import projection
from app.services.record_store import RecordStore, get_record_store
from app.services.session import SessionContext, get_session
from app.services.sync_controller import Snapshot, SyncController

router = APIRouter(tags=["habits"], responses=ERROR_RESPONSES)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _current(controller: SyncController) -> Snapshot:
    """The pushed snapshot, or 503 when the subscription could not deliver one."""
    if controller.snapshot is None or controller.is_stale:
        raise RecordStoreError("Habits are unavailable right now.", operation="subscribe")
    return controller.snapshot


# ---------------------------------------------------------------------------
# GET /habits
# ---------------------------------------------------------------------------

@router.get(
    "/habits",
    response_model=HabitListResponse,
    summary="Today's habits with progress",
)
def list_habits(
    session: SessionContext = Depends(get_session),
    store: RecordStore = Depends(get_record_store),
    date_keys: DateKeyProvider = Depends(get_date_keys),
):
    with SyncController(store, date_keys) as controller:
        controller.subscribe(session)
        snapshot = _current(controller)
    return HabitListResponse(
        display_name=session.display_name,
        today=snapshot.today,
        progress=ProgressOut.from_progress(projection.progress(snapshot.habits)),
        empty_message=None if snapshot.habits else projection.EMPTY_TODAY_MESSAGE,
        habits=[HabitOut.from_state(h) for h in snapshot.habits],
    )


# ---------------------------------------------------------------------------
# GET /habits/history
# ---------------------------------------------------------------------------

@router.get(
    "/habits/history",
    response_model=HabitHistoryResponse,
    summary="Current streak per habit",
)
def habit_history(
    session: SessionContext = Depends(get_session),
    store: RecordStore = Depends(get_record_store),
    date_keys: DateKeyProvider = Depends(get_date_keys),
):
    with SyncController(store, date_keys) as controller:
        controller.subscribe(session)
        snapshot = _current(controller)
    return HabitHistoryResponse(
        empty_message=None if snapshot.habits else projection.EMPTY_HISTORY_MESSAGE,
        items=[
            HabitHistoryItem(
                id=h.id,
                name=h.name,
                streak_days=h.streak_days,
                history_label=projection.history_label(h),
                last_done_label=projection.last_done_label(h),
            )
            for h in snapshot.habits
        ],
    )


# ---------------------------------------------------------------------------
# POST /habits
# ---------------------------------------------------------------------------

@router.post(
    "/habits",
    response_model=HabitOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a habit",
    responses={
        422: {"model": ErrorResponse, "description": "Blank name (HABIT_NAME_EMPTY) or malformed body."},
    },
)
def create_habit(
    payload: HabitCreateRequest,
    session: SessionContext = Depends(get_session),
    store: RecordStore = Depends(get_record_store),
    date_keys: DateKeyProvider = Depends(get_date_keys),
):
    """
    New habits start not done, with a zero streak and no completion date.
    The response is the habit as the store pushed it back.
    """
    with SyncController(store, date_keys) as controller:
        controller.subscribe(session)
        result = controller.create(payload.name, payload.description)
        if result.error is not None:
            raise result.error
        habit = _current(controller).find(result.habit_id)
    if habit is None:
        raise RecordStoreError("Created habit was not delivered.", operation="create")
    return HabitOut.from_state(habit)


# ---------------------------------------------------------------------------
# POST /habits/{habit_id}/toggle
# ---------------------------------------------------------------------------

@router.post(
    "/habits/{habit_id}/toggle",
    response_model=ToggleResponse,
    summary="Mark a habit done / not done for today",
    responses={
        200: {"description": "`found=false` when the habit no longer exists."},
    },
)
def toggle_habit(
    habit_id: str,
    session: SessionContext = Depends(get_session),
    store: RecordStore = Depends(get_record_store),
    date_keys: DateKeyProvider = Depends(get_date_keys),
):
    """
    Completing continues the streak if the habit was last done yesterday,
    keeps it if already done today, and restarts it at 1 otherwise.
    Un-completing only clears today's flag; the streak is kept.
    """
    with SyncController(store, date_keys) as controller:
        controller.subscribe(session)
        result = controller.toggle(habit_id)
        if result.error is not None:
            raise result.error
        habit = controller.snapshot.find(habit_id) if controller.snapshot else None
    return ToggleResponse(
        habit_id=habit_id,
        found=result.found,
        habit=HabitOut.from_state(habit) if result.found and habit else None,
    )


# ---------------------------------------------------------------------------
# GET /profile
# ---------------------------------------------------------------------------

@router.get("/profile", response_model=ProfileResponse, summary="Signed-in user")
def profile(session: SessionContext = Depends(get_session)):
    return ProfileResponse(user_id=session.user_id, display_name=session.display_name)

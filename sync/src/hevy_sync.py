"""Hevy sync passes: full backfill, incremental events, templates and routines.

Pages are fetched sequentially with a fixed pause between them. A failing
page aborts the pass; whatever was upserted before it stays committed.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone

from config import PAGE_DELAY_SECONDS, get_hevy_api_key
from db import get_connection, get_sync_state, update_sync_state
from hevy_client import HevyClient
from models import (
    HevyExerciseTemplate,
    HevyRoutine,
    HevyRoutineFolder,
    HevyWorkout,
    HevyWorkoutEvent,
)
from reconciler import (
    mark_workout_deleted,
    upsert_exercise_template,
    upsert_routine,
    upsert_routine_folder,
    upsert_workout,
)

logger = logging.getLogger(__name__)

EPOCH_CURSOR = "1970-01-01T00:00:00Z"
WORKOUT_PAGE_SIZE = 10
TEMPLATE_PAGE_SIZE = 100
ROUTINE_PAGE_SIZE = 10


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def iter_pages(fetch_page, items_key: str, delay: float = None):
    """Yield (page, items) for every page, sleeping a fixed delay in between.

    fetch_page(page) must return a Hevy page dict with 'page_count'.
    """
    delay = PAGE_DELAY_SECONDS if delay is None else delay
    page = 1
    while True:
        data = fetch_page(page)
        items = data.get(items_key) or []
        page_count = data.get("page_count") or page
        logger.info("  %s page %d/%d: %d items", items_key, page, page_count, len(items))
        yield page, items
        if page >= page_count:
            break
        page += 1
        time.sleep(delay)


@contextmanager
def tracked_pass(name: str):
    """Flag the pass as running and record its error if it fails.

    sync_in_progress is advisory: nothing checks it before starting a pass.
    """
    with get_connection() as conn:
        update_sync_state(conn, sync_in_progress=True)
    try:
        yield
    except Exception as e:
        logger.error("%s failed: %s", name, e)
        with get_connection() as conn:
            update_sync_state(conn, sync_in_progress=False, last_error=str(e))
        raise


def _client(client: HevyClient | None) -> HevyClient:
    return client if client is not None else HevyClient(get_hevy_api_key())


def sync_full(client: HevyClient = None, page_size: int = WORKOUT_PAGE_SIZE) -> int:
    """Upsert every workout Hevy has and reset the cursor. Returns count processed."""
    client = _client(client)
    processed = 0

    with tracked_pass("Full sync"):
        for _, workouts in iter_pages(
            lambda p: client.get_workouts(page=p, page_size=page_size), "workouts",
        ):
            for raw in workouts:
                workout = HevyWorkout.from_api(raw)
                with get_connection() as conn:
                    upsert_workout(conn, workout)
                processed += 1

        now = utc_now()
        with get_connection() as conn:
            update_sync_state(
                conn,
                last_synced_at=now,
                last_event_timestamp=now,
                last_error=None,
                sync_in_progress=False,
            )

    logger.info("Full sync processed %d workouts", processed)
    return processed


def sync_incremental(client: HevyClient = None, page_size: int = WORKOUT_PAGE_SIZE) -> dict:
    """Apply workout events since the stored cursor.

    The new cursor is the time this pass started, so anything that changes
    while the pass runs is delivered again next time. Redelivery is safe
    because updates cascade-replace and deletes are idempotent.
    """
    client = _client(client)

    with get_connection() as conn:
        state = get_sync_state(conn)
    since = state.last_event_timestamp or EPOCH_CURSOR
    pass_started = utc_now()

    events = 0
    updated = 0
    deleted = 0

    with tracked_pass("Incremental sync"):
        logger.info("Fetching workout events since %s", since)
        for _, page_events in iter_pages(
            lambda p: client.fetch_events(since, page=p, page_size=page_size), "events",
        ):
            for raw in page_events:
                events += 1
                if raw.get("type") not in ("updated", "deleted"):
                    logger.warning("Skipping unknown event type %r", raw.get("type"))
                    continue
                event = HevyWorkoutEvent.from_api(raw)
                with get_connection() as conn:
                    if event.type == "updated":
                        upsert_workout(conn, event.workout)
                        updated += 1
                    else:
                        mark_workout_deleted(conn, event.id)
                        deleted += 1

        with get_connection() as conn:
            update_sync_state(
                conn,
                last_synced_at=utc_now(),
                last_event_timestamp=pass_started,
                last_error=None,
                sync_in_progress=False,
            )

    logger.info("Incremental sync: %d events (%d updated, %d deleted)", events, updated, deleted)
    return {"events": events, "updated": updated, "deleted": deleted}


def sync_exercise_templates(client: HevyClient = None, page_size: int = TEMPLATE_PAGE_SIZE) -> int:
    """Fetch all exercise templates from Hevy. Returns count saved."""
    client = _client(client)
    saved = 0
    for _, templates in iter_pages(
        lambda p: client.get_exercise_templates(page=p, page_size=page_size),
        "exercise_templates",
    ):
        for raw in templates:
            with get_connection() as conn:
                upsert_exercise_template(conn, HevyExerciseTemplate.from_api(raw))
            saved += 1
    return saved


def sync_routine_folders(client: HevyClient = None, page_size: int = ROUTINE_PAGE_SIZE) -> int:
    """Fetch all routine folders ("weeks"). Returns count saved."""
    client = _client(client)
    saved = 0
    for _, folders in iter_pages(
        lambda p: client.get_routine_folders(page=p, page_size=page_size), "routine_folders",
    ):
        for raw in folders:
            with get_connection() as conn:
                upsert_routine_folder(conn, HevyRoutineFolder.from_api(raw))
            saved += 1
    return saved


def sync_routines(client: HevyClient = None, page_size: int = ROUTINE_PAGE_SIZE) -> dict:
    """Sync folders first (routines resolve their parent by folder id), then routines."""
    client = _client(client)
    folders = sync_routine_folders(client)

    saved = 0
    for _, routines in iter_pages(
        lambda p: client.get_routines(page=p, page_size=page_size), "routines",
    ):
        for raw in routines:
            with get_connection() as conn:
                upsert_routine(conn, HevyRoutine.from_api(raw))
            saved += 1
    return {"folders": folders, "routines": saved}

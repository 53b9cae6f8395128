"""Push unsynced store rows to the Notion mirror.

Every push is create-or-adopt: a row's stored page id wins, then a lookup by
its natural key, and only then a new page. A row is marked synced after the
mirror confirms the write; anything that fails stays unsynced for the next
pass.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from batching import run_batched
from config import MirrorDatabases
from db import (
    get_connection,
    get_exercise_sets,
    get_unsynced_exercise_progress,
    get_unsynced_routine_exercises,
    get_unsynced_routine_folders,
    get_unsynced_routine_sets,
    get_unsynced_routines,
    get_unsynced_workouts,
    get_workout_exercises,
    mark_synced,
)
from errors import SyncError
from mirror_client import MirrorClient
from notion_schema import (
    EXERCISE_PARENT,
    FOLDER_KEY,
    PROGRESS_KEY,
    ROUTINE_EXERCISE_PARENT,
    ROUTINE_KEY,
    ROUTINE_SET_PARENT,
    SET_PARENT,
    WORKOUT_KEY,
    exercise_properties,
    folder_properties,
    progress_properties,
    routine_exercise_properties,
    routine_properties,
    routine_set_properties,
    set_properties,
    workout_properties,
)
from progress import recompute_all

logger = logging.getLogger(__name__)

WORKOUT_DELAY_SECONDS = 0.5
EXERCISE_BATCH_SIZE = 15
SET_BATCH_SIZE = 20
FOLDER_BATCH_SIZE = 5
ROUTINE_BATCH_SIZE = 10
ROUTINE_EXERCISE_BATCH_SIZE = 20
ROUTINE_SET_BATCH_SIZE = 20
PROGRESS_BATCH_SIZE = 15


@asynccontextmanager
async def _session(client: MirrorClient | None):
    """Use the given client, or open (and close) one from NOTION_TOKEN."""
    if client is not None:
        yield client
        return
    client = MirrorClient()
    try:
        yield client
    finally:
        await client.aclose()


def _mark(table: str, row_id: int, page_id: str | None):
    with get_connection() as conn:
        mark_synced(conn, table, row_id, page_id)


async def upsert_page(
    client: MirrorClient,
    database_id: str,
    properties: dict,
    page_id: str | None = None,
    key: tuple[str, object] | None = None,
) -> tuple[str, bool]:
    """Create or patch a page. Returns (page_id, existed).

    page_id is the stored id; key is (property, value) to search when there
    is none. A page found either way is patched instead of duplicated.
    """
    if not page_id and key is not None:
        page_id = await client.find_page_by_property(database_id, *key)
    if page_id:
        await client.update_page(page_id, properties)
        return page_id, True
    return await client.create_page(database_id, properties), False


async def archive_children(
    client: MirrorClient,
    parent_page_id: str,
    child_db: str,
    child_relation: str,
    grandchild_db: str | None = None,
    grandchild_relation: str | None = None,
) -> int:
    """Archive the pages related to a parent (and their own children).

    Raises SyncError if any archive fails so the parent stays unsynced.
    """
    child_ids = await client.find_pages_by_relation(child_db, child_relation, parent_page_id)
    stale = []
    if grandchild_db:
        for child_id in child_ids:
            stale.extend(await client.find_pages_by_relation(grandchild_db, grandchild_relation, child_id))
    stale.extend(child_ids)
    if not stale:
        return 0

    outcome = await run_batched(stale, client.archive_page, SET_BATCH_SIZE)
    if outcome.errors:
        raise SyncError(f"{outcome.errors} stale page(s) under {parent_page_id} could not be archived")
    logger.info("  Archived %d stale child pages", len(stale))
    return len(stale)


# ===================
# WORKOUTS
# ===================


async def _push_workout(client: MirrorClient, databases: MirrorDatabases, workout: dict):
    if workout["is_deleted"]:
        page_id = workout.get("notion_page_id")
        if not page_id:
            page_id = await client.find_page_by_property(databases.workouts, WORKOUT_KEY, workout["hevy_id"])
        if page_id:
            await client.archive_page(page_id)
            logger.info("  Archived deleted workout %s", workout["hevy_id"])
        _mark("workouts", workout["id"], page_id)
        return

    page_id, existed = await upsert_page(
        client,
        databases.workouts,
        workout_properties(workout),
        page_id=workout.get("notion_page_id"),
        key=(WORKOUT_KEY, workout["hevy_id"]),
    )
    if existed:
        await archive_children(
            client, page_id, databases.exercises, EXERCISE_PARENT, databases.sets, SET_PARENT,
        )

    with get_connection() as conn:
        exercises = get_workout_exercises(conn, workout["id"])
        sets_by_exercise = {e["id"]: get_exercise_sets(conn, e["id"]) for e in exercises}

    async def push_exercise(exercise):
        sets = sets_by_exercise[exercise["id"]]
        exercise_page = await client.create_page(
            databases.exercises, exercise_properties(exercise, sets, page_id),
        )
        _mark("exercises", exercise["id"], exercise_page)
        return exercise["id"], exercise_page

    pushed = await run_batched(exercises, push_exercise, EXERCISE_BATCH_SIZE)
    exercise_pages = dict(pushed.results)

    set_rows = [
        (s, exercise_pages[exercise_id])
        for exercise_id, sets in sets_by_exercise.items()
        if exercise_id in exercise_pages
        for s in sets
    ]

    async def push_set(item):
        s, exercise_page = item
        set_page = await client.create_page(databases.sets, set_properties(s, exercise_page))
        _mark("sets", s["id"], set_page)

    pushed_sets = await run_batched(set_rows, push_set, SET_BATCH_SIZE)

    failed = pushed.errors + pushed_sets.errors
    if failed:
        raise SyncError(f"{failed} child page(s) of workout {workout['hevy_id']} failed")

    _mark("workouts", workout["id"], page_id)
    logger.info(
        "  %s workout %r (%d exercises, %d sets)",
        "Updated" if existed else "Created", workout["title"], len(exercises), len(set_rows),
    )


async def push_unsynced_workouts(databases: MirrorDatabases, client: MirrorClient = None) -> dict:
    """Mirror every unsynced workout, one at a time with a fixed pause between them.

    Returns {"synced", "errors", "total"}.
    """
    databases.require("workouts", "exercises", "sets")

    with get_connection() as conn:
        workouts = get_unsynced_workouts(conn)
    logger.info("Pushing %d unsynced workouts to Notion", len(workouts))

    synced = 0
    errors = 0
    async with _session(client) as client:
        for i, workout in enumerate(workouts):
            if i:
                await asyncio.sleep(WORKOUT_DELAY_SECONDS)
            try:
                await _push_workout(client, databases, workout)
                synced += 1
            except Exception as e:
                logger.error("  Failed to push workout %s: %s", workout["hevy_id"], e)
                errors += 1

    return {"synced": synced, "errors": errors, "total": len(workouts)}


# ===================
# ROUTINES
# ===================


async def _push_folder(client: MirrorClient, databases: MirrorDatabases, folder: dict):
    page_id, _ = await upsert_page(
        client,
        databases.programs,
        folder_properties(folder),
        page_id=folder.get("notion_page_id"),
        key=(FOLDER_KEY, folder["hevy_id"]),
    )
    _mark("routine_folders", folder["id"], page_id)


async def _push_routine(client: MirrorClient, databases: MirrorDatabases, routine: dict):
    page_id, existed = await upsert_page(
        client,
        databases.routines,
        routine_properties(routine),
        page_id=routine.get("notion_page_id"),
        key=(ROUTINE_KEY, routine["hevy_id"]),
    )
    if existed:
        await archive_children(
            client,
            page_id,
            databases.routine_exercises,
            ROUTINE_EXERCISE_PARENT,
            databases.routine_sets,
            ROUTINE_SET_PARENT if databases.routine_sets else None,
        )
    _mark("routines", routine["id"], page_id)


async def _push_routine_exercise(client: MirrorClient, databases: MirrorDatabases, exercise: dict):
    page_id, _ = await upsert_page(
        client,
        databases.routine_exercises,
        routine_exercise_properties(exercise),
        page_id=exercise.get("notion_page_id"),
    )
    _mark("routine_exercises", exercise["id"], page_id)


async def _push_routine_set(client: MirrorClient, databases: MirrorDatabases, s: dict):
    page_id, _ = await upsert_page(
        client,
        databases.routine_sets,
        routine_set_properties(s),
        page_id=s.get("notion_page_id"),
    )
    _mark("routine_sets", s["id"], page_id)


def _with_parent(rows: list[dict], parent_key: str, kind: str) -> list[dict]:
    """Drop rows whose parent has no page yet; they go out on a later pass."""
    ready = [r for r in rows if r.get(parent_key)]
    if len(ready) < len(rows):
        logger.warning("  Deferring %d %s whose parent is not mirrored yet", len(rows) - len(ready), kind)
    return ready


async def push_routines(databases: MirrorDatabases, client: MirrorClient = None) -> dict:
    """Mirror unsynced folders, routines, routine exercises and routine sets, in that order."""
    databases.require("programs", "routines", "routine_exercises")
    counts = {"folders": 0, "routines": 0, "exercises": 0, "sets": 0, "errors": 0, "total": 0}

    async def level(name, rows, worker, batch_size):
        outcome = await run_batched(rows, lambda row: worker(client, databases, row), batch_size)
        counts[name] = len(outcome.results)
        counts["errors"] += outcome.errors
        counts["total"] += len(rows)
        logger.info("  %s: %d pushed, %d errors", name, len(outcome.results), outcome.errors)

    async with _session(client) as client:
        with get_connection() as conn:
            folders = get_unsynced_routine_folders(conn)
        await level("folders", folders, _push_folder, FOLDER_BATCH_SIZE)

        with get_connection() as conn:
            routines = get_unsynced_routines(conn)
        await level("routines", routines, _push_routine, ROUTINE_BATCH_SIZE)

        with get_connection() as conn:
            exercises = get_unsynced_routine_exercises(conn)
        exercises = _with_parent(exercises, "routine_page_id", "routine exercises")
        await level("exercises", exercises, _push_routine_exercise, ROUTINE_EXERCISE_BATCH_SIZE)

        if databases.routine_sets:
            with get_connection() as conn:
                sets = get_unsynced_routine_sets(conn)
            sets = _with_parent(sets, "routine_exercise_page_id", "routine sets")
            await level("sets", sets, _push_routine_set, ROUTINE_SET_BATCH_SIZE)

    return counts


# ===================
# EXERCISE PROGRESS
# ===================


async def push_exercise_progress(databases: MirrorDatabases, client: MirrorClient = None) -> dict:
    """Recompute progress from the store, then mirror every changed row."""
    databases.require("exercise_progress")

    with get_connection() as conn:
        recompute_all(conn)
    with get_connection() as conn:
        rows = get_unsynced_exercise_progress(conn)

    async with _session(client) as client:

        async def push(row):
            page_id, _ = await upsert_page(
                client,
                databases.exercise_progress,
                progress_properties(row),
                page_id=row.get("notion_page_id"),
                key=(PROGRESS_KEY, row["exercise_template_id"]),
            )
            _mark("exercise_progress", row["id"], page_id)

        outcome = await run_batched(rows, push, PROGRESS_BATCH_SIZE)

    logger.info("Exercise progress: %d pushed, %d errors", len(outcome.results), outcome.errors)
    return {"synced": len(outcome.results), "errors": outcome.errors, "total": len(rows)}

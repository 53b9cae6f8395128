"""Sync pipelines: Hevy -> store -> progress -> Notion, plus the command line entry point."""

import argparse
import asyncio
import json
import logging
import os

from config import SYNC_INTERVAL_MINUTES, MirrorDatabases
from db import get_connection, get_record_counts, get_sync_state, init_schema
from hevy_sync import sync_exercise_templates, sync_full, sync_incremental, sync_routines
from mirror_client import MirrorClient
from mirror_sync import push_exercise_progress, push_routines, push_unsynced_workouts
from notion_schema import create_routine_databases, create_workout_databases
from progress import recompute_all

logger = logging.getLogger(__name__)


def recompute_progress() -> int:
    with get_connection() as conn:
        return recompute_all(conn)


def run_pipeline(databases: MirrorDatabases = None, full: bool = False) -> dict:
    """Hevy -> store (incremental unless full), recompute progress, then push workouts.

    The Notion push runs only when all three workout database ids are known.
    """
    result = {}
    if full:
        result["workouts"] = sync_full()
    else:
        result["hevy"] = sync_incremental()

    result["progress"] = recompute_progress()

    if databases is not None and databases.has_workouts():
        result["notion"] = asyncio.run(push_unsynced_workouts(databases))
    else:
        logger.info("No workout database ids configured, skipping Notion push")
    return result


def run_routine_pipeline(databases: MirrorDatabases) -> dict:
    """Routines (folders first) -> progress -> Notion routines -> Notion progress."""
    databases.require("programs", "routines", "routine_exercises")
    result = {"hevy": sync_routines()}
    result["progress"] = recompute_progress()

    async def push():
        client = MirrorClient()
        try:
            routines = await push_routines(databases, client)
            progress = None
            if databases.exercise_progress:
                progress = await push_exercise_progress(databases, client)
            return routines, progress
        finally:
            await client.aclose()

    result["notion"], result["notion_progress"] = asyncio.run(push())
    return result


def get_status() -> dict:
    """Cursor, last error, in-progress flag and record counts."""
    with get_connection() as conn:
        state = get_sync_state(conn)
        counts = get_record_counts(conn)
    return {
        "last_synced_at": state.last_synced_at,
        "last_event_timestamp": state.last_event_timestamp,
        "last_error": state.last_error,
        "sync_in_progress": state.sync_in_progress,
        "counts": {
            "workouts": counts["workouts"],
            "exercises": counts["exercises"],
            "sets": counts["sets"],
            "routines": counts["routines"],
            "routine_exercises": counts["routine_exercises"],
            "exercise_progress": counts["exercise_progress"],
        },
    }


async def create_databases(parent_page_id: str) -> dict:
    """Create every mirror database under a Notion page and return their ids."""
    client = MirrorClient()
    try:
        ids = await create_workout_databases(client, parent_page_id)
        ids.update(await create_routine_databases(client, parent_page_id))
        return ids
    finally:
        await client.aclose()


# ===================
# CLI
# ===================


def _print(result):
    print(json.dumps(result, indent=2, default=str))


def main(argv=None):
    parser = argparse.ArgumentParser(description="Sync Hevy workouts into Postgres and mirror them to Notion")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables from schema.sql")
    sub.add_parser("incremental", help="Apply Hevy workout events since the last cursor")
    full = sub.add_parser("full", help="Re-fetch every workout and reset the cursor")
    full.add_argument("--push", action="store_true", help="Also push workouts to Notion")
    sub.add_parser("templates", help="Cache Hevy exercise templates")
    sub.add_parser("routines", help="Sync routine folders and routines from Hevy")
    sub.add_parser("progress", help="Recompute exercise progress")
    sub.add_parser("push-workouts", help="Push unsynced workouts to Notion")
    sub.add_parser("push-routines", help="Sync routines and push them (and progress) to Notion")
    create = sub.add_parser("create-databases", help="Create the Notion databases under a page")
    create.add_argument("parent_page_id", help="Notion page to create the databases in")
    schedule = sub.add_parser("schedule", help="Run the incremental pipeline forever")
    schedule.add_argument("--interval", type=int, default=SYNC_INTERVAL_MINUTES, help="Minutes between passes")
    serve = sub.add_parser("serve", help="Serve the HTTP trigger endpoints")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8000")))
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    databases = MirrorDatabases.from_env()

    if args.command == "init-db":
        with get_connection() as conn:
            init_schema(conn)
        print("Schema created.")
    elif args.command == "incremental":
        _print(run_pipeline(databases))
    elif args.command == "full":
        _print(run_pipeline(databases if args.push else None, full=True))
    elif args.command == "templates":
        print(f"Saved {sync_exercise_templates()} exercise templates.")
    elif args.command == "routines":
        _print(sync_routines())
    elif args.command == "progress":
        print(f"Recomputed progress for {recompute_progress()} exercises.")
    elif args.command == "push-workouts":
        _print(asyncio.run(push_unsynced_workouts(databases)))
    elif args.command == "push-routines":
        _print(run_routine_pipeline(databases))
    elif args.command == "create-databases":
        ids = asyncio.run(create_databases(args.parent_page_id))
        print("Add these to your .env:")
        for name, db_id in ids.items():
            print(f"NOTION_{name.upper()}_DB_ID={db_id}")
    elif args.command == "schedule":
        from scheduler import run_forever
        run_forever(args.interval)
    elif args.command == "serve":
        import uvicorn
        uvicorn.run("server:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()

"""Database connection and helpers for the local store.

Natural keys are unique per record family (see schema.sql). Child rows have
no identity of their own: a parent update clears them and bulk-inserts the
new set inside the caller's transaction.
"""

from contextlib import contextmanager
from pathlib import Path

import psycopg2
import psycopg2.extras

from config import DATABASE_URL
from models import SyncState

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schema.sql"

# Tables that carry notion_page_id / synced_to_notion
MIRRORED_TABLES = {
    "workouts",
    "exercises",
    "sets",
    "routine_folders",
    "routines",
    "routine_exercises",
    "routine_sets",
    "exercise_progress",
}

WORKOUT_COLUMNS = (
    "title", "description", "start_time", "end_time", "duration_minutes",
    "total_volume", "total_sets", "total_reps",
)

SET_COLUMNS = (
    "exercise_id", "workout_id", "set_index", "set_type", "weight_kg", "reps",
    "distance_meters", "duration_seconds", "rpe", "custom_metric",
)

ROUTINE_SET_COLUMNS = (
    "routine_exercise_id", "routine_id", "set_index", "set_type", "target_reps",
    "target_weight_kg", "target_distance_meters", "target_duration_seconds",
)


@contextmanager
def get_connection():
    """Yield a database connection, committing on success and closing on exit."""
    conn = psycopg2.connect(DATABASE_URL)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_schema(conn, path: Path = SCHEMA_PATH):
    """Create all tables and indexes if they don't exist yet."""
    with conn.cursor() as cur:
        cur.execute(path.read_text())


def _insert(conn, table: str, fields: dict) -> int:
    """Insert a row and return its id. Table names are module constants."""
    cols = list(fields.keys())
    placeholders = ["%s"] * len(cols)
    with conn.cursor() as cur:
        cur.execute(
            f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join(placeholders)}) RETURNING id",
            list(fields.values()),
        )
        return cur.fetchone()[0]


def _update(conn, table: str, row_id: int, fields: dict):
    if not fields:
        return
    assignments = [f"{k} = %s" for k in fields.keys()]
    with conn.cursor() as cur:
        cur.execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE id = %s",
            list(fields.values()) + [row_id],
        )


def _fetch_all(conn, sql: str, params=()) -> list[dict]:
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params)
        return [dict(row) for row in cur.fetchall()]


def _fetch_one(conn, sql: str, params=()) -> dict | None:
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params)
        row = cur.fetchone()
        return dict(row) if row else None


# ===================
# SYNC STATE
# ===================


def get_sync_state(conn) -> SyncState:
    """Read the singleton sync-state row; defaults when it doesn't exist yet."""
    with conn.cursor() as cur:
        cur.execute(
            "SELECT last_synced_at, last_event_timestamp, last_error, sync_in_progress "
            "FROM sync_state WHERE id = 1"
        )
        row = cur.fetchone()
    if not row:
        return SyncState()
    return SyncState(
        last_synced_at=row[0],
        last_event_timestamp=row[1],
        last_error=row[2],
        sync_in_progress=bool(row[3]),
    )


def update_sync_state(conn, **fields):
    """Upsert the sync-state row. Every passed field is written, None included.

    Accepts any of: last_synced_at, last_event_timestamp, last_error,
    sync_in_progress.
    """
    if not fields:
        return
    cols = ["id"] + list(fields.keys()) + ["updated_at"]
    vals = [1] + list(fields.values())
    placeholders = ["%s"] * len(vals) + ["NOW()"]
    updates = [f"{k} = EXCLUDED.{k}" for k in fields.keys()] + ["updated_at = NOW()"]

    with conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO sync_state ({', '.join(cols)})
            VALUES ({', '.join(placeholders)})
            ON CONFLICT (id)
            DO UPDATE SET {', '.join(updates)}
            """,
            vals,
        )


# ===================
# WORKOUTS
# ===================


def find_workout(conn, hevy_id: str) -> dict | None:
    return _fetch_one(
        conn,
        "SELECT id, hevy_id, is_deleted, notion_page_id, synced_to_notion "
        "FROM workouts WHERE hevy_id = %s",
        (hevy_id,),
    )


def insert_workout(conn, hevy_id: str, fields: dict) -> int:
    return _insert(conn, "workouts", {
        "hevy_id": hevy_id, **fields, "is_deleted": False, "synced_to_notion": False,
    })


def update_workout(conn, workout_id: int, fields: dict):
    """Patch scalar fields and flag the workout for mirror re-sync."""
    with conn.cursor() as cur:
        assignments = [f"{k} = %s" for k in fields.keys()]
        cur.execute(
            f"""
            UPDATE workouts
            SET {', '.join(assignments + ['synced_to_notion = FALSE', 'updated_at = NOW()'])}
            WHERE id = %s
            """,
            list(fields.values()) + [workout_id],
        )


def delete_workout_children(conn, workout_id: int) -> int:
    """Delete all exercises (and their sets) of a workout. Returns exercises removed."""
    with conn.cursor() as cur:
        cur.execute("DELETE FROM sets WHERE workout_id = %s", (workout_id,))
        cur.execute("DELETE FROM exercises WHERE workout_id = %s", (workout_id,))
        return cur.rowcount


def insert_exercise(conn, fields: dict) -> int:
    return _insert(conn, "exercises", {**fields, "synced_to_notion": False})


def insert_sets(conn, rows: list[dict]):
    """Bulk-insert set rows (dicts keyed by SET_COLUMNS)."""
    if not rows:
        return
    with conn.cursor() as cur:
        psycopg2.extras.execute_values(
            cur,
            f"INSERT INTO sets ({', '.join(SET_COLUMNS)}) VALUES %s",
            [tuple(row.get(c) for c in SET_COLUMNS) for row in rows],
        )


def tombstone_workout(conn, hevy_id: str) -> bool:
    """Mark a workout deleted and in need of archival. False if unknown."""
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE workouts
            SET is_deleted = TRUE, synced_to_notion = FALSE, updated_at = NOW()
            WHERE hevy_id = %s
            RETURNING id
            """,
            (hevy_id,),
        )
        return cur.fetchone() is not None


def get_unsynced_workouts(conn) -> list[dict]:
    return _fetch_all(
        conn,
        "SELECT * FROM workouts WHERE synced_to_notion = FALSE ORDER BY start_time",
    )


def get_workout_exercises(conn, workout_id: int) -> list[dict]:
    return _fetch_all(
        conn,
        "SELECT * FROM exercises WHERE workout_id = %s ORDER BY exercise_index",
        (workout_id,),
    )


def get_exercise_sets(conn, exercise_id: int) -> list[dict]:
    return _fetch_all(
        conn,
        "SELECT * FROM sets WHERE exercise_id = %s ORDER BY set_index",
        (exercise_id,),
    )


# ===================
# EXERCISE TEMPLATES
# ===================


def upsert_exercise_template(conn, hevy_id: str, fields: dict):
    """Insert or update a cached exercise template. Upsert on hevy_id."""
    cols = ["hevy_id"] + list(fields.keys())
    vals = [hevy_id] + list(fields.values())
    placeholders = ["%s"] * len(vals)
    updates = [f"{k} = EXCLUDED.{k}" for k in fields.keys()]

    with conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO exercise_templates ({', '.join(cols)})
            VALUES ({', '.join(placeholders)})
            ON CONFLICT (hevy_id)
            DO UPDATE SET {', '.join(updates)}
            """,
            vals,
        )


# ===================
# ROUTINES
# ===================


def find_routine_folder(conn, hevy_id: int) -> dict | None:
    return _fetch_one(
        conn,
        "SELECT id, hevy_id, week_number, notion_page_id FROM routine_folders WHERE hevy_id = %s",
        (hevy_id,),
    )


def insert_routine_folder(conn, hevy_id: int, fields: dict) -> int:
    return _insert(conn, "routine_folders", {
        "hevy_id": hevy_id, **fields, "synced_to_notion": False,
    })


def update_routine_folder(conn, folder_id: int, fields: dict):
    _update(conn, "routine_folders", folder_id, {**fields, "synced_to_notion": False})


def find_routine(conn, hevy_id: str) -> dict | None:
    return _fetch_one(
        conn,
        "SELECT id, hevy_id, notion_page_id FROM routines WHERE hevy_id = %s",
        (hevy_id,),
    )


def insert_routine(conn, hevy_id: str, fields: dict) -> int:
    return _insert(conn, "routines", {
        "hevy_id": hevy_id, **fields, "synced_to_notion": False,
    })


def update_routine(conn, routine_id: int, fields: dict):
    _update(conn, "routines", routine_id, {**fields, "synced_to_notion": False})


def delete_routine_children(conn, routine_id: int) -> int:
    """Delete all routine exercises (and their planned sets) of a routine."""
    with conn.cursor() as cur:
        cur.execute("DELETE FROM routine_sets WHERE routine_id = %s", (routine_id,))
        cur.execute("DELETE FROM routine_exercises WHERE routine_id = %s", (routine_id,))
        return cur.rowcount


def insert_routine_exercise(conn, fields: dict) -> int:
    return _insert(conn, "routine_exercises", {**fields, "synced_to_notion": False})


def insert_routine_sets(conn, rows: list[dict]):
    if not rows:
        return
    with conn.cursor() as cur:
        psycopg2.extras.execute_values(
            cur,
            f"INSERT INTO routine_sets ({', '.join(ROUTINE_SET_COLUMNS)}) VALUES %s",
            [tuple(row.get(c) for c in ROUTINE_SET_COLUMNS) for row in rows],
        )


def get_unsynced_routine_folders(conn) -> list[dict]:
    return _fetch_all(
        conn,
        """
        SELECT f.*, (SELECT COUNT(*) FROM routines r WHERE r.folder_id = f.id) AS routine_count
        FROM routine_folders f
        WHERE f.synced_to_notion = FALSE
        ORDER BY f.sort_order
        """,
    )


def get_unsynced_routines(conn) -> list[dict]:
    """Unsynced routines with their folder's page id and exercise/set totals."""
    return _fetch_all(
        conn,
        """
        SELECT r.*, f.notion_page_id AS folder_page_id,
               (SELECT COUNT(*) FROM routine_exercises e WHERE e.routine_id = r.id) AS exercise_count,
               (SELECT COALESCE(SUM(e.target_sets), 0) FROM routine_exercises e
                 WHERE e.routine_id = r.id) AS total_sets
        FROM routines r
        LEFT JOIN routine_folders f ON f.id = r.folder_id
        WHERE r.synced_to_notion = FALSE
        ORDER BY r.sort_order
        """,
    )


def get_unsynced_routine_exercises(conn) -> list[dict]:
    """Unsynced routine exercises with their parent routine's page id and progress.

    Only children of synced routines are returned: a routine whose stale
    children could not be archived would archive these again next pass.
    """
    return _fetch_all(
        conn,
        """
        SELECT e.*, r.notion_page_id AS routine_page_id,
               p.last_weight_kg, p.last_reps, p.suggested_weight_kg, p.max_weight_kg
        FROM routine_exercises e
        JOIN routines r ON r.id = e.routine_id
        LEFT JOIN exercise_progress p ON p.exercise_template_id = e.exercise_template_id
        WHERE e.synced_to_notion = FALSE AND r.synced_to_notion = TRUE
        ORDER BY e.global_sort_order
        """,
    )


def get_unsynced_routine_sets(conn) -> list[dict]:
    return _fetch_all(
        conn,
        """
        SELECT s.*, e.notion_page_id AS routine_exercise_page_id, e.title AS exercise_title
        FROM routine_sets s
        JOIN routine_exercises e ON e.id = s.routine_exercise_id
        JOIN routines r ON r.id = e.routine_id
        WHERE s.synced_to_notion = FALSE AND e.synced_to_notion = TRUE AND r.synced_to_notion = TRUE
        ORDER BY e.global_sort_order, s.set_index
        """,
    )


# ===================
# PROGRESS
# ===================


def get_exercise_history(conn) -> list[dict]:
    """Every exercise joined with its workout's start time, for aggregation."""
    return _fetch_all(
        conn,
        """
        SELECT e.id, e.workout_id, e.exercise_template_id, e.title, w.start_time
        FROM exercises e
        JOIN workouts w ON w.id = e.workout_id
        """,
    )


def get_sets_by_exercise(conn, exercise_ids: list[int]) -> dict[int, list[dict]]:
    """Load sets for many exercises at once, grouped by exercise id."""
    grouped: dict[int, list[dict]] = {eid: [] for eid in exercise_ids}
    if not exercise_ids:
        return grouped
    rows = _fetch_all(
        conn,
        "SELECT * FROM sets WHERE exercise_id = ANY(%s) ORDER BY exercise_id, set_index",
        (list(exercise_ids),),
    )
    for row in rows:
        grouped.setdefault(row["exercise_id"], []).append(row)
    return grouped


def upsert_exercise_progress(conn, template_id: str, fields: dict):
    """Insert or update the progress row for a template; always flags re-sync."""
    fields = {**fields, "synced_to_notion": False}
    cols = ["exercise_template_id"] + list(fields.keys())
    vals = [template_id] + list(fields.values())
    placeholders = ["%s"] * len(vals)
    updates = [f"{k} = EXCLUDED.{k}" for k in fields.keys()]

    with conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO exercise_progress ({', '.join(cols)})
            VALUES ({', '.join(placeholders)})
            ON CONFLICT (exercise_template_id)
            DO UPDATE SET {', '.join(updates)}
            """,
            vals,
        )


def get_unsynced_exercise_progress(conn) -> list[dict]:
    return _fetch_all(
        conn,
        "SELECT * FROM exercise_progress WHERE synced_to_notion = FALSE ORDER BY exercise_title",
    )


# ===================
# MIRROR BOOKKEEPING
# ===================


def mark_synced(conn, table: str, row_id: int, notion_page_id: str | None):
    """Record a confirmed mirror write: store the page id and clear the flag."""
    if table not in MIRRORED_TABLES:
        raise ValueError(f"Not a mirrored table: {table}")
    with conn.cursor() as cur:
        cur.execute(
            f"UPDATE {table} SET synced_to_notion = TRUE, notion_page_id = %s WHERE id = %s",
            (notion_page_id, row_id),
        )


def get_record_counts(conn) -> dict:
    """Row counts per record family for the status endpoint."""
    counts = {}
    with conn.cursor() as cur:
        for table in ("workouts", "exercises", "sets", "routine_folders", "routines",
                      "routine_exercises", "exercise_progress"):
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            counts[table] = cur.fetchone()[0]
    return counts

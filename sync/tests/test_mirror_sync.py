"""Test mirror push passes against an in-memory Notion stand-in."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from config import MirrorDatabases
from errors import ConfigurationError, MirrorRateLimitError
from mirror_sync import push_exercise_progress, push_routines, push_unsynced_workouts

WORKOUT_DBS = MirrorDatabases(workouts="db-w", exercises="db-e", sets="db-s")
ROUTINE_DBS = MirrorDatabases(
    programs="db-p", routines="db-r", routine_exercises="db-re", routine_sets="db-rs",
    exercise_progress="db-x",
)


class FakeMirror:
    """Pages keyed by id; property lookups read the payloads the mappers produce."""

    def __init__(self, fail_titles=(), fail_archive=False):
        self.pages = {}
        self.created = []
        self.updated = []
        self.archived = []
        self.fail_titles = set(fail_titles)
        self.fail_archive = fail_archive

    def add(self, database_id, properties):
        page_id = f"page-{len(self.pages) + 1}"
        self.pages[page_id] = {"db": database_id, "props": properties}
        return page_id

    @staticmethod
    def _value(prop):
        if "rich_text" in prop:
            return prop["rich_text"][0]["text"]["content"] if prop["rich_text"] else None
        if "number" in prop:
            return prop["number"]
        if "relation" in prop:
            return [r["id"] for r in prop["relation"]]
        return None

    async def find_page_by_property(self, database_id, prop, value):
        for page_id, page in self.pages.items():
            if page["db"] == database_id and prop in page["props"]:
                if self._value(page["props"][prop]) == value:
                    return page_id
        return None

    async def find_pages_by_relation(self, database_id, prop, parent_id):
        return [
            page_id for page_id, page in self.pages.items()
            if page["db"] == database_id and parent_id in (self._value(page["props"].get(prop, {})) or [])
        ]

    async def create_page(self, database_id, properties):
        title = next((p["title"][0]["text"]["content"] for p in properties.values() if "title" in p), "")
        if title in self.fail_titles:
            raise MirrorRateLimitError()
        page_id = self.add(database_id, properties)
        self.created.append(page_id)
        return page_id

    async def update_page(self, page_id, properties):
        self.pages[page_id]["props"] = properties
        self.updated.append(page_id)
        return page_id

    async def archive_page(self, page_id):
        if self.fail_archive:
            raise MirrorRateLimitError()
        self.archived.append(page_id)


def _workout(row_id=1, hevy_id="w1", title="Push Day", **extra):
    return {
        "id": row_id, "hevy_id": hevy_id, "title": title, "description": None,
        "start_time": "2024-01-15T10:00:00Z", "duration_minutes": 75,
        "total_volume": 1000.0, "total_sets": 2, "total_reps": 10,
        "is_deleted": False, "notion_page_id": None, **extra,
    }


EXERCISES = {1: [{"id": 11, "workout_id": 1, "exercise_index": 0, "title": "Bench Press",
                  "exercise_template_id": "tmpl-bench", "notes": None}]}
SETS = {11: [
    {"id": 111, "set_index": 0, "set_type": "normal", "weight_kg": 100, "reps": 5},
    {"id": 112, "set_index": 1, "set_type": "normal", "weight_kg": 100, "reps": 5},
]}


@pytest.fixture
def workout_store():
    """Patch the store reads/writes mirror_sync uses for workouts."""
    with patch("mirror_sync.get_connection") as mock_conn, \
         patch("mirror_sync.get_unsynced_workouts") as mock_unsynced, \
         patch("mirror_sync.get_workout_exercises", side_effect=lambda c, wid: EXERCISES.get(wid, [])), \
         patch("mirror_sync.get_exercise_sets", side_effect=lambda c, eid: SETS.get(eid, [])), \
         patch("mirror_sync.mark_synced") as mock_mark, \
         patch("mirror_sync.asyncio.sleep", new=AsyncMock()) as mock_sleep:

        mock_conn.return_value.__enter__ = MagicMock(return_value=MagicMock())
        mock_conn.return_value.__exit__ = MagicMock(return_value=False)
        yield MagicMock(unsynced=mock_unsynced, mark=mock_mark, sleep=mock_sleep)


def _marked(mock_mark, table):
    return {c[0][2]: c[0][3] for c in mock_mark.call_args_list if c[0][1] == table}


def test_push_new_workout_creates_hierarchy(workout_store):
    workout_store.unsynced.return_value = [_workout()]
    mirror = FakeMirror()

    result = asyncio.run(push_unsynced_workouts(WORKOUT_DBS, mirror))

    assert result == {"synced": 1, "errors": 0, "total": 1}
    assert len(mirror.created) == 4
    workout_page = _marked(workout_store.mark, "workouts")[1]
    exercise_page = _marked(workout_store.mark, "exercises")[11]
    assert mirror.pages[exercise_page]["props"]["Workout"]["relation"] == [{"id": workout_page}]
    assert set(_marked(workout_store.mark, "sets")) == {111, 112}
    # workout is flagged last, after its children
    assert workout_store.mark.call_args_list[-1][0][1] == "workouts"


def test_deleted_workout_is_archived_not_created(workout_store):
    workout_store.unsynced.return_value = [_workout(is_deleted=True, notion_page_id="page-old")]
    mirror = FakeMirror()

    result = asyncio.run(push_unsynced_workouts(WORKOUT_DBS, mirror))

    assert result["synced"] == 1
    assert mirror.archived == ["page-old"]
    assert mirror.created == []
    assert _marked(workout_store.mark, "workouts") == {1: "page-old"}


def test_deleted_workout_without_page_only_marks_synced(workout_store):
    workout_store.unsynced.return_value = [_workout(is_deleted=True)]
    mirror = FakeMirror()

    asyncio.run(push_unsynced_workouts(WORKOUT_DBS, mirror))

    assert mirror.archived == []
    assert mirror.created == []
    assert _marked(workout_store.mark, "workouts") == {1: None}


def test_deleted_workout_without_stored_page_archives_live_match(workout_store):
    mirror = FakeMirror()
    live = mirror.add("db-w", {"Hevy ID": {"rich_text": [{"text": {"content": "w1"}}]}})
    workout_store.unsynced.return_value = [_workout(is_deleted=True)]

    asyncio.run(push_unsynced_workouts(WORKOUT_DBS, mirror))

    assert mirror.archived == [live]
    assert mirror.created == []
    assert _marked(workout_store.mark, "workouts") == {1: live}


def test_existing_page_is_adopted_and_children_replaced(workout_store):
    mirror = FakeMirror()
    existing = mirror.add("db-w", {"Hevy ID": {"rich_text": [{"text": {"content": "w1"}}]}})
    stale_exercise = mirror.add("db-e", {"Workout": {"relation": [{"id": existing}]}})
    stale_set = mirror.add("db-s", {"Exercise": {"relation": [{"id": stale_exercise}]}})
    workout_store.unsynced.return_value = [_workout()]

    result = asyncio.run(push_unsynced_workouts(WORKOUT_DBS, mirror))

    assert result["synced"] == 1
    assert mirror.updated == [existing]
    assert set(mirror.archived) == {stale_exercise, stale_set}
    # only children were created; no duplicate workout page
    assert all(mirror.pages[p]["db"] != "db-w" for p in mirror.created)
    assert _marked(workout_store.mark, "workouts") == {1: existing}


def test_per_record_failure_is_counted_and_left_unsynced(workout_store):
    workout_store.unsynced.return_value = [
        _workout(row_id=1, hevy_id="w1", title="Push Day"),
        _workout(row_id=2, hevy_id="w2", title="Leg Day"),
    ]
    mirror = FakeMirror(fail_titles={"Push Day"})

    result = asyncio.run(push_unsynced_workouts(WORKOUT_DBS, mirror))

    assert result == {"synced": 1, "errors": 1, "total": 2}
    assert set(_marked(workout_store.mark, "workouts")) == {2}
    workout_store.sleep.assert_awaited_once_with(0.5)


def test_child_failure_leaves_workout_unsynced(workout_store):
    workout_store.unsynced.return_value = [_workout()]
    mirror = FakeMirror(fail_titles={"Set 2: 100kg x 5"})

    result = asyncio.run(push_unsynced_workouts(WORKOUT_DBS, mirror))

    assert result["errors"] == 1
    assert "workouts" not in {c[0][1] for c in workout_store.mark.call_args_list}


def test_push_workouts_requires_database_ids():
    with pytest.raises(ConfigurationError):
        asyncio.run(push_unsynced_workouts(MirrorDatabases(workouts="db-w"), FakeMirror()))


@pytest.fixture
def routine_store():
    with patch("mirror_sync.get_connection") as mock_conn, \
         patch("mirror_sync.get_unsynced_routine_folders") as mock_folders, \
         patch("mirror_sync.get_unsynced_routines") as mock_routines, \
         patch("mirror_sync.get_unsynced_routine_exercises") as mock_exercises, \
         patch("mirror_sync.get_unsynced_routine_sets") as mock_sets, \
         patch("mirror_sync.mark_synced") as mock_mark:

        mock_conn.return_value.__enter__ = MagicMock(return_value=MagicMock())
        mock_conn.return_value.__exit__ = MagicMock(return_value=False)
        yield MagicMock(
            folders=mock_folders, routines=mock_routines, exercises=mock_exercises,
            sets=mock_sets, mark=mock_mark,
        )


def test_push_routines_adopts_folder_and_defers_orphans(routine_store):
    mirror = FakeMirror()
    existing_folder = mirror.add("db-p", {"Hevy Folder ID": {"number": 42}})
    routine_store.folders.return_value = [
        {"id": 1, "hevy_id": 42, "title": "SBS Week 2", "week_number": 2, "sort_order": 200,
         "routine_count": 1, "notion_page_id": None},
    ]
    routine_store.routines.return_value = [
        {"id": 5, "hevy_id": "r1", "title": "Day 3 - Bench", "folder_page_id": existing_folder,
         "week_number": 2, "day_number": 3, "sort_order": 203, "day_type": "Bench",
         "exercise_count": 1, "total_sets": 3, "notion_page_id": None},
    ]
    routine_store.exercises.return_value = [
        {"id": 7, "title": "Bench Press", "routine_page_id": "page-r", "exercise_template_id": "t1",
         "global_sort_order": 20300, "exercise_role": "Main Lift", "notion_page_id": None},
        {"id": 8, "title": "Dips", "routine_page_id": None, "exercise_template_id": "t2",
         "global_sort_order": 20301, "notion_page_id": None},
    ]
    routine_store.sets.return_value = [
        {"id": 70, "set_index": 0, "set_type": "normal", "target_reps": 5,
         "routine_exercise_page_id": "page-re", "exercise_title": "Bench Press", "notion_page_id": None},
    ]

    result = asyncio.run(push_routines(ROUTINE_DBS, mirror))

    assert result["folders"] == 1
    assert result["routines"] == 1
    assert result["exercises"] == 1
    assert result["sets"] == 1
    assert result["errors"] == 0
    assert mirror.updated == [existing_folder]
    assert _marked(routine_store.mark, "routine_folders") == {1: existing_folder}
    assert set(_marked(routine_store.mark, "routine_exercises")) == {7}


def test_routine_children_wait_until_stale_pages_are_archived(routine_store):
    mirror = FakeMirror(fail_archive=True)
    existing = mirror.add("db-r", {"Hevy ID": {"rich_text": [{"text": {"content": "r1"}}]}})
    stale = mirror.add("db-re", {"Routine": {"relation": [{"id": existing}]}})
    routine = {"id": 5, "hevy_id": "r1", "title": "Day 1 - Squat", "folder_page_id": None,
               "week_number": 1, "day_number": 1, "sort_order": 101, "day_type": "Squat",
               "exercise_count": 1, "total_sets": 3, "notion_page_id": None}
    child = {"id": 7, "title": "Squat", "routine_page_id": existing, "exercise_template_id": "t1",
             "global_sort_order": 10100, "notion_page_id": None}

    def marked(table):
        return _marked(routine_store.mark, table)

    # the store only hands out children of routines that are already synced
    routine_store.folders.return_value = []
    routine_store.routines.side_effect = lambda conn: [] if 5 in marked("routines") else [routine]
    routine_store.exercises.side_effect = lambda conn: (
        [child] if 5 in marked("routines") and 7 not in marked("routine_exercises") else []
    )
    routine_store.sets.return_value = []

    first = asyncio.run(push_routines(ROUTINE_DBS, mirror))

    assert first["errors"] == 1
    assert first["exercises"] == 0
    assert marked("routines") == {}
    assert marked("routine_exercises") == {}

    mirror.fail_archive = False
    second = asyncio.run(push_routines(ROUTINE_DBS, mirror))

    assert second["errors"] == 0
    assert second["exercises"] == 1
    assert mirror.archived == [stale]
    assert marked("routines") == {5: existing}
    assert marked("routine_exercises")[7] not in mirror.archived


def test_push_routines_skips_sets_without_database(routine_store):
    for mock in (routine_store.folders, routine_store.routines, routine_store.exercises):
        mock.return_value = []
    dbs = MirrorDatabases(programs="db-p", routines="db-r", routine_exercises="db-re")

    result = asyncio.run(push_routines(dbs, FakeMirror()))

    routine_store.sets.assert_not_called()
    assert result["total"] == 0


def test_push_exercise_progress_adopts_by_template_id():
    mirror = FakeMirror()
    existing = mirror.add("db-x", {"Template ID": {"rich_text": [{"text": {"content": "tmpl-bench"}}]}})
    rows = [
        {"id": 1, "exercise_template_id": "tmpl-bench", "exercise_title": "Bench Press",
         "last_weight_kg": 100, "notion_page_id": None},
        {"id": 2, "exercise_template_id": "tmpl-squat", "exercise_title": "Squat",
         "last_weight_kg": 140, "notion_page_id": None},
    ]

    with patch("mirror_sync.get_connection") as mock_conn, \
         patch("mirror_sync.recompute_all") as mock_recompute, \
         patch("mirror_sync.get_unsynced_exercise_progress", return_value=rows), \
         patch("mirror_sync.mark_synced") as mock_mark:

        mock_conn.return_value.__enter__ = MagicMock(return_value=MagicMock())
        mock_conn.return_value.__exit__ = MagicMock(return_value=False)

        result = asyncio.run(push_exercise_progress(ROUTINE_DBS, mirror))

    mock_recompute.assert_called_once()
    assert result == {"synced": 2, "errors": 0, "total": 2}
    assert mirror.updated == [existing]
    assert len(mirror.created) == 1
    assert _marked(mock_mark, "exercise_progress")[1] == existing

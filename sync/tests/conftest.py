"""Shared fixtures: an in-memory stand-in for the store functions the reconciler uses."""

from unittest.mock import patch

import pytest


class FakeStore:
    """Dict-backed tables keyed by local id, mimicking db.py's write helpers."""

    def __init__(self):
        self.workouts = {}
        self.exercises = {}
        self.sets = []
        self.templates = {}
        self.routine_folders = {}
        self.routines = {}
        self.routine_exercises = {}
        self.routine_sets = []
        self._next_id = 0

    def _id(self):
        self._next_id += 1
        return self._next_id

    # workouts
    def find_workout(self, conn, hevy_id):
        return next((dict(w) for w in self.workouts.values() if w["hevy_id"] == hevy_id), None)

    def insert_workout(self, conn, hevy_id, fields):
        row_id = self._id()
        self.workouts[row_id] = {
            "id": row_id, "hevy_id": hevy_id, **fields,
            "is_deleted": False, "synced_to_notion": False, "notion_page_id": None,
        }
        return row_id

    def update_workout(self, conn, workout_id, fields):
        self.workouts[workout_id].update(fields, synced_to_notion=False)

    def delete_workout_children(self, conn, workout_id):
        self.sets = [s for s in self.sets if s["workout_id"] != workout_id]
        doomed = [k for k, e in self.exercises.items() if e["workout_id"] == workout_id]
        for k in doomed:
            del self.exercises[k]
        return len(doomed)

    def insert_exercise(self, conn, fields):
        row_id = self._id()
        self.exercises[row_id] = {"id": row_id, **fields}
        return row_id

    def insert_sets(self, conn, rows):
        self.sets.extend(dict(r) for r in rows)

    def tombstone_workout(self, conn, hevy_id):
        for w in self.workouts.values():
            if w["hevy_id"] == hevy_id:
                w.update(is_deleted=True, synced_to_notion=False)
                return True
        return False

    def store_exercise_template(self, conn, hevy_id, fields):
        self.templates[hevy_id] = {"hevy_id": hevy_id, **fields}

    # routines
    def find_routine_folder(self, conn, hevy_id):
        return next((dict(f) for f in self.routine_folders.values() if f["hevy_id"] == hevy_id), None)

    def insert_routine_folder(self, conn, hevy_id, fields):
        row_id = self._id()
        self.routine_folders[row_id] = {"id": row_id, "hevy_id": hevy_id, **fields}
        return row_id

    def update_routine_folder(self, conn, folder_id, fields):
        self.routine_folders[folder_id].update(fields)

    def find_routine(self, conn, hevy_id):
        return next((dict(r) for r in self.routines.values() if r["hevy_id"] == hevy_id), None)

    def insert_routine(self, conn, hevy_id, fields):
        row_id = self._id()
        self.routines[row_id] = {"id": row_id, "hevy_id": hevy_id, **fields}
        return row_id

    def update_routine(self, conn, routine_id, fields):
        self.routines[routine_id].update(fields)

    def delete_routine_children(self, conn, routine_id):
        self.routine_sets = [s for s in self.routine_sets if s["routine_id"] != routine_id]
        doomed = [k for k, e in self.routine_exercises.items() if e["routine_id"] == routine_id]
        for k in doomed:
            del self.routine_exercises[k]
        return len(doomed)

    def insert_routine_exercise(self, conn, fields):
        row_id = self._id()
        self.routine_exercises[row_id] = {"id": row_id, **fields}
        return row_id

    def insert_routine_sets(self, conn, rows):
        self.routine_sets.extend(dict(r) for r in rows)


PATCHED = (
    "find_workout", "insert_workout", "update_workout", "delete_workout_children",
    "insert_exercise", "insert_sets", "tombstone_workout", "store_exercise_template",
    "find_routine_folder", "insert_routine_folder", "update_routine_folder",
    "find_routine", "insert_routine", "update_routine", "delete_routine_children",
    "insert_routine_exercise", "insert_routine_sets",
)


@pytest.fixture
def store():
    fake = FakeStore()
    patchers = [patch(f"reconciler.{name}", getattr(fake, name)) for name in PATCHED]
    for p in patchers:
        p.start()
    yield fake
    for p in patchers:
        p.stop()


def workout_payload(workout_id="w1", title="Push Day", exercises=None, **extra):
    return {
        "id": workout_id,
        "title": title,
        "start_time": "2024-01-15T10:00:00Z",
        "end_time": "2024-01-15T11:15:00Z",
        "exercises": exercises if exercises is not None else [
            {
                "index": 0,
                "title": "Bench Press",
                "exercise_template_id": "tmpl-bench",
                "sets": [
                    {"index": 0, "type": "normal", "weight_kg": 100, "reps": 5},
                    {"index": 1, "type": "normal", "weight_kg": 100, "reps": 5},
                    {"index": 2, "type": "normal", "weight_kg": 100, "reps": 0},
                ],
            },
        ],
        **extra,
    }

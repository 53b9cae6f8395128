"""Reconcile Hevy payloads into the local store.

Parents are matched by natural key (Hevy id), never by internal id. A parent
update patches its scalar fields, clears every child row and reinserts the
children from the payload; children are never diffed. Aggregates and sort /
classification fields are recomputed from the full payload on every upsert.

Callers run each upsert inside one get_connection() block, so the parent
patch, the child delete and the child reinsert commit together.
"""

from __future__ import annotations

import logging

from db import (
    delete_routine_children,
    delete_workout_children,
    find_routine,
    find_routine_folder,
    find_workout,
    insert_exercise,
    insert_routine,
    insert_routine_exercise,
    insert_routine_folder,
    insert_routine_sets,
    insert_sets,
    insert_workout,
    tombstone_workout,
    update_routine,
    update_routine_folder,
    update_workout,
    upsert_exercise_template as store_exercise_template,
)
from derived import (
    detect_day_type,
    detect_exercise_role,
    detect_muscle_group,
    duration_minutes,
    folder_sort_order,
    global_sort_order,
    parse_day_number,
    parse_week_number,
    routine_sort_order,
    workout_stats,
)
from models import (
    HevyExerciseTemplate,
    HevyRoutine,
    HevyRoutineFolder,
    HevyWorkout,
)

logger = logging.getLogger(__name__)


def workout_fields(workout: HevyWorkout) -> dict:
    """Scalar and derived columns for a workout row."""
    total_volume, total_sets, total_reps = workout_stats(workout.exercises)
    return {
        "title": workout.title,
        "description": workout.description,
        "start_time": workout.start_time,
        "end_time": workout.end_time,
        "duration_minutes": duration_minutes(workout.start_time, workout.end_time),
        "total_volume": total_volume,
        "total_sets": total_sets,
        "total_reps": total_reps,
    }


def _insert_workout_children(conn, workout_id: int, workout: HevyWorkout):
    for exercise in workout.exercises:
        exercise_id = insert_exercise(conn, {
            "workout_id": workout_id,
            "exercise_index": exercise.index,
            "exercise_template_id": exercise.exercise_template_id,
            "title": exercise.title,
            "notes": exercise.notes,
            "superset_id": exercise.superset_id,
        })
        insert_sets(conn, [
            {
                "exercise_id": exercise_id,
                "workout_id": workout_id,
                "set_index": s.index,
                "set_type": s.set_type,
                "weight_kg": s.weight_kg,
                "reps": s.reps,
                "distance_meters": s.distance_meters,
                "duration_seconds": s.duration_seconds,
                "rpe": s.rpe,
                "custom_metric": s.custom_metric,
            }
            for s in exercise.sets
        ])


def upsert_workout(conn, workout: HevyWorkout) -> int:
    """Insert or cascade-replace a workout. Returns the local id.

    An update for a tombstoned workout restores it.
    """
    fields = workout_fields(workout)
    existing = find_workout(conn, workout.id)

    if existing:
        if existing["is_deleted"]:
            logger.info("Restoring deleted workout %s", workout.id)
        workout_id = existing["id"]
        update_workout(conn, workout_id, {**fields, "is_deleted": False})
        removed = delete_workout_children(conn, workout_id)
        logger.debug("Replacing %d exercises of workout %s", removed, workout.id)
    else:
        workout_id = insert_workout(conn, workout.id, fields)

    _insert_workout_children(conn, workout_id, workout)
    return workout_id


def mark_workout_deleted(conn, hevy_id: str) -> bool:
    """Tombstone a workout; its exercises and sets are left in place.

    Unknown ids are a silent no-op (returns False).
    """
    found = tombstone_workout(conn, hevy_id)
    if not found:
        logger.debug("Deleted event for unknown workout %s", hevy_id)
    return found


def upsert_exercise_template(conn, template: HevyExerciseTemplate):
    store_exercise_template(conn, template.id, {
        "title": template.title,
        "exercise_type": template.exercise_type,
        "primary_muscle_group": template.primary_muscle_group,
        "secondary_muscle_groups": template.secondary_muscle_groups,
        "is_custom": template.is_custom,
    })


def upsert_routine_folder(conn, folder: HevyRoutineFolder) -> int:
    week_number = parse_week_number(folder.title)
    fields = {
        "title": folder.title,
        "folder_index": folder.index,
        "week_number": week_number,
        "sort_order": folder_sort_order(week_number, folder.index),
        "updated_at": folder.updated_at,
    }
    existing = find_routine_folder(conn, folder.id)
    if existing:
        update_routine_folder(conn, existing["id"], fields)
        return existing["id"]
    return insert_routine_folder(conn, folder.id, fields)


def routine_fields(routine: HevyRoutine, folder: dict | None) -> dict:
    week_number = folder["week_number"] if folder else None
    day_number = parse_day_number(routine.title)
    return {
        "folder_id": folder["id"] if folder else None,
        "hevy_folder_id": routine.folder_id,
        "title": routine.title,
        "day_number": day_number,
        "week_number": week_number,
        "sort_order": routine_sort_order(week_number, day_number),
        "day_type": detect_day_type(routine.title),
        "updated_at": routine.updated_at,
    }


def _insert_routine_children(conn, routine_id: int, routine: HevyRoutine,
                             week_number: int | None, day_number: int | None):
    for exercise in routine.exercises:
        first_set = exercise.sets[0] if exercise.sets else None
        exercise_id = insert_routine_exercise(conn, {
            "routine_id": routine_id,
            "exercise_index": exercise.index,
            "exercise_template_id": exercise.exercise_template_id,
            "title": exercise.title,
            "notes": exercise.notes,
            "superset_id": exercise.superset_id,
            "rest_seconds": exercise.rest_seconds,
            "target_sets": len(exercise.sets),
            "target_reps": first_set.reps if first_set else None,
            # routines carry no pre-set working weight
            "target_weight_kg": None,
            "week_number": week_number,
            "day_number": day_number,
            "exercise_order": exercise.index,
            "global_sort_order": global_sort_order(week_number, day_number, exercise.index),
            "exercise_role": detect_exercise_role(exercise.index, exercise.title),
            "muscle_group": detect_muscle_group(exercise.title),
        })
        insert_routine_sets(conn, [
            {
                "routine_exercise_id": exercise_id,
                "routine_id": routine_id,
                "set_index": s.index,
                "set_type": s.set_type,
                "target_reps": s.reps,
                "target_weight_kg": s.weight_kg,
                "target_distance_meters": s.distance_meters,
                "target_duration_seconds": s.duration_seconds,
            }
            for s in exercise.sets
        ])


def upsert_routine(conn, routine: HevyRoutine) -> int:
    """Insert or cascade-replace a routine, its exercises and planned sets.

    The parent folder is resolved by Hevy folder id; when it isn't stored
    yet the routine is kept without a folder (week 0 for sorting).
    """
    folder = find_routine_folder(conn, routine.folder_id) if routine.folder_id is not None else None
    if routine.folder_id is not None and folder is None:
        logger.warning("Routine %s references unknown folder %s", routine.id, routine.folder_id)
    fields = routine_fields(routine, folder)

    existing = find_routine(conn, routine.id)
    if existing:
        routine_id = existing["id"]
        update_routine(conn, routine_id, fields)
        delete_routine_children(conn, routine_id)
    else:
        routine_id = insert_routine(conn, routine.id, fields)

    _insert_routine_children(conn, routine_id, routine, fields["week_number"], fields["day_number"])
    return routine_id

"""Notion database layouts and row -> property payload mapping.

Property names here are the contract with the mirror; the natural-key
properties ("Hevy ID", "Hevy Folder ID", "Template ID") are what create-or-
adopt lookups search on.
"""

from __future__ import annotations

from derived import set_volume

RICH_TEXT_LIMIT = 2000

NUMBER = {"number": {"format": "number"}}

WORKOUT_KEY = "Hevy ID"
FOLDER_KEY = "Hevy Folder ID"
ROUTINE_KEY = "Hevy ID"
PROGRESS_KEY = "Template ID"

# Relation property on each child database pointing at its parent
EXERCISE_PARENT = "Workout"
SET_PARENT = "Exercise"
ROUTINE_PARENT = "Program"
ROUTINE_EXERCISE_PARENT = "Routine"
ROUTINE_SET_PARENT = "Routine Exercise"


def _select(*names_and_colors: tuple[str, str]) -> dict:
    return {"select": {"options": [{"name": n, "color": c} for n, c in names_and_colors]}}


def _relation(database_id: str) -> dict:
    return {"relation": {"database_id": database_id, "single_property": {}}}


SET_TYPE_SELECT = _select(
    ("warmup", "yellow"), ("normal", "blue"), ("failure", "red"), ("dropset", "purple"),
)

DAY_TYPE_SELECT = _select(
    ("Squat", "blue"), ("Bench", "red"), ("Deadlift", "purple"), ("Press", "green"),
    ("Upper", "orange"), ("Lower", "yellow"), ("Pull", "pink"), ("Push", "brown"),
    ("Full Body", "gray"),
)

EXERCISE_ROLE_SELECT = _select(
    ("Main Lift", "red"), ("Variation", "blue"), ("Accessory", "green"), ("Cardio", "yellow"),
)

MUSCLE_GROUP_SELECT = _select(
    ("Chest", "red"), ("Back", "blue"), ("Shoulders", "orange"), ("Legs", "green"),
    ("Biceps", "purple"), ("Triceps", "pink"), ("Core", "gray"),
)


def workouts_schema() -> dict:
    return {
        "Workout": {"title": {}},
        WORKOUT_KEY: {"rich_text": {}},
        "Date": {"date": {}},
        "Duration (min)": NUMBER,
        "Volume (kg)": NUMBER,
        "Total Sets": NUMBER,
        "Total Reps": NUMBER,
        "Description": {"rich_text": {}},
    }


def exercises_schema(workouts_db_id: str) -> dict:
    return {
        "Exercise": {"title": {}},
        EXERCISE_PARENT: _relation(workouts_db_id),
        "Exercise Name": {"select": {"options": []}},
        "Exercise Index": NUMBER,
        "Template ID": {"rich_text": {}},
        "Notes": {"rich_text": {}},
        "Set Count": NUMBER,
        "Total Volume (kg)": NUMBER,
    }


def sets_schema(exercises_db_id: str) -> dict:
    return {
        "Set": {"title": {}},
        SET_PARENT: _relation(exercises_db_id),
        "Set Index": NUMBER,
        "Type": SET_TYPE_SELECT,
        "Weight (kg)": NUMBER,
        "Reps": NUMBER,
        "RPE": NUMBER,
        "Volume (kg)": NUMBER,
        "Distance (m)": NUMBER,
        "Duration (s)": NUMBER,
    }


def programs_schema() -> dict:
    return {
        "Program": {"title": {}},
        FOLDER_KEY: NUMBER,
        "Week Number": NUMBER,
        "Sort Order": NUMBER,
        "Description": {"rich_text": {}},
        "Routine Count": NUMBER,
    }


def routines_schema(programs_db_id: str) -> dict:
    return {
        "Routine": {"title": {}},
        ROUTINE_KEY: {"rich_text": {}},
        ROUTINE_PARENT: _relation(programs_db_id),
        "Week Number": NUMBER,
        "Day Number": NUMBER,
        "Sort Order": NUMBER,
        "Exercise Count": NUMBER,
        "Total Sets": NUMBER,
        "Day Type": DAY_TYPE_SELECT,
        "Notes": {"rich_text": {}},
    }


def routine_exercises_schema(routines_db_id: str) -> dict:
    return {
        "Exercise": {"title": {}},
        ROUTINE_EXERCISE_PARENT: _relation(routines_db_id),
        "Exercise Name": {"select": {"options": []}},
        "Template ID": {"rich_text": {}},
        "Week Number": NUMBER,
        "Day Number": NUMBER,
        "Exercise Order": NUMBER,
        "Global Sort": NUMBER,
        "Exercise Role": EXERCISE_ROLE_SELECT,
        "Muscle Group": MUSCLE_GROUP_SELECT,
        "Target Sets": NUMBER,
        "Target Reps": NUMBER,
        "Target Weight (kg)": NUMBER,
        "Rest (s)": NUMBER,
        "Notes": {"rich_text": {}},
        "Last Weight (kg)": NUMBER,
        "Last Reps": NUMBER,
        "Suggested Weight (kg)": NUMBER,
        "PR Weight (kg)": NUMBER,
    }


def routine_sets_schema(routine_exercises_db_id: str) -> dict:
    return {
        "Set": {"title": {}},
        ROUTINE_SET_PARENT: _relation(routine_exercises_db_id),
        "Set Index": NUMBER,
        "Type": SET_TYPE_SELECT,
        "Target Reps": NUMBER,
        "Target Weight (kg)": NUMBER,
        "Target Distance (m)": NUMBER,
        "Target Duration (s)": NUMBER,
    }


def exercise_progress_schema() -> dict:
    return {
        "Exercise Name": {"title": {}},
        PROGRESS_KEY: {"rich_text": {}},
        "Last Performed": {"date": {}},
        "Last Weight (kg)": NUMBER,
        "Last Reps": NUMBER,
        "Last Volume (kg)": NUMBER,
        "PR Weight (kg)": NUMBER,
        "PR Reps": NUMBER,
        "PR Volume (kg)": NUMBER,
        "Est 1RM (kg)": NUMBER,
        "Suggested Weight (kg)": NUMBER,
        "Progression Note": {"rich_text": {}},
        "Times Performed": NUMBER,
    }


async def create_workout_databases(client, parent_page_id: str) -> dict:
    """Create the Workouts -> Exercises -> Sets databases under a page."""
    workouts = await client.create_database(parent_page_id, "Hevy Workouts", workouts_schema())
    exercises = await client.create_database(
        parent_page_id, "Hevy Exercises", exercises_schema(workouts),
    )
    sets = await client.create_database(parent_page_id, "Hevy Sets", sets_schema(exercises))
    return {"workouts": workouts, "exercises": exercises, "sets": sets}


async def create_routine_databases(client, parent_page_id: str) -> dict:
    """Create Programs -> Routines -> Routine Exercises -> Routine Sets, plus Exercise Progress."""
    programs = await client.create_database(parent_page_id, "Hevy Programs", programs_schema())
    routines = await client.create_database(
        parent_page_id, "Hevy Routines", routines_schema(programs),
    )
    routine_exercises = await client.create_database(
        parent_page_id, "Hevy Routine Exercises", routine_exercises_schema(routines),
    )
    routine_sets = await client.create_database(
        parent_page_id, "Hevy Routine Sets", routine_sets_schema(routine_exercises),
    )
    exercise_progress = await client.create_database(
        parent_page_id, "Exercise Progress", exercise_progress_schema(),
    )
    return {
        "programs": programs,
        "routines": routines,
        "routine_exercises": routine_exercises,
        "routine_sets": routine_sets,
        "exercise_progress": exercise_progress,
    }


# ===================
# VALUE HELPERS
# ===================


def title(text: str | None) -> dict:
    return {"title": [{"text": {"content": (text or "")[:RICH_TEXT_LIMIT]}}]}


def rich_text(text: str | None) -> dict:
    if not text:
        return {"rich_text": []}
    return {"rich_text": [{"text": {"content": str(text)[:RICH_TEXT_LIMIT]}}]}


def number(value) -> dict:
    return {"number": value}


def date(ts: str | None) -> dict:
    """Date-only value from an ISO timestamp."""
    return {"date": {"start": ts.split("T")[0]} if ts else None}


def select(name: str | None) -> dict:
    """Select value; Notion rejects commas in option names."""
    return {"select": {"name": name.replace(",", "")} if name else None}


def relation(page_id: str | None) -> dict:
    return {"relation": [{"id": page_id}] if page_id else []}


# ===================
# ROW MAPPERS
# ===================


def workout_properties(workout: dict) -> dict:
    return {
        "Workout": title(workout["title"]),
        WORKOUT_KEY: rich_text(workout["hevy_id"]),
        "Date": date(workout.get("start_time")),
        "Duration (min)": number(workout.get("duration_minutes")),
        "Volume (kg)": number(workout.get("total_volume")),
        "Total Sets": number(workout.get("total_sets")),
        "Total Reps": number(workout.get("total_reps")),
        "Description": rich_text(workout.get("description")),
    }


def exercise_properties(exercise: dict, sets: list[dict], workout_page_id: str) -> dict:
    volume = sum(set_volume(s.get("weight_kg"), s.get("reps")) or 0 for s in sets)
    return {
        "Exercise": title(exercise["title"]),
        EXERCISE_PARENT: relation(workout_page_id),
        "Exercise Name": select(exercise["title"]),
        "Exercise Index": number(exercise.get("exercise_index")),
        "Template ID": rich_text(exercise.get("exercise_template_id")),
        "Notes": rich_text(exercise.get("notes")),
        "Set Count": number(len(sets)),
        "Total Volume (kg)": number(round(volume, 1)),
    }


def set_title(s: dict) -> str:
    return f"Set {s['set_index'] + 1}: {s.get('weight_kg') or 0}kg x {s.get('reps') or 0}"


def set_properties(s: dict, exercise_page_id: str) -> dict:
    return {
        "Set": title(set_title(s)),
        SET_PARENT: relation(exercise_page_id),
        "Set Index": number(s["set_index"]),
        "Type": select(s.get("set_type")),
        "Weight (kg)": number(s.get("weight_kg")),
        "Reps": number(s.get("reps")),
        "RPE": number(s.get("rpe")),
        "Volume (kg)": number(set_volume(s.get("weight_kg"), s.get("reps"))),
        "Distance (m)": number(s.get("distance_meters")),
        "Duration (s)": number(s.get("duration_seconds")),
    }


def folder_properties(folder: dict) -> dict:
    return {
        "Program": title(folder["title"]),
        FOLDER_KEY: number(folder["hevy_id"]),
        "Week Number": number(folder.get("week_number") or folder.get("folder_index")),
        "Sort Order": number(folder.get("sort_order")),
        "Routine Count": number(folder.get("routine_count") or 0),
    }


def routine_properties(routine: dict) -> dict:
    props = {
        "Routine": title(routine["title"]),
        ROUTINE_KEY: rich_text(routine["hevy_id"]),
        ROUTINE_PARENT: relation(routine.get("folder_page_id")),
        "Week Number": number(routine.get("week_number")),
        "Day Number": number(routine.get("day_number")),
        "Sort Order": number(routine.get("sort_order")),
        "Exercise Count": number(routine.get("exercise_count") or 0),
        "Total Sets": number(routine.get("total_sets") or 0),
    }
    if routine.get("day_type"):
        props["Day Type"] = select(routine["day_type"])
    return props


def routine_exercise_properties(exercise: dict) -> dict:
    """Routine exercise row (joined with its progress columns when present)."""
    props = {
        "Exercise": title(exercise["title"]),
        ROUTINE_EXERCISE_PARENT: relation(exercise.get("routine_page_id")),
        "Exercise Name": select(exercise["title"]),
        "Template ID": rich_text(exercise.get("exercise_template_id")),
        "Week Number": number(exercise.get("week_number")),
        "Day Number": number(exercise.get("day_number")),
        "Exercise Order": number(exercise.get("exercise_order")),
        "Global Sort": number(exercise.get("global_sort_order")),
        "Target Sets": number(exercise.get("target_sets")),
        "Target Reps": number(exercise.get("target_reps")),
        "Target Weight (kg)": number(exercise.get("target_weight_kg")),
        "Rest (s)": number(exercise.get("rest_seconds")),
        "Notes": rich_text(exercise.get("notes")),
    }
    if exercise.get("exercise_role"):
        props["Exercise Role"] = select(exercise["exercise_role"])
    if exercise.get("muscle_group"):
        props["Muscle Group"] = select(exercise["muscle_group"])
    if exercise.get("max_weight_kg") is not None or exercise.get("last_weight_kg") is not None:
        props["Last Weight (kg)"] = number(exercise.get("last_weight_kg"))
        props["Last Reps"] = number(exercise.get("last_reps"))
        props["Suggested Weight (kg)"] = number(exercise.get("suggested_weight_kg"))
        props["PR Weight (kg)"] = number(exercise.get("max_weight_kg"))
    return props


def routine_set_properties(s: dict) -> dict:
    label = f"{s.get('exercise_title') or 'Set'} #{s['set_index'] + 1}"
    return {
        "Set": title(label),
        ROUTINE_SET_PARENT: relation(s.get("routine_exercise_page_id")),
        "Set Index": number(s["set_index"]),
        "Type": select(s.get("set_type")),
        "Target Reps": number(s.get("target_reps")),
        "Target Weight (kg)": number(s.get("target_weight_kg")),
        "Target Distance (m)": number(s.get("target_distance_meters")),
        "Target Duration (s)": number(s.get("target_duration_seconds")),
    }


def progress_properties(progress: dict) -> dict:
    return {
        "Exercise Name": title(progress["exercise_title"]),
        PROGRESS_KEY: rich_text(progress["exercise_template_id"]),
        "Last Performed": date(progress.get("last_performed_at")),
        "Last Weight (kg)": number(progress.get("last_weight_kg")),
        "Last Reps": number(progress.get("last_reps")),
        "Last Volume (kg)": number(progress.get("last_volume")),
        "PR Weight (kg)": number(progress.get("max_weight_kg")),
        "PR Reps": number(progress.get("max_reps")),
        "PR Volume (kg)": number(progress.get("max_volume")),
        "Est 1RM (kg)": number(progress.get("max_1rm")),
        "Suggested Weight (kg)": number(progress.get("suggested_weight_kg")),
        "Progression Note": rich_text(progress.get("progression_note")),
        "Times Performed": number(progress.get("times_performed")),
    }

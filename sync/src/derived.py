"""Derived fields recomputed on every upsert: stats, sort keys, classification.

Everything here is a pure function of titles, indexes and parent fields.
Classification is driven by ordered (substring, label) rule tables: the
first rule whose substring occurs in the lower-cased title wins.
"""

from __future__ import annotations

import math
import re
from datetime import datetime

WEEK_PATTERN = re.compile(r"(?:week|w)\s*(\d+)", re.IGNORECASE)
DAY_PATTERN = re.compile(r"(?:day|d|#)\s*(\d+)", re.IGNORECASE)

DAY_TYPE_RULES: list[tuple[str, str]] = [
    ("squat", "Squat"),
    ("bench", "Bench"),
    ("deadlift", "Deadlift"),
    ("press", "Press"),
    ("upper", "Upper"),
    ("lower", "Lower"),
    ("pull", "Pull"),
    ("push", "Push"),
]

ACCESSORY_RULES: list[tuple[str, str]] = [
    ("curl", "Accessory"),
    ("extension", "Accessory"),
    ("raise", "Accessory"),
    ("fly", "Accessory"),
    ("kickback", "Accessory"),
    ("calf", "Accessory"),
    ("ab ", "Accessory"),
    ("crunch", "Accessory"),
    ("plank", "Accessory"),
]

MUSCLE_GROUP_RULES: list[tuple[str, str]] = [
    ("bench", "Chest"),
    ("chest", "Chest"),
    ("fly", "Chest"),
    ("pec", "Chest"),
    ("row", "Back"),
    ("pull", "Back"),
    ("lat", "Back"),
    ("back", "Back"),
    ("deadlift", "Back"),
    ("shoulder", "Shoulders"),
    ("press", "Shoulders"),
    ("raise", "Shoulders"),
    ("delt", "Shoulders"),
    ("squat", "Legs"),
    ("leg", "Legs"),
    ("quad", "Legs"),
    ("ham", "Legs"),
    ("glute", "Legs"),
    ("lunge", "Legs"),
    ("calf", "Legs"),
    ("curl", "Biceps"),
    ("bicep", "Biceps"),
    ("tricep", "Triceps"),
    ("pushdown", "Triceps"),
    ("extension", "Triceps"),
    ("ab", "Core"),
    ("core", "Core"),
    ("crunch", "Core"),
    ("plank", "Core"),
]

MAIN_LIFT = "Main Lift"
VARIATION = "Variation"
ACCESSORY = "Accessory"


def parse_iso(ts: str | None) -> datetime | None:
    """Parse a Hevy ISO 8601 timestamp ("Z" or offset suffix)."""
    if not ts:
        return None
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, unlike round()."""
    return math.floor(value + 0.5)


def duration_minutes(start_time: str | None, end_time: str | None) -> int | None:
    """Whole minutes between start and end; None without both ends."""
    start = parse_iso(start_time)
    end = parse_iso(end_time)
    if start is None or end is None:
        return None
    return round_half_up((end - start).total_seconds() / 60)


def workout_stats(exercises) -> tuple[float, int, int]:
    """Return (total_volume, total_sets, total_reps) for a workout's exercises.

    Every set counts toward total_sets. Reps count whenever present; volume
    only accrues when both weight and reps are present.
    """
    total_volume = 0.0
    total_sets = 0
    total_reps = 0
    for exercise in exercises:
        for s in exercise.sets:
            total_sets += 1
            if s.reps:
                total_reps += s.reps
                if s.weight_kg:
                    total_volume += s.weight_kg * s.reps
    return round(total_volume, 1), total_sets, total_reps


def set_volume(weight_kg: float | None, reps: int | None) -> float | None:
    if not weight_kg or not reps:
        return None
    return round(weight_kg * reps, 1)


def parse_week_number(title: str | None) -> int | None:
    """'SBS Week 2' -> 2, 'W3' -> 3."""
    match = WEEK_PATTERN.search(title or "")
    return int(match.group(1)) if match else None


def parse_day_number(title: str | None) -> int | None:
    """'Day 3 - Bench' -> 3, 'D1' -> 1, '#4' -> 4."""
    match = DAY_PATTERN.search(title or "")
    return int(match.group(1)) if match else None


def first_match(title: str | None, rules: list[tuple[str, str]]) -> str | None:
    lowered = (title or "").lower()
    for needle, label in rules:
        if needle in lowered:
            return label
    return None


def detect_day_type(title: str | None) -> str | None:
    return first_match(title, DAY_TYPE_RULES)


def detect_exercise_role(index: int, title: str | None) -> str:
    """The first exercise of a routine is always the main lift."""
    if index == 0:
        return MAIN_LIFT
    if first_match(title, ACCESSORY_RULES):
        return ACCESSORY
    if index in (1, 2):
        return VARIATION
    return ACCESSORY


def detect_muscle_group(title: str | None) -> str | None:
    return first_match(title, MUSCLE_GROUP_RULES)


def folder_sort_order(week_number: int | None, index: int | None) -> int:
    return (week_number or 0) * 100 + (index or 0)


def routine_sort_order(week_number: int | None, day_number: int | None) -> int:
    return (week_number or 0) * 100 + (day_number or 0)


def global_sort_order(week_number: int | None, day_number: int | None,
                      exercise_order: int | None) -> int:
    return (week_number or 0) * 10000 + (day_number or 0) * 100 + (exercise_order or 0)

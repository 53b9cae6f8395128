"""Typed Hevy payloads, coerced once at the API boundary.

Every nullable remote attribute is an optional field. Missing identity
fields raise ValueError so a malformed item never reaches the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field


def _opt_float(value) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _opt_int(value) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _opt_str(value) -> str | None:
    """Empty strings are treated as absent."""
    if value is None:
        return None
    value = str(value)
    return value or None


def _require(data: dict, key: str, kind: str):
    value = data.get(key)
    if value is None or value == "":
        raise ValueError(f"{kind} payload missing '{key}'")
    return value


@dataclass
class HevySet:
    index: int
    set_type: str = "normal"
    weight_kg: float | None = None
    reps: int | None = None
    distance_meters: float | None = None
    duration_seconds: float | None = None
    rpe: float | None = None
    custom_metric: float | None = None

    @classmethod
    def from_api(cls, data: dict, position: int = 0) -> HevySet:
        index = data.get("index")
        return cls(
            index=int(index) if index is not None else position,
            set_type=data.get("type") or "normal",
            weight_kg=_opt_float(data.get("weight_kg")),
            reps=_opt_int(data.get("reps")),
            distance_meters=_opt_float(data.get("distance_meters")),
            duration_seconds=_opt_float(data.get("duration_seconds")),
            rpe=_opt_float(data.get("rpe")),
            custom_metric=_opt_float(data.get("custom_metric")),
        )


@dataclass
class HevyExercise:
    index: int
    title: str
    exercise_template_id: str
    notes: str | None = None
    superset_id: int | None = None
    sets: list[HevySet] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict, position: int = 0) -> HevyExercise:
        index = data.get("index")
        return cls(
            index=int(index) if index is not None else position,
            title=data.get("title") or "",
            exercise_template_id=str(data.get("exercise_template_id") or ""),
            notes=_opt_str(data.get("notes")),
            superset_id=_opt_int(data.get("superset_id")),
            sets=[HevySet.from_api(s, i) for i, s in enumerate(data.get("sets") or [])],
        )


@dataclass
class HevyWorkout:
    id: str
    title: str
    start_time: str
    end_time: str | None = None
    description: str | None = None
    exercises: list[HevyExercise] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> HevyWorkout:
        return cls(
            id=str(_require(data, "id", "workout")),
            title=data.get("title") or "",
            start_time=_require(data, "start_time", "workout"),
            end_time=_opt_str(data.get("end_time")),
            description=_opt_str(data.get("description")),
            exercises=[
                HevyExercise.from_api(e, i) for i, e in enumerate(data.get("exercises") or [])
            ],
        )


@dataclass
class HevyWorkoutEvent:
    """One entry from /workouts/events: either 'updated' or 'deleted'."""

    type: str
    workout: HevyWorkout | None = None
    id: str | None = None
    deleted_at: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> HevyWorkoutEvent:
        event_type = data.get("type")
        if event_type == "updated":
            return cls(type="updated", workout=HevyWorkout.from_api(data.get("workout") or {}))
        if event_type == "deleted":
            return cls(
                type="deleted",
                id=str(_require(data, "id", "deleted event")),
                deleted_at=_opt_str(data.get("deleted_at")),
            )
        raise ValueError(f"Unknown workout event type: {event_type!r}")


@dataclass
class HevyExerciseTemplate:
    id: str
    title: str
    exercise_type: str
    primary_muscle_group: str | None = None
    secondary_muscle_groups: list[str] = field(default_factory=list)
    is_custom: bool = False

    @classmethod
    def from_api(cls, data: dict) -> HevyExerciseTemplate:
        return cls(
            id=str(_require(data, "id", "exercise template")),
            title=data.get("title") or "",
            exercise_type=data.get("type") or "",
            primary_muscle_group=_opt_str(data.get("primary_muscle_group")),
            secondary_muscle_groups=list(data.get("secondary_muscle_groups") or []),
            is_custom=bool(data.get("is_custom")),
        )


@dataclass
class HevyRoutineFolder:
    id: int
    title: str
    index: int = 0
    updated_at: str | None = None
    created_at: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> HevyRoutineFolder:
        return cls(
            id=int(_require(data, "id", "routine folder")),
            title=data.get("title") or "",
            index=int(data.get("index") or 0),
            updated_at=_opt_str(data.get("updated_at")),
            created_at=_opt_str(data.get("created_at")),
        )


@dataclass
class HevyRoutineSet:
    index: int
    set_type: str = "normal"
    weight_kg: float | None = None
    reps: int | None = None
    distance_meters: float | None = None
    duration_seconds: float | None = None
    custom_metric: float | None = None

    @classmethod
    def from_api(cls, data: dict, position: int = 0) -> HevyRoutineSet:
        index = data.get("index")
        return cls(
            index=int(index) if index is not None else position,
            set_type=data.get("type") or "normal",
            weight_kg=_opt_float(data.get("weight_kg")),
            reps=_opt_int(data.get("reps")),
            distance_meters=_opt_float(data.get("distance_meters")),
            duration_seconds=_opt_float(data.get("duration_seconds")),
            custom_metric=_opt_float(data.get("custom_metric")),
        )


@dataclass
class HevyRoutineExercise:
    index: int
    title: str
    exercise_template_id: str
    notes: str | None = None
    superset_id: int | None = None
    rest_seconds: int | None = None
    sets: list[HevyRoutineSet] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict, position: int = 0) -> HevyRoutineExercise:
        index = data.get("index")
        return cls(
            index=int(index) if index is not None else position,
            title=data.get("title") or "",
            exercise_template_id=str(data.get("exercise_template_id") or ""),
            notes=_opt_str(data.get("notes")),
            superset_id=_opt_int(data.get("superset_id")),
            rest_seconds=_opt_int(data.get("rest_seconds")),
            sets=[
                HevyRoutineSet.from_api(s, i) for i, s in enumerate(data.get("sets") or [])
            ],
        )


@dataclass
class HevyRoutine:
    id: str
    title: str
    folder_id: int | None = None
    updated_at: str | None = None
    created_at: str | None = None
    exercises: list[HevyRoutineExercise] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> HevyRoutine:
        return cls(
            id=str(_require(data, "id", "routine")),
            title=data.get("title") or "",
            folder_id=_opt_int(data.get("folder_id")),
            updated_at=_opt_str(data.get("updated_at")),
            created_at=_opt_str(data.get("created_at")),
            exercises=[
                HevyRoutineExercise.from_api(e, i)
                for i, e in enumerate(data.get("exercises") or [])
            ],
        )


@dataclass
class SyncState:
    """The singleton cursor row."""

    last_synced_at: str | None = None
    last_event_timestamp: str | None = None
    last_error: str | None = None
    sync_in_progress: bool = False

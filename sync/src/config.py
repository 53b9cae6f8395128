"""Configuration loaded from environment variables."""

import os
from dataclasses import dataclass, fields
from pathlib import Path

from dotenv import load_dotenv

from errors import ConfigurationError

# Load .env from project root
load_dotenv(Path(__file__).resolve().parents[2] / ".env")

DATABASE_URL = os.environ.get("DATABASE_URL", "")
HEVY_API_KEY = os.environ.get("HEVY_API_KEY", "")
HEVY_BASE_URL = "https://api.hevyapp.com/v1"

# Notion
NOTION_TOKEN = os.environ.get("NOTION_TOKEN", "")
NOTION_VERSION = "2022-06-28"

# Shared secret for POST /sync and /full-sync (unset = open)
SYNC_WEBHOOK_SECRET = os.environ.get("SYNC_WEBHOOK_SECRET", "")

# Trigger interval for the periodic incremental sync
SYNC_INTERVAL_MINUTES = int(os.environ.get("SYNC_INTERVAL_MINUTES", "30"))

# Fixed pause between successive Hevy page fetches (seconds)
PAGE_DELAY_SECONDS = float(os.environ.get("PAGE_DELAY_SECONDS", "0.3"))


def get_hevy_api_key() -> str:
    """Get the Hevy API key or raise if it is not configured."""
    if not HEVY_API_KEY:
        raise ConfigurationError("HEVY_API_KEY not configured")
    return HEVY_API_KEY


def get_notion_token() -> str:
    """Get the Notion integration token or raise if it is not configured."""
    if not NOTION_TOKEN:
        raise ConfigurationError("NOTION_TOKEN not configured")
    return NOTION_TOKEN


@dataclass
class MirrorDatabases:
    """Notion database ids a mirror pass writes to.

    Workouts need ``workouts``, ``exercises`` and ``sets``; the routine pass
    needs ``programs``, ``routines`` and ``routine_exercises`` (routine sets
    are pushed only when ``routine_sets`` is set); progress needs
    ``exercise_progress``.
    """

    workouts: str | None = None
    exercises: str | None = None
    sets: str | None = None
    programs: str | None = None
    routines: str | None = None
    routine_exercises: str | None = None
    routine_sets: str | None = None
    exercise_progress: str | None = None

    @classmethod
    def from_env(cls) -> "MirrorDatabases":
        return cls(**{
            f.name: os.environ.get(f"NOTION_{f.name.upper()}_DB_ID") or None
            for f in fields(cls)
        })

    @classmethod
    def from_request(cls, body: dict) -> "MirrorDatabases":
        """Build from a camelCase JSON body, e.g. ``{"workoutsDbId": ...}``."""
        return cls(
            workouts=body.get("workoutsDbId"),
            exercises=body.get("exercisesDbId"),
            sets=body.get("setsDbId"),
            programs=body.get("programsDbId"),
            routines=body.get("routinesDbId"),
            routine_exercises=body.get("routineExercisesDbId"),
            routine_sets=body.get("routineSetsDbId"),
            exercise_progress=body.get("exerciseProgressDbId"),
        )

    def has_workouts(self) -> bool:
        return bool(self.workouts and self.exercises and self.sets)

    def has_routines(self) -> bool:
        return bool(self.programs and self.routines and self.routine_exercises)

    def require(self, *names: str):
        """Raise ConfigurationError if any of the named ids is missing."""
        missing = [n for n in names if not getattr(self, n)]
        if missing:
            raise ConfigurationError(
                f"Missing Notion database id(s): {', '.join(missing)}"
            )

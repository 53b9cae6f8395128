"""Per-exercise progression: personal records and a suggested next weight."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone

from db import get_exercise_history, get_sets_by_exercise, upsert_exercise_progress
from derived import round_half_up

logger = logging.getLogger(__name__)

# Brzycki is only defined below 37 reps
BRZYCKI_MAX_REPS = 37


def estimate_one_rep_max(weight_kg: float | None, reps: int | None) -> float | None:
    """Brzycki estimate: weight x 36 / (37 - reps)."""
    if not weight_kg or not reps or not 0 < reps < BRZYCKI_MAX_REPS:
        return None
    return weight_kg * 36 / (BRZYCKI_MAX_REPS - reps)


def round_to_half(value: float) -> float:
    return round_half_up(value * 2) / 2


def suggest_progression(last_weight: float | None, last_reps: int | None) -> tuple[float | None, str | None]:
    """Return (suggested_weight, note) from the last working set.

    10+ reps earns a 2.5% increase (rounded to 0.5 kg); 8-9 holds the
    weight; fewer keeps it with a note to consider backing off.
    """
    if not last_weight or not last_reps:
        return None, None
    if last_reps >= 10:
        return round_to_half(last_weight * 1.025), f"Hit {last_reps} reps - increase by 2.5%"
    if last_reps >= 8:
        return last_weight, f"Hit {last_reps} reps - maintain weight"
    return last_weight, f"Only {last_reps} reps - maintain or reduce"


def _round1(value: float) -> float:
    return round(value, 1)


def compute_exercise_progress(history: list[dict]) -> dict:
    """Aggregate one template's history into progress fields.

    history items are dicts with 'title', 'start_time' and 'sets' (set rows
    with weight_kg / reps / set_type). The most recent session (by workout
    start time; missing times sort last) sets the "last" fields.
    """
    ordered = sorted(history, key=lambda h: h.get("start_time") or "", reverse=True)

    max_weight = 0.0
    max_reps = 0
    max_volume = 0.0
    max_1rm = 0.0
    last_performed_at = None
    last_weight = None
    last_reps = None
    last_volume = 0.0

    for position, entry in enumerate(ordered):
        sets = entry.get("sets") or []
        session_volume = 0.0
        for s in sets:
            weight = s.get("weight_kg") or 0
            reps = s.get("reps") or 0
            session_volume += weight * reps
            max_weight = max(max_weight, weight)
            max_reps = max(max_reps, reps)
            one_rm = estimate_one_rep_max(weight, reps)
            if one_rm and one_rm > max_1rm:
                max_1rm = one_rm
        max_volume = max(max_volume, session_volume)

        if position == 0:
            last_performed_at = entry.get("start_time")
            working = [s for s in sets if s.get("set_type") != "warmup"]
            if working:
                last_weight = working[-1].get("weight_kg")
                last_reps = working[-1].get("reps")
            last_volume = session_volume

    suggested_weight, note = suggest_progression(last_weight, last_reps)
    return {
        "exercise_title": ordered[0].get("title", "") if ordered else "",
        "last_performed_at": last_performed_at,
        "last_weight_kg": last_weight,
        "last_reps": last_reps,
        "last_volume": _round1(last_volume),
        "max_weight_kg": max_weight or None,
        "max_reps": max_reps or None,
        "max_volume": _round1(max_volume) if max_volume else None,
        "max_1rm": _round1(max_1rm) if max_1rm else None,
        "suggested_weight_kg": suggested_weight,
        "suggested_reps": last_reps if suggested_weight is not None else None,
        "progression_note": note,
        "times_performed": len(ordered),
    }


def recompute_all(conn) -> int:
    """Rebuild one exercise_progress row per template. Returns templates processed."""
    exercises = get_exercise_history(conn)
    sets_by_exercise = get_sets_by_exercise(conn, [e["id"] for e in exercises])

    by_template: dict[str, list[dict]] = defaultdict(list)
    for exercise in exercises:
        by_template[exercise["exercise_template_id"]].append({
            "title": exercise["title"],
            "start_time": exercise.get("start_time"),
            "sets": sets_by_exercise.get(exercise["id"], []),
        })

    updated_at = datetime.now(timezone.utc).isoformat()
    for template_id, history in by_template.items():
        fields = compute_exercise_progress(history)
        upsert_exercise_progress(conn, template_id, {**fields, "updated_at": updated_at})

    logger.info("Recomputed progress for %d exercise templates", len(by_template))
    return len(by_template)

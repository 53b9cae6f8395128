"""Periodic trigger: run the incremental pipeline every N minutes."""

import logging
import time

from config import SYNC_INTERVAL_MINUTES, MirrorDatabases
from pipeline import run_pipeline

logger = logging.getLogger(__name__)


def run_forever(interval_minutes: int = SYNC_INTERVAL_MINUTES, max_runs: int = None):
    """Run the pipeline, sleep, repeat. A failed run is logged and the loop goes on.

    Runs are sequential, so two passes never overlap within one process.
    """
    runs = 0
    while True:
        try:
            result = run_pipeline(MirrorDatabases.from_env())
            logger.info("Scheduled sync done: %s", result)
        except Exception as e:
            logger.error("Scheduled sync failed: %s", e)
        runs += 1
        if max_runs is not None and runs >= max_runs:
            return
        time.sleep(interval_minutes * 60)

"""Hevy API v1 client.

Status codes are never retried here: a 429 surfaces as HevyRateLimitError
and aborts the caller's pass. Callers pace themselves with a fixed delay
between pages instead of reacting to rate limits.
"""

import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import HEVY_API_KEY, HEVY_BASE_URL
from errors import HevyAPIError, HevyRateLimitError

logger = logging.getLogger(__name__)

# Collection endpoint -> key of the items array in each page
COLLECTIONS = {
    "workouts": "workouts",
    "exercise_templates": "exercise_templates",
    "routine_folders": "routine_folders",
    "routines": "routines",
}


class HevyClient:
    """HTTP client for the Hevy API v1."""

    def __init__(self, api_key: str = None, base_url: str = None):
        self.base_url = (base_url or HEVY_BASE_URL).rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({
            "api-key": api_key or HEVY_API_KEY,
            "Accept": "application/json",
        })
        # Retry dropped connections only; HTTP statuses go straight to the caller
        retry = Retry(
            total=3,
            connect=3,
            read=0,
            status=0,
            backoff_factor=1,
            status_forcelist=[],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        self.session.mount("https://", HTTPAdapter(max_retries=retry))

    def _get(self, path: str, params: dict = None) -> dict:
        """Make a GET request, mapping non-2xx to typed failures."""
        url = f"{self.base_url}{path}"
        resp = self.session.get(url, params=params, timeout=30)
        if resp.status_code == 429:
            raise HevyRateLimitError()
        if not 200 <= resp.status_code < 300:
            raise HevyAPIError(resp.status_code)
        return resp.json()

    def fetch_collection(self, kind: str, page: int = 1, page_size: int = 10) -> dict:
        """Get one page of a collection (workouts, routines, ...)."""
        if kind not in COLLECTIONS:
            raise ValueError(f"Unknown Hevy collection: {kind}")
        logger.debug("Fetching %s page %d (size %d)", kind, page, page_size)
        return self._get(f"/{kind}", {"page": page, "pageSize": page_size})

    def fetch_events(self, since: str, page: int = 1, page_size: int = 10) -> dict:
        """Get workout events since a timestamp (ISO 8601) for incremental sync."""
        return self._get(
            "/workouts/events",
            {"since": since, "page": page, "pageSize": page_size},
        )

    def get_workout_count(self) -> int:
        """Get total number of workouts."""
        data = self._get("/workouts/count")
        return data["workout_count"]

    def get_workouts(self, page: int = 1, page_size: int = 10) -> dict:
        return self.fetch_collection("workouts", page, page_size)

    def get_exercise_templates(self, page: int = 1, page_size: int = 100) -> dict:
        return self.fetch_collection("exercise_templates", page, page_size)

    def get_routines(self, page: int = 1, page_size: int = 10) -> dict:
        return self.fetch_collection("routines", page, page_size)

    def get_routine_folders(self, page: int = 1, page_size: int = 10) -> dict:
        """Get a page of routine folders (Hevy caps pageSize at 10 here)."""
        return self.fetch_collection("routine_folders", page, page_size)

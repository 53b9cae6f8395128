"""Error types shared by the Hevy sync and the Notion mirror."""


class SyncError(Exception):
    """Base class for sync failures."""


class ConfigurationError(SyncError):
    """A required credential or setting is missing."""


class HevyAPIError(SyncError):
    """Non-2xx response from the Hevy API."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(message or f"Hevy API error: {status_code}")


class HevyRateLimitError(HevyAPIError):
    """HTTP 429 from the Hevy API. Aborts the current pass; never retried."""

    def __init__(self, message: str = "Rate limited by Hevy API"):
        super().__init__(429, message)


class MirrorAPIError(SyncError):
    """Failure returned by the Notion API."""

    def __init__(self, status_code: int | None, message: str = ""):
        self.status_code = status_code
        super().__init__(message or f"Notion API error: {status_code}")


class MirrorRateLimitError(MirrorAPIError):
    """HTTP 429 from the Notion API."""

    def __init__(self, message: str = "Rate limited by Notion API"):
        super().__init__(429, message)

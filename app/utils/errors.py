"""
Error taxonomy for the analytics engine

Each error carries the HTTP status it maps to when it escapes a route.
"""
from typing import Optional


class AnalyticsEngineError(Exception):
    """Base class for engine errors"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(AnalyticsEngineError):
    """Missing or invalid caller identity"""

    status_code = 401


class ValidationError(AnalyticsEngineError):
    """Missing or malformed request identifier"""

    status_code = 400


class AdapterFetchError(AnalyticsEngineError):
    """One platform's remote call failed"""

    status_code = 502

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{platform}: {message}")
        self.platform = platform
        self.upstream_status = status_code


class StorageError(AnalyticsEngineError):
    """Snapshot or health record persistence failed"""

    status_code = 500


class PollTimeoutError(AnalyticsEngineError):
    """A health check exceeded its time budget"""

    status_code = 504

    def __init__(self, service_name: str, timeout_seconds: float):
        super().__init__(f"{service_name} did not answer within {timeout_seconds:.1f}s")
        self.service_name = service_name
        self.timeout_seconds = timeout_seconds


class NoUsableDataError(AnalyticsEngineError):
    """Every platform fetch failed and no snapshot was ever stored"""

    status_code = 502

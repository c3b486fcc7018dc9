"""Error taxonomy shared by provider clients and the orchestrator."""

from typing import Optional


class DashboardError(Exception):
    """Base class for all dashboard errors."""

    kind = "error"


class TransportError(DashboardError):
    """Raised on network failures, timeouts and non-2xx responses."""

    kind = "transport"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderRejection(DashboardError):
    """Raised when a provider answers but the payload is semantically a failure.

    Examples are "city not found" from the weather API or an empty index list
    from the air quality API.
    """

    kind = "rejected"


class SafetyBlocked(DashboardError):
    """Raised when generated content was withheld by safety filters."""

    kind = "safety_blocked"


class FormatError(DashboardError):
    """Raised when a response body has no recognized shape."""

    kind = "format"


class ConfigMissing(DashboardError):
    """Raised when a required API key is not configured."""

    kind = "config_missing"

    def __init__(self, missing: list):
        self.missing = list(missing)
        super().__init__(
            f"Missing API configuration: {', '.join(self.missing)}. "
            "Set the keys in the environment or a .env file to enable the dashboard."
        )


class CandidatesExhausted(DashboardError):
    """Raised when every candidate of a first-success loop failed."""

    kind = "exhausted"

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"All {attempts} candidates failed{detail}")

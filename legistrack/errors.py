"""
Exception hierarchy for LegisTrack.

Upstream faults are classified by status so callers can tell an unactivated
API key from a rate limit or an outage without parsing messages.
"""
from typing import Optional


class LegisTrackError(Exception):
    """Base class for all LegisTrack errors."""


class ConfigurationError(LegisTrackError):
    """Required configuration (usually an API key) is missing."""


class InvalidBillIdError(LegisTrackError, ValueError):
    """A bill id is not of the form {congress}-{type}-{number}."""

    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(
            f"Invalid bill ID format: {bill_id!r}. Expected congress-type-number, e.g. 118-HR-1"
        )


# ============================================================================
# Congress.gov API errors
# ============================================================================

class CongressApiError(LegisTrackError):
    """The External Bill Source failed to answer a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class InvalidCredentialError(CongressApiError):
    """401 - the API key was rejected."""


class KeyNotActivatedError(CongressApiError):
    """403 - the API key exists but has not been activated yet."""


class RateLimitedError(CongressApiError):
    """429 - too many requests."""


class UpstreamUnavailableError(CongressApiError):
    """5xx - the service is down or erroring."""


class UpstreamTimeoutError(CongressApiError):
    """The request exceeded the client deadline."""


class UpstreamUnreachableError(CongressApiError):
    """The service could not be reached at all (DNS, connection refused, ...)."""


class MalformedResponseError(CongressApiError):
    """The response body was not the JSON object we expected."""


# ============================================================================
# Local errors
# ============================================================================

class StoreWriteError(LegisTrackError):
    """A write to the Persistence Store failed."""


class FullTextUnavailableError(LegisTrackError):
    """No full-text version could be located for a bill."""


class TaggingError(LegisTrackError):
    """A tag strategy failed or produced unusable output."""

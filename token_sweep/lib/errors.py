"""
Error taxonomy for token discovery and transfer building.

Discovery failures are usually degraded to cached or empty data by the
caller; builder failures always propagate.
"""

from typing import Optional


class SweepError(Exception):
    """Base exception for all token-sweep errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(SweepError):
    """Raised when required configuration (e.g. API keys) is missing or invalid."""

    pass


class UnsupportedChainError(SweepError):
    """Raised when a chain id has no provider mapping."""

    pass


class NetworkError(SweepError):
    """Raised on connection failures and timeouts."""

    pass


class UpstreamError(SweepError):
    """Raised for non-2xx responses that are not credential-scoped."""

    pass


class AuthExhaustedError(UpstreamError):
    """Raised when every configured credential was rejected or rate limited."""

    pass


class MalformedResponseError(UpstreamError):
    """Raised when an upstream body cannot be interpreted."""

    pass


class ValidationError(SweepError):
    """Raised for malformed destination addresses and self-transfers."""

    pass


class NoValidTransfersError(SweepError):
    """Raised when a transfer batch would be empty."""

    pass


_USER_MESSAGES = [
    (ConfigurationError, "API keys are not configured. Set MORALIS_API_KEYS or MORALIS_API_KEY."),
    (UnsupportedChainError, "This chain is not supported."),
    (NetworkError, "Network connection failed. Please check your connection and try again."),
    (AuthExhaustedError, "All API keys were rejected or rate limited. Please try again later."),
    (MalformedResponseError, "The token provider returned an unexpected response."),
    (UpstreamError, "The token provider request failed."),
    (ValidationError, "The destination address is invalid."),
    (NoValidTransfersError, "No valid transfers to execute."),
]


def describe_error(error: BaseException) -> str:
    """
    Map an exception to a fixed user-facing message.

    Raw upstream text is kept out of user messages; it belongs in logs only.
    """
    for error_type, message in _USER_MESSAGES:
        if isinstance(error, error_type):
            return message
    return "Something went wrong. Please try again."

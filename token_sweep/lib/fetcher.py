"""
HTTP JSON fetcher with API key rotation and retry logic.

Credentials are tried in order. Auth and rate-limit failures move on to the
next key, server errors are retried on the same key with linear backoff, and
any other non-2xx status stops immediately.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

import requests

from .errors import (
    AuthExhaustedError,
    ConfigurationError,
    MalformedResponseError,
    NetworkError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

# Status codes that condemn the current credential rather than the request
CREDENTIAL_SCOPED_STATUSES = frozenset({401, 403, 429})

DEFAULT_MAX_RETRIES_PER_CREDENTIAL = 1
DEFAULT_BACKOFF_STEP = 0.15  # seconds, multiplied by attempt number
DEFAULT_KEY_SWITCH_DELAY = 0.1  # seconds
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_HEADER_NAME = "X-API-Key"


class KeyRotatingFetcher:
    """
    Stateless JSON fetcher that rotates through an ordered list of API keys.

    The only state held is the underlying requests.Session, so a single
    instance can be shared by concurrent callers.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        max_retries_per_credential: int = DEFAULT_MAX_RETRIES_PER_CREDENTIAL,
        backoff_step: float = DEFAULT_BACKOFF_STEP,
        key_switch_delay: float = DEFAULT_KEY_SWITCH_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        header_name: str = DEFAULT_HEADER_NAME,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            session: Optional requests.Session to reuse
            max_retries_per_credential: Retries of a 5xx response on the same key
            backoff_step: Linear backoff step in seconds
            key_switch_delay: Pause before moving on to the next key
            timeout: Per-request timeout in seconds
            header_name: Header carrying the credential
            sleep: Sleep function (injectable for tests)
        """
        self.session = session or requests.Session()
        self.max_retries_per_credential = max_retries_per_credential
        self.backoff_step = backoff_step
        self.key_switch_delay = key_switch_delay
        self.timeout = timeout
        self.header_name = header_name
        self._sleep = sleep

    @staticmethod
    def _sanitize_error_message(message: str, credentials: Sequence[str]) -> str:
        """Remove API keys from error messages to prevent credential leakage."""
        for credential in credentials:
            if credential:
                message = message.replace(credential, "[REDACTED]")
        return message

    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            self._sleep(seconds)

    def fetch_json(
        self,
        url: str,
        credentials: Sequence[str],
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Fetch a JSON document, rotating credentials as needed.

        Args:
            url: Absolute request URL
            credentials: Ordered API keys
            params: Query parameters
            method: HTTP method
            headers: Extra headers (the credential header is always overwritten)

        Returns:
            The decoded JSON body of the first 2xx response

        Raises:
            ConfigurationError: If no credentials are configured
            UpstreamError: For a terminal (non-auth, non-5xx) status
            MalformedResponseError: If a 2xx body is not valid JSON
            AuthExhaustedError: If every credential was rejected or kept failing
            NetworkError: If every credential failed with network errors
        """
        if not credentials:
            raise ConfigurationError("No API keys configured")

        network_failures = 0
        last_status: Optional[int] = None

        for index, credential in enumerate(credentials):
            request_headers = {"accept": "application/json"}
            request_headers.update(headers or {})
            request_headers[self.header_name] = credential

            for attempt in range(self.max_retries_per_credential + 1):
                try:
                    response = self.session.request(
                        method,
                        url,
                        params=params,
                        headers=request_headers,
                        timeout=self.timeout,
                    )
                except requests.RequestException as e:
                    # Timeouts and dropped connections condemn this key only
                    network_failures += 1
                    logger.warning(
                        "Request with API key #%d failed: %s",
                        index + 1,
                        self._sanitize_error_message(str(e), credentials),
                    )
                    break

                status = response.status_code
                if 200 <= status < 300:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise MalformedResponseError(
                            "Failed to parse JSON response", status_code=status
                        ) from e

                last_status = status

                if status in CREDENTIAL_SCOPED_STATUSES:
                    logger.warning("API key #%d rejected with %d, rotating", index + 1, status)
                    break

                if 500 <= status < 600:
                    if attempt < self.max_retries_per_credential:
                        self._pause(self.backoff_step * (attempt + 1))
                        continue
                    logger.warning(
                        "API key #%d still failing with %d after %d retries",
                        index + 1,
                        status,
                        self.max_retries_per_credential,
                    )
                    break

                logger.error("Upstream request failed with status %d", status)
                raise UpstreamError(
                    f"Upstream request failed: {status} {response.reason or ''}".strip(),
                    status_code=status,
                )

            if index < len(credentials) - 1:
                self._pause(self.key_switch_delay)

        if network_failures == len(credentials):
            raise NetworkError("Network connection failed for every API key")

        raise AuthExhaustedError(
            "All API keys exhausted or rate-limited",
            status_code=last_status,
        )

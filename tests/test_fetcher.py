"""
Unit tests for the key-rotating fetcher.

Tests follow the Given/When/Then pattern for clarity.
"""

import pytest
import requests
import responses
from responses import matchers

from token_sweep.lib.errors import (
    AuthExhaustedError,
    ConfigurationError,
    MalformedResponseError,
    NetworkError,
    UpstreamError,
)
from token_sweep.lib.fetcher import KeyRotatingFetcher

URL = "https://moralis.test/api/v2.2/wallets/0xabc/tokens"


def key_matcher(key):
    return [matchers.header_matcher({"X-API-Key": key})]


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fetcher(sleeps):
    return KeyRotatingFetcher(sleep=sleeps.append)


class TestSuccessfulFetch:
    """Tests for the happy path."""

    @responses.activate
    def test_returns_decoded_json_with_first_key(self, fetcher, mock_api_keys):
        """
        Given a provider that accepts the first key
        When fetching JSON
        Then the body should be decoded and the second key never used
        """
        # Given
        responses.add(
            responses.GET,
            URL,
            json={"result": []},
            status=200,
            match=key_matcher("test-key-primary"),
        )

        # When
        data = fetcher.fetch_json(URL, mock_api_keys, params={"chain": "base"})

        # Then
        assert data == {"result": []}
        assert len(responses.calls) == 1
        assert responses.calls[0].request.params == {"chain": "base"}

    @responses.activate
    def test_non_json_body_raises_malformed_response(self, fetcher, mock_api_keys):
        """
        Given a 200 response with a non-JSON body
        When fetching JSON
        Then MalformedResponseError should be raised
        """
        # Given
        responses.add(responses.GET, URL, body="<html>oops</html>", status=200)

        # When / Then
        with pytest.raises(MalformedResponseError):
            fetcher.fetch_json(URL, mock_api_keys)

    def test_no_credentials_raises_configuration_error(self, fetcher):
        """
        Given an empty credential list
        When fetching JSON
        Then ConfigurationError should be raised without any request
        """
        # When / Then
        with pytest.raises(ConfigurationError):
            fetcher.fetch_json(URL, [])


class TestKeyRotation:
    """Tests for credential-scoped failures."""

    @pytest.mark.parametrize("status", [401, 403, 429])
    @responses.activate
    def test_rotates_to_next_key_on_credential_failure(self, fetcher, mock_api_keys, sleeps, status):
        """
        Given a first key rejected with an auth or rate-limit status
        When fetching JSON
        Then the next key should be tried after a short pause
        """
        # Given
        responses.add(responses.GET, URL, status=status, match=key_matcher("test-key-primary"))
        responses.add(
            responses.GET, URL, json={"ok": True}, status=200, match=key_matcher("test-key-backup")
        )

        # When
        data = fetcher.fetch_json(URL, mock_api_keys)

        # Then
        assert data == {"ok": True}
        assert len(responses.calls) == 2
        assert sleeps == [0.1]

    @responses.activate
    def test_raises_auth_exhausted_when_every_key_rejected(self, fetcher, mock_api_keys):
        """
        Given every key rate limited
        When fetching JSON
        Then AuthExhaustedError should carry the last status
        """
        # Given
        responses.add(responses.GET, URL, status=429)

        # When / Then
        with pytest.raises(AuthExhaustedError) as exc_info:
            fetcher.fetch_json(URL, mock_api_keys)
        assert exc_info.value.status_code == 429
        assert len(responses.calls) == 2


class TestServerErrorRetry:
    """Tests for 5xx retry with linear backoff."""

    @responses.activate
    def test_retries_same_key_once_then_succeeds(self, fetcher, mock_api_keys, sleeps):
        """
        Given a first attempt that fails with 503
        When fetching JSON
        Then the same key should be retried after a 0.15s backoff
        """
        # Given
        responses.add(responses.GET, URL, status=503, match=key_matcher("test-key-primary"))
        responses.add(
            responses.GET, URL, json={"ok": True}, status=200, match=key_matcher("test-key-primary")
        )

        # When
        data = fetcher.fetch_json(URL, mock_api_keys)

        # Then
        assert data == {"ok": True}
        assert len(responses.calls) == 2
        assert sleeps == [pytest.approx(0.15)]

    @responses.activate
    def test_exhausts_retries_then_rotates(self, mock_api_keys, sleeps):
        """
        Given a persistently failing first key and a working second key
        When fetching JSON with two retries per key
        Then backoff should grow linearly before rotating
        """
        # Given
        fetcher = KeyRotatingFetcher(max_retries_per_credential=2, sleep=sleeps.append)
        responses.add(responses.GET, URL, status=500, match=key_matcher("test-key-primary"))
        responses.add(
            responses.GET, URL, json={"ok": True}, status=200, match=key_matcher("test-key-backup")
        )

        # When
        data = fetcher.fetch_json(URL, mock_api_keys)

        # Then
        assert data == {"ok": True}
        assert len(responses.calls) == 4
        assert sleeps == [pytest.approx(0.15), pytest.approx(0.30), 0.1]

    @responses.activate
    def test_all_keys_failing_with_5xx_raises_auth_exhausted(self, fetcher, mock_api_keys):
        """
        Given every key failing with 502
        When fetching JSON
        Then AuthExhaustedError should be raised with the last status
        """
        # Given
        responses.add(responses.GET, URL, status=502)

        # When / Then
        with pytest.raises(AuthExhaustedError) as exc_info:
            fetcher.fetch_json(URL, mock_api_keys)
        assert exc_info.value.status_code == 502
        assert len(responses.calls) == 4


class TestTerminalFailures:
    """Tests for failures that stop immediately."""

    @pytest.mark.parametrize("status", [400, 404])
    @responses.activate
    def test_other_status_raises_upstream_error_without_rotation(self, fetcher, mock_api_keys, status):
        """
        Given a non-auth, non-5xx error status
        When fetching JSON
        Then UpstreamError should be raised without trying other keys
        """
        # Given
        responses.add(responses.GET, URL, status=status)

        # When / Then
        with pytest.raises(UpstreamError) as exc_info:
            fetcher.fetch_json(URL, mock_api_keys)
        assert exc_info.value.status_code == status
        assert not isinstance(exc_info.value, AuthExhaustedError)
        assert len(responses.calls) == 1


class TestNetworkFailures:
    """Tests for timeouts and connection errors."""

    @responses.activate
    def test_timeout_rotates_to_next_key(self, fetcher, mock_api_keys):
        """
        Given a first key whose request times out
        When fetching JSON
        Then the next key should be tried
        """
        # Given
        responses.add(
            responses.GET,
            URL,
            body=requests.Timeout("read timed out"),
            match=key_matcher("test-key-primary"),
        )
        responses.add(
            responses.GET, URL, json={"ok": True}, status=200, match=key_matcher("test-key-backup")
        )

        # When
        data = fetcher.fetch_json(URL, mock_api_keys)

        # Then
        assert data == {"ok": True}

    @responses.activate
    def test_all_network_failures_raise_network_error(self, fetcher, mock_api_keys):
        """
        Given every key failing with a connection error
        When fetching JSON
        Then NetworkError should be raised
        """
        # Given
        responses.add(responses.GET, URL, body=requests.ConnectionError("connection refused"))

        # When / Then
        with pytest.raises(NetworkError):
            fetcher.fetch_json(URL, mock_api_keys)

    @responses.activate
    def test_mixed_failures_raise_auth_exhausted(self, fetcher, mock_api_keys):
        """
        Given one key timing out and the other rate limited
        When fetching JSON
        Then AuthExhaustedError should be raised
        """
        # Given
        responses.add(
            responses.GET,
            URL,
            body=requests.Timeout("read timed out"),
            match=key_matcher("test-key-primary"),
        )
        responses.add(responses.GET, URL, status=429, match=key_matcher("test-key-backup"))

        # When / Then
        with pytest.raises(AuthExhaustedError):
            fetcher.fetch_json(URL, mock_api_keys)


class TestSanitizeErrorMessage:
    """Tests for credential redaction."""

    def test_redacts_every_credential(self):
        """
        Given an error message containing API keys
        When sanitizing it
        Then each key should be replaced
        """
        # Given
        message = "failed for https://x.test/?key=secret-1 and secret-2"

        # When
        sanitized = KeyRotatingFetcher._sanitize_error_message(message, ["secret-1", "secret-2"])

        # Then
        assert "secret-1" not in sanitized
        assert "secret-2" not in sanitized
        assert sanitized.count("[REDACTED]") == 2

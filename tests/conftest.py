"""
Pytest configuration and shared fixtures for token-sweep tests.
"""

import pytest

from token_sweep.lib.models import Token


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sample_wallet_address():
    """Sample Ethereum wallet address for testing."""
    return "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"  # vitalik.eth


@pytest.fixture
def destination_address():
    """Lowercase destination address distinct from the sample wallet."""
    return "0x742d35cc6634c0532925a3b844bc454e4438f44e"


@pytest.fixture
def mock_api_keys():
    """Mock Moralis API keys in priority order."""
    return ["test-key-primary", "test-key-backup"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_token():
    """Factory for ERC-20 tokens with sensible defaults."""

    def _make(
        address="0x1111111111111111111111111111111111111111",
        symbol="TKN",
        balance=10**18,
        decimals=18,
        usd_value=None,
        usd_price=None,
        **kwargs,
    ):
        return Token(
            contract_address=address,
            name=kwargs.pop("name", f"{symbol} Token"),
            symbol=symbol,
            decimals=decimals,
            balance=balance,
            usd_price=usd_price,
            usd_value=usd_value,
            supports_erc=kwargs.pop("supports_erc", ("erc20",)),
            **kwargs,
        )

    return _make

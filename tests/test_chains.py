"""
Unit tests for the chain registry.

Tests follow the Given/When/Then pattern for clarity.
"""

import pytest

from token_sweep.lib.chains import (
    CHAINS,
    explorer_tx_url,
    get_chain,
    provider_chain_name,
    resolve_chain,
)
from token_sweep.lib.errors import UnsupportedChainError


class TestProviderChainName:
    """Tests for chain id to provider name mapping."""

    @pytest.mark.parametrize(
        "chain_id,expected",
        [
            (1, "eth"),
            (10, "optimism"),
            (56, "bsc"),
            (137, "polygon"),
            (143, "monad"),
            (8453, "base"),
            (42161, "arbitrum"),
        ],
    )
    def test_maps_supported_chains(self, chain_id, expected):
        """
        Given a supported chain id
        When looking up its provider name
        Then the provider's chain identifier should be returned
        """
        # Then
        assert provider_chain_name(chain_id) == expected

    def test_unsupported_chain_raises(self):
        """
        Given a chain id with no provider mapping
        When looking it up
        Then UnsupportedChainError should be raised
        """
        # When / Then
        with pytest.raises(UnsupportedChainError, match="Unsupported chain: 5"):
            get_chain(5)


class TestResolveChain:
    """Tests for resolving command line chain arguments."""

    @pytest.mark.parametrize(
        "value,expected_id",
        [
            (8453, 8453),
            ("8453", 8453),
            ("base", 8453),
            ("Base-Mainnet", 8453),
            ("eth", 1),
            ("ethereum", 1),
            ("BNB Chain", 56),
            ("matic", 137),
        ],
    )
    def test_resolves_ids_names_and_aliases(self, value, expected_id):
        """
        Given a chain id, provider name, display name or alias
        When resolving it
        Then the matching chain configuration should be returned
        """
        # When
        chain = resolve_chain(value)

        # Then
        assert chain.chain_id == expected_id

    def test_rejects_unknown_name(self):
        """
        Given an unknown chain name
        When resolving it
        Then UnsupportedChainError should be raised
        """
        # When / Then
        with pytest.raises(UnsupportedChainError, match="solana"):
            resolve_chain("solana")


class TestChainConfig:
    """Tests for registry contents."""

    def test_monad_has_no_native_reserve(self):
        """
        Given the Monad chain
        When reading its configuration
        Then no native reserve should be configured
        """
        # Then
        assert CHAINS[143].native_reserve is None

    def test_every_other_chain_has_reserve_and_wrapped_native(self):
        """
        Given the chains other than Monad
        When reading their configuration
        Then each should define a native reserve and wrapped native token
        """
        # Then
        for chain_id, chain in CHAINS.items():
            if chain_id == 143:
                continue
            assert chain.native_reserve is not None
            assert chain.wrapped_native

    def test_explorer_tx_url(self):
        """
        Given a transaction hash on Base
        When building the explorer link
        Then it should point to basescan
        """
        # When
        url = explorer_tx_url(8453, "0xabc")

        # Then
        assert url == "https://basescan.org/tx/0xabc"

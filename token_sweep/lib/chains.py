"""
Supported chain registry.

Maps numeric chain ids to the provider's chain names, native asset details,
wrapped native token addresses (for pricing) and default gas reserves.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Union

from .errors import UnsupportedChainError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Some providers report the native asset under this pseudo-address
NATIVE_SENTINEL_ADDRESS = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"


@dataclass(frozen=True)
class ChainConfig:
    """Static configuration for one supported chain."""

    chain_id: int
    name: str
    provider_name: str
    native_symbol: str
    native_name: str
    native_logo: str
    wrapped_native: Optional[str]
    explorer_url: str
    native_reserve: Optional[str] = None  # Ether-denominated, None disables native sweeps
    native_decimals: int = 18


CHAINS: Dict[int, ChainConfig] = {
    1: ChainConfig(
        chain_id=1,
        name="Ethereum",
        provider_name="eth",
        native_symbol="ETH",
        native_name="Ethereum",
        native_logo="/ethereum-logo.svg",
        wrapped_native="0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",
        explorer_url="https://etherscan.io",
        native_reserve="0.002248",
    ),
    10: ChainConfig(
        chain_id=10,
        name="Optimism",
        provider_name="optimism",
        native_symbol="ETH",
        native_name="Ethereum",
        native_logo="/ethereum-logo.svg",
        wrapped_native="0x4200000000000000000000000000000000000006",
        explorer_url="https://optimistic.etherscan.io",
        native_reserve="0.0001124",
    ),
    56: ChainConfig(
        chain_id=56,
        name="BNB Chain",
        provider_name="bsc",
        native_symbol="BNB",
        native_name="BNB",
        native_logo="https://raw.githubusercontent.com/trustwallet/assets/master/blockchains/binance/info/logo.png",
        wrapped_native="0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c",
        explorer_url="https://bscscan.com",
        native_reserve="0.0001724",
    ),
    137: ChainConfig(
        chain_id=137,
        name="Polygon",
        provider_name="polygon",
        native_symbol="POL",
        native_name="Polygon",
        native_logo="https://raw.githubusercontent.com/trustwallet/assets/master/blockchains/polygon/info/logo.png",
        wrapped_native="0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270",
        explorer_url="https://polygonscan.com",
        native_reserve="0.04496",
    ),
    143: ChainConfig(
        chain_id=143,
        name="Monad",
        provider_name="monad",
        native_symbol="MON",
        native_name="Monad",
        native_logo="/monad-logo.svg",
        wrapped_native="0x3bd359C1119dA7Da1D913D1C4D2B7c461115433A",
        explorer_url="https://monadexplorer.com",
    ),
    8453: ChainConfig(
        chain_id=8453,
        name="Base",
        provider_name="base",
        native_symbol="ETH",
        native_name="Ethereum",
        native_logo="/ethereum-logo.svg",
        wrapped_native="0x4200000000000000000000000000000000000006",
        explorer_url="https://basescan.org",
        native_reserve="0.0001124",
    ),
    42161: ChainConfig(
        chain_id=42161,
        name="Arbitrum",
        provider_name="arbitrum",
        native_symbol="ETH",
        native_name="Ethereum",
        native_logo="/ethereum-logo.svg",
        wrapped_native="0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
        explorer_url="https://arbiscan.io",
        native_reserve="0.0001124",
    ),
}

# Alternative names accepted on the command line
CHAIN_ALIASES = {
    "ethereum": 1,
    "mainnet": 1,
    "base-mainnet": 8453,
    "optimism-mainnet": 10,
    "bnb": 56,
    "binance": 56,
    "matic": 137,
}


def get_chain(chain_id: int) -> ChainConfig:
    """
    Look up a supported chain.

    Raises:
        UnsupportedChainError: If the chain id is not supported
    """
    chain = CHAINS.get(chain_id)
    if chain is None:
        raise UnsupportedChainError(f"Unsupported chain: {chain_id}")
    return chain


def resolve_chain(value: Union[int, str]) -> ChainConfig:
    """
    Resolve a chain id, provider name or alias to its configuration.

    Examples:
        resolve_chain(8453) -> Base
        resolve_chain("8453") -> Base
        resolve_chain("eth") -> Ethereum
        resolve_chain("Base-Mainnet") -> Base
    """
    if isinstance(value, int):
        return get_chain(value)

    text = value.strip().lower()
    if text.isdigit():
        return get_chain(int(text))

    if text in CHAIN_ALIASES:
        return get_chain(CHAIN_ALIASES[text])

    for chain in CHAINS.values():
        if text in (chain.provider_name, chain.name.lower()):
            return chain

    raise UnsupportedChainError(f"Unsupported chain: {value}")


def provider_chain_name(chain_id: int) -> str:
    """Return the provider's chain identifier for a chain id."""
    return get_chain(chain_id).provider_name


def explorer_tx_url(chain_id: int, tx_hash: str) -> str:
    """Build a block explorer link for a transaction hash."""
    return f"{get_chain(chain_id).explorer_url}/tx/{tx_hash}"

"""
Environment-driven configuration.

All tunables (API keys, endpoints, TTLs, dust floor, native gas reserves)
are read here so the pipeline and builder receive plain values.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from web3 import Web3

from .chains import CHAINS
from .errors import ConfigurationError

DEFAULT_MORALIS_BASE_URL = "https://deep-index.moralis.io/api/v2.2"
DEFAULT_MIN_VALUE_USD = 0.01
DEFAULT_BALANCE_TTL = 60 * 60  # seconds
DEFAULT_VERIFIED_TTL = 2 * 60  # seconds
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "token-sweep"


def load_api_keys(environ: Mapping[str, str]) -> List[str]:
    """
    Collect provider API keys in priority order.

    Priority:
        1. MORALIS_API_KEYS (comma-separated)
        2. MORALIS_PRIMARY_API_KEY or MORALIS_API_KEY
        3. MORALIS_FALLBACK_API_KEY or MORALIS_API_KEY_BACKUP

    Duplicates are dropped, keeping the first occurrence.
    """
    keys = [k.strip() for k in environ.get("MORALIS_API_KEYS", "").split(",") if k.strip()]

    primary = environ.get("MORALIS_PRIMARY_API_KEY") or environ.get("MORALIS_API_KEY")
    backup = environ.get("MORALIS_FALLBACK_API_KEY") or environ.get("MORALIS_API_KEY_BACKUP")
    for key in (primary, backup):
        if key and key.strip():
            keys.append(key.strip())

    return list(dict.fromkeys(keys))


def ether_to_wei(amount: str) -> int:
    """Convert an ether-denominated decimal string to wei."""
    try:
        value = Decimal(amount.strip())
    except (InvalidOperation, AttributeError) as e:
        raise ConfigurationError(f"Invalid native reserve amount: {amount!r}") from e
    if value < 0:
        raise ConfigurationError(f"Native reserve must not be negative: {amount!r}")
    return int(Web3.to_wei(value, "ether"))


def default_native_reserves() -> Dict[int, int]:
    """Per-chain native reserves in wei, from the chain registry defaults."""
    return {
        chain_id: ether_to_wei(chain.native_reserve)
        for chain_id, chain in CHAINS.items()
        if chain.native_reserve is not None
    }


def _read_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}")
    return value


@dataclass
class Settings:
    """Resolved runtime settings."""

    api_keys: List[str] = field(default_factory=list)
    moralis_base_url: str = DEFAULT_MORALIS_BASE_URL
    verified_tokens_url: Optional[str] = None
    min_value_usd: float = DEFAULT_MIN_VALUE_USD
    cache_dir: Path = DEFAULT_CACHE_DIR
    balance_ttl: float = DEFAULT_BALANCE_TTL
    verified_ttl: float = DEFAULT_VERIFIED_TTL
    rpc_urls: Dict[int, str] = field(default_factory=dict)
    native_reserves: Dict[int, int] = field(default_factory=default_native_reserves)

    def rpc_url_for(self, chain_id: int) -> Optional[str]:
        return self.rpc_urls.get(chain_id)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Raises:
        ConfigurationError: If a numeric setting cannot be parsed
    """
    env = os.environ if environ is None else environ

    rpc_urls: Dict[int, str] = {}
    reserves = default_native_reserves()
    for chain_id in CHAINS:
        rpc = env.get(f"RPC_URL_{chain_id}")
        if rpc:
            rpc_urls[chain_id] = rpc.strip()
        reserve = env.get(f"SWEEP_RESERVE_{chain_id}")
        if reserve:
            reserves[chain_id] = ether_to_wei(reserve)

    cache_dir = env.get("SWEEP_CACHE_DIR")

    return Settings(
        api_keys=load_api_keys(env),
        moralis_base_url=(env.get("MORALIS_BASE_URL") or DEFAULT_MORALIS_BASE_URL).rstrip("/"),
        verified_tokens_url=env.get("VERIFIED_TOKENS_URL") or None,
        min_value_usd=_read_float(env, "SWEEP_MIN_VALUE_USD", DEFAULT_MIN_VALUE_USD),
        cache_dir=Path(cache_dir).expanduser() if cache_dir else DEFAULT_CACHE_DIR,
        balance_ttl=_read_float(env, "SWEEP_BALANCE_TTL", DEFAULT_BALANCE_TTL),
        verified_ttl=_read_float(env, "SWEEP_VERIFIED_TTL", DEFAULT_VERIFIED_TTL),
        rpc_urls=rpc_urls,
        native_reserves=reserves,
    )

"""
Token discovery pipeline.

fetch -> normalize -> classify -> filter -> rank, with the balance cache in
front and the verified-token registry consulted during filtering.
"""

import dataclasses
import logging
from decimal import Decimal
from typing import Callable, List, Optional

from web3 import Web3

from .cache import BalanceCache
from .chains import NATIVE_SENTINEL_ADDRESS, ZERO_ADDRESS, get_chain
from .config import DEFAULT_MIN_VALUE_USD
from .errors import MalformedResponseError, SweepError
from .models import DiscoveryResult, Token
from .moralis_client import MoralisClient
from .normalize import extract_asset_records, normalize_asset
from .verified_registry import VerifiedTokenRegistry

logger = logging.getLogger(__name__)

NO_TOKENS_NOTICE = "No tokens found in this wallet"
VERIFICATION_PENDING_NOTICE = "Token verification is still loading; unverified tokens are hidden"
DEFAULT_VERIFICATION_TIMEOUT = 2.0  # seconds


def has_usable_address(address: str) -> bool:
    """A well-formed hex contract address that is neither zero nor the native sentinel."""
    lowered = address.strip().lower()
    if lowered in (ZERO_ADDRESS, NATIVE_SENTINEL_ADDRESS):
        return False
    return Web3.is_address(lowered)


def keep_token(token: Token, is_verified: Callable[[str], bool], min_value_usd: float) -> bool:
    """
    Decide whether a normalized token belongs in the wallet's list.

    Native tokens need only a balance and no spam flag. Other tokens must
    also look fungible, be verified, and be either unpriced (value exactly
    zero) or worth more than the dust floor.
    """
    if token.balance <= 0 or token.is_spam:
        return False

    if token.is_native:
        return True

    is_fungible = "erc20" in token.supports_erc or has_usable_address(token.contract_address)
    if not is_fungible:
        return False

    value = token.value
    if not (value == 0 or value > min_value_usd):
        return False

    return has_usable_address(token.contract_address) and is_verified(token.contract_address)


def classify(
    tokens: List[Token],
    is_verified: Callable[[str], bool],
    min_value_usd: float = DEFAULT_MIN_VALUE_USD,
) -> List[Token]:
    """Filter tokens, keeping at most one native entry."""
    kept: List[Token] = []
    seen_native = False
    for token in tokens:
        if not keep_token(token, is_verified, min_value_usd):
            continue
        if token.is_native:
            if seen_native:
                continue
            seen_native = True
        kept.append(token)
    return kept


def rank(tokens: List[Token]) -> List[Token]:
    """Sort by USD value descending, then by raw balance descending."""
    return sorted(tokens, key=lambda t: (t.value, t.balance), reverse=True)


class TokenDiscoveryPipeline:
    """
    Produces the canonical, ranked token list for a wallet on a chain.

    Results are cached per (wallet, chain). When discovery fails the last
    cached snapshot (even if stale) is returned alongside the error.
    """

    def __init__(
        self,
        client: MoralisClient,
        registry: VerifiedTokenRegistry,
        balance_cache: Optional[BalanceCache] = None,
        min_value_usd: float = DEFAULT_MIN_VALUE_USD,
        verification_timeout: float = DEFAULT_VERIFICATION_TIMEOUT,
        enrich_native_price: bool = False,
    ):
        """
        Initialize the pipeline.

        Args:
            client: Provider client for balances and prices
            registry: Shared verified-token registry
            balance_cache: Optional persistent balance cache
            min_value_usd: Dust floor for priced non-native tokens
            verification_timeout: Bounded wait for the allow-list, in seconds
            enrich_native_price: Price the native asset when the payload doesn't
        """
        self.client = client
        self.registry = registry
        self.balance_cache = balance_cache
        self.min_value_usd = min_value_usd
        self.verification_timeout = verification_timeout
        self.enrich_native_price = enrich_native_price

    def discover(self, wallet: str, chain_id: int, use_cache: bool = True) -> DiscoveryResult:
        """
        Discover the tokens held by a wallet on one chain.

        Args:
            wallet: Wallet address
            chain_id: Numeric chain id
            use_cache: Whether to serve a fresh cached snapshot

        Returns:
            DiscoveryResult; check `error` for failures
        """
        try:
            return self._discover(wallet, chain_id, use_cache)
        except SweepError as e:
            logger.error("Token discovery failed for %s on chain %s: %s", wallet, chain_id, e)
            fallback = self.balance_cache.peek(wallet, chain_id) if self.balance_cache else None
            if fallback is not None:
                return DiscoveryResult(
                    chain_id=chain_id,
                    wallet=wallet,
                    tokens=list(fallback.data),
                    from_cache=True,
                    stale=True,
                    error=e,
                )
            return DiscoveryResult(chain_id=chain_id, wallet=wallet, error=e)

    def _discover(self, wallet: str, chain_id: int, use_cache: bool) -> DiscoveryResult:
        if use_cache and self.balance_cache is not None:
            cached = self.balance_cache.get(wallet, chain_id)
            if cached is not None:
                return DiscoveryResult(
                    chain_id=chain_id,
                    wallet=wallet,
                    tokens=list(cached),
                    from_cache=True,
                    notice=None if cached else NO_TOKENS_NOTICE,
                )

        chain = get_chain(chain_id)

        # Load the allow-list while balances are in flight
        self.registry.ensure(chain_id)

        try:
            payload = self.client.get_wallet_tokens(wallet, chain.provider_name)
        except MalformedResponseError as e:
            logger.warning("Unreadable balance payload for chain %s, treating as empty: %s", chain_id, e)
            payload = []

        tokens = [normalize_asset(record, chain_id) for record in extract_asset_records(payload)]

        if self.enrich_native_price:
            tokens = self._with_native_price(tokens, chain_id)

        self.registry.wait_ready(chain_id, self.verification_timeout)
        verification = self.registry.state(chain_id)

        kept = rank(classify(tokens, verification.is_verified, self.min_value_usd))
        logger.debug(
            "Kept %d of %d assets for %s on chain %s", len(kept), len(tokens), wallet, chain_id
        )

        if not verification.ready:
            # Conservative list; cache only once the allow-list has been applied
            logger.warning(
                "Verified-token list for chain %s not ready, not caching conservative list",
                chain_id,
            )
            return DiscoveryResult(
                chain_id=chain_id,
                wallet=wallet,
                tokens=kept,
                notice=VERIFICATION_PENDING_NOTICE,
            )

        if self.balance_cache is not None:
            self.balance_cache.put(wallet, chain_id, kept)

        return DiscoveryResult(
            chain_id=chain_id,
            wallet=wallet,
            tokens=kept,
            notice=None if kept else NO_TOKENS_NOTICE,
        )

    def _with_native_price(self, tokens: List[Token], chain_id: int) -> List[Token]:
        """Fill in the native token's price and value if the payload lacked them."""
        index = next(
            (i for i, t in enumerate(tokens) if t.is_native and t.usd_price is None), None
        )
        if index is None:
            return tokens

        try:
            price = self.client.get_native_price(chain_id)
        except SweepError as e:
            logger.warning("Native price lookup failed for chain %s: %s", chain_id, e)
            return tokens
        if not price:
            return tokens

        native = tokens[index]
        value = float(Decimal(native.balance) / (Decimal(10) ** native.decimals) * Decimal(str(price)))
        enriched = list(tokens)
        enriched[index] = dataclasses.replace(native, usd_price=price, usd_value=value)
        return enriched

"""
Moralis API client for wallet balances, prices and the verified-token list.

All requests go through KeyRotatingFetcher so that every endpoint shares the
same key rotation and retry policy.
"""

import logging
from typing import Any, List, Optional, Sequence

from .chains import get_chain
from .errors import MalformedResponseError
from .fetcher import KeyRotatingFetcher

logger = logging.getLogger(__name__)

WALLET_TOKENS_PAGE_LIMIT = 100
VERIFIED_TOKENS_LIMIT = 1000


def _parse_price(data: Any) -> float:
    if not isinstance(data, dict):
        return 0.0
    try:
        price = float(data.get("usdPrice") or 0)
    except (TypeError, ValueError):
        return 0.0
    return price if price > 0 else 0.0


class MoralisClient:
    """
    Thin endpoint layer over KeyRotatingFetcher.

    Attributes:
        api_keys: Ordered API keys handed to the fetcher on every call
        base_url: Moralis API base URL
        verified_url: Verified-token list endpoint, or None to defer to
            the provider's own spam detection
    """

    def __init__(
        self,
        fetcher: KeyRotatingFetcher,
        api_keys: Sequence[str],
        base_url: str,
        verified_url: Optional[str] = None,
    ):
        self.fetcher = fetcher
        self.api_keys = list(api_keys)
        self.base_url = base_url.rstrip("/")
        self.verified_url = verified_url

    def get_wallet_tokens(self, address: str, chain_name: str) -> Any:
        """
        Fetch native and ERC-20 balances (with prices) for a wallet.

        Spam and unverified contracts are excluded at the source.

        Returns:
            The raw JSON payload; see normalize.extract_asset_records
        """
        url = f"{self.base_url}/wallets/{address}/tokens"
        params = {
            "chain": chain_name,
            "exclude_spam": "true",
            "exclude_unverified_contracts": "true",
            "limit": WALLET_TOKENS_PAGE_LIMIT,
        }
        return self.fetcher.fetch_json(url, self.api_keys, params=params)

    def get_token_price(self, token_address: str, chain_name: str) -> float:
        """Return the USD price of a token, or 0.0 when unknown."""
        url = f"{self.base_url}/erc20/{token_address}/price"
        data = self.fetcher.fetch_json(url, self.api_keys, params={"chain": chain_name})
        return _parse_price(data)

    def get_native_price(self, chain_id: int) -> Optional[float]:
        """
        Return the USD price of a chain's native asset.

        The native asset is priced through its wrapped token. Returns None
        when the chain has no wrapped token configured.
        """
        chain = get_chain(chain_id)
        if not chain.wrapped_native:
            return None
        return self.get_token_price(chain.wrapped_native, chain.provider_name)

    def get_verified_tokens(self, chain_id: int, limit: int = VERIFIED_TOKENS_LIMIT) -> List[str]:
        """
        Fetch the listed addresses of the verified-token allow-list.

        An empty list is a valid answer meaning "defer to the provider's spam
        detection". Without a configured endpoint the list is always empty.

        Raises:
            MalformedResponseError: If the payload has no `tokens` array
        """
        if not self.verified_url:
            logger.debug("No verified-token endpoint configured, deferring to provider")
            return []

        params = {"chainId": chain_id, "limit": limit, "listed_only": "true"}
        data = self.fetcher.fetch_json(self.verified_url, self.api_keys, params=params)

        tokens = data.get("tokens") if isinstance(data, dict) else None
        if not isinstance(tokens, list):
            raise MalformedResponseError(
                f"Invalid verified-token response: expected tokens array, got {type(tokens).__name__}"
            )

        return [
            str(token["address"])
            for token in tokens
            if isinstance(token, dict) and token.get("listed") and token.get("address")
        ]

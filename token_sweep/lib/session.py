"""
Wallet session: the current (wallet, chain) selection and its token list.

Each selection change bumps a generation counter. Work started under an
older generation is discarded on completion instead of overwriting state
that belongs to the newer selection.
"""

import logging
import threading
from typing import Callable, List, Optional

from .discovery import TokenDiscoveryPipeline
from .errors import ValidationError, describe_error
from .models import ApiStatus, BuildResult, DiscoveryResult, Token
from .transfer_builder import TransferCallBuilder

logger = logging.getLogger(__name__)

# (wallet, chain_id) -> builder for that sender and chain
BuilderFactory = Callable[[str, int], TransferCallBuilder]


class WalletSession:
    """Holds discovery state for one selected wallet and chain."""

    def __init__(self, pipeline: TokenDiscoveryPipeline, builder_factory: BuilderFactory):
        self.pipeline = pipeline
        self.builder_factory = builder_factory
        self.wallet: Optional[str] = None
        self.chain_id: Optional[int] = None
        self.tokens: List[Token] = []
        self.status = ApiStatus.UNTESTED
        self.error_message: Optional[str] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def select(self, wallet: str, chain_id: int) -> None:
        """Switch to a new wallet/chain, abandoning any in-flight work."""
        with self._lock:
            self._generation += 1
            self.wallet = wallet
            self.chain_id = chain_id
            self.tokens = []
            self.status = ApiStatus.UNTESTED
            self.error_message = None

    def _snapshot(self):
        with self._lock:
            if self.wallet is None or self.chain_id is None:
                raise ValidationError("No wallet selected")
            return self._generation, self.wallet, self.chain_id

    def refresh(self, use_cache: bool = True) -> Optional[DiscoveryResult]:
        """
        Run discovery for the current selection.

        Returns:
            The DiscoveryResult, or None if the selection changed meanwhile
        """
        generation, wallet, chain_id = self._snapshot()
        result = self.pipeline.discover(wallet, chain_id, use_cache=use_cache)

        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding discovery for %s on chain %s: selection changed", wallet, chain_id)
                return None
            self.tokens = list(result.tokens)
            self.status = ApiStatus.WORKING if result.ok else ApiStatus.FAILED
            self.error_message = describe_error(result.error) if result.error else None
        return result

    def build_sweep(self, destination: str) -> Optional[BuildResult]:
        """
        Build a sweep batch from the current token list.

        Returns:
            The BuildResult, or None if the selection changed meanwhile

        Raises:
            SweepError: Builder errors propagate unchanged
        """
        generation, wallet, chain_id = self._snapshot()
        with self._lock:
            tokens = list(self.tokens)

        result = self.builder_factory(wallet, chain_id).build(tokens, destination, chain_id)

        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding sweep batch for %s on chain %s: selection changed", wallet, chain_id)
                return None
        return result

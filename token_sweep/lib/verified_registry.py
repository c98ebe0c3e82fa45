"""
Per-chain verified-token allow-list with graceful degradation.

The registry never passes a token while verification state is unknown. When
the list cannot be fetched it keeps the last known set, or, lacking one,
falls back to trusting the balance provider's own spam filter.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional

from .cache import VersionedCache
from .config import DEFAULT_VERIFIED_TTL
from .errors import SweepError
from .models import ApiStatus
from .moralis_client import MoralisClient

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_WORKERS = 4


@dataclass(frozen=True)
class VerificationState:
    """
    Immutable snapshot of one chain's verification state.

    An empty allow-list on a ready state means "defer to the provider":
    every address is accepted.
    """

    addresses: FrozenSet[str] = frozenset()
    ready: bool = False
    degraded: bool = False
    status: ApiStatus = ApiStatus.UNTESTED

    def is_verified(self, address: str) -> bool:
        if not self.ready:
            return False
        if not self.addresses:
            return True
        return address.strip().lower() in self.addresses


class VerifiedTokenRegistry:
    """
    Shared verification cache for all chains.

    States are replaced whole on every refresh, so readers never observe a
    partially updated allow-list.
    """

    def __init__(
        self,
        client: MoralisClient,
        ttl: float = DEFAULT_VERIFIED_TTL,
        clock: Callable[[], float] = time.time,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.client = client
        self._cache: VersionedCache[VerificationState] = VersionedCache(ttl, clock)
        self._states: Dict[int, VerificationState] = {}
        self._inflight: Dict[int, Future] = {}
        self._lock = threading.Lock()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=DEFAULT_REFRESH_WORKERS, thread_name_prefix="verified-tokens"
        )

    def state(self, chain_id: int) -> VerificationState:
        return self._states.get(chain_id, VerificationState())

    def is_ready(self, chain_id: int) -> bool:
        return self.state(chain_id).ready

    def is_degraded(self, chain_id: int) -> bool:
        return self.state(chain_id).degraded

    def is_verified(self, chain_id: int, address: str) -> bool:
        return self.state(chain_id).is_verified(address)

    def refresh(self, chain_id: int) -> VerificationState:
        """
        Fetch the allow-list for a chain and publish the resulting state.

        Failure policy:
            1. Fetch fails, previous non-empty set cached: keep it, degraded.
            2. Fetch fails, nothing cached: ready with an empty set, degraded.
            3. Fetch returns no entries: ready with an empty set, not degraded.
        """
        try:
            addresses = self.client.get_verified_tokens(chain_id)
        except SweepError as e:
            previous = self._cache.peek(chain_id)
            if previous is not None and previous.data.addresses:
                logger.warning(
                    "Verified-token fetch failed for chain %s, keeping %d cached addresses: %s",
                    chain_id,
                    len(previous.data.addresses),
                    e,
                )
                state = VerificationState(
                    addresses=previous.data.addresses,
                    ready=True,
                    degraded=True,
                    status=ApiStatus.FAILED,
                )
            else:
                logger.warning(
                    "Verified-token fetch failed for chain %s with no cached list, "
                    "deferring to provider spam detection: %s",
                    chain_id,
                    e,
                )
                state = VerificationState(ready=True, degraded=True, status=ApiStatus.FAILED)
        else:
            state = VerificationState(
                addresses=frozenset(a.strip().lower() for a in addresses if a.strip()),
                ready=True,
                degraded=False,
                status=ApiStatus.WORKING,
            )
            if not state.addresses:
                logger.info("Empty verified-token list for chain %s, deferring to provider", chain_id)

        self._cache.put(chain_id, state)
        self._states[chain_id] = state
        return state

    def ensure(self, chain_id: int) -> "Future[VerificationState]":
        """
        Make sure a fresh allow-list is loaded or loading for a chain.

        Returns a future that resolves once the state is published. Calls
        made while a refresh is in flight share that refresh.
        """
        cached = self._cache.get(chain_id)
        if cached is not None:
            self._states[chain_id] = cached
            done: "Future[VerificationState]" = Future()
            done.set_result(cached)
            return done

        with self._lock:
            future = self._inflight.get(chain_id)
            if future is not None and not future.done():
                return future
            if chain_id not in self._states:
                # First use: nothing passes until the list arrives
                self._states[chain_id] = VerificationState()
            future = self._executor.submit(self.refresh, chain_id)
            self._inflight[chain_id] = future
            return future

    def wait_ready(self, chain_id: int, timeout: float) -> bool:
        """
        Wait at most `timeout` seconds for the chain's state to become ready.

        Returns:
            Whether the state is ready; callers filter conservatively if not
        """
        future = self.ensure(chain_id)
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            logger.warning("Verified-token list for chain %s not ready after %.1fs", chain_id, timeout)
        return self.is_ready(chain_id)

    def refresh_all(self) -> int:
        """Mark every chain's cached list stale without enumerating chains."""
        return self._cache.bump_version()

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

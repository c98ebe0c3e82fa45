"""
Builder for sweep batches of ERC-20 and native transfers.

Selects the most valuable tokens, encodes full-balance transfers, drops any
that would revert, adds a native transfer above the gas reserve, and caps
the batch to what a single atomic submission may contain.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from web3 import Web3

from .chains import ChainConfig, get_chain
from .config import default_native_reserves
from .errors import NoValidTransfersError, SweepError, ValidationError
from .models import BuildResult, CallKind, PrecheckResult, Token, TransferCall, format_quantity

logger = logging.getLogger(__name__)

# keccak256("transfer(address,uint256)")[:4]
TRANSFER_SELECTOR = "0xa9059cbb"

CANDIDATE_CAP = 20
MAX_BATCH_CALLS = 10
DEFAULT_PRECHECK_WORKERS = 4

UINT256_MAX = 2**256 - 1
_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


class ChainClient(Protocol):
    chain_id: int

    def simulate(self, tx: Dict[str, Any]) -> bool: ...

    def get_balance(self, address: str) -> int: ...


def encode_transfer(destination: str, amount: int) -> str:
    """
    Encode calldata for transfer(address,uint256).

    Examples:
        encode_transfer("0x00000000000000000000000000000000000000aa", 1000)
        -> "0xa9059cbb" + "00" * 12 + "00..aa" + "00..3e8"
    """
    if not _HEX_ADDRESS.match(destination):
        raise ValueError(f"Invalid address: {destination}")
    if not 0 <= amount <= UINT256_MAX:
        raise ValueError(f"Amount out of uint256 range: {amount}")

    address_word = destination[2:].lower().rjust(64, "0")
    amount_word = format(amount, "x").rjust(64, "0")
    return f"{TRANSFER_SELECTOR}{address_word}{amount_word}"


def validate_destination(destination: str, sender: str) -> str:
    """
    Validate a sweep destination.

    Returns:
        The checksummed destination address

    Raises:
        ValidationError: If malformed, the zero address, or the sender itself
    """
    if not isinstance(destination, str) or not _HEX_ADDRESS.match(destination.strip()):
        raise ValidationError("Invalid target address format")
    destination = destination.strip()
    if not Web3.is_address(destination):
        raise ValidationError("Invalid target address checksum")
    if int(destination, 16) == 0:
        raise ValidationError("Target address must not be the zero address")
    if destination.lower() == sender.strip().lower():
        raise ValidationError("Target address must differ from the sender")
    return Web3.to_checksum_address(destination)


def select_candidates(tokens: List[Token], cap: int = CANDIDATE_CAP) -> List[Token]:
    """Top `cap` non-native tokens with a balance and a valid contract address."""
    eligible = []
    for token in tokens:
        if token.is_native or token.balance <= 0:
            continue
        if not _HEX_ADDRESS.match(token.contract_address.strip()):
            logger.warning("Skipping %s with malformed contract address %r", token.symbol, token.contract_address)
            continue
        eligible.append(token)
    eligible.sort(key=lambda t: (t.value, t.balance), reverse=True)
    return eligible[:cap]


class TransferCallBuilder:
    """
    Builds a capped, precheck-passing transfer batch for one sender.

    Attributes:
        sender: Address whose holdings are swept
        chain_client: Chain access for simulation and native balance
        native_reserves: Wei left behind per chain to pay for the batch
    """

    def __init__(
        self,
        sender: str,
        chain_client: ChainClient,
        native_reserves: Optional[Mapping[int, int]] = None,
        candidate_cap: int = CANDIDATE_CAP,
        max_calls: int = MAX_BATCH_CALLS,
        precheck_workers: int = DEFAULT_PRECHECK_WORKERS,
    ):
        self.sender = sender
        self.chain_client = chain_client
        self.native_reserves = dict(
            default_native_reserves() if native_reserves is None else native_reserves
        )
        self.candidate_cap = candidate_cap
        self.max_calls = max_calls
        self.precheck_workers = precheck_workers

    def build(self, tokens: List[Token], destination: str, chain_id: int) -> BuildResult:
        """
        Build the sweep batch.

        Args:
            tokens: Discovered tokens for the sender on this chain
            destination: Address receiving everything
            chain_id: Chain the batch targets

        Returns:
            BuildResult with at most `max_calls` calls, most valuable first

        Raises:
            ValidationError: If the destination is invalid or chains mismatch
            UnsupportedChainError: If the chain is not supported
            NoValidTransfersError: If nothing survives
        """
        destination = validate_destination(destination, self.sender)
        chain = get_chain(chain_id)
        if self.chain_client.chain_id != chain_id:
            raise ValidationError(
                f"Chain client targets chain {self.chain_client.chain_id}, not {chain_id}"
            )

        candidates = select_candidates(tokens, self.candidate_cap)
        planned = [(token, self._token_call(token, destination)) for token in candidates]

        outcomes = self._precheck([call for _, call in planned])
        valid_count = sum(1 for ok in outcomes if ok)
        precheck = PrecheckResult(
            total_candidates=len(planned),
            valid_count=valid_count,
            failed_count=len(planned) - valid_count,
        )

        ranked: List[Tuple[float, TransferCall]] = [
            (token.value, call) for (token, call), ok in zip(planned, outcomes) if ok
        ]

        native = self._native_call(tokens, destination, chain)
        if native is not None:
            ranked.append(native)

        # Stable sort: equal values keep token-before-native order
        ranked.sort(key=lambda item: item[0], reverse=True)
        calls = [call for _, call in ranked[: self.max_calls]]

        if not calls:
            raise NoValidTransfersError("No valid transfers to execute")

        logger.info(
            "Built %d calls for chain %s (%d/%d candidates passed precheck)",
            len(calls),
            chain_id,
            precheck.valid_count,
            precheck.total_candidates,
        )
        return BuildResult(calls=calls, precheck=precheck)

    def _token_call(self, token: Token, destination: str) -> TransferCall:
        return TransferCall(
            to=Web3.to_checksum_address(token.contract_address.strip()),
            value=0,
            data=encode_transfer(destination, token.balance),
            kind=CallKind.TOKEN_TRANSFER,
            description=f"Transfer {token.quantity} {token.symbol}",
        )

    def _simulate(self, call: TransferCall) -> bool:
        ok = self.chain_client.simulate(
            {"from": self.sender, "to": call.to, "data": call.data, "value": call.value}
        )
        if not ok:
            logger.warning("Pre-check failed for %s", call.description)
        return ok

    def _precheck(self, calls: List[TransferCall]) -> List[bool]:
        """Simulate each call; results are in input order regardless of timing."""
        if not calls:
            return []
        workers = min(self.precheck_workers, len(calls))
        if workers <= 1:
            return [self._simulate(call) for call in calls]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="precheck") as pool:
            return list(pool.map(self._simulate, calls))

    def _native_balance(self, tokens: List[Token]) -> int:
        try:
            return self.chain_client.get_balance(self.sender)
        except SweepError as e:
            native = next((t for t in tokens if t.is_native), None)
            logger.warning("Live native balance unavailable, using discovered balance: %s", e)
            return native.balance if native else 0

    def _native_call(
        self, tokens: List[Token], destination: str, chain: ChainConfig
    ) -> Optional[Tuple[float, TransferCall]]:
        reserve = self.native_reserves.get(chain.chain_id)
        if reserve is None:
            return None

        balance = self._native_balance(tokens)
        if balance <= reserve:
            return None

        amount = balance - reserve
        native_token = next((t for t in tokens if t.is_native), None)
        decimals = chain.native_decimals
        symbol = chain.native_symbol
        call = TransferCall(
            to=destination,
            value=amount,
            data=None,
            kind=CallKind.NATIVE,
            description=(
                f"Transfer {format_quantity(amount, decimals)} {symbol} "
                f"(reserved {format_quantity(reserve, decimals)} {symbol} for gas)"
            ),
        )
        return (native_token.value if native_token else 0.0, call)

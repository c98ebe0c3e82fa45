"""
Data models for token discovery and transfer building.

Tokens are immutable snapshots: a re-run of discovery replaces them
wholesale rather than mutating them in place.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import SweepError, describe_error


class ApiStatus(str, Enum):
    UNTESTED = "untested"
    WORKING = "working"
    FAILED = "failed"


def format_quantity(raw_balance: int, decimals: int) -> str:
    """
    Format balance with full precision, trimming trailing zeros.

    Args:
        raw_balance: Raw balance value (in smallest unit)
        decimals: Number of decimal places

    Returns:
        Formatted balance string with trailing zeros trimmed

    Examples:
        format_quantity(1000000, 6) -> "1"
        format_quantity(1500000, 6) -> "1.5"
        format_quantity(1234567890123456789, 18) -> "1.234567890123456789"
    """
    if raw_balance == 0:
        return "0"

    if decimals == 0:
        return str(raw_balance)

    # Use Decimal for precise arithmetic
    balance = Decimal(raw_balance) / Decimal(10**decimals)

    formatted = format(balance, "f")

    # Remove trailing zeros after decimal point
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")

    return formatted


# CSV column order for token reports
CSV_COLUMNS = [
    "chain",
    "symbol",
    "name",
    "contract_address",
    "quantity",
    "usd_price",
    "usd_value",
    "token_type",
]


@dataclass(frozen=True)
class Token:
    """
    One fungible balance held by a wallet on one chain.

    The native asset uses the zero address as its contract address.
    """

    contract_address: str
    name: str
    symbol: str
    decimals: int
    balance: int  # Base units
    usd_price: Optional[float] = None
    usd_value: Optional[float] = None
    is_native: bool = False
    is_spam: bool = False
    supports_erc: Tuple[str, ...] = ()
    logo: Optional[str] = None

    def __post_init__(self):
        if self.decimals < 0:
            raise ValueError(f"decimals must be >= 0, got {self.decimals}")
        if self.balance < 0:
            raise ValueError(f"balance must be >= 0, got {self.balance}")
        if self.usd_value is not None and self.usd_value < 0:
            raise ValueError(f"usd_value must be >= 0, got {self.usd_value}")

    @property
    def value(self) -> float:
        """USD value with unknown treated as zero (for ranking)."""
        return self.usd_value or 0.0

    @property
    def token_type(self) -> str:
        if self.is_native:
            return "NATIVE"
        if self.supports_erc:
            return self.supports_erc[0].upper()
        return "ERC20"

    @property
    def quantity(self) -> str:
        return format_quantity(self.balance, self.decimals)

    def to_csv_row(self, chain: str) -> List[str]:
        """Convert token to a CSV row (list of strings)."""
        return [
            chain,
            self.symbol,
            self.name,
            self.contract_address,
            self.quantity,
            "" if self.usd_price is None else f"{self.usd_price:g}",
            "" if self.usd_value is None else f"{self.usd_value:.2f}",
            self.token_type,
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible types (balance as a decimal string)."""
        return {
            "contract_address": self.contract_address,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "balance": str(self.balance),
            "usd_price": self.usd_price,
            "usd_value": self.usd_value,
            "is_native": self.is_native,
            "is_spam": self.is_spam,
            "supports_erc": list(self.supports_erc),
            "logo": self.logo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            contract_address=data["contract_address"],
            name=data.get("name", ""),
            symbol=data.get("symbol", ""),
            decimals=int(data.get("decimals", 18)),
            balance=int(data.get("balance", "0")),
            usd_price=data.get("usd_price"),
            usd_value=data.get("usd_value"),
            is_native=bool(data.get("is_native", False)),
            is_spam=bool(data.get("is_spam", False)),
            supports_erc=tuple(data.get("supports_erc") or ()),
            logo=data.get("logo"),
        )


class CallKind(str, Enum):
    NATIVE = "native"
    TOKEN_TRANSFER = "tokenTransfer"


@dataclass(frozen=True)
class TransferCall:
    """
    One call in a wallet batch.

    Native calls carry a value and no data; token calls carry encoded
    transfer data and a zero value.
    """

    to: str
    value: int
    data: Optional[str]
    kind: CallKind
    description: str

    def __post_init__(self):
        if self.value < 0:
            raise ValueError("value must be >= 0")
        if self.kind == CallKind.NATIVE:
            if self.data:
                raise ValueError("native transfers must not carry call data")
        else:
            if self.value != 0:
                raise ValueError("token transfers must have zero value")
            if not self.data or self.data == "0x":
                raise ValueError("token transfers require call data")

    def to_dict(self) -> Dict[str, Any]:
        """Payload shape expected by wallet batch submission."""
        payload: Dict[str, Any] = {"to": self.to, "value": hex(self.value)}
        if self.data:
            payload["data"] = self.data
        return payload


@dataclass(frozen=True)
class PrecheckResult:
    """Diagnostic counts from simulating candidate calls."""

    total_candidates: int
    valid_count: int
    failed_count: int


@dataclass(frozen=True)
class BuildResult:
    """Capped, precheck-passing call batch."""

    calls: List[TransferCall]
    precheck: PrecheckResult


@dataclass
class DiscoveryResult:
    """
    Result of discovering a wallet's tokens on a single chain.

    When discovery fails, `error` holds the cause and `tokens` falls back to
    a stale cached snapshot if one existed.
    """

    chain_id: int
    wallet: str
    tokens: List[Token] = field(default_factory=list)
    from_cache: bool = False
    stale: bool = False
    error: Optional[SweepError] = None
    notice: Optional[str] = None  # Soft conditions such as an empty wallet

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> Optional[str]:
        """User-facing message for the error or notice, if any."""
        if self.error is not None:
            return describe_error(self.error)
        return self.notice

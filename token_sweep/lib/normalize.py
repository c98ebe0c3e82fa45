"""
Normalization of heterogeneous provider payloads into Token objects.

Field priority (first non-empty wins):

    payload array:   "result" > "data" > bare list
    address:         token_address > contract_address > address
    symbol:          symbol > contract_ticker_symbol > token_symbol
    name:            name > contract_name > token_name
    balance:         balance > token_balance
    decimals:        decimals > token_decimals (default 18)
    spam flag:       possible_spam > is_spam
    logo:            logo_urls.token_logo_url > logo_urls.logo_url > logo > thumbnail
    standards:       supports_erc (list or single string)

A record is native when `native_token` is truthy or its address is the
0xeeee... sentinel.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from .chains import NATIVE_SENTINEL_ADDRESS, ZERO_ADDRESS, get_chain
from .models import Token

DEFAULT_DECIMALS = 18
MAX_DECIMALS = 255


def _first(record: Dict[str, Any], *names: str) -> Any:
    """Return the first field that is present and not None/empty."""
    for name in names:
        value = record.get(name)
        if value is not None and value != "":
            return value
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(str(value).strip().replace(",", ""))
    except ValueError:
        return None
    if result != result or result in (float("inf"), float("-inf")):
        return None
    return result


def extract_asset_records(payload: Any) -> List[Dict[str, Any]]:
    """
    Pull the list of asset records out of a balance payload.

    A payload without a recognizable array is treated as zero assets.
    """
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict):
        records = None
        for key in ("result", "data"):
            if key in payload:
                records = payload[key]
                break
        if not isinstance(records, list):
            return []
    else:
        return []

    return [record for record in records if isinstance(record, dict)]


def coerce_balance(value: Any) -> int:
    """
    Coerce a provider balance into an integer count of base units.

    Examples:
        coerce_balance("1000") -> 1000
        coerce_balance("1,000") -> 1000
        coerce_balance("1.5e21") -> 1500000000000000000000
        coerce_balance(12.0) -> 12
        coerce_balance(None) -> 0
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)

    text = str(value).replace(",", "")
    text = "".join(text.split())
    if not text:
        return 0

    try:
        number = Decimal(text)
    except InvalidOperation:
        return 0

    if not number.is_finite() or number <= 0:
        return 0
    return int(number)


def coerce_decimals(value: Any) -> int:
    """Coerce decimals to an int in [0, 255], defaulting to 18."""
    if value is None or isinstance(value, bool) or value == "":
        return DEFAULT_DECIMALS
    try:
        decimals = int(str(value).strip())
    except ValueError:
        return DEFAULT_DECIMALS
    if decimals < 0 or decimals > MAX_DECIMALS:
        return DEFAULT_DECIMALS
    return decimals


def _supports_erc(raw: Any, is_native: bool) -> Tuple[str, ...]:
    if is_native:
        return ()
    if isinstance(raw, (list, tuple)) and raw:
        return tuple(str(item).lower() for item in raw)
    if isinstance(raw, str) and raw.strip():
        return (raw.strip().lower(),)
    return ("erc20",)


def _logo(record: Dict[str, Any]) -> Optional[str]:
    logo_urls = record.get("logo_urls")
    if isinstance(logo_urls, dict):
        logo = _first(logo_urls, "token_logo_url", "logo_url")
        if logo:
            return str(logo)
    logo = _first(record, "logo", "thumbnail")
    return str(logo) if logo else None


def normalize_asset(raw: Dict[str, Any], chain_id: int) -> Token:
    """
    Convert one raw provider record into a Token.

    The USD value is passed through when the provider supplies it, otherwise
    it is computed from a positive unit price. Native records take the
    chain's native name, symbol and logo.
    """
    address = str(_first(raw, "token_address", "contract_address", "address") or "").strip()
    is_native = _as_bool(raw.get("native_token")) or address.lower() == NATIVE_SENTINEL_ADDRESS

    balance = coerce_balance(_first(raw, "balance", "token_balance"))
    decimals = coerce_decimals(_first(raw, "decimals", "token_decimals"))

    usd_price = _as_float(raw.get("usd_price"))
    usd_value = _as_float(raw.get("usd_value"))
    if usd_value is None and usd_price is not None and usd_price > 0:
        usd_value = float(Decimal(balance) / (Decimal(10) ** decimals) * Decimal(str(usd_price)))
    if usd_value is not None and usd_value < 0:
        usd_value = None

    spam_flag = _first(raw, "possible_spam", "is_spam")
    logo = _logo(raw)

    if is_native:
        chain = get_chain(chain_id)
        return Token(
            contract_address=ZERO_ADDRESS,
            name=chain.native_name,
            symbol=chain.native_symbol,
            decimals=decimals,
            balance=balance,
            usd_price=usd_price,
            usd_value=usd_value,
            is_native=True,
            is_spam=_as_bool(spam_flag),
            supports_erc=(),
            logo=logo or chain.native_logo,
        )

    return Token(
        contract_address=address,
        name=str(_first(raw, "name", "contract_name", "token_name") or "Unknown Token"),
        symbol=str(_first(raw, "symbol", "contract_ticker_symbol", "token_symbol") or "???"),
        decimals=decimals,
        balance=balance,
        usd_price=usd_price,
        usd_value=usd_value,
        is_native=False,
        is_spam=_as_bool(spam_flag),
        supports_erc=_supports_erc(raw.get("supports_erc"), False),
        logo=logo,
    )


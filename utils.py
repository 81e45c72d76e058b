import re
from datetime import datetime
from typing import Any, Optional


SUPPORTED_BLOCKCHAINS = [
    "atleta_olympia", "avalanche", "base", "berachain", "binance", "bitcoin",
    "ethereum", "full", "linea", "monad_testnet", "polygon",
    "polyhedra_testnet", "root", "solana", "somnia_testnet", "soneium",
    "unichain", "unichain_sepolia",
]

BLOCKCHAIN_ALIASES: dict[str, str] = {
    "eth": "ethereum",
    "matic": "polygon",
    "avax": "avalanche",
    "bnb": "binance",
    "bsc": "binance",
    "sol": "solana",
    "btc": "bitcoin",
}

TIME_RANGES = ["15m", "24h", "7d", "30d", "90d", "all"]


def normalize_blockchain(blockchain: Any, default: str = "ethereum") -> str:
    """Map aliases (eth, bsc, ...) to API chain names; unknown names fall back to default."""
    if blockchain is None:
        return default
    name = str(blockchain).strip().lower()
    if name in BLOCKCHAIN_ALIASES:
        return BLOCKCHAIN_ALIASES[name]
    if name in SUPPORTED_BLOCKCHAINS:
        return name
    return default


def is_evm_address(address: str) -> bool:
    return bool(re.match(r"^0x[a-fA-F0-9]{40}$", address.strip()))


def parse_array_string(value: Any) -> list[str]:
    """Split a Postgres array literal such as ``{1,2,"2024-01-01"}`` into strings."""
    if not value or not isinstance(value, str):
        return []
    inner = value.strip()
    if inner.startswith("{"):
        inner = inner[1:]
    if inner.endswith("}"):
        inner = inner[:-1]
    if not inner:
        return []
    return [part.strip().strip('"') for part in inner.split(",")]


def to_number(value: Any, default: float = 0.0) -> float:
    """Parse a number leniently; anything unparsable (or NaN) becomes ``default``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:
        return default
    return number


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def format_date(value: Any) -> str:
    """Render an API timestamp as ``YYYY-MM-DD``; unparsable input is returned as-is."""
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return text


def format_change(change: Any) -> str:
    """Format a fractional change (0.153) as a percentage string (15.30%)."""
    try:
        number = float(change)
    except (TypeError, ValueError):
        return "N/A"
    if number != number:
        return "N/A"
    return f"{number * 100:.2f}%"


def first_present(*values: Any, default: Any = "N/A") -> Any:
    """Return the first truthy value, or ``default``."""
    for value in values:
        if value:
            return value
    return default


def short_address(address: Optional[str], chars: int = 6) -> str:
    """Truncate: 0x1234...abcd"""
    if not address:
        return ""
    if len(address) <= chars * 2 + 3:
        return address
    return f"{address[:chars]}...{address[-chars:]}"


def format_currency(amount: float, symbol: str = "$", decimals: int = 2) -> str:
    if abs(amount) >= 1_000_000:
        return f"{symbol}{amount / 1_000_000:,.{decimals}f}M"
    elif abs(amount) >= 1_000:
        return f"{symbol}{amount / 1_000:,.{decimals}f}K"
    return f"{symbol}{amount:,.{decimals}f}"

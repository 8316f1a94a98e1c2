"""Client-side input checks run before any remote call."""

import math
from typing import Optional, Union

from ledgerlink.errors import InvalidInput

VIEWS = ("dashboard", "wallet", "mining", "transactions", "blockchain")
DEFAULT_VIEW = "dashboard"
TRANSACTIONS_VIEW = "transactions"


def require_text(value: Optional[str], message: str) -> str:
    """Return ``value`` stripped, or raise InvalidInput if it is empty."""
    if value is None or not str(value).strip():
        raise InvalidInput(message)
    return str(value).strip()


def parse_amount(value: Union[str, int, float, None]) -> float:
    """Parse a transfer amount; must be a finite number greater than zero."""
    if value is None or isinstance(value, bool):
        raise InvalidInput("Please enter a valid amount")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise InvalidInput("Please enter a valid amount") from None
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidInput("Please enter a valid amount")
    return amount


def check_view(view: Optional[str]) -> str:
    if view not in VIEWS:
        raise InvalidInput(f"Unknown view: {view!r} (expected one of {', '.join(VIEWS)})")
    return view

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum


def money(value: Decimal | float | int, currency: str = "BOB") -> str:
    amount = f"{Decimal(value):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    symbol = "Bs" if currency == "BOB" else currency
    return f"{symbol} {amount}"


def jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(v) for v in value]
    return value

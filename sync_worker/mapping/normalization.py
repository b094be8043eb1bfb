import math
import re
from decimal import Decimal, InvalidOperation

_CURRENCY_RE = re.compile(r"[$€£¥\s]")
# Catalog prices are stored as NUMERIC(12, 2).
MAX_PRICE = Decimal(10) ** 10


def normalize_text(value: str | None) -> str:
    if not value:
        return ""
    clean = value.strip().upper()
    clean = re.sub(r"[^A-Z0-9 ]", " ", clean)
    clean = re.sub(r"\s+", " ", clean)
    return clean


def coerce_text(value: object) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return str(value)
    if isinstance(value, str):
        clean = value.strip()
        return clean or None
    return None


def coerce_price(value: object) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        text = str(value)
    elif isinstance(value, str):
        text = _CURRENCY_RE.sub("", value).replace(",", "")
    else:
        return None

    if not text:
        return None
    try:
        price = Decimal(text)
    except InvalidOperation:
        return None
    if not price.is_finite() or abs(price) >= MAX_PRICE:
        return None
    return price

"""
Price and unit normalisation.

Every price leaving this module is an integer in USD. ``0`` means "no price
could be determined" and is treated downstream as a rejection, never as a
free listing.
"""
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

AED_TO_USD_RATE = 0.27

_CURRENCY_RE = re.compile(r"AED|USD|US\$|\$|,|\s", re.IGNORECASE)
_LEADING_DIGITS_RE = re.compile(r"^(\d+)")
_NON_NUMERIC_RE = re.compile(r"[^\d.]")


def detect_currency(raw: str, default: str = "USD") -> str:
    t = (raw or "").upper()
    if "AED" in t or "DHS" in t:
        return "AED"
    if "USD" in t or "$" in t:
        return "USD"
    return default


def parse_amount(raw: str) -> int:
    """
    Strip currency markers and thousands separators, then read the leading
    run of digits only. "AED 3,700,000" -> 3700000, "296,000,0007Beds" ->
    2960000007 (see strip_fused_bedroom_digit).
    """
    if not raw:
        return 0
    cleaned = _CURRENCY_RE.sub("", str(raw)).strip()
    m = _LEADING_DIGITS_RE.match(cleaned)
    return int(m.group(1)) if m else 0


def strip_fused_bedroom_digit(raw: str) -> str:
    """
    Page rendering sometimes glues the bedroom count onto the price
    ("296,000,0007Beds"). The last digit is assumed to be the bed count and
    dropped. Lossy: a genuine price ending in that digit loses it.
    """
    return re.sub(r"\d$", "", raw or "")


def convert(amount: int, currency: str, rate: float = AED_TO_USD_RATE) -> int:
    if amount <= 0:
        return 0
    if currency == "AED":
        value = Decimal(amount) * Decimal(str(rate))
        return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return amount


def normalize_price(raw: str, currency_hint: str = "USD", rate: float = AED_TO_USD_RATE) -> int:
    """Parse ``raw`` and convert it to integer USD. Returns 0 when nothing parses."""
    amount = parse_amount(raw)
    if amount == 0:
        return 0
    return convert(amount, detect_currency(raw, currency_hint), rate)


def parse_number(raw: Optional[str]) -> Optional[float]:
    if not raw:
        return None
    try:
        return float(str(raw).replace(",", "").strip())
    except ValueError:
        return None


def parse_price(raw) -> Optional[float]:
    """Feed price such as "$1,295,000" or "1295000.00"; currency marks and separators are dropped."""
    if raw is None:
        return None
    return parse_number(_NON_NUMERIC_RE.sub("", str(raw)))


def parse_int(raw) -> Optional[int]:
    """Lenient int parsing for feed values like "4", 4.0, "1,200"; zero counts as unknown."""
    value = parse_number(str(raw)) if raw is not None else None
    if not value:
        return None
    return int(value)

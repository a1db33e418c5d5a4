import re
from dataclasses import dataclass

from ..config import HOURS_PER_MONTH

_PACK_RE = re.compile(r"^\s*([\d][\d,.]*)\s*([km])?\b", re.IGNORECASE)


@dataclass(frozen=True)
class UnitOfMeasure:
    pack: float  # how many units one price covers ("10K" -> 10000)
    period: str  # "hour" | "month" | "once"


def parse_unit_of_measure(unit_of_measure: str) -> UnitOfMeasure:
    """
    Parse a Retail API unitOfMeasure string.

    "1 GiB/Hour"  -> pack 1, hour
    "1 GB/Month"  -> pack 1, month
    "10K"         -> pack 10000, once
    "1/Month"     -> pack 1, month
    "100 GB"      -> pack 100, once
    "1 Million"   -> pack 1000000, once
    """
    uom = (unit_of_measure or "").strip().lower()

    if "/hour" in uom or uom.endswith("hour") or uom.endswith("hours"):
        period = "hour"
    elif "/month" in uom or uom.endswith("month"):
        period = "month"
    else:
        period = "once"

    pack = 1.0
    m = _PACK_RE.match(uom)
    if m:
        try:
            pack = float(m.group(1).replace(",", ""))
        except ValueError:
            pack = 1.0
        suffix = (m.group(2) or "").lower()
        if suffix == "k":
            pack *= 1_000.0
        elif suffix == "m" or "million" in uom:
            pack *= 1_000_000.0
    elif "million" in uom:
        pack = 1_000_000.0
    if pack <= 0:
        pack = 1.0

    return UnitOfMeasure(pack=pack, period=period)


def hourly_rate(unit_price: float, unit_of_measure: str, *, hours_per_month: float = HOURS_PER_MONTH) -> float:
    """Price per single unit per hour.

    Rate meters without an explicit period are storage prices published per
    month, so they are treated as monthly.
    """
    uom = parse_unit_of_measure(unit_of_measure)
    per_unit = float(unit_price) / uom.pack
    if uom.period == "hour":
        return per_unit
    return per_unit / float(hours_per_month)


def per_unit_price(unit_price: float, unit_of_measure: str) -> float:
    """Price per single unit for one-time (quantity-based) meters."""
    return float(unit_price) / parse_unit_of_measure(unit_of_measure).pack

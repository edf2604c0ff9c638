"""Currency and KPI value parsing for pipeline deal values and headline stats.

Deal values arrive as free-form display strings ("$50K", "$1.2M+", "TBD",
"$36-50K").  Everything here degrades to ``0`` instead of raising, so a
badly typed value can never break a snapshot.
"""

from __future__ import annotations

import math
import re
from typing import Any

_MONEY_STRIP_RE = re.compile(r"[^0-9.kKmM]")
_STAT_STRIP_RE = re.compile(r"[^0-9.\-]")
_LEADING_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)")
_DEAL_VALUE_RE = re.compile(r"\$?([\d.]+)([KMB])?", re.IGNORECASE)

THOUSAND = 1_000
MILLION = 1_000_000
BILLION = 1_000_000_000

_SUFFIX_MULTIPLIERS = {"k": THOUSAND, "m": MILLION, "b": BILLION}


def _leading_float(text: str) -> float | None:
    """Parse the longest numeric prefix of ``text`` ("1.2.3" -> 1.2)."""
    match = _LEADING_FLOAT_RE.match(text)
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_money(value: Any, *, strict_suffix: bool = False) -> float:
    """Convert a display amount like ``"$1.2M"`` or ``"$50K"`` to a number.

    Everything except digits, ``.``, ``K`` and ``M`` is discarded and the
    leading float is read.  By default a ``K`` anywhere in the input
    multiplies by 1,000 and an ``M`` anywhere multiplies by 1,000,000,
    independently, so ``"5KM"`` yields 5e9.  With ``strict_suffix`` only the
    letter directly after the number counts.

    Unparseable input ("TBD", "", "-", None) returns 0.
    """
    if _is_number(value):
        return float(value) if not math.isnan(value) else 0.0
    if not value or not isinstance(value, str):
        return 0.0

    stripped = _MONEY_STRIP_RE.sub("", value)
    match = _LEADING_FLOAT_RE.match(stripped)
    if not match:
        return 0.0
    amount = float(match.group(0))

    if strict_suffix:
        suffix = stripped[match.end():match.end() + 1].lower()
        return amount * _SUFFIX_MULTIPLIERS.get(suffix, 1)

    if "k" in value.lower():
        amount *= THOUSAND
    if "m" in value.lower():
        amount *= MILLION
    return amount


def parse_stat_value(value: Any) -> float:
    """Coerce a headline stat (``"$1.2M+"``, ``"10+"``, ``"45%"``) to a float.

    Percentages and plain counts pass through as their number; an ``M``
    in the text scales by a million, otherwise a ``K`` by a thousand.
    """
    if _is_number(value):
        return float(value) if not math.isnan(value) else 0.0
    if value is None:
        return 0.0

    text = str(value)
    num = _leading_float(_STAT_STRIP_RE.sub("", text))
    if num is None:
        return 0.0
    if "M" in text:
        return num * MILLION
    if "K" in text:
        return num * THOUSAND
    return num


def _plain_number(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return str(amount)


def format_money(amount: float) -> str:
    """Render an amount as ``$1.2M``, ``$50K`` or ``$<n>``."""
    if amount >= MILLION:
        return f"${amount / MILLION:.1f}M"
    if amount >= THOUSAND:
        return f"${amount / THOUSAND:.0f}K"
    return f"${_plain_number(amount)}"


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def format_change(value: float, *, currency: bool = False) -> str:
    """Format an absolute stat delta for trend badges."""
    if currency:
        return format_money(value)
    return str(round_half_up(value))


def parse_deal_value(value: Any) -> float:
    """Parse a closed-deal value, honouring a single K/M/B suffix.

    Used for revenue totals, where the first ``$<number><suffix>`` group in
    the string is the one that counts.
    """
    if _is_number(value):
        return float(value)
    match = _DEAL_VALUE_RE.search(str(value or "0"))
    if not match:
        return 0.0
    num = _leading_float(match.group(1))
    if num is None:
        return 0.0
    suffix = (match.group(2) or "").lower()
    return num * _SUFFIX_MULTIPLIERS.get(suffix, 1)


def format_revenue(total: float) -> str:
    """Revenue label for the closed-deals badge (``$0`` when nothing closed)."""
    if total >= THOUSAND:
        return format_money(total)
    if total > 0:
        return f"${round_half_up(total)}"
    return "$0"

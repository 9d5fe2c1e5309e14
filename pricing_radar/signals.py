"""
Pricing-signal extraction for the Pricing Radar pipeline.

Picks out the diff blocks that mention prices or plan names so the
classifier prompt can point at them. This does not decide whether a change
is meaningful.
"""

import re
from typing import List, Optional, Set

from pricing_radar.utils import get_logger


# Module logger
logger = get_logger("signals")


CURRENCY_SYMBOLS = "$€£¥₹₩₽"

# "$29", "€ 9.99", "29 USD", "10 / mo", "12/user", "99 per year"
PRICE_PATTERN = re.compile(
    rf"[{CURRENCY_SYMBOLS}]\s?\d"
    r"|\b\d[\d,.]*\s?(?:usd|eur|gbp|cad|aud|inr|jpy)\b"
    r"|\b\d[\d,.]*\s*(?:/|per)\s*(?:mo|month|yr|year|user|seat)s?\b",
    re.IGNORECASE
)

PLAN_KEYWORDS: Set[str] = {
    "starter",
    "basic",
    "pro",
    "professional",
    "business",
    "enterprise",
    "team",
    "teams",
    "free",
    "plus",
    "premium",
    "standard",
    "growth",
    "scale",
    "essentials",
    "advanced",
    "ultimate",
    "hobby",
    "personal",
    "individual",
    "startup",
    "agency",
}

PLAN_PATTERN = re.compile(
    r"\b(?:" + "|".join(sorted(PLAN_KEYWORDS)) + r")\b",
    re.IGNORECASE
)


def has_price_signal(text: Optional[str]) -> bool:
    """Check if text contains a currency amount or a per-period price."""
    if not text:
        return False
    return PRICE_PATTERN.search(text) is not None


def has_plan_signal(text: Optional[str]) -> bool:
    """Check if text mentions a common plan or tier name."""
    if not text:
        return False
    return PLAN_PATTERN.search(text) is not None


def extract_pricing_hints(added: List[str], removed: List[str]) -> List[str]:
    """
    Filter diff blocks down to those carrying pricing signal.

    Args:
        added: Added blocks from the differ.
        removed: Removed blocks from the differ.

    Returns:
        Blocks from added + removed that mention a price or plan name, in
        that order, without duplicates.
    """
    hints: List[str] = []
    seen: Set[str] = set()

    for block in list(added) + list(removed):
        if block in seen:
            continue
        if has_price_signal(block) or has_plan_signal(block):
            seen.add(block)
            hints.append(block)

    logger.debug(f"Extracted {len(hints)} pricing hint(s) from {len(added) + len(removed)} block(s)")

    return hints

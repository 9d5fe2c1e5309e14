"""
Noise filter for the Pricing Radar pipeline.

Strips lines that carry no pricing signal before any comparison:
- Tracking / analytics snippets
- Copyright and "last updated" date lines
- Cookie and GDPR consent banners
- Generic legal footer links
- Social-share prompts
"""

import re
from typing import Dict, List, Optional, Pattern

from pricing_radar.utils import get_logger


# Module logger
logger = get_logger("filter")

# Lines shorter than this (after stripping) are dropped
MIN_LINE_LENGTH = 3


TRACKING_PATTERNS: List[str] = [
    r"google[-_ ]?analytics",
    r"googletagmanager",
    r"\bgtag\s*\(",
    r"\bgtm-[a-z0-9]+\b",
    r"\bdata-?layer\b",
    r"\bfbq\s*\(",
    r"facebook pixel",
    r"\bhotjar\b",
    r"\bmixpanel\b",
    r"\bsegment\.(?:io|com)\b",
    r"\butm_(?:source|medium|campaign|term|content)\b",
    r"\b_ga\b",
    r"tracking pixel",
]

COPYRIGHT_PATTERNS: List[str] = [
    r"©",
    r"\(c\)\s*\d{4}",
    r"\bcopyright\b",
    r"\ball rights reserved\b",
    r"\blast (?:updated|modified)\b",
    r"\bupdated (?:on|at)\b",
]

COOKIE_PATTERNS: List[str] = [
    r"\bwe use cookies\b",
    r"\bthis (?:site|website) uses cookies\b",
    r"\bcookies?\b.*\b(?:accept|consent|preferences|settings|policy)\b",
    r"\b(?:accept|reject|decline) (?:all|cookies)\b",
    r"\bmanage (?:cookie )?preferences\b",
    r"\bgdpr\b",
    r"\bccpa\b",
    r"\bdo not sell my\b",
]

LEGAL_FOOTER_PATTERNS: List[str] = [
    r"\bprivacy policy\b",
    r"\bprivacy notice\b",
    r"\bterms of (?:service|use)\b",
    r"\bterms (?:&|and) conditions\b",
    r"\bsitemap\b",
    r"\bcontact us\b",
    r"\blegal notice\b",
    r"\bimprint\b",
]

SOCIAL_SHARE_PATTERNS: List[str] = [
    r"\bshare (?:on|via) (?:twitter|facebook|linkedin|x|email)\b",
    r"\bshare this (?:page|article|post)\b",
    r"\bfollow us\b",
    r"\btweet this\b",
    r"\blike us on facebook\b",
]

NOISE_CATEGORIES: Dict[str, List[str]] = {
    "tracking": TRACKING_PATTERNS,
    "copyright": COPYRIGHT_PATTERNS,
    "cookie": COOKIE_PATTERNS,
    "legal": LEGAL_FOOTER_PATTERNS,
    "social": SOCIAL_SHARE_PATTERNS,
}


def _compile_categories(categories: Dict[str, List[str]]) -> Dict[str, Pattern[str]]:
    return {
        name: re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)
        for name, patterns in categories.items()
    }


_COMPILED_CATEGORIES = _compile_categories(NOISE_CATEGORIES)


def match_noise_category(line: Optional[str]) -> Optional[str]:
    """
    Return the name of the first noise category a line matches.

    Args:
        line: A single line of page text.

    Returns:
        Category name ("tracking", "copyright", "cookie", "legal", "social")
        or None if the line looks like genuine content.
    """
    if not line:
        return None

    for name, pattern in _COMPILED_CATEGORIES.items():
        if pattern.search(line):
            return name

    return None


def is_noise_line(line: Optional[str]) -> bool:
    """
    Check whether a line should be dropped before comparison.

    A line is noise if it is shorter than MIN_LINE_LENGTH once stripped, or
    if it matches any noise category.
    """
    if line is None or len(line.strip()) < MIN_LINE_LENGTH:
        return True

    return match_noise_category(line) is not None


def clean(text: Optional[str]) -> str:
    """
    Remove non-pricing lines from extracted page text.

    Operates line by line; surviving lines are rejoined with newlines,
    runs of three or more newlines collapse to a single blank line and the
    result is stripped. clean(clean(text)) == clean(text).

    Args:
        text: Raw extracted page text. Can be None or empty.

    Returns:
        Cleaned text, or an empty string.
    """
    if not text:
        return ""

    lines = text.split("\n")
    kept = [line for line in lines if not is_noise_line(line)]

    if len(kept) != len(lines):
        logger.debug(f"Noise filter dropped {len(lines) - len(kept)}/{len(lines)} line(s)")

    cleaned = "\n".join(kept)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()

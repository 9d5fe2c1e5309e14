"""
Idempotency gate for the Pricing Radar pipeline.

A change fingerprint hashes only the semantic fields of a ChangeResult, so
the same change re-detected with different summary wording is recognised
and not notified twice.
"""

import hashlib
from typing import Optional

from pricing_radar.models import ChangeResult


FINGERPRINT_LENGTH = 16

# ASCII unit separator; cannot appear in normal page text
FIELD_DELIMITER = "\x1f"


def fingerprint(change: ChangeResult) -> str:
    """
    Compute a stable short hash over kind, old_value, new_value and plan.

    Args:
        change: Classified change.

    Returns:
        First FINGERPRINT_LENGTH hex characters of the SHA-256 digest.
    """
    payload = FIELD_DELIMITER.join([
        change.kind,
        change.old_value,
        change.new_value,
        change.plan,
    ])
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def is_duplicate(new_fingerprint: str, last_fingerprint: Optional[str]) -> bool:
    """Check whether a change was already the last one notified for a target."""
    if not last_fingerprint:
        return False
    return new_fingerprint == last_fingerprint

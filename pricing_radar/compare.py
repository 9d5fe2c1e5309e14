"""
Compare module for the Pricing Radar pipeline.

This module computes a line-level diff between two page snapshots and
renders it for the classifier and for notification emails.

Both snapshots are noise-filtered before diffing, so stored snapshots can
stay raw and be replayed against future filter rules.
"""

import difflib
import re
from typing import List, Optional

from pricing_radar.filter import clean
from pricing_radar.models import DiffResult
from pricing_radar.utils import get_logger


# Module logger
logger = get_logger("compare")

# Blocks shorter than this are discarded as noise
MIN_BLOCK_LENGTH = 3

# Classifier context limits
DEFAULT_CONTEXT_CHARS = 3000
MAX_CONTEXT_BLOCKS = 10

# Notification snippet limits
MAX_SNIPPET_BLOCKS = 5
MAX_SNIPPET_LINE_LENGTH = 120


def normalize_line(line: str) -> str:
    """Collapse whitespace runs so re-wrapped text compares equal."""
    return re.sub(r"\s+", " ", line).strip()


def _to_block(lines: List[str]) -> Optional[str]:
    block = "\n".join(lines).strip()
    if len(block) < MIN_BLOCK_LENGTH:
        return None
    return block


def compare_snapshots(old_text: Optional[str], new_text: Optional[str]) -> DiffResult:
    """
    Compare two snapshots and collect added and removed text blocks.

    Matching is whitespace-insensitive; each diff hunk yields at most one
    removed block (old lines) and one added block (new lines).

    Args:
        old_text: Previous raw snapshot text.
        new_text: Current raw snapshot text.

    Returns:
        DiffResult with added/removed blocks in page order.
    """
    old_lines = clean(old_text).split("\n") if old_text else []
    new_lines = clean(new_text).split("\n") if new_text else []

    # clean("") yields [""]; drop empties so they never form a hunk
    old_lines = [line for line in old_lines if line.strip()]
    new_lines = [line for line in new_lines if line.strip()]

    matcher = difflib.SequenceMatcher(
        None,
        [normalize_line(line) for line in old_lines],
        [normalize_line(line) for line in new_lines],
        autojunk=False
    )

    result = DiffResult()

    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue

        if tag in ("replace", "delete"):
            block = _to_block(old_lines[i1:i2])
            if block:
                result.removed.append(block)

        if tag in ("replace", "insert"):
            block = _to_block(new_lines[j1:j2])
            if block:
                result.added.append(block)

    logger.debug(
        f"Diff complete: {len(result.added)} added, {len(result.removed)} removed block(s)"
    )

    return result


def build_diff_context(
    old_text: Optional[str],
    new_text: Optional[str],
    max_chars: int = DEFAULT_CONTEXT_CHARS
) -> Optional[str]:
    """
    Build a compact, size-bounded diff description for the classifier.

    Args:
        old_text: Previous snapshot text.
        new_text: Current snapshot text.
        max_chars: Maximum length of the returned context.

    Returns:
        "REMOVED:" / "ADDED:" sections truncated to max_chars, or None when
        nothing changed.
    """
    return render_diff_context(compare_snapshots(old_text, new_text), max_chars)


def render_diff_context(diff: DiffResult, max_chars: int = DEFAULT_CONTEXT_CHARS) -> Optional[str]:
    """Render an already computed diff as classifier context, or None if empty."""
    if not diff.has_changes:
        return None

    context = ""

    if diff.removed:
        context += "REMOVED:\n" + "\n".join(diff.removed[:MAX_CONTEXT_BLOCKS]) + "\n\n"
    if diff.added:
        context += "ADDED:\n" + "\n".join(diff.added[:MAX_CONTEXT_BLOCKS])

    return context[:max_chars]


def _excerpt(block: str) -> str:
    return normalize_line(block)[:MAX_SNIPPET_LINE_LENGTH]


def build_diff_snippet(old_text: Optional[str], new_text: Optional[str]) -> str:
    """
    Render a short human-readable diff for notification emails.

    Up to five removed excerpts ("- ") followed by up to five added excerpts
    ("+ "), each a single line of at most 120 characters.

    Returns:
        The snippet, or an empty string when nothing changed.
    """
    return render_diff_snippet(compare_snapshots(old_text, new_text))


def render_diff_snippet(diff: DiffResult) -> str:
    """Render an already computed diff as an email snippet."""
    lines = [f"- {_excerpt(block)}" for block in diff.removed[:MAX_SNIPPET_BLOCKS]]
    lines.extend(f"+ {_excerpt(block)}" for block in diff.added[:MAX_SNIPPET_BLOCKS])

    return "\n".join(lines)

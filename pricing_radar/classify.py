"""
Change classifier for the Pricing Radar pipeline.

This module asks a text-understanding service whether the difference between
two cleaned snapshots is a meaningful pricing change, and turns its reply
into a ChangeResult.

The service is treated as an untrusted oracle: its output is fence-stripped,
JSON-validated, checked against the known change kinds and gated on
confidence before anything reaches the orchestrator. Every failure degrades
to "no meaningful change" (None).
"""

import json
import math
import re
from typing import Any, Dict, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from pricing_radar.compare import DEFAULT_CONTEXT_CHARS, compare_snapshots, render_diff_context
from pricing_radar.models import CHANGE_KINDS, UNKNOWN_PLAN, ChangeResult, DiffResult
from pricing_radar.signals import extract_pricing_hints
from pricing_radar.utils import get_logger


# Module logger
logger = get_logger("classify")

# Gemini model configuration
DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TEMPERATURE = 0.1
DEFAULT_TIMEOUT = 60

DEFAULT_CONFIDENCE_THRESHOLD = 0.6
NO_CHANGE_SENTINEL = "NO_SIGNIFICANT_CHANGE"
DEFAULT_SUMMARY = "Pricing change detected"
MAX_SUMMARY_WORDS = 30
MAX_PROMPT_HINTS = 15

SYSTEM_PROMPT = f"""You are a SaaS pricing change detector. Compare two pricing page snapshots.

DETECT ONLY:
- price_change: A numeric price value changed (e.g. $29 -> $39)
- tier_change: A plan/tier was added or removed
- feature_change: A bullet-point feature was added, removed, or changed in a plan
- copy_change: Non-structural marketing text changed

IGNORE COMPLETELY:
- Whitespace or formatting differences
- Footer text, legal text or copyright years
- Navigation menu text
- Tracking pixel / analytics script references
- Timestamps, "last updated" dates
- Cookie banner text
- Any change with low certainty

If there is no meaningful pricing change, respond with exactly: {NO_CHANGE_SENTINEL}

If there IS a meaningful change, respond with ONLY a valid JSON object (no markdown, no code fences):
{{
  "kind": "price_change" | "tier_change" | "feature_change" | "copy_change",
  "summary": "one sentence, max {MAX_SUMMARY_WORDS} words",
  "old_value": "what it was (be specific)",
  "new_value": "what it is now (be specific)",
  "plan": "plan name or Unknown",
  "confidence_score": 0.0 to 1.0
}}

Rules:
- Prefer false negatives over false positives. When in doubt -> {NO_CHANGE_SENTINEL}
- confidence_score must reflect your certainty.
- Never invent values. Only report what you can clearly see in the text."""


class ClassifierServiceError(Exception):
    """Raised when the classification service cannot produce a reply."""

    def __init__(self, message: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.status_code = status_code
        self.original_error = original_error


class GeminiClient:
    """
    Thin wrapper over the google-generativeai SDK.

    Any object with a generate(prompt) -> str method can stand in for this
    client when constructing a ChangeClassifier.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: int = DEFAULT_TIMEOUT,
        temperature: float = DEFAULT_TEMPERATURE
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")

        self.model_name = model
        self.timeout = timeout
        self.temperature = temperature

        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model)

    def generate(self, prompt: str) -> str:
        """
        Send a prompt and return the reply text.

        Raises:
            ClassifierServiceError: On an API failure or a reply without
                candidate text.
        """
        try:
            response = self.model.generate_content(
                prompt,
                generation_config={"temperature": self.temperature},
                request_options={"timeout": self.timeout},
            )
        except google_exceptions.GoogleAPIError as e:
            raise ClassifierServiceError(
                f"Request to classifier failed: {e}",
                status_code=getattr(e, "code", None),
                original_error=e
            )

        try:
            # .text raises ValueError when the reply was blocked or empty
            return response.text
        except ValueError as e:
            raise ClassifierServiceError("Classifier response had no candidate text", original_error=e)


def strip_code_fences(raw: str) -> str:
    """Remove surrounding ``` / ```json markers the service sometimes adds."""
    text = raw.strip()
    text = re.sub(r"^```[a-zA-Z]*\s*", "", text)
    text = re.sub(r"\s*```$", "", text)
    return text.strip()


def _coerce_confidence(value: Any) -> Optional[float]:
    # bool is an int subclass; true/false is not a score
    if value is None or isinstance(value, bool):
        return None
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(confidence) or confidence < 0.0 or confidence > 1.0:
        return None
    return confidence


def _coerce_text(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _limit_words(text: str, max_words: int = MAX_SUMMARY_WORDS) -> str:
    words = text.split()
    if len(words) <= max_words:
        return " ".join(words)
    return " ".join(words[:max_words])


def parse_classifier_response(
    raw: Optional[str],
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
) -> Optional[ChangeResult]:
    """
    Validate a raw classifier reply and build a ChangeResult.

    Never raises; any malformed reply is logged and treated as no change.

    Args:
        raw: Reply text from the service.
        confidence_threshold: Minimum confidence_score to accept.

    Returns:
        ChangeResult, or None for no meaningful change.
    """
    if not raw or not raw.strip():
        return None

    text = strip_code_fences(raw)

    if not text or text == NO_CHANGE_SENTINEL:
        return None

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"Classifier returned non-JSON, treating as no change: {text[:100]!r}")
        return None

    if not isinstance(parsed, dict):
        logger.warning(f"Classifier returned {type(parsed).__name__}, expected an object")
        return None

    record: Dict[str, Any] = parsed
    kind = record.get("kind", record.get("type"))

    if kind not in CHANGE_KINDS:
        logger.warning(f"Invalid change kind from classifier: {kind!r}")
        return None

    confidence = _coerce_confidence(record.get("confidence_score"))

    if confidence is None:
        logger.warning(
            f"Missing or invalid confidence_score: {record.get('confidence_score')!r}"
        )
        return None

    if confidence < confidence_threshold:
        logger.info(
            f"Low confidence ({confidence}) - treating as no meaningful change"
        )
        return None

    return ChangeResult(
        kind=kind,
        summary=_limit_words(_coerce_text(record.get("summary"), DEFAULT_SUMMARY)),
        old_value=_coerce_text(record.get("old_value"), ""),
        new_value=_coerce_text(record.get("new_value"), ""),
        plan=_coerce_text(record.get("plan"), UNKNOWN_PLAN),
        confidence_score=confidence,
    )


def build_prompt(
    old_text: str,
    new_text: str,
    diff_context: Optional[str] = None,
    diff: Optional[DiffResult] = None
) -> str:
    """
    Assemble the classifier prompt for two cleaned snapshots.

    The compact diff and the changed lines that carry price or plan signal
    follow the snapshots so the service looks there first. The diff is
    computed here only when the caller did not supply one.
    """
    prompt = f"{SYSTEM_PROMPT}\n\nOLD_VERSION:\n{old_text}\n\nNEW_VERSION:\n{new_text}"

    if diff_context:
        prompt += f"\n\nCHANGES:\n{diff_context}"

    if diff is None:
        diff = compare_snapshots(old_text, new_text)
    hints = extract_pricing_hints(diff.added, diff.removed)

    if hints:
        prompt += "\n\nPRICING_LINES (changed lines that mention prices or plans):\n"
        prompt += "\n".join(hints[:MAX_PROMPT_HINTS])

    return prompt


class ChangeClassifier:
    """Classifies the difference between two cleaned snapshots."""

    def __init__(
        self,
        client: Any,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        max_context_chars: int = DEFAULT_CONTEXT_CHARS
    ):
        self.client = client
        self.confidence_threshold = confidence_threshold
        self.max_context_chars = max_context_chars

    def classify(
        self,
        old_text: str,
        new_text: str,
        diff: Optional[DiffResult] = None
    ) -> Optional[ChangeResult]:
        """
        Classify the change between two cleaned snapshots.

        Service and parsing failures are logged and returned as None; they
        never propagate to the caller and are not retried.

        Args:
            old_text: Previous cleaned snapshot text.
            new_text: Current cleaned snapshot text.
            diff: Diff of the two snapshots, if the caller already has it.

        Returns:
            ChangeResult for a meaningful change, otherwise None.
        """
        if diff is None:
            diff = compare_snapshots(old_text, new_text)

        diff_context = render_diff_context(diff, self.max_context_chars)

        if diff_context is None:
            logger.debug("No textual difference, skipping classifier call")
            return None

        prompt = build_prompt(old_text, new_text, diff_context, diff=diff)

        try:
            raw = self.client.generate(prompt)
        except ClassifierServiceError as e:
            logger.error(f"Classifier service error: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected classifier error: {e}")
            return None

        return parse_classifier_response(raw, self.confidence_threshold)

"""
Configuration for the Pricing Radar pipeline.

All settings come from environment variables. Defaults reproduce the
production behaviour: a 0.6 confidence gate, a 24-hour cooldown and a
two-second pause between targets.
"""

import os
from dataclasses import dataclass
from typing import Optional

from pricing_radar.notify import SmtpConfig
from pricing_radar.utils import get_env_var, is_truthy


DEFAULT_DATA_PATH = "data"
DEFAULT_CONFIDENCE_THRESHOLD = 0.6
DEFAULT_COOLDOWN_HOURS = 24.0
DEFAULT_REQUEST_DELAY = 2.0
DEFAULT_FETCH_TIMEOUT = 15
DEFAULT_MAX_PAGE_CHARS = 8000
DEFAULT_DIFF_CONTEXT_CHARS = 3000
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_SCHEDULE_HOUR = 2
DEFAULT_SCHEDULE_MINUTE = 0

RUN_MODE_ONCE = "once"
RUN_MODE_DAEMON = "daemon"
RUN_MODES = (RUN_MODE_ONCE, RUN_MODE_DAEMON)

SMTP_REQUIRED_VARS = [
    "SMTP_HOST", "SMTP_PORT", "SMTP_USER",
    "SMTP_PASSWORD", "EMAIL_FROM"
]


@dataclass
class MonitorConfig:
    """Runtime settings for one process."""
    data_path: str = DEFAULT_DATA_PATH
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    cooldown_hours: float = DEFAULT_COOLDOWN_HOURS
    request_delay: float = DEFAULT_REQUEST_DELAY
    fetch_timeout: int = DEFAULT_FETCH_TIMEOUT
    max_page_chars: int = DEFAULT_MAX_PAGE_CHARS
    diff_context_chars: int = DEFAULT_DIFF_CONTEXT_CHARS
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    smtp: Optional[SmtpConfig] = None
    dry_run: bool = False
    run_mode: str = RUN_MODE_ONCE
    run_on_start: bool = False
    schedule_hour: int = DEFAULT_SCHEDULE_HOUR
    schedule_minute: int = DEFAULT_SCHEDULE_MINUTE
    health_port: Optional[int] = None
    log_level: str = "INFO"


def _get_float(name: str, default: float, minimum: Optional[float] = None, maximum: Optional[float] = None) -> float:
    raw = get_env_var(name, required=False)
    if raw is None:
        return default

    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw}")

    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {raw}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {raw}")

    return value


def _get_int(name: str, default: Optional[int], minimum: Optional[int] = None, maximum: Optional[int] = None) -> Optional[int]:
    raw = get_env_var(name, required=False)
    if raw is None:
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be a valid integer, got: {raw}")

    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {raw}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {raw}")

    return value


def is_email_configured() -> bool:
    """
    Check if email notification is configured.

    Returns:
        True if all SMTP environment variables are set, False otherwise.
    """
    for var in SMTP_REQUIRED_VARS:
        value = os.environ.get(var)
        if not value or value.strip() == "":
            return False

    return True


def load_smtp_config() -> SmtpConfig:
    """
    Read SMTP settings from environment variables.

    Raises:
        ValueError: If any required variable is missing or SMTP_PORT is invalid.
    """
    host = get_env_var("SMTP_HOST", required=True)
    user = get_env_var("SMTP_USER", required=True)
    password = get_env_var("SMTP_PASSWORD", required=True)
    email_from = get_env_var("EMAIL_FROM", required=True)
    port = _get_int("SMTP_PORT", None, minimum=1, maximum=65535)

    if port is None:
        raise ValueError("Required environment variable 'SMTP_PORT' is not set")

    # Type assertions - get_env_var with required=True raises ValueError if None
    assert host is not None
    assert user is not None
    assert password is not None
    assert email_from is not None

    return SmtpConfig(
        host=host,
        port=port,
        user=user,
        password=password,
        email_from=email_from,
        reply_to=get_env_var("EMAIL_REPLY_TO", required=False),
    )


def load_config() -> MonitorConfig:
    """
    Build a MonitorConfig from the environment.

    Returns:
        Populated MonitorConfig.

    Raises:
        ValueError: If a variable has an invalid value.
    """
    run_mode = (get_env_var("RUN_MODE", required=False, default=RUN_MODE_ONCE) or RUN_MODE_ONCE).lower()
    if run_mode not in RUN_MODES:
        raise ValueError(f"RUN_MODE must be one of {', '.join(RUN_MODES)}, got: {run_mode}")

    return MonitorConfig(
        data_path=get_env_var("DATA_PATH", required=False, default=DEFAULT_DATA_PATH) or DEFAULT_DATA_PATH,
        confidence_threshold=_get_float(
            "CONFIDENCE_THRESHOLD", DEFAULT_CONFIDENCE_THRESHOLD, minimum=0.0, maximum=1.0
        ),
        cooldown_hours=_get_float("COOLDOWN_HOURS", DEFAULT_COOLDOWN_HOURS, minimum=0.0),
        request_delay=_get_float("REQUEST_DELAY", DEFAULT_REQUEST_DELAY, minimum=0.0),
        fetch_timeout=_get_int("FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT, minimum=1) or DEFAULT_FETCH_TIMEOUT,
        max_page_chars=_get_int("MAX_PAGE_CHARS", DEFAULT_MAX_PAGE_CHARS, minimum=1) or DEFAULT_MAX_PAGE_CHARS,
        diff_context_chars=_get_int(
            "DIFF_CONTEXT_CHARS", DEFAULT_DIFF_CONTEXT_CHARS, minimum=1
        ) or DEFAULT_DIFF_CONTEXT_CHARS,
        gemini_api_key=get_env_var("GEMINI_API_KEY", required=False),
        gemini_model=get_env_var("GEMINI_MODEL", required=False, default=DEFAULT_GEMINI_MODEL) or DEFAULT_GEMINI_MODEL,
        smtp=load_smtp_config() if is_email_configured() else None,
        dry_run=is_truthy(os.environ.get("DRY_RUN")),
        run_mode=run_mode,
        run_on_start=is_truthy(os.environ.get("RUN_ON_START")),
        schedule_hour=_get_int("SCHEDULE_HOUR", DEFAULT_SCHEDULE_HOUR, minimum=0, maximum=23) or 0,
        schedule_minute=_get_int("SCHEDULE_MINUTE", DEFAULT_SCHEDULE_MINUTE, minimum=0, maximum=59) or 0,
        health_port=_get_int("HEALTH_PORT", None, minimum=1, maximum=65535),
        log_level=(get_env_var("LOG_LEVEL", required=False, default="INFO") or "INFO").upper(),
    )

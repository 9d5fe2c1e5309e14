"""
Monitoring orchestrator for the Pricing Radar pipeline.

One check cycle walks every active target sequentially:
cooldown → fetch → snapshot → diff → classify → dedupe → alert → notify

Each target is processed independently. Any failure is logged and recorded
as that target's outcome; it never stops the rest of the batch.

Notification is at-most-once per change: the target's fingerprint advances
even when email delivery fails, so a failed send is not retried on the next
cycle.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pricing_radar.compare import compare_snapshots, render_diff_snippet
from pricing_radar.config import MonitorConfig
from pricing_radar.filter import clean
from pricing_radar.fingerprint import fingerprint, is_duplicate
from pricing_radar.models import MonitorTarget
from pricing_radar.notify import render_alert_message
from pricing_radar.store import Store, StoreError
from pricing_radar.utils import get_logger, utcnow


# Module logger
logger = get_logger("monitor")


class CheckOutcome(str, Enum):
    """Terminal state of one target's check."""
    COOLDOWN = "cooldown"
    FETCH_FAILED = "fetch_failed"
    BASELINE = "baseline"
    NO_TEXT_CHANGE = "no_text_change"
    NO_MEANINGFUL_CHANGE = "no_meaningful_change"
    DUPLICATE_CHANGE = "duplicate_change"
    NOTIFIED = "notified"
    NOTIFY_FAILED = "notify_failed"
    ERROR = "error"


@dataclass
class CycleSummary:
    """Outcome of every target checked in one cycle."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: Dict[str, CheckOutcome] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def count(self, outcome: CheckOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)

    def counts(self) -> Dict[str, int]:
        return {o.value: self.count(o) for o in CheckOutcome if self.count(o)}


def is_in_cooldown(target: MonitorTarget, now: datetime, cooldown_hours: float) -> bool:
    """
    Check whether a target was checked too recently to check again.

    Args:
        target: Monitor to check.
        now: Current time (timezone-aware).
        cooldown_hours: Minimum interval between checks.

    Returns:
        True if the last check is younger than the cooldown window.
    """
    if target.last_checked_at is None:
        return False

    elapsed = now - target.last_checked_at
    return elapsed < timedelta(hours=cooldown_hours)


class MonitorOrchestrator:
    """
    Runs check cycles over all active monitors.

    Args:
        store: Persistence for targets, snapshots and alerts.
        fetcher: Object with fetch(url) -> Optional[str].
        classifier: Object with classify(old_text, new_text, diff=None) -> Optional[ChangeResult].
        notifier: Object with send(recipient, message) -> bool.
        config: Runtime settings (cooldown, delay).
        sleep: Called with the delay between targets.
        clock: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        store: Store,
        fetcher: Any,
        classifier: Any,
        notifier: Any,
        config: Optional[MonitorConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.fetcher = fetcher
        self.classifier = classifier
        self.notifier = notifier
        self.config = config or MonitorConfig()
        self.sleep = sleep
        self.clock = clock

    def run_cycle(self) -> CycleSummary:
        """
        Check every active target once, strictly one after another.

        Returns:
            CycleSummary with one outcome per processed target.
        """
        summary = CycleSummary(started_at=self.clock())

        logger.info("=" * 60)
        logger.info(f"Monitoring run starting at {summary.started_at.isoformat()}")
        logger.info("=" * 60)

        try:
            targets = self.store.get_active_targets()
        except StoreError as e:
            logger.error(f"Failed to load monitors: {e}")
            summary.finished_at = self.clock()
            return summary

        logger.info(f"Processing {len(targets)} monitor(s)")

        for i, target in enumerate(targets):
            try:
                outcome = self.process_target(target, now=summary.started_at)
            except Exception as e:
                logger.exception(f"Error processing monitor {target.id}: {e}")
                outcome = CheckOutcome.ERROR

            summary.outcomes[target.id] = outcome

            # Be polite to origins: pause between targets, not after the last
            if i < len(targets) - 1 and self.config.request_delay > 0:
                self.sleep(self.config.request_delay)

        summary.finished_at = self.clock()

        logger.info("=" * 60)
        logger.info(f"Monitoring run complete: {summary.total} checked, {summary.counts()}")
        logger.info("=" * 60)

        return summary

    def process_target(self, target: MonitorTarget, now: Optional[datetime] = None) -> CheckOutcome:
        """
        Run one target through the check state machine.

        Store errors propagate to run_cycle, which records them as ERROR.

        Args:
            target: Active monitor to check.
            now: Check time. run_cycle passes the cycle start so every target
                of a cycle is stamped alike; defaults to the clock.

        Returns:
            The terminal CheckOutcome.
        """
        if now is None:
            now = self.clock()

        if is_in_cooldown(target, now, self.config.cooldown_hours):
            hours = (now - target.last_checked_at).total_seconds() / 3600
            logger.info(
                f"Skipping {target.name} - checked {hours:.0f}h ago "
                f"(< {self.config.cooldown_hours:g}h cooldown)"
            )
            return CheckOutcome.COOLDOWN

        logger.info(f"Checking: {target.name} ({target.url})")

        new_content = self.fetcher.fetch(target.url)
        if not new_content:
            logger.warning(f"Could not fetch {target.url} - skipping")
            return CheckOutcome.FETCH_FAILED

        previous = self.store.get_latest_snapshot(target.id)
        snapshot = self.store.insert_snapshot(target.id, new_content, fetched_at=now)
        self.store.update_target(target.id, last_checked_at=now)

        if previous is None:
            logger.info(f"First snapshot saved for {target.name} - baseline set")
            return CheckOutcome.BASELINE

        diff = compare_snapshots(previous.content, new_content)
        if not diff.has_changes:
            logger.info(f"No changes detected for {target.name}")
            return CheckOutcome.NO_TEXT_CHANGE

        logger.info(
            f"Text changed for {target.name}: "
            f"{len(diff.added)} added, {len(diff.removed)} removed block(s)"
        )

        change = self.classifier.classify(clean(previous.content), clean(new_content), diff=diff)
        if change is None:
            logger.info(f"No meaningful pricing change for {target.name}")
            return CheckOutcome.NO_MEANINGFUL_CHANGE

        change_hash = fingerprint(change)
        if is_duplicate(change_hash, target.last_change_hash):
            logger.info(
                f"Change {change_hash} for {target.name} was already notified - skipping"
            )
            return CheckOutcome.DUPLICATE_CHANGE

        logger.info(
            f"PRICING CHANGE DETECTED for {target.name}: "
            f"[{change.kind}] {change.summary} (confidence {change.confidence_score:.2f})"
        )

        alert = self.store.insert_alert(
            monitor_id=target.id,
            old_snapshot_id=previous.id,
            new_snapshot_id=snapshot.id,
            change=change,
            change_hash=change_hash,
        )

        snippet = render_diff_snippet(diff)
        message = render_alert_message(target, change, snippet, detected_at=now)

        try:
            sent = self.notifier.send(target.user_email, message)
        except Exception as e:
            logger.error(f"Notifier raised for {target.user_email}: {e}")
            sent = False

        if sent:
            self.store.mark_alert_sent(alert.id)
            logger.info(f"Alert email sent to {target.user_email}")
        else:
            logger.warning(
                f"Alert {alert.id} saved but email to {target.user_email} failed; "
                f"change will not be re-sent"
            )

        self.store.update_target(
            target.id,
            last_change_hash=change_hash,
            last_change_type=change.kind,
            last_meaningful_change_at=now,
        )

        return CheckOutcome.NOTIFIED if sent else CheckOutcome.NOTIFY_FAILED

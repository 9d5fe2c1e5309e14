"""
Persistence for the Pricing Radar pipeline.

This module defines the store interface the orchestrator depends on and a
JSON-file implementation of it:
- monitors.json: registered MonitorTargets and their check state
- snapshots.json: raw page text captures, append-only
- alerts.json: notified (or notification-attempted) changes

Every write goes through an atomic temp-file rename. A failed write raises
StoreError so the caller can abort the current target cleanly.
"""

import json
import os
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pricing_radar.fetch import validate_url
from pricing_radar.models import Alert, ChangeResult, MonitorTarget, Snapshot
from pricing_radar.utils import get_logger, read_json, safe_write_json, to_iso, utcnow


# Module logger
logger = get_logger("store")

DEFAULT_DATA_PATH = "data"

MONITORS_FILE = "monitors.json"
SNAPSHOTS_FILE = "snapshots.json"
ALERTS_FILE = "alerts.json"

# Registration limits
EMAIL_MONITOR_LIMIT = 3
GLOBAL_MONITOR_CAP = 500

# Fields the orchestrator may change on a target
UPDATABLE_TARGET_FIELDS = {
    "last_checked_at",
    "last_change_hash",
    "last_change_type",
    "last_meaningful_change_at",
    "is_active",
}


class StoreError(Exception):
    """Raised when a store read or write cannot be completed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class MonitorLimitError(Exception):
    """Raised when registering a monitor would exceed a registration limit."""

    def __init__(self, message: str, count: int = 0):
        super().__init__(message)
        self.count = count


def _is_valid_email(email: str) -> bool:
    """
    Basic email validation.

    Args:
        email: Email address to validate.

    Returns:
        True if email appears valid.
    """
    if not email or "@" not in email:
        return False

    parts = email.split("@")
    if len(parts) != 2:
        return False

    local, domain = parts
    if not local or not domain or "." not in domain:
        return False

    return True


def _new_id() -> str:
    return uuid.uuid4().hex


class Store:
    """
    Interface the orchestrator uses to read and mutate monitoring state.

    Implementations raise StoreError when an operation fails.
    """

    def get_active_targets(self) -> List[MonitorTarget]:
        raise NotImplementedError

    def get_latest_snapshot(self, monitor_id: str) -> Optional[Snapshot]:
        raise NotImplementedError

    def insert_snapshot(self, monitor_id: str, content: str, fetched_at: Optional[datetime] = None) -> Snapshot:
        raise NotImplementedError

    def update_target(self, monitor_id: str, **fields: Any) -> None:
        raise NotImplementedError

    def insert_alert(
        self,
        monitor_id: str,
        old_snapshot_id: str,
        new_snapshot_id: str,
        change: ChangeResult,
        change_hash: str
    ) -> Alert:
        raise NotImplementedError

    def mark_alert_sent(self, alert_id: str) -> None:
        raise NotImplementedError


class JsonStore(Store):
    """Store backed by three JSON files in a data directory."""

    def __init__(self, data_path: str = DEFAULT_DATA_PATH):
        self.data_path = data_path
        self.monitors_path = os.path.join(data_path, MONITORS_FILE)
        self.snapshots_path = os.path.join(data_path, SNAPSHOTS_FILE)
        self.alerts_path = os.path.join(data_path, ALERTS_FILE)

    # -------------------------------------------------------------------------
    # Raw file access
    # -------------------------------------------------------------------------

    def _load(self, filepath: str, key: str) -> List[Dict[str, Any]]:
        """
        Load the record list stored under key.

        A missing file is an empty list. An unreadable, unparseable or
        wrongly shaped file raises StoreError and is left untouched.

        Raises:
            StoreError: If the file exists but its records cannot be loaded.
        """
        try:
            data = read_json(filepath, default={})
        except json.JSONDecodeError as e:
            raise StoreError(f"Invalid JSON in {filepath}: {e}", e)
        except OSError as e:
            raise StoreError(f"Failed to read {filepath}: {e}", e)

        if isinstance(data, dict):
            records = data.get(key, [])
        elif isinstance(data, list):
            records = data
        else:
            records = None

        if not isinstance(records, list):
            raise StoreError(f"Unexpected data format in {filepath}")

        return [r for r in records if isinstance(r, dict)]

    def _save(self, filepath: str, key: str, records: List[Dict[str, Any]]) -> None:
        data = {
            "last_updated": to_iso(utcnow()),
            "count": len(records),
            key: records,
        }

        if not safe_write_json(filepath, data):
            raise StoreError(f"Failed to write {filepath}")

    def _load_targets(self) -> List[MonitorTarget]:
        targets = []
        for record in self._load(self.monitors_path, "monitors"):
            try:
                targets.append(MonitorTarget.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid monitor entry: {e}")
        return targets

    def _save_targets(self, targets: List[MonitorTarget]) -> None:
        self._save(self.monitors_path, "monitors", [t.to_dict() for t in targets])

    # -------------------------------------------------------------------------
    # Orchestrator operations
    # -------------------------------------------------------------------------

    def list_targets(self, active_only: bool = False) -> List[MonitorTarget]:
        targets = self._load_targets()
        if active_only:
            targets = [t for t in targets if t.is_active]
        return targets

    def get_active_targets(self) -> List[MonitorTarget]:
        targets = self.list_targets(active_only=True)
        logger.info(f"Loaded {len(targets)} active monitor(s)")
        return targets

    def get_target(self, monitor_id: str) -> Optional[MonitorTarget]:
        return next((t for t in self._load_targets() if t.id == monitor_id), None)

    def get_snapshots(self, monitor_id: str) -> List[Snapshot]:
        """All snapshots of a target, oldest first."""
        snapshots = []
        for record in self._load(self.snapshots_path, "snapshots"):
            if str(record.get("monitor_id")) != monitor_id:
                continue
            try:
                snapshots.append(Snapshot.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid snapshot entry: {e}")

        # Stable sort keeps insertion order for equal timestamps
        return sorted(snapshots, key=lambda s: s.fetched_at)

    def get_latest_snapshot(self, monitor_id: str) -> Optional[Snapshot]:
        snapshots = self.get_snapshots(monitor_id)
        return snapshots[-1] if snapshots else None

    def insert_snapshot(self, monitor_id: str, content: str, fetched_at: Optional[datetime] = None) -> Snapshot:
        snapshot = Snapshot(
            id=_new_id(),
            monitor_id=monitor_id,
            content=content,
            fetched_at=fetched_at or utcnow(),
        )

        records = self._load(self.snapshots_path, "snapshots")
        records.append(snapshot.to_dict())
        self._save(self.snapshots_path, "snapshots", records)

        logger.debug(f"Saved snapshot {snapshot.id} for monitor {monitor_id}")
        return snapshot

    def update_target(self, monitor_id: str, **fields: Any) -> None:
        unknown = set(fields) - UPDATABLE_TARGET_FIELDS
        if unknown:
            raise ValueError(f"Cannot update monitor field(s): {', '.join(sorted(unknown))}")

        targets = self._load_targets()
        target = next((t for t in targets if t.id == monitor_id), None)

        if target is None:
            raise StoreError(f"Monitor not found: {monitor_id}")

        for name, value in fields.items():
            setattr(target, name, value)

        self._save_targets(targets)

    def list_alerts(self, monitor_id: Optional[str] = None) -> List[Alert]:
        alerts = []
        for record in self._load(self.alerts_path, "alerts"):
            if monitor_id is not None and str(record.get("monitor_id")) != monitor_id:
                continue
            try:
                alerts.append(Alert.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid alert entry: {e}")
        return alerts

    def insert_alert(
        self,
        monitor_id: str,
        old_snapshot_id: str,
        new_snapshot_id: str,
        change: ChangeResult,
        change_hash: str
    ) -> Alert:
        alert = Alert.from_change(
            alert_id=_new_id(),
            monitor_id=monitor_id,
            old_snapshot_id=old_snapshot_id,
            new_snapshot_id=new_snapshot_id,
            change=change,
            change_hash=change_hash,
        )

        records = self._load(self.alerts_path, "alerts")
        records.append(alert.to_dict())
        self._save(self.alerts_path, "alerts", records)

        logger.debug(f"Saved alert {alert.id} for monitor {monitor_id}")
        return alert

    def mark_alert_sent(self, alert_id: str) -> None:
        records = self._load(self.alerts_path, "alerts")

        for record in records:
            if str(record.get("id")) == alert_id:
                record["emailed"] = True
                break
        else:
            raise StoreError(f"Alert not found: {alert_id}")

        self._save(self.alerts_path, "alerts", records)

    # -------------------------------------------------------------------------
    # Registration (used by the CLI, never by the orchestrator)
    # -------------------------------------------------------------------------

    def add_target(self, name: str, url: str, user_email: str) -> MonitorTarget:
        """
        Register a new monitor.

        Args:
            name: Competitor label.
            url: Pricing page URL (http/https).
            user_email: Alert recipient.

        Returns:
            The created MonitorTarget.

        Raises:
            ValueError: If name, URL or email is invalid.
            MonitorLimitError: If the per-email limit or global cap is reached.
        """
        name = (name or "").strip()
        url = (url or "").strip()
        email = (user_email or "").strip().lower()

        if not name:
            raise ValueError("Competitor name is required")
        if not validate_url(url):
            raise ValueError(f"Invalid URL: {url}")
        if not _is_valid_email(email):
            raise ValueError(f"Invalid email address: {user_email}")

        targets = self._load_targets()

        email_count = sum(1 for t in targets if t.user_email == email)
        if email_count >= EMAIL_MONITOR_LIMIT:
            raise MonitorLimitError(
                f"{email} already has {email_count} monitor(s) (limit {EMAIL_MONITOR_LIMIT})",
                count=email_count
            )

        if len(targets) >= GLOBAL_MONITOR_CAP:
            raise MonitorLimitError(
                f"Global monitor cap of {GLOBAL_MONITOR_CAP} reached",
                count=len(targets)
            )

        target = MonitorTarget(
            id=_new_id(),
            name=name,
            url=url,
            user_email=email,
            created_at=utcnow(),
        )
        targets.append(target)
        self._save_targets(targets)

        logger.info(f"Added monitor {target.id}: {name} ({url})")
        return target

    def remove_target(self, monitor_id: str) -> bool:
        """
        Delete a monitor together with its snapshots and alerts.

        Returns:
            True if the monitor existed.
        """
        targets = self._load_targets()
        remaining = [t for t in targets if t.id != monitor_id]

        if len(remaining) == len(targets):
            return False

        self._save_targets(remaining)

        snapshots = [
            r for r in self._load(self.snapshots_path, "snapshots")
            if str(r.get("monitor_id")) != monitor_id
        ]
        self._save(self.snapshots_path, "snapshots", snapshots)

        alerts = [
            r for r in self._load(self.alerts_path, "alerts")
            if str(r.get("monitor_id")) != monitor_id
        ]
        self._save(self.alerts_path, "alerts", alerts)

        logger.info(f"Removed monitor {monitor_id}")
        return True

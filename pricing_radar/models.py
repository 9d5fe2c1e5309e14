"""
Data model for the Pricing Radar pipeline.

MonitorTarget, Snapshot and Alert are persisted by the store; DiffResult and
ChangeResult are transient values produced while checking a target.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pricing_radar.utils import parse_iso, to_iso, utcnow


# Recognised change kinds
PRICE_CHANGE = "price_change"
TIER_CHANGE = "tier_change"
FEATURE_CHANGE = "feature_change"
COPY_CHANGE = "copy_change"

CHANGE_KINDS = (PRICE_CHANGE, TIER_CHANGE, FEATURE_CHANGE, COPY_CHANGE)

UNKNOWN_PLAN = "Unknown"


@dataclass
class MonitorTarget:
    """
    A tracked competitor page plus its recipient and check state.

    Attributes:
        id: Opaque identifier.
        name: Human label for the competitor.
        url: Pricing page URL.
        user_email: Address that receives alerts.
        is_active: Inactive targets are never checked.
        created_at: Registration time.
        last_checked_at: Time of the last successful fetch + snapshot save.
        last_change_hash: Fingerprint of the last notified change.
        last_change_type: Kind of the last notified change.
        last_meaningful_change_at: Time the last change was notified.
    """
    id: str
    name: str
    url: str
    user_email: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_checked_at: Optional[datetime] = None
    last_change_hash: Optional[str] = None
    last_change_type: Optional[str] = None
    last_meaningful_change_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "user_email": self.user_email,
            "is_active": self.is_active,
            "created_at": to_iso(self.created_at),
            "last_checked_at": to_iso(self.last_checked_at),
            "last_change_hash": self.last_change_hash,
            "last_change_type": self.last_change_type,
            "last_meaningful_change_at": to_iso(self.last_meaningful_change_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorTarget":
        is_active = data.get("is_active", True)
        if not isinstance(is_active, bool):
            is_active = str(is_active).lower() in ("true", "1", "yes")

        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            url=data.get("url", ""),
            user_email=data.get("user_email", ""),
            is_active=is_active,
            created_at=parse_iso(data.get("created_at")),
            last_checked_at=parse_iso(data.get("last_checked_at")),
            last_change_hash=data.get("last_change_hash"),
            last_change_type=data.get("last_change_type"),
            last_meaningful_change_at=parse_iso(data.get("last_meaningful_change_at")),
        )


@dataclass
class Snapshot:
    """One capture of a target's raw scraped text."""
    id: str
    monitor_id: str
    content: str
    fetched_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "monitor_id": self.monitor_id,
            "content": self.content,
            "fetched_at": to_iso(self.fetched_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        return cls(
            id=str(data["id"]),
            monitor_id=str(data["monitor_id"]),
            content=data.get("content", ""),
            fetched_at=parse_iso(data.get("fetched_at")) or utcnow(),
        )


@dataclass
class DiffResult:
    """Added and removed text blocks between two cleaned snapshots."""
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed)


@dataclass
class ChangeResult:
    """
    Classifier verdict describing a meaningful change.

    Attributes:
        kind: One of CHANGE_KINDS.
        summary: Single-sentence description.
        old_value: What the page said before, e.g. "$29/mo".
        new_value: What it says now.
        plan: Plan name, or "Unknown".
        confidence_score: Classifier certainty in [0, 1].
    """
    kind: str
    summary: str
    old_value: str = ""
    new_value: str = ""
    plan: str = UNKNOWN_PLAN
    confidence_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "summary": self.summary,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "plan": self.plan,
            "confidence_score": self.confidence_score,
        }


@dataclass
class Alert:
    """A persisted record of a notified (or notification-attempted) change."""
    id: str
    monitor_id: str
    old_snapshot_id: str
    new_snapshot_id: str
    change_type: str
    summary: str
    old_value: str
    new_value: str
    plan_name: str
    confidence_score: float
    change_hash: str
    emailed: bool = False
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_change(
        cls,
        alert_id: str,
        monitor_id: str,
        old_snapshot_id: str,
        new_snapshot_id: str,
        change: ChangeResult,
        change_hash: str
    ) -> "Alert":
        """Build an unsent alert from a classified change."""
        return cls(
            id=alert_id,
            monitor_id=monitor_id,
            old_snapshot_id=old_snapshot_id,
            new_snapshot_id=new_snapshot_id,
            change_type=change.kind,
            summary=change.summary,
            old_value=change.old_value,
            new_value=change.new_value,
            plan_name=change.plan,
            confidence_score=change.confidence_score,
            change_hash=change_hash,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "monitor_id": self.monitor_id,
            "old_snapshot_id": self.old_snapshot_id,
            "new_snapshot_id": self.new_snapshot_id,
            "change_type": self.change_type,
            "summary": self.summary,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "plan_name": self.plan_name,
            "confidence_score": self.confidence_score,
            "change_hash": self.change_hash,
            "emailed": self.emailed,
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        return cls(
            id=str(data["id"]),
            monitor_id=str(data["monitor_id"]),
            old_snapshot_id=str(data.get("old_snapshot_id", "")),
            new_snapshot_id=str(data.get("new_snapshot_id", "")),
            change_type=data.get("change_type", ""),
            summary=data.get("summary", ""),
            old_value=data.get("old_value", ""),
            new_value=data.get("new_value", ""),
            plan_name=data.get("plan_name", UNKNOWN_PLAN),
            confidence_score=float(data.get("confidence_score", 0.0)),
            change_hash=data.get("change_hash", ""),
            emailed=bool(data.get("emailed", False)),
            created_at=parse_iso(data.get("created_at")) or utcnow(),
        )

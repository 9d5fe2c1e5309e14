"""
Tests for the store module.

Tests cover:
- Monitor registration and its limits
- Active target listing
- Snapshot insertion and latest-snapshot lookup
- Target state updates
- Alert insertion and delivery marking
- Removal with cascading deletes
- Missing files read as empty, malformed files raise
"""

import json
import os
from datetime import timedelta
from unittest.mock import patch

import pytest

from pricing_radar.models import ChangeResult
from pricing_radar.store import (
    ALERTS_FILE,
    EMAIL_MONITOR_LIMIT,
    GLOBAL_MONITOR_CAP,
    MONITORS_FILE,
    SNAPSHOTS_FILE,
    JsonStore,
    MonitorLimitError,
    StoreError,
)
from pricing_radar.utils import utcnow


@pytest.fixture
def store(tmp_path):
    """JsonStore backed by a temporary directory."""
    return JsonStore(str(tmp_path))


@pytest.fixture
def target(store):
    """A registered monitor."""
    return store.add_target("Acme", "https://acme.example.com/pricing", "owner@example.com")


@pytest.fixture
def price_change():
    return ChangeResult(
        kind="price_change",
        summary="Pro plan increased from $29/mo to $39/mo",
        old_value="$29/mo",
        new_value="$39/mo",
        plan="Pro",
        confidence_score=0.9,
    )


class TestAddTarget:
    """Tests for monitor registration."""

    def test_add_and_list(self, store, target):
        """Test that a registered monitor is listed as active."""
        targets = store.get_active_targets()

        assert [t.id for t in targets] == [target.id]
        assert targets[0].name == "Acme"
        assert targets[0].is_active is True
        assert targets[0].last_checked_at is None

    def test_email_normalized(self, store):
        """Test that recipient emails are stored lowercased."""
        created = store.add_target("Acme", "https://acme.example.com", "  Owner@Example.COM ")

        assert created.user_email == "owner@example.com"

    @pytest.mark.parametrize("name,url,email", [
        ("", "https://acme.example.com", "owner@example.com"),
        ("Acme", "acme.example.com", "owner@example.com"),
        ("Acme", "ftp://acme.example.com", "owner@example.com"),
        ("Acme", "https://acme.example.com", "not-an-email"),
        ("Acme", "https://acme.example.com", "owner@localhost"),
    ])
    def test_invalid_input(self, store, name, url, email):
        """Test that invalid registrations are rejected."""
        with pytest.raises(ValueError):
            store.add_target(name, url, email)

    def test_per_email_limit(self, store):
        """Test that one address cannot exceed its monitor limit."""
        for i in range(EMAIL_MONITOR_LIMIT):
            store.add_target(f"Competitor {i}", f"https://c{i}.example.com", "owner@example.com")

        with pytest.raises(MonitorLimitError) as exc_info:
            store.add_target("One more", "https://more.example.com", "OWNER@example.com")

        assert exc_info.value.count == EMAIL_MONITOR_LIMIT

    def test_other_email_unaffected(self, store):
        """Test that the limit applies per address."""
        for i in range(EMAIL_MONITOR_LIMIT):
            store.add_target(f"Competitor {i}", f"https://c{i}.example.com", "a@example.com")

        created = store.add_target("Other", "https://other.example.com", "b@example.com")

        assert created.user_email == "b@example.com"

    def test_global_cap(self, store):
        """Test that registration stops at the global cap."""
        with patch("pricing_radar.store.GLOBAL_MONITOR_CAP", 2):
            store.add_target("A", "https://a.example.com", "a@example.com")
            store.add_target("B", "https://b.example.com", "b@example.com")

            with pytest.raises(MonitorLimitError):
                store.add_target("C", "https://c.example.com", "c@example.com")

        assert GLOBAL_MONITOR_CAP == 500


class TestActiveTargets:
    """Tests for active target filtering."""

    def test_inactive_excluded(self, store, target):
        """Test that deactivated monitors are not returned."""
        other = store.add_target("Beta", "https://beta.example.com", "owner@example.com")
        store.update_target(target.id, is_active=False)

        assert [t.id for t in store.get_active_targets()] == [other.id]
        assert len(store.list_targets()) == 2

    def test_empty_store(self, store):
        """Test that a fresh directory has no targets."""
        assert store.get_active_targets() == []

    def test_invalid_entries_skipped(self, store, tmp_path):
        """Test that entries without an id are skipped."""
        (tmp_path / MONITORS_FILE).write_text(json.dumps({
            "monitors": [
                {"name": "No id"},
                {"id": "m1", "name": "Acme", "url": "https://acme.example.com", "user_email": "a@example.com"},
            ]
        }))

        assert [t.id for t in store.get_active_targets()] == ["m1"]


class TestUnreadableFiles:
    """Tests for store files that exist but cannot be loaded."""

    @pytest.mark.parametrize("filename, read", [
        (MONITORS_FILE, lambda s: s.get_active_targets()),
        (SNAPSHOTS_FILE, lambda s: s.get_latest_snapshot("m1")),
        (ALERTS_FILE, lambda s: s.list_alerts()),
    ])
    def test_malformed_file_raises(self, store, tmp_path, filename, read):
        """Test that a corrupt file raises StoreError instead of reading as empty."""
        (tmp_path / filename).write_text("not valid json {{{")

        with pytest.raises(StoreError) as exc_info:
            read(store)

        assert exc_info.value.original_error is not None

    def test_truncated_snapshots_left_intact(self, store, target, tmp_path):
        """Test that a failed insert does not overwrite a truncated file."""
        store.insert_snapshot(target.id, "Pro $29/mo")
        path = tmp_path / SNAPSHOTS_FILE
        path.write_bytes(path.read_bytes()[:-5])
        corrupt = path.read_bytes()

        with pytest.raises(StoreError):
            store.insert_snapshot(target.id, "Pro $39/mo")

        assert path.read_bytes() == corrupt

    def test_unexpected_structure_raises(self, store, tmp_path):
        """Test that a records key holding a non-list raises."""
        (tmp_path / MONITORS_FILE).write_text(json.dumps({"monitors": "oops"}))

        with pytest.raises(StoreError):
            store.list_targets()

    def test_read_error_wrapped(self, store, tmp_path):
        """Test that an OS read failure is wrapped in StoreError."""
        (tmp_path / ALERTS_FILE).write_text("{}")

        with patch("pricing_radar.store.read_json", side_effect=PermissionError("denied")):
            with pytest.raises(StoreError) as exc_info:
                store.list_alerts()

        assert isinstance(exc_info.value.original_error, PermissionError)


class TestSnapshots:
    """Tests for snapshot storage."""

    def test_no_snapshot(self, store, target):
        """Test that a new target has no latest snapshot."""
        assert store.get_latest_snapshot(target.id) is None

    def test_latest_by_fetch_time(self, store, target):
        """Test that the most recently fetched snapshot is returned."""
        now = utcnow()
        store.insert_snapshot(target.id, "older", fetched_at=now - timedelta(days=1))
        newest = store.insert_snapshot(target.id, "newest", fetched_at=now)

        latest = store.get_latest_snapshot(target.id)

        assert latest.id == newest.id
        assert latest.content == "newest"

    def test_snapshots_are_per_target(self, store, target):
        """Test that snapshots of other targets are not returned."""
        other = store.add_target("Beta", "https://beta.example.com", "owner@example.com")
        store.insert_snapshot(other.id, "beta page")

        assert store.get_latest_snapshot(target.id) is None

    def test_snapshots_are_kept(self, store, target):
        """Test that inserting never replaces earlier snapshots."""
        store.insert_snapshot(target.id, "one")
        store.insert_snapshot(target.id, "two")

        assert [s.content for s in store.get_snapshots(target.id)] == ["one", "two"]

    def test_write_failure_raises(self, store, target):
        """Test that a failed write surfaces as StoreError."""
        with patch("pricing_radar.store.safe_write_json", return_value=False):
            with pytest.raises(StoreError):
                store.insert_snapshot(target.id, "content")


class TestUpdateTarget:
    """Tests for target state updates."""

    def test_update_fields(self, store, target):
        """Test that check state is persisted."""
        now = utcnow()
        store.update_target(
            target.id,
            last_checked_at=now,
            last_change_hash="abc123",
            last_change_type="price_change",
            last_meaningful_change_at=now,
        )

        updated = store.get_target(target.id)

        assert updated.last_checked_at == now
        assert updated.last_change_hash == "abc123"
        assert updated.last_change_type == "price_change"
        assert updated.last_meaningful_change_at == now

    def test_unknown_field(self, store, target):
        """Test that non-state fields cannot be updated."""
        with pytest.raises(ValueError):
            store.update_target(target.id, url="https://evil.example.com")

    def test_unknown_target(self, store):
        """Test that updating a missing target raises StoreError."""
        with pytest.raises(StoreError):
            store.update_target("missing", last_checked_at=utcnow())


class TestAlerts:
    """Tests for alert storage."""

    def test_insert_alert(self, store, target, price_change):
        """Test that alerts copy the change fields and start unsent."""
        alert = store.insert_alert(target.id, "s1", "s2", price_change, "abc123")

        stored = store.list_alerts(target.id)

        assert [a.id for a in stored] == [alert.id]
        assert stored[0].change_type == "price_change"
        assert stored[0].plan_name == "Pro"
        assert stored[0].old_value == "$29/mo"
        assert stored[0].new_value == "$39/mo"
        assert stored[0].confidence_score == 0.9
        assert stored[0].change_hash == "abc123"
        assert stored[0].emailed is False

    def test_mark_alert_sent(self, store, target, price_change):
        """Test that delivery is recorded on the alert."""
        alert = store.insert_alert(target.id, "s1", "s2", price_change, "abc123")

        store.mark_alert_sent(alert.id)

        assert store.list_alerts(target.id)[0].emailed is True

    def test_mark_unknown_alert(self, store):
        """Test that marking a missing alert raises StoreError."""
        with pytest.raises(StoreError):
            store.mark_alert_sent("missing")


class TestRemoveTarget:
    """Tests for monitor removal."""

    def test_cascade(self, store, target, price_change):
        """Test that snapshots and alerts go with the monitor."""
        other = store.add_target("Beta", "https://beta.example.com", "owner@example.com")
        store.insert_snapshot(target.id, "acme page")
        store.insert_snapshot(other.id, "beta page")
        store.insert_alert(target.id, "s1", "s2", price_change, "abc123")

        assert store.remove_target(target.id) is True

        assert store.get_target(target.id) is None
        assert store.get_snapshots(target.id) == []
        assert store.list_alerts(target.id) == []
        assert store.get_latest_snapshot(other.id).content == "beta page"

    def test_remove_missing(self, store):
        """Test that removing an unknown id returns False."""
        assert store.remove_target("missing") is False

    def test_files_written(self, store, target, tmp_path):
        """Test that data lives in the configured directory."""
        assert os.path.exists(tmp_path / MONITORS_FILE)

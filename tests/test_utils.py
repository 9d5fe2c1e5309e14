"""
Tests for the utils module.
"""

import json
import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from pricing_radar.utils import (
    get_env_var,
    get_logger,
    is_truthy,
    parse_iso,
    read_json,
    safe_write_json,
    to_iso,
)


class TestJsonFiles:
    """Tests for JSON file helpers."""

    def test_round_trip(self, tmp_path):
        """Test that written data reads back unchanged."""
        path = str(tmp_path / "nested" / "data.json")

        assert safe_write_json(path, {"monitors": [{"id": "m1"}]}) is True
        assert read_json(path) == {"monitors": [{"id": "m1"}]}

    def test_missing_file(self, tmp_path):
        """Test that a missing file returns the default."""
        assert read_json(str(tmp_path / "missing.json"), default={}) == {}
        assert read_json(str(tmp_path / "missing.json")) == []

    def test_invalid_json(self, tmp_path):
        """Test that a corrupt file raises instead of reading as empty."""
        path = tmp_path / "bad.json"
        path.write_text("not valid json {{{")

        with pytest.raises(json.JSONDecodeError):
            read_json(str(path), default={})

    def test_unserializable_data(self, tmp_path):
        """Test that a failed write returns False and leaves no temp file."""
        assert safe_write_json(str(tmp_path / "data.json"), {"bad": object()}) is False
        assert os.listdir(tmp_path) == []


class TestEnvVars:
    """Tests for environment variable access."""

    @patch.dict(os.environ, {"NAME": "  value  "}, clear=True)
    def test_present(self):
        """Test that values are stripped."""
        assert get_env_var("NAME") == "value"

    @patch.dict(os.environ, {}, clear=True)
    def test_required_missing(self):
        """Test that a missing required variable raises."""
        with pytest.raises(ValueError):
            get_env_var("NAME")

    @patch.dict(os.environ, {"NAME": ""}, clear=True)
    def test_optional_default(self):
        """Test that blank optional variables use the default."""
        assert get_env_var("NAME", required=False, default="x") == "x"

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("1", True), ("YES", True),
        ("false", False), ("0", False), ("", False), (None, False),
    ])
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected


class TestTimestamps:
    """Tests for ISO-8601 helpers."""

    def test_round_trip(self):
        """Test that aware datetimes survive serialization."""
        value = datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)

        assert parse_iso(to_iso(value)) == value

    def test_zulu_suffix(self):
        """Test that a trailing Z is accepted."""
        assert parse_iso("2024-05-01T02:00:00Z") == datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)

    def test_naive_assumed_utc(self):
        """Test that naive timestamps are treated as UTC."""
        assert parse_iso("2024-05-01T02:00:00").tzinfo is not None
        assert to_iso(datetime(2024, 5, 1)) == "2024-05-01T00:00:00+00:00"

    def test_invalid(self):
        """Test that empty and malformed values parse to None."""
        assert parse_iso(None) is None
        assert parse_iso("") is None
        assert parse_iso("yesterday") is None


class TestGetLogger:
    """Tests for logger naming."""

    def test_logger_hierarchy(self):
        """Test that module loggers are children of the app logger."""
        assert get_logger("fetch").name == "pricing_radar.fetch"

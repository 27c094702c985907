# tests/unit/test_validation.py
"""Unit tests for tool input sanitization."""

from datetime import datetime, timedelta, timezone

import pytest
from fastmcp.exceptions import ToolError

from release_conductor.models.enums import Action, ReleaseType
from release_conductor.validation.sanitize import (
    parse_action,
    parse_kickoff,
    parse_release_type,
    sanitize_actor,
    sanitize_artifact,
    sanitize_config_id,
    sanitize_release_id,
)


class TestIds:
    def test_valid_release_id_is_stripped(self):
        assert sanitize_release_id("  a1b2c3d4e5f6 ") == "a1b2c3d4e5f6"

    @pytest.mark.parametrize("value", ["short", "x" * 65, "../../etc/passwd", "rel 0000001"])
    def test_invalid_release_ids(self, value):
        with pytest.raises(ToolError, match="Invalid release ID"):
            sanitize_release_id(value)

    def test_label_in_message(self):
        with pytest.raises(ToolError, match="Invalid task ID"):
            sanitize_release_id("bad", label="task")

    def test_config_ids(self):
        assert sanitize_config_id("mobile.app_v2") == "mobile.app_v2"
        with pytest.raises(ToolError):
            sanitize_config_id("mobile/app")


class TestActor:
    def test_empty_actor_rejected(self):
        with pytest.raises(ToolError, match="cannot be empty"):
            sanitize_actor("   ")

    def test_long_actor_truncated(self):
        assert sanitize_actor("a" * 200) == "a" * 128


class TestParsers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("pause", Action.PAUSE),
            ("RETRY_TASK", Action.RETRY_TASK),
            ("trigger-stage-2", Action.TRIGGER_STAGE_2),
        ],
    )
    def test_parse_action(self, value, expected):
        assert parse_action(value) is expected

    def test_unknown_action_lists_choices(self):
        with pytest.raises(ToolError, match="Must be one of: START"):
            parse_action("launch")

    def test_parse_release_type(self):
        assert parse_release_type(None) is None
        assert parse_release_type("hotfix") is ReleaseType.HOTFIX
        with pytest.raises(ToolError, match="Unknown release type"):
            parse_release_type("patch")

    def test_parse_kickoff(self):
        assert parse_kickoff(None) is None
        assert parse_kickoff("2026-03-02T10:00:00") == datetime(2026, 3, 2, 10, tzinfo=timezone.utc)
        assert parse_kickoff("2026-03-02T10:00:00+05:30").utcoffset() == timedelta(hours=5, minutes=30)
        with pytest.raises(ToolError, match="expected ISO-8601"):
            parse_kickoff("next tuesday")


class TestArtifact:
    def test_location_is_stripped(self):
        assert sanitize_artifact(" s3://builds/app-1.3.0.ipa\n") == "s3://builds/app-1.3.0.ipa"

    @pytest.mark.parametrize(
        "value,message",
        [
            ("  ", "cannot be empty"),
            ("https://builds/" + "a" * 2048, "exceeds 2048 characters"),
            ("s3://builds/app.ipa\nrm -rf /", "single line"),
        ],
    )
    def test_invalid_locations(self, value, message):
        with pytest.raises(ToolError, match=message):
            sanitize_artifact(value)

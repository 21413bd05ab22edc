import json
import logging

from seatsync.settings import EngineSettings
from seatsync.utils.logger import JsonFormatter
from seatsync.utils.utils import filter_desired_members


def test_engine_settings_from_env(monkeypatch):
    monkeypatch.setenv("STAGGER_SECONDS", "2.5")
    monkeypatch.setenv("UPSTREAM_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("INVITE_GRACE_PERIOD_MINUTES", "10")
    monkeypatch.setenv("UPSTREAM_BASE_URL", "https://proxy.test/api")

    settings = EngineSettings.from_env()

    assert settings.stagger_seconds == 2.5
    assert settings.max_attempts == 5
    assert settings.grace_period_minutes == 10
    assert settings.upstream_base_url == "https://proxy.test/api"
    assert settings.refresh_interval_seconds == 30


def test_bulk_gap_stays_in_range():
    settings = EngineSettings()
    gaps = [settings.bulk_gap_seconds() for _ in range(50)]
    assert all(15 <= gap <= 30 for gap in gaps)


def test_filter_desired_members():
    assert filter_desired_members(
        [" A@x.test ", "a@x.test", "ADMIN@x.test", "", "nope", "b@x.test"], "admin@x.test"
    ) == ["a@x.test", "b@x.test"]
    assert filter_desired_members(None, "admin@x.test") == []


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("seatsync", logging.INFO, __file__, 1, "member.deleted", None, None)
    record.member_id = "user-3"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "member.deleted"
    assert payload["member_id"] == "user-3"
    assert payload["level"] == "INFO"

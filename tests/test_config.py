"""Unit tests for configuration, timezone and logging helpers."""

import logging
import os
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from calendarbot_recur.config_loader import Config, load_config
from calendarbot_recur.config_manager import ConfigManager, get_config_value
from calendarbot_recur.recur_exceptions import (
    EmptyRecurrenceSetError,
    RecurrenceConfigurationError,
    RecurrenceError,
    RecurrenceParseError,
    RecurrenceValidationError,
    TemporalTypeMismatchError,
)
from calendarbot_recur.recur_logging import configure_recur_logging, get_logging_status
from calendarbot_recur.timezone_utils import now_utc, resolve_timezone

pytestmark = pytest.mark.unit


class TestConfigLoader:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yaml"))
        assert config == Config()

    def test_yaml_values_are_loaded(self, tmp_path):
        path = tmp_path / "recur.yaml"
        path.write_text("cache_capacity: 10\ncache_stride: 4\nuid_domain: example.org\nlog_level: debug\n")
        config = load_config(str(path))
        assert config.cache_capacity == 10
        assert config.cache_stride == 4
        assert config.uid_domain == "example.org"
        assert config.log_level == "DEBUG"

    def test_json_document_is_accepted(self, tmp_path):
        path = tmp_path / "recur.json"
        path.write_text('{"max_occurrences": 12}')
        assert load_config(str(path)).max_occurrences == 12

    def test_out_of_range_values_are_clamped(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = Config.from_dict({"cache_capacity": 0, "cache_stride": "abc", "max_occurrences": 10**9})
        assert config.cache_capacity == 1
        assert config.cache_stride == Config().cache_stride
        assert config.max_occurrences == 100000
        assert "cache_capacity" in caplog.text

    def test_non_mapping_document_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_default_path_is_in_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "calendarbot_recur.yaml").write_text("cache_stride: 7\n")
        assert load_config().cache_stride == 7


class TestConfigManager:
    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "recur.yaml"
        path.write_text("cache_capacity: 10\n")
        monkeypatch.setenv("CALENDARBOT_RECUR_CACHE_CAPACITY", "20")
        monkeypatch.setenv("CALENDARBOT_RECUR_UID_DOMAIN", "env.test")
        manager = ConfigManager(env_file_path=tmp_path / "missing.env")
        config = manager.load_full_config(str(path))
        assert config.cache_capacity == 20
        assert config.uid_domain == "env.test"

    def test_invalid_integer_environment_value_ignored(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CALENDARBOT_RECUR_CACHE_STRIDE", "often")
        manager = ConfigManager(env_file_path=tmp_path / "missing.env")
        assert "cache_stride" not in manager.build_config_from_env()

    def test_env_file_does_not_override_environment(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text('# comment\nCALENDARBOT_RECUR_MAX_OCCURRENCES="33"\nCALENDARBOT_RECUR_UID_DOMAIN=file.test\n')
        monkeypatch.setenv("CALENDARBOT_RECUR_UID_DOMAIN", "shell.test")
        manager = ConfigManager(env_file_path=env_file)
        try:
            loaded = manager.load_env_file()
        finally:
            os.environ.pop("CALENDARBOT_RECUR_MAX_OCCURRENCES", None)
        assert loaded == ["CALENDARBOT_RECUR_MAX_OCCURRENCES"]

    def test_get_config_value_supports_dicts_and_objects(self):
        assert get_config_value({"a": 1}, "a") == 1
        assert get_config_value(SimpleNamespace(a=2), "a") == 2
        assert get_config_value(SimpleNamespace(), "a", 3) == 3


class TestTimezoneUtils:
    def test_resolves_iana_and_windows_names(self):
        assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")
        assert resolve_timezone("W. Europe Standard Time") == ZoneInfo("Europe/Berlin")
        assert resolve_timezone("Pacific Standard Time") == ZoneInfo("America/Los_Angeles")

    @pytest.mark.parametrize("name", ["", "Mars/Olympus_Mons"])
    def test_unknown_zone_raises(self, name):
        with pytest.raises(RecurrenceParseError):
            resolve_timezone(name)

    def test_now_utc_honors_test_time(self, monkeypatch):
        monkeypatch.setenv("CALENDARBOT_TEST_TIME", "2025-10-27T08:20:00-07:00")
        now = now_utc()
        assert (now.hour, now.minute) == (15, 20)
        assert now.utcoffset().total_seconds() == 0


class TestLogging:
    def test_debug_mode_sets_engine_loggers(self):
        configure_recur_logging(debug_mode=True)
        assert logging.getLogger("calendarbot_recur.rrule_iterator").level == logging.DEBUG
        assert get_logging_status()["dateutil"] == "WARNING"
        configure_recur_logging(debug_mode=False)
        assert logging.getLogger("calendarbot_recur.rrule_iterator").level == logging.INFO

    def test_environment_level_overrides_configured_level(self, monkeypatch):
        monkeypatch.setenv("CALENDARBOT_LOG_LEVEL", "error")
        configure_recur_logging(log_level="DEBUG")
        assert get_logging_status()["root"] == "ERROR"

    def test_configured_level_applies_to_root(self):
        configure_recur_logging(log_level="warning")
        assert get_logging_status()["root"] == "WARNING"


class TestExceptionHierarchy:
    def test_all_errors_derive_from_recurrence_error(self):
        for exc_class in (
            TemporalTypeMismatchError,
            RecurrenceConfigurationError,
            RecurrenceParseError,
            RecurrenceValidationError,
            EmptyRecurrenceSetError,
        ):
            assert issubclass(exc_class, RecurrenceError)

    def test_parse_error_is_configuration_error(self):
        assert issubclass(RecurrenceParseError, RecurrenceConfigurationError)
        assert not issubclass(RecurrenceConfigurationError, ValueError)

    def test_validation_error_keeps_messages(self):
        exc = RecurrenceValidationError("bad set", ["one", "two"])
        assert str(exc) == "bad set"
        assert exc.errors == ["one", "two"]

"""Tests for the config module."""

from datetime import time

import pytest
import yaml

from boardroom.config import (
    BookingConfig,
    ConfigurationError,
    DatabaseBackend,
    ReminderConfig,
    ServerConfig,
    SmtpConfig,
    WorkingHoursConfig,
    get_last_loaded_config_path,
    load_config,
)


def minimal_config(**overrides):
    data = {
        "timezone": "Africa/Nairobi",
        "working_hours": {"start": "08:00", "end": "18:00"},
    }
    data.update(overrides)
    return data


class TestWorkingHoursConfig:
    def test_defaults(self):
        config = WorkingHoursConfig()
        assert config.start_time == time(8, 0)
        assert config.end_time == time(18, 0)

    @pytest.mark.parametrize("value", ["8:00", "24:00", "08:60", "0800", "08:00:00", ""])
    def test_rejects_bad_format(self, value):
        with pytest.raises(ConfigurationError, match="HH:MM"):
            WorkingHoursConfig(start=value)

    def test_start_must_precede_end(self):
        with pytest.raises(ConfigurationError, match="before end"):
            WorkingHoursConfig(start="18:00", end="08:00")


class TestBookingConfig:
    def test_from_dict_coerces_strings(self):
        config = BookingConfig.from_dict({"buffer_minutes": "10", "slot_minutes": "15"})
        assert config.buffer_minutes == 10
        assert config.slot_minutes == 15
        assert config.min_duration_minutes == 30
        assert config.conflict_lookaround_hours == 24

    def test_negative_buffer(self):
        with pytest.raises(ConfigurationError):
            BookingConfig(buffer_minutes=-1)

    def test_zero_slot(self):
        with pytest.raises(ConfigurationError):
            BookingConfig(slot_minutes=0)


class TestReminderConfig:
    def test_defaults(self):
        config = ReminderConfig()
        assert config.schedule == "* * * * *"
        assert config.batch_size == 50
        assert config.join_now_sms is False
        assert config.ending_10_email is False

    def test_invalid_cron(self):
        with pytest.raises(ConfigurationError, match="cron"):
            ReminderConfig(schedule="every minute")

    def test_batch_size_positive(self):
        with pytest.raises(ConfigurationError):
            ReminderConfig(batch_size=0)


class TestServerConfig:
    def test_from_dict(self):
        config = ServerConfig.from_dict(
            minimal_config(
                booking={"buffer_minutes": 15},
                reminders={"join_now_sms": True, "schedule": "*/2 * * * *"},
                database={"backend": "memory"},
            )
        )
        assert config.timezone == "Africa/Nairobi"
        assert str(config.tz) == "Africa/Nairobi"
        assert config.booking.buffer_minutes == 15
        assert config.reminders.join_now_sms is True
        assert config.reminders.schedule == "*/2 * * * *"
        assert config.database.backend is DatabaseBackend.MEMORY

    def test_missing_timezone(self):
        data = minimal_config()
        del data["timezone"]
        with pytest.raises(ConfigurationError, match="timezone"):
            ServerConfig.from_dict(data)

    def test_missing_working_hours(self):
        data = minimal_config()
        del data["working_hours"]
        with pytest.raises(ConfigurationError, match="working_hours"):
            ServerConfig.from_dict(data)

    def test_unknown_timezone(self):
        with pytest.raises(ConfigurationError, match="Invalid timezone"):
            ServerConfig.from_dict(minimal_config(timezone="Mars/Olympus"))

    def test_bad_number_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            ServerConfig.from_dict(minimal_config(booking={"buffer_minutes": "five"}))

    def test_unknown_database_backend(self):
        with pytest.raises(ConfigurationError, match="backend"):
            ServerConfig.from_dict(minimal_config(database={"backend": "mongo"}))


class TestSmtpConfig:
    def test_from_address_falls_back_to_username(self, monkeypatch):
        monkeypatch.delenv("EMAIL_FROM", raising=False)
        config = SmtpConfig.from_dict({"username": "room@example.com", "password": "pw"})
        assert config.from_address == "room@example.com"
        assert config.configured
        assert not config.use_ssl
        assert SmtpConfig(port=465).use_ssl


class TestLoadConfig:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.dump(minimal_config(working_hours={"start": "09:00", "end": "17:00"}))
        )

        config = load_config(str(path))

        assert config.working_hours.start == "09:00"
        assert config.working_hours.end == "17:00"

    def test_invalid_file_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump(minimal_config(working_hours={"start": "9am"})))
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_environment_fallback(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("TIMEZONE", "Europe/Berlin")
        monkeypatch.setenv("WORK_START", "07:30")
        monkeypatch.setenv("BUFFER_MINUTES", "10")
        monkeypatch.setenv("JOIN_NOW_SMS", "true")
        monkeypatch.setenv("DATABASE_BACKEND", "memory")

        config = load_config(str(tmp_path / "missing.yaml"))

        assert config.timezone == "Europe/Berlin"
        assert config.working_hours.start == "07:30"
        assert config.working_hours.end == "18:00"
        assert config.booking.buffer_minutes == 10
        assert config.reminders.join_now_sms is True
        assert config.reminders.ending_10_email is False
        assert config.database.backend is DatabaseBackend.MEMORY

    def test_last_loaded_path_tracks_each_load(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump(minimal_config()))
        load_config(str(path))
        assert get_last_loaded_config_path() == path

        monkeypatch.setenv("HOME", str(tmp_path))
        load_config(str(tmp_path / "missing.yaml"))
        assert get_last_loaded_config_path() is None

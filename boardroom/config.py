"""Configuration handling for the boardroom booking engine."""

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import yaml  # type: ignore
from croniter import croniter
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# Load environment variables from .env file if it exists
load_dotenv()

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class ConfigurationError(ValueError):
    """Raised when configuration is missing or invalid."""


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


def parse_hhmm(value: str) -> time:
    """Parse an exact ``HH:MM`` wall-clock string."""
    match = HHMM_PATTERN.match(str(value))
    if not match:
        raise ConfigurationError(
            f"'{value}' must be in HH:MM format (e.g., 08:00)"
        )
    return time(int(match.group(1)), int(match.group(2)))


@dataclass(frozen=True)
class WorkingHoursConfig:
    """Business hours during which rooms can be booked."""

    start: str = "08:00"
    end: str = "18:00"

    def __post_init__(self):
        start = parse_hhmm(self.start)
        end = parse_hhmm(self.end)
        if start >= end:
            raise ConfigurationError(
                f"Working hours start time must be before end time (start: {self.start}, end: {self.end})"
            )

    @property
    def start_time(self) -> time:
        return parse_hhmm(self.start)

    @property
    def end_time(self) -> time:
        return parse_hhmm(self.end)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkingHoursConfig":
        return cls(
            start=data.get("start", "08:00"),
            end=data.get("end", "18:00"),
        )


@dataclass(frozen=True)
class BookingConfig:
    """Booking rules: buffer between meetings and slot sizing."""

    buffer_minutes: int = 5
    slot_minutes: int = 30
    min_duration_minutes: int = 30
    conflict_lookaround_hours: int = 24

    def __post_init__(self):
        if self.buffer_minutes < 0:
            raise ConfigurationError("buffer_minutes must be >= 0")
        if self.slot_minutes <= 0:
            raise ConfigurationError("slot_minutes must be > 0")
        if self.min_duration_minutes <= 0:
            raise ConfigurationError("min_duration_minutes must be > 0")
        if self.conflict_lookaround_hours < 0:
            raise ConfigurationError("conflict_lookaround_hours must be >= 0")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookingConfig":
        return cls(
            buffer_minutes=int(data.get("buffer_minutes", 5)),
            slot_minutes=int(data.get("slot_minutes", 30)),
            min_duration_minutes=int(data.get("min_duration_minutes", 30)),
            conflict_lookaround_hours=int(data.get("conflict_lookaround_hours", 24)),
        )


@dataclass(frozen=True)
class ReminderConfig:
    """Reminder dispatch schedule and per-type channel overrides."""

    enabled: bool = True
    schedule: str = "* * * * *"
    batch_size: int = 50
    join_now_sms: bool = False
    ending_10_email: bool = False

    def __post_init__(self):
        if not croniter.is_valid(self.schedule):
            raise ConfigurationError(
                f"Invalid reminder schedule '{self.schedule}'. Must be a cron expression (e.g., '* * * * *')"
            )
        if self.batch_size <= 0:
            raise ConfigurationError("reminders.batch_size must be > 0")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReminderConfig":
        return cls(
            enabled=data.get("enabled", True),
            schedule=data.get("schedule", "* * * * *"),
            batch_size=int(data.get("batch_size", 50)),
            join_now_sms=data.get("join_now_sms", False),
            ending_10_email=data.get("ending_10_email", False),
        )


@dataclass(frozen=True)
class CalendarConfig:
    """Google Calendar that holds the room's events."""

    enabled: bool = False
    calendar_id: str = "primary"
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarConfig":
        # OAuth2 credentials can be specified in environment variables
        return cls(
            enabled=data.get("enabled", False),
            calendar_id=data.get("calendar_id")
            or os.environ.get("GOOGLE_CALENDAR_ID", "primary"),
            client_id=data.get("client_id") or os.environ.get("GOOGLE_CLIENT_ID"),
            client_secret=data.get("client_secret")
            or os.environ.get("GOOGLE_CLIENT_SECRET"),
            refresh_token=data.get("refresh_token")
            or os.environ.get("GOOGLE_REFRESH_TOKEN"),
        )


@dataclass(frozen=True)
class SmtpConfig:
    """Outbound SMTP server for confirmation and reminder email."""

    host: str = "smtp.gmail.com"
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    from_address: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    @property
    def use_ssl(self) -> bool:
        return self.port == 465

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SmtpConfig":
        username = data.get("username") or os.environ.get("SMTP_USER")
        return cls(
            host=data.get("host") or os.environ.get("SMTP_HOST", "smtp.gmail.com"),
            port=int(data.get("port") or os.environ.get("SMTP_PORT", "587")),
            username=username,
            password=data.get("password") or os.environ.get("SMTP_PASS"),
            from_address=data.get("from_address")
            or os.environ.get("EMAIL_FROM")
            or username,
        )


@dataclass(frozen=True)
class TwilioConfig:
    """Twilio account used for SMS delivery."""

    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    from_number: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TwilioConfig":
        return cls(
            account_sid=data.get("account_sid") or os.environ.get("TWILIO_SID"),
            auth_token=data.get("auth_token") or os.environ.get("TWILIO_AUTH_TOKEN"),
            from_number=data.get("from_number") or os.environ.get("TWILIO_PHONE"),
        )


class DatabaseBackend(Enum):
    """Database backend type."""

    POSTGRES = "postgres"
    MEMORY = "memory"

    @classmethod
    def from_string(cls, value: str) -> "DatabaseBackend":
        normalized = value.lower().strip()
        if normalized in ("postgres", "postgresql"):
            return cls.POSTGRES
        if normalized == "memory":
            return cls.MEMORY
        raise ConfigurationError(
            f"Invalid database backend '{value}'. Must be 'postgres' or 'memory'."
        )


@dataclass(frozen=True)
class PostgresConfig:
    """PostgreSQL database configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "boardroom"
    user: str = "boardroom"
    password: str = ""
    ssl_mode: str = "prefer"

    @property
    def connection_string(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}?sslmode={self.ssl_mode}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PostgresConfig":
        return cls(
            host=data.get("host") or os.environ.get("POSTGRES_HOST", "localhost"),
            port=int(data.get("port") or os.environ.get("POSTGRES_PORT", "5432")),
            database=data.get("database")
            or os.environ.get("POSTGRES_DATABASE", "boardroom"),
            user=data.get("user") or os.environ.get("POSTGRES_USER", "boardroom"),
            password=data.get("password") or os.environ.get("POSTGRES_PASSWORD", ""),
            ssl_mode=data.get("ssl_mode", "prefer"),
        )


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""

    backend: DatabaseBackend = DatabaseBackend.POSTGRES
    postgres: PostgresConfig = field(default_factory=PostgresConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseConfig":
        backend_str = data.get("backend") or os.environ.get(
            "DATABASE_BACKEND", "postgres"
        )
        return cls(
            backend=DatabaseBackend.from_string(backend_str),
            postgres=PostgresConfig.from_dict(data.get("postgres", {})),
        )


@dataclass(frozen=True)
class ServerConfig:
    """Top-level configuration, read once at process start."""

    timezone: str
    working_hours: WorkingHoursConfig
    booking: BookingConfig = field(default_factory=BookingConfig)
    reminders: ReminderConfig = field(default_factory=ReminderConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    twilio: TwilioConfig = field(default_factory=TwilioConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def __post_init__(self):
        """Validate server configuration."""
        try:
            ZoneInfo(self.timezone)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid timezone '{self.timezone}': {e}. "
                "Must be a valid IANA timezone (e.g., 'Africa/Nairobi')"
            )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        """Create configuration from dictionary."""
        if "timezone" not in data:
            raise ConfigurationError(
                "Missing required 'timezone' configuration. "
                "Please specify a valid IANA timezone (e.g., 'Africa/Nairobi')"
            )

        if "working_hours" not in data:
            raise ConfigurationError(
                "Missing required 'working_hours' configuration. "
                "Please specify start and end times (e.g., start: '08:00', end: '18:00')"
            )

        try:
            return cls(
                timezone=data["timezone"],
                working_hours=WorkingHoursConfig.from_dict(data["working_hours"]),
                booking=BookingConfig.from_dict(data.get("booking", {})),
                reminders=ReminderConfig.from_dict(data.get("reminders", {})),
                calendar=CalendarConfig.from_dict(data.get("calendar", {})),
                smtp=SmtpConfig.from_dict(data.get("smtp", {})),
                twilio=TwilioConfig.from_dict(data.get("twilio", {})),
                database=DatabaseConfig.from_dict(data.get("database", {})),
            )
        except ConfigurationError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


def _config_from_environment() -> Dict[str, Any]:
    return {
        "timezone": os.environ.get("TIMEZONE", "Africa/Nairobi"),
        "working_hours": {
            "start": os.environ.get("WORK_START", "08:00"),
            "end": os.environ.get("WORK_END", "18:00"),
        },
        "booking": {
            "buffer_minutes": os.environ.get("BUFFER_MINUTES", "5"),
            "slot_minutes": os.environ.get("SLOT_MINUTES", "30"),
        },
        "reminders": {
            "enabled": _env_flag("REMINDERS_ENABLED", "true"),
            "schedule": os.environ.get("REMINDER_CRON_SCHEDULE", "* * * * *"),
            "join_now_sms": _env_flag("JOIN_NOW_SMS"),
            "ending_10_email": _env_flag("ENDING_10_EMAIL"),
        },
        "calendar": {
            "enabled": _env_flag(
                "CALENDAR_ENABLED",
                "true" if os.environ.get("GOOGLE_REFRESH_TOKEN") else "false",
            ),
        },
    }


_last_loaded_config_path: Optional[Path] = None


def get_last_loaded_config_path() -> Optional[Path]:
    return _last_loaded_config_path


def load_config(config_path: Optional[str] = None) -> ServerConfig:
    """Load configuration from file or environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Server configuration

    Raises:
        ConfigurationError: If configuration is invalid
    """
    default_locations = [
        Path("config/config.yaml"),
        Path("config/config.yml"),
        Path("config.yaml"),
        Path("config.yml"),
        Path("~/.config/boardroom/config.yaml"),
        Path("/etc/boardroom/config.yaml"),
    ]

    config_data: Dict[str, Any] = {}
    global _last_loaded_config_path
    _last_loaded_config_path = None

    if config_path:
        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {config_path}")
            _last_loaded_config_path = Path(config_path).expanduser()
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {config_path}")
    else:
        for path in default_locations:
            expanded_path = path.expanduser()
            if expanded_path.exists():
                with open(expanded_path, "r") as f:
                    config_data = yaml.safe_load(f) or {}
                logger.info(f"Loaded configuration from {expanded_path}")
                _last_loaded_config_path = expanded_path
                break

    if not config_data:
        logger.info("No configuration file found, using environment variables")
        config_data = _config_from_environment()

    return ServerConfig.from_dict(config_data)

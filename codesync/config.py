"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from codesync.data.fetcher import SOURCES


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/codesync.db"


@dataclass
class SourcesConfig:
    """Contest source configuration."""

    platforms: list[str] = field(
        default_factory=lambda: ["codeforces", "codechef", "leetcode"]
    )
    timeout_seconds: float = 15.0


@dataclass
class WindowConfig:
    """Bounds of a reminder window, ``lower < hours <= upper``."""

    lower_hours: float
    upper_hours: float


@dataclass
class RemindersConfig:
    """Reminder window configuration."""

    far_window: WindowConfig = field(default_factory=lambda: WindowConfig(18, 27))
    near_window: WindowConfig = field(default_factory=lambda: WindowConfig(0.1, 6))
    cleanup_grace_hours: float = 1.0
    claim_lease_minutes: float = 30.0


@dataclass
class EmailConfig:
    """SMTP settings."""

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    use_ssl: bool = True
    user: str = ""
    password: str = ""
    from_name: str = "CodeSync"


@dataclass
class SmsConfig:
    """Twilio settings."""

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""


@dataclass
class ServerConfig:
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 3001
    cron_secret: str = ""


@dataclass
class ScheduleConfig:
    """In-process scheduling configuration."""

    enabled: bool = False
    interval_hours: float = 6
    run_on_startup: bool = True
    timezone: str = "UTC"


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    reminders: RemindersConfig = field(default_factory=RemindersConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    sms: SmsConfig = field(default_factory=SmsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_timezone(timezone: str) -> None:
    """Validate IANA timezone name."""
    if not timezone:
        raise ConfigValidationError("Timezone cannot be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigValidationError(f"Unknown timezone: {timezone}")


def _validate_window(name: str, window: WindowConfig) -> None:
    if window.lower_hours < 0 or window.lower_hours >= window.upper_hours:
        raise ConfigValidationError(
            f"Invalid {name}: lower_hours must be >= 0 and below upper_hours"
        )


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values."""
    if not config.database.path:
        raise ConfigValidationError("Database path is required")

    if config.database.path != ":memory:":
        parent = Path(config.database.path).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            raise ConfigValidationError(f"Database path not writable: {parent}")

    unknown = [p for p in config.sources.platforms if p not in SOURCES]
    if unknown:
        raise ConfigValidationError(f"Unknown contest platforms: {', '.join(unknown)}")

    _validate_window("far_window", config.reminders.far_window)
    _validate_window("near_window", config.reminders.near_window)

    if config.reminders.claim_lease_minutes <= 0:
        raise ConfigValidationError("Claim lease must be positive")

    if config.schedule.interval_hours <= 0:
        raise ConfigValidationError("Schedule interval must be positive")

    _validate_timezone(config.schedule.timezone)


def build_config(config_dict: dict[str, Any]) -> AppConfig:
    """Build and validate config objects from a raw (substituted) dict."""
    try:
        reminders_dict = dict(config_dict.get("reminders") or {})
        far = reminders_dict.pop("far_window", None)
        near = reminders_dict.pop("near_window", None)
        reminders = RemindersConfig(**reminders_dict)
        if far:
            reminders.far_window = WindowConfig(**far)
        if near:
            reminders.near_window = WindowConfig(**near)

        config = AppConfig(
            database=DatabaseConfig(**(config_dict.get("database") or {})),
            sources=SourcesConfig(**(config_dict.get("sources") or {})),
            reminders=reminders,
            email=EmailConfig(**(config_dict.get("email") or {})),
            sms=SmsConfig(**(config_dict.get("sms") or {})),
            server=ServerConfig(**(config_dict.get("server") or {})),
            schedule=ScheduleConfig(**(config_dict.get("schedule") or {})),
            advanced=AdvancedConfig(**(config_dict.get("advanced") or {})),
        )
    except TypeError as e:
        raise ConfigValidationError(f"Unknown configuration key: {e}")

    _validate_config(config)
    return config


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    # Substitute environment variables
    config_dict = _substitute_env_vars(raw_config)

    return build_config(config_dict)

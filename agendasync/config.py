"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import keyring
import pendulum
import yaml
from keyring.errors import KeyringError
from pendulum.tz.timezone import FixedTimezone
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import AuthConfigError, ConfigurationError

logger = logging.getLogger(__name__)


KEYRING_SERVICE_NAME = "agendasync"

CALENDAR_READ_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"
CALENDAR_WRITE_SCOPE = "https://www.googleapis.com/auth/calendar"


class ProviderConfig(BaseModel):
    """The single provider whose calendar is being booked."""
    name: str = "Agenda"
    timezone: str = "America/Bogota"
    utc_offset_hours: float = -5
    locale: str = "es"

    @field_validator("utc_offset_hours")
    @classmethod
    def validate_offset(cls, value: float) -> float:
        """Ensure the offset is a real-world UTC offset."""
        if not -12 <= value <= 14:
            raise ValueError(f"utc_offset_hours must be between -12 and 14, got {value}")
        if (value * 60) % 15:
            raise ValueError("utc_offset_hours must be a multiple of 15 minutes")
        return value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone identifier is known."""
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @field_validator("locale")
    @classmethod
    def validate_locale(cls, value: str) -> str:
        """Ensure pendulum can format dates in the locale."""
        try:
            pendulum.locale(value)
        except ValueError as exc:
            raise ValueError(f"Unknown locale '{value}'") from exc
        return value

    def fixed_timezone(self) -> FixedTimezone:
        """Get the fixed provider offset as a timezone object."""
        return FixedTimezone(int(self.utc_offset_hours * 3600))


class GoogleConfig(BaseModel):
    """Service-account access to the external calendar."""
    calendar_id: str = ""
    client_email: str = ""
    private_key: str = ""
    private_key_env: str = "GOOGLE_PRIVATE_KEY"
    token_uri: str = "https://oauth2.googleapis.com/token"
    api_base: str = "https://www.googleapis.com/calendar/v3"
    read_scope: str = CALENDAR_READ_SCOPE
    write_scope: str = CALENDAR_WRITE_SCOPE
    request_timeout_seconds: float = 10.0
    max_attempts: int = 3
    token_refresh_margin_seconds: int = 60

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request_timeout_seconds must be greater than zero")
        return value

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_attempts must be at least 1")
        return value

    def resolve_private_key(self) -> str:
        """
        Resolve the service-account private key.

        Looks at the inline value, then the configured environment variable,
        then the OS keyring entry for the client email.

        Returns:
            PEM-encoded private key

        Raises:
            AuthConfigError: If no key material can be found
        """
        key = self.private_key or os.environ.get(self.private_key_env, "")

        if not key and self.client_email:
            try:
                key = keyring.get_password(KEYRING_SERVICE_NAME, self.client_email) or ""
            except KeyringError as exc:  # pragma: no cover - environment dependent
                logger.warning("Could not read private key from keyring: %s", exc)

        if not key:
            raise AuthConfigError(
                "Service-account private key not found. Set it in the config, "
                f"in ${self.private_key_env}, or in the '{KEYRING_SERVICE_NAME}' keyring."
            )

        # Keys pasted into env vars usually carry escaped newlines
        return key.replace("\\n", "\n")

    def require_calendar_id(self) -> str:
        if not self.calendar_id:
            raise ConfigurationError("google.calendar_id is not configured")
        return self.calendar_id


class NotificationConfig(BaseModel):
    """Outbound email settings (Resend)."""
    enabled: bool = True
    api_key_env: str = "RESEND_API_KEY"
    api_url: str = "https://api.resend.com/emails"
    sender: str = "Agenda <onboarding@resend.dev>"
    subject: str = "Appointment confirmed"
    request_timeout_seconds: float = 10.0
    max_attempts: int = 3

    def resolve_api_key(self) -> Optional[str]:
        return os.environ.get(self.api_key_env) or None


class BookingConfig(BaseModel):
    """Text used when mirroring bookings to the calendar."""
    event_prefix: str = "PSI"
    default_service_label: str = "Consultation"
    booked_via: str = "agendasync"


class AppConfig(BaseModel):
    """Application configuration."""
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    booking: BookingConfig = Field(default_factory=BookingConfig)
    storage_path: Path = Path("agenda.json")
    mock_events_path: Optional[Path] = None

    @model_validator(mode="after")
    def validate_offset_matches_timezone(self) -> "AppConfig":
        """Warn when the fixed offset disagrees with the named timezone today."""
        named = pendulum.now(self.provider.timezone).offset / 3600
        if named != self.provider.utc_offset_hours:
            logger.warning(
                "provider.utc_offset_hours (%s) differs from the current offset of %s (%s)",
                self.provider.utc_offset_hours,
                self.provider.timezone,
                named,
            )
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)

        # Relative paths are relative to the config file, not the cwd
        base = config_path.parent
        if not config.storage_path.is_absolute():
            config.storage_path = base / config.storage_path
        if config.mock_events_path and not config.mock_events_path.is_absolute():
            config.mock_events_path = base / config.mock_events_path

        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.cwd() / "config.yaml"

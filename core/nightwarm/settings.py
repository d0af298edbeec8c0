"""
NightWarm Configuration Settings

Controller tunables and service wiring.
Loaded from the add-on options.json, config.yaml or the environment.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, fields

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

TRIGGER_MODES = ("interval", "proximity")

OPTIONS_PATH = "/data/options.json"
CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config.yaml")

# Environment variable -> settings field
ENV_OVERRIDES = {
    "NIGHTWARM_LEAD_TIME_HOURS": "lead_time_hours",
    "NIGHTWARM_WARMING_ENABLED": "warming_enabled",
    "NIGHTWARM_WARMING_LEVEL": "warming_level",
    "NIGHTWARM_TRIGGER_MODE": "trigger_mode",
    "NIGHTWARM_POLL_INTERVAL_MINUTES": "poll_interval_minutes",
    "NIGHTWARM_DATABASE_PATH": "database_path",
    "CRON_SECRET": "cron_secret",
    "EIGHT_CLIENT_ID": "eight_client_id",
    "EIGHT_CLIENT_SECRET": "eight_client_secret",
}


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class ControllerSettings:
    """Configuration for the sleep-cycle controller and its service."""

    # Sleep cycle policy
    lead_time_hours: float = 3.0  # Pre-heating starts this long before bedtime
    warming_enabled: bool = False  # Warming spike right before wake-up
    warming_level: int = 10
    warming_lead_minutes: int = 30
    trigger_mode: str = "interval"  # "interval" or "proximity"
    proximity_minutes: int = 15

    # Device calls
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    request_timeout_seconds: float = 10.0

    # Run orchestration
    profile_timeout_seconds: float = 120.0  # Outer deadline per profile
    max_concurrent_profiles: int = 5
    poll_interval_minutes: int = 0  # 0 = rely on the external cron trigger

    # Wiring
    database_path: str = "nightwarm_data/nightwarm.db"
    cron_secret: str = ""
    eight_client_id: str = ""
    eight_client_secret: str = ""
    eight_auth_url: str = "https://auth-api.8slp.net/v1"
    eight_api_url: str = "https://client-api.8slp.net/v1"

    def __post_init__(self):
        self.lead_time_hours = float(self.lead_time_hours)
        self.warming_enabled = _as_bool(self.warming_enabled)
        self.warming_level = int(self.warming_level)
        self.warming_lead_minutes = int(self.warming_lead_minutes)
        self.proximity_minutes = int(self.proximity_minutes)
        self.retry_attempts = int(self.retry_attempts)
        self.retry_base_delay_seconds = float(self.retry_base_delay_seconds)
        self.request_timeout_seconds = float(self.request_timeout_seconds)
        self.profile_timeout_seconds = float(self.profile_timeout_seconds)
        self.max_concurrent_profiles = int(self.max_concurrent_profiles)
        self.poll_interval_minutes = int(self.poll_interval_minutes)
        self.validate()

    def validate(self) -> None:
        """Reject values the controller cannot run with.

        Raises:
            ConfigurationError: If any tunable is out of range
        """
        if self.trigger_mode not in TRIGGER_MODES:
            raise ConfigurationError(
                f"trigger_mode must be one of {TRIGGER_MODES}, got {self.trigger_mode!r}"
            )
        if self.lead_time_hours <= 0:
            raise ConfigurationError("lead_time_hours must be positive")
        if self.warming_lead_minutes <= 0:
            raise ConfigurationError("warming_lead_minutes must be positive")
        if self.proximity_minutes < 0:
            raise ConfigurationError("proximity_minutes cannot be negative")
        if self.retry_attempts < 1:
            raise ConfigurationError("retry_attempts must be at least 1")
        if self.retry_base_delay_seconds < 0:
            raise ConfigurationError("retry_base_delay_seconds cannot be negative")
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("request_timeout_seconds must be positive")
        if self.profile_timeout_seconds < self.call_envelope_seconds:
            raise ConfigurationError(
                f"profile_timeout_seconds ({self.profile_timeout_seconds:g}) must cover "
                f"one retried device call ({self.call_envelope_seconds:g}s)"
            )
        if self.max_concurrent_profiles < 1:
            raise ConfigurationError("max_concurrent_profiles must be at least 1")
        if self.poll_interval_minutes < 0:
            raise ConfigurationError("poll_interval_minutes cannot be negative")

    @property
    def call_envelope_seconds(self) -> float:
        """Worst case for one device call: every attempt times out, plus backoff."""
        backoff = self.retry_base_delay_seconds * (2 ** (self.retry_attempts - 1) - 1)
        return self.retry_attempts * self.request_timeout_seconds + backoff

    @property
    def boundary_window_minutes(self) -> int:
        """Minutes before a boundary at which its stage already applies."""
        return self.proximity_minutes if self.trigger_mode == "proximity" else 0

    @property
    def grace_minutes(self) -> int:
        """Minutes after wake-up during which shutoff is held back."""
        return self.proximity_minutes if self.trigger_mode == "proximity" else 0

    @classmethod
    def from_dict(cls, data: dict) -> "ControllerSettings":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        converted = {_camel_to_snake(k): v for k, v in data.items()}
        unknown = set(converted) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {sorted(unknown)}")
        return cls(**{k: v for k, v in converted.items() if k in known})


def _load_file_options() -> dict:
    """Read options from options.json (production) or config.yaml (development)."""
    if os.path.exists(OPTIONS_PATH):
        with open(OPTIONS_PATH) as f:
            options = json.load(f)
        logger.debug("Loaded settings from options.json")
        return options.get("controller", options)

    if os.path.exists(CONFIG_PATH):
        with open(CONFIG_PATH) as f:
            config = yaml.safe_load(f) or {}
        logger.debug("Loaded settings from config.yaml")
        return config.get("options", {}).get("controller", {})

    return {}


def load_settings() -> ControllerSettings:
    """Resolve settings from files, then apply environment overrides."""
    load_dotenv()

    try:
        options = _load_file_options()
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read settings file: {e}") from e

    options = {_camel_to_snake(k): v for k, v in options.items()}
    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            options[field_name] = value

    return ControllerSettings.from_dict(options)

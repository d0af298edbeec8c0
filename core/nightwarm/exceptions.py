"""
NightWarm Custom Exceptions

Simple exception hierarchy for error handling.
"""


class NightWarmError(Exception):
    """Base exception for NightWarm."""

    pass


class ConfigurationError(NightWarmError):
    """Configuration is invalid."""

    pass


class InvalidProfileError(NightWarmError):
    """A stored thermal profile cannot be evaluated."""

    pass


class InvalidTimeFormat(InvalidProfileError):
    """A bedtime or wake-up clock string is not a valid HH:MM value."""

    pass


class AuthError(NightWarmError):
    """Refreshing the device vendor credential failed."""

    pass


class DeviceApiError(NightWarmError):
    """A call against the device vendor API failed."""

    pass


class PersistenceError(NightWarmError):
    """Reading or writing the profile store failed."""

    pass

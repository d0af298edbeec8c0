"""NightWarm sleep-cycle heating controller package."""

# Define public API
__all__ = [
    "ControllerSettings",
    "load_settings",
    "StageTag",
    "SleepCycle",
    "ThermalProfile",
    "Credential",
    "DeviceState",
    "RunReport",
    "build_sleep_cycle",
    "classify_stage",
    "resolve_setpoint",
    "ActuationEngine",
    "TemperatureController",
    "EightSleepClient",
    "ProfileStore",
]

# Import settings
from .settings import ControllerSettings, load_settings

# Import models
from .models import Credential, DeviceState, RunReport, SleepCycle, StageTag, ThermalProfile

# Import controller pieces
from .sleep_cycle import build_sleep_cycle
from .stages import classify_stage, resolve_setpoint
from .actuation import ActuationEngine
from .controller import TemperatureController

# Import collaborators
from .eight_client import EightSleepClient
from .profile_store import ProfileStore

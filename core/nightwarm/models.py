"""
NightWarm Data Models

Profiles, credentials, device state and the derived sleep cycle.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from .exceptions import InvalidProfileError

# Heating level range accepted by the device
MIN_LEVEL = -100
MAX_LEVEL = 100


class StageTag(str, Enum):
    """Discrete stage of the nightly heating cycle."""

    PRE_HEATING = "pre-heating"
    INITIAL = "initial"
    MID = "mid"
    FINAL = "final"
    WARMING = "warming"
    OUTSIDE_CYCLE = "outside-cycle"


@dataclass
class ThermalProfile:
    """Per-user heating preferences (read-only to the controller)."""

    email: str
    bed_time: str  # Local clock "HH:MM"
    wake_time: str  # Local clock "HH:MM"
    timezone: str  # IANA identifier
    initial_level: int
    mid_level: int
    final_level: int

    def validate(self) -> None:
        """Check the stored levels against the device range.

        Raises:
            InvalidProfileError: If a level is missing or out of range
        """
        for name in ("initial_level", "mid_level", "final_level"):
            level = getattr(self, name)
            valid = isinstance(level, int) and not isinstance(level, bool)
            if not valid or not MIN_LEVEL <= level <= MAX_LEVEL:
                raise InvalidProfileError(
                    f"{name} for {self.email} must be an integer in "
                    f"[{MIN_LEVEL}, {MAX_LEVEL}], got {level!r}"
                )


@dataclass
class Credential:
    """Device vendor access/refresh token pair."""

    access_token: str
    refresh_token: str
    expires_at: datetime  # Timezone-aware
    device_user_id: str

    def is_expired(self, now: datetime) -> bool:
        """Check whether the access token is past its expiry at *now*."""
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now > expires_at


@dataclass
class DeviceState:
    """Live heating state read back from the device."""

    is_heating: bool
    heating_level: int

    @classmethod
    def inert(cls) -> "DeviceState":
        """Fixed state substituted for the device in dry-run mode."""
        return cls(is_heating=False, heating_level=0)


@dataclass(frozen=True)
class SleepCycle:
    """Stage boundaries of one nightly cycle, in the user's local time.

    Ordering: pre_heat_start < bed_time <= mid_stage_start <= final_stage_start
    <= warming_start <= wake_time. Collapsed (zero-width) stages are skipped.
    """

    pre_heat_start: datetime
    bed_time: datetime
    mid_stage_start: datetime
    final_stage_start: datetime
    wake_time: datetime
    warming_start: Optional[datetime] = None

    def boundaries(self) -> list[datetime]:
        """All boundaries in ascending order."""
        points = [
            self.pre_heat_start,
            self.bed_time,
            self.mid_stage_start,
            self.final_stage_start,
        ]
        if self.warming_start is not None:
            points.append(self.warming_start)
        points.append(self.wake_time)
        return points

    def shift(self, days: int) -> "SleepCycle":
        """Return the same cycle moved by whole days."""
        delta = timedelta(days=days)
        return replace(
            self,
            pre_heat_start=self.pre_heat_start + delta,
            bed_time=self.bed_time + delta,
            mid_stage_start=self.mid_stage_start + delta,
            final_stage_start=self.final_stage_start + delta,
            wake_time=self.wake_time + delta,
            warming_start=(
                self.warming_start + delta if self.warming_start is not None else None
            ),
        )

    def as_dict(self) -> dict:
        return {
            "pre_heat_start": self.pre_heat_start.isoformat(),
            "bed_time": self.bed_time.isoformat(),
            "mid_stage_start": self.mid_stage_start.isoformat(),
            "final_stage_start": self.final_stage_start.isoformat(),
            "warming_start": self.warming_start.isoformat() if self.warming_start else None,
            "wake_time": self.wake_time.isoformat(),
        }


class ActionKind(str, Enum):
    POWER_ON = "power_on"
    POWER_OFF = "power_off"
    SET_LEVEL = "set_level"


@dataclass(frozen=True)
class Action:
    """A single device write planned by the actuation engine."""

    kind: ActionKind
    level: Optional[int] = None

    def __str__(self) -> str:
        if self.kind == ActionKind.SET_LEVEL:
            return f"{self.kind.value}({self.level})"
        return self.kind.value


@dataclass
class ProfileResult:
    """Outcome of evaluating one profile in a run."""

    email: str
    stage: Optional[StageTag] = None
    target_level: Optional[int] = None
    actions: list[str] = field(default_factory=list)
    cycle: Optional[dict] = None  # Boundaries the stage was classified against
    skipped_stages: list[str] = field(default_factory=list)
    credential_refreshed: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict:
        return {
            "email": self.email,
            "stage": self.stage.value if self.stage else None,
            "target_level": self.target_level,
            "cycle": self.cycle,
            "actions": list(self.actions),
            "skipped_stages": list(self.skipped_stages),
            "credential_refreshed": self.credential_refreshed,
            "error": self.error,
        }


@dataclass
class RunReport:
    """Summary of one controller run."""

    started_at: datetime
    reference_time: datetime
    dry_run: bool
    results: list[ProfileResult] = field(default_factory=list)
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "reference_time": self.reference_time.isoformat(),
            "dry_run": self.dry_run,
            "profiles": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.as_dict() for r in self.results],
        }

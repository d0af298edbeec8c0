"""
Stage classification and setpoint resolution.

Both are pure functions of the cycle, the reference instant and the
user's profile.
"""

from datetime import datetime, timedelta
from typing import Optional

from .models import SleepCycle, StageTag, ThermalProfile
from .sleep_cycle import skipped_stages


def stage_windows(cycle: SleepCycle) -> list[tuple[StageTag, datetime, datetime]]:
    """Half-open [start, end) window of every stage, in cycle order."""
    final_end = cycle.warming_start if cycle.warming_start is not None else cycle.wake_time
    windows = [
        (StageTag.PRE_HEATING, cycle.pre_heat_start, cycle.bed_time),
        (StageTag.INITIAL, cycle.bed_time, cycle.mid_stage_start),
        (StageTag.MID, cycle.mid_stage_start, cycle.final_stage_start),
        (StageTag.FINAL, cycle.final_stage_start, final_end),
    ]
    if cycle.warming_start is not None:
        windows.append((StageTag.WARMING, cycle.warming_start, cycle.wake_time))
    return windows


def classify_interval(cycle: SleepCycle, now: datetime) -> StageTag:
    """Stage whose window contains now, or outside-cycle."""
    for tag, start, end in stage_windows(cycle):
        if start <= now < end:
            return tag
    return StageTag.OUTSIDE_CYCLE


def _near(now: datetime, boundary: datetime, window: timedelta) -> bool:
    return abs(now - boundary) <= window


def classify_proximity(cycle: SleepCycle, now: datetime, window_minutes: int) -> StageTag:
    """Classify with a tolerance around stage boundaries.

    Being within the window of a boundary selects the stage that boundary
    opens, before interval membership is considered. Priority: warming,
    bed/pre-heating transition, mid, final.
    """
    window = timedelta(minutes=window_minutes)
    skipped = set(skipped_stages(cycle))

    if cycle.warming_start is not None and StageTag.WARMING not in skipped:
        if _near(now, cycle.warming_start, window) or _near(now, cycle.wake_time, window):
            return StageTag.WARMING

    if _near(now, cycle.bed_time, window):
        return StageTag.INITIAL
    if _near(now, cycle.pre_heat_start, window):
        return StageTag.PRE_HEATING
    if StageTag.MID not in skipped and _near(now, cycle.mid_stage_start, window):
        return StageTag.MID
    if StageTag.FINAL not in skipped and _near(now, cycle.final_stage_start, window):
        return StageTag.FINAL

    return classify_interval(cycle, now)


def classify_stage(
    cycle: SleepCycle,
    now: datetime,
    mode: str = "interval",
    window_minutes: int = 15,
) -> StageTag:
    """Classify now into exactly one stage using the configured trigger mode."""
    if mode == "proximity":
        return classify_proximity(cycle, now, window_minutes)
    return classify_interval(cycle, now)


def is_after_wake(cycle: SleepCycle, now: datetime, grace_minutes: int = 0) -> bool:
    """True once now is past the wake-up time plus the grace window."""
    return now > cycle.wake_time + timedelta(minutes=grace_minutes)


def resolve_setpoint(
    stage: StageTag,
    profile: ThermalProfile,
    warming_level: int,
) -> Optional[int]:
    """Target heating level for a stage, or None for no action."""
    if stage in (StageTag.PRE_HEATING, StageTag.INITIAL):
        return profile.initial_level
    if stage == StageTag.MID:
        return profile.mid_level
    if stage == StageTag.FINAL:
        return profile.final_level
    if stage == StageTag.WARMING:
        return warming_level
    return None

"""
Sleep Cycle Boundary Calculation

Derives the stage boundaries of the nightly cycle nearest to "now" from a
bedtime/wake-up pair of local clock strings.

Timeline (bedtime 22:00, wake-up 06:00, 1 h lead time):

    21:00 pre-heat | 22:00 bed | 23:00 mid | 04:00 final | 06:00 wake

All arithmetic is wall-clock arithmetic in the tzinfo carried by the
reference instant, so a cycle keeps its local times across DST changes.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from .exceptions import InvalidTimeFormat
from .models import SleepCycle, StageTag

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
MID_STAGE_AFTER_BED = timedelta(hours=1)
FINAL_STAGE_BEFORE_WAKE = timedelta(hours=2)
# How far ahead the next wake-up may be before "now" still belongs to the last one
WAKE_LOOKAHEAD = timedelta(hours=12)


def parse_clock(value: str) -> tuple[int, int]:
    """Parse a local clock string.

    Args:
        value: Clock time as "HH:MM" (24-hour)

    Returns:
        (hour, minute)

    Raises:
        InvalidTimeFormat: If the string is malformed or out of range
    """
    if not isinstance(value, str):
        raise InvalidTimeFormat(f"Invalid time string: {value!r}")

    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise InvalidTimeFormat(f"Invalid time string: {value!r}")

    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidTimeFormat(f"Invalid time string: {value!r}")
    return hour, minute


def _anchor(reference: datetime, clock: str) -> datetime:
    """Place a clock string on the reference instant's calendar date."""
    hour, minute = parse_clock(clock)
    return datetime.combine(reference.date(), time(hour, minute), tzinfo=reference.tzinfo)


def create_sleep_cycle(
    local_now: datetime,
    bed_time: str,
    wake_time: str,
    lead_time_hours: float,
    warming_enabled: bool = False,
    warming_lead_minutes: int = 30,
) -> SleepCycle:
    """Build the cycle anchored on the reference instant's calendar date.

    Stages that do not fit between bedtime and wake-up collapse to zero
    width instead of being rejected: mid is clipped to the wake-up time and
    the final/warming starts are clamped between the preceding boundary and
    the wake-up time.

    Args:
        local_now: Reference instant in the user's local time
        bed_time: Bedtime clock string "HH:MM"
        wake_time: Wake-up clock string "HH:MM"
        lead_time_hours: How long before bedtime pre-heating starts
        warming_enabled: Add a warming stage right before wake-up
        warming_lead_minutes: Length of the warming stage

    Returns:
        SleepCycle with ordered boundaries (not yet day-rollover corrected)
    """
    bed = _anchor(local_now, bed_time)
    wake = _anchor(local_now, wake_time)
    if wake <= bed:
        # Cycle crosses midnight
        wake += ONE_DAY

    pre_heat = bed - timedelta(hours=lead_time_hours)
    mid = min(bed + MID_STAGE_AFTER_BED, wake)
    final = min(max(wake - FINAL_STAGE_BEFORE_WAKE, mid), wake)

    warming: Optional[datetime] = None
    if warming_enabled:
        warming = min(max(wake - timedelta(minutes=warming_lead_minutes), final), wake)

    return SleepCycle(
        pre_heat_start=pre_heat,
        bed_time=bed,
        mid_stage_start=mid,
        final_stage_start=final,
        wake_time=wake,
        warming_start=warming,
    )


def normalize_cycle(
    cycle: SleepCycle,
    local_now: datetime,
    lookahead_minutes: int = 0,
) -> SleepCycle:
    """Move the cycle by whole days so it describes the cycle nearest to now.

    The cycle that started most recently is used while now is inside it.
    Once its wake-up has passed, now keeps referring to that wake-up until
    the next one is at most 12 hours ahead, or until the next pre-heat start
    is within lookahead_minutes. Boundaries are always moved together, so
    their ordering is preserved and applying this twice gives the same
    result as applying it once.
    """
    offset_days = (local_now - cycle.pre_heat_start) // ONE_DAY
    latest = cycle.shift(offset_days)
    if local_now < latest.wake_time:
        return latest

    upcoming = latest.shift(1)
    if upcoming.wake_time - local_now <= WAKE_LOOKAHEAD:
        return upcoming
    if upcoming.pre_heat_start - local_now <= timedelta(minutes=lookahead_minutes):
        return upcoming
    return latest


def build_sleep_cycle(
    local_now: datetime,
    bed_time: str,
    wake_time: str,
    lead_time_hours: float,
    warming_enabled: bool = False,
    warming_lead_minutes: int = 30,
    lookahead_minutes: int = 0,
) -> SleepCycle:
    """Create the cycle and correct it for day rollover."""
    cycle = create_sleep_cycle(
        local_now,
        bed_time,
        wake_time,
        lead_time_hours,
        warming_enabled=warming_enabled,
        warming_lead_minutes=warming_lead_minutes,
    )
    return normalize_cycle(cycle, local_now, lookahead_minutes=lookahead_minutes)


def skipped_stages(cycle: SleepCycle) -> list[StageTag]:
    """Stages whose window collapsed to zero width."""
    skipped = []
    if cycle.mid_stage_start >= cycle.final_stage_start:
        skipped.append(StageTag.MID)
    final_end = cycle.warming_start if cycle.warming_start is not None else cycle.wake_time
    if cycle.final_stage_start >= final_end:
        skipped.append(StageTag.FINAL)
    if cycle.warming_start is not None and cycle.warming_start >= cycle.wake_time:
        skipped.append(StageTag.WARMING)
    return skipped

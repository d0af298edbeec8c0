"""tests/test_sleep_cycle.py — core/nightwarm/sleep_cycle.py coverage"""
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from core.nightwarm.exceptions import InvalidProfileError, InvalidTimeFormat
from core.nightwarm.models import StageTag
from core.nightwarm.sleep_cycle import (
    build_sleep_cycle,
    create_sleep_cycle,
    normalize_cycle,
    parse_clock,
    skipped_stages,
)

TZ = ZoneInfo("America/New_York")


def local(day, hour, minute=0):
    return datetime(2026, 10, day, hour, minute, tzinfo=TZ)


class TestParseClock:
    @pytest.mark.parametrize("value,expected", [
        ("22:00", (22, 0)),
        ("06:30", (6, 30)),
        ("0:05", (0, 5)),
        ("23:59", (23, 59)),
    ])
    def test_valid(self, value, expected):
        assert parse_clock(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "12", "12:30:00", "-1:30", "", None])
    def test_invalid(self, value):
        with pytest.raises(InvalidTimeFormat):
            parse_clock(value)

    def test_invalid_time_is_a_profile_error(self):
        with pytest.raises(InvalidProfileError):
            parse_clock("99:99")


class TestCreateSleepCycle:
    def test_boundaries_cross_midnight(self):
        cycle = create_sleep_cycle(local(19, 21, 5), "22:00", "06:00", lead_time_hours=1)
        assert cycle.pre_heat_start == local(19, 21)
        assert cycle.bed_time == local(19, 22)
        assert cycle.mid_stage_start == local(19, 23)
        assert cycle.final_stage_start == local(20, 4)
        assert cycle.wake_time == local(20, 6)
        assert cycle.warming_start is None

    def test_three_hour_lead_time(self):
        cycle = create_sleep_cycle(local(19, 21), "22:00", "06:00", lead_time_hours=3)
        assert cycle.pre_heat_start == local(19, 19)

    def test_wake_before_bed_moves_to_next_day(self):
        cycle = create_sleep_cycle(local(19, 20), "23:00", "06:00", lead_time_hours=1)
        assert cycle.wake_time == local(20, 6)
        assert cycle.mid_stage_start == local(20, 0)
        assert cycle.final_stage_start == local(20, 4)
        assert cycle.final_stage_start > cycle.mid_stage_start

    def test_equal_bed_and_wake_is_a_full_day(self):
        cycle = create_sleep_cycle(local(19, 20), "22:00", "22:00", lead_time_hours=1)
        assert cycle.wake_time - cycle.bed_time == timedelta(days=1)

    def test_warming_stage(self):
        cycle = create_sleep_cycle(
            local(19, 21), "22:00", "06:00", lead_time_hours=1,
            warming_enabled=True, warming_lead_minutes=30,
        )
        assert cycle.warming_start == local(20, 5, 30)
        assert cycle.final_stage_start < cycle.warming_start < cycle.wake_time

    def test_keeps_reference_timezone(self):
        cycle = create_sleep_cycle(local(19, 21), "22:00", "06:00", lead_time_hours=1)
        assert all(b.tzinfo is TZ for b in cycle.boundaries())

    def test_rejects_malformed_clock(self):
        with pytest.raises(InvalidTimeFormat):
            create_sleep_cycle(local(19, 21), "25:00", "06:00", lead_time_hours=1)


class TestDegenerateCycles:
    def test_short_night_skips_mid(self):
        cycle = create_sleep_cycle(local(19, 22), "23:00", "01:30", lead_time_hours=1)
        assert cycle.mid_stage_start == cycle.final_stage_start == local(20, 0)
        assert skipped_stages(cycle) == [StageTag.MID]

    def test_nap_collapses_mid_and_final(self):
        cycle = create_sleep_cycle(local(19, 22), "23:00", "23:30", lead_time_hours=1)
        assert cycle.mid_stage_start == cycle.final_stage_start == cycle.wake_time
        assert skipped_stages(cycle) == [StageTag.MID, StageTag.FINAL]

    def test_regular_night_skips_nothing(self):
        cycle = create_sleep_cycle(
            local(19, 22), "22:00", "06:00", lead_time_hours=3, warming_enabled=True,
        )
        assert skipped_stages(cycle) == []

    @pytest.mark.parametrize("bed,wake", [
        ("22:00", "06:00"), ("23:00", "00:15"), ("23:00", "01:30"),
        ("20:00", "10:00"), ("21:00", "21:00"), ("00:00", "07:00"),
    ])
    def test_boundaries_never_decrease(self, bed, wake):
        cycle = create_sleep_cycle(
            local(19, 12), bed, wake, lead_time_hours=3, warming_enabled=True,
        )
        points = cycle.boundaries()
        assert points[0] < points[1]
        assert points == sorted(points)


class TestNormalizeCycle:
    def test_morning_refers_to_previous_night(self):
        cycle = build_sleep_cycle(local(20, 5), "22:00", "06:00", lead_time_hours=1)
        assert cycle.bed_time == local(19, 22)
        assert cycle.wake_time == local(20, 6)

    def test_after_wake_keeps_last_wake_until_next_is_close(self):
        # 07:00: next wake-up is 23 h away, so the night that just ended applies
        cycle = build_sleep_cycle(local(20, 7), "22:00", "06:00", lead_time_hours=1)
        assert cycle.wake_time == local(20, 6)

        # 18:30: next wake-up is 11.5 h away, so the coming night applies
        cycle = build_sleep_cycle(local(20, 18, 30), "22:00", "06:00", lead_time_hours=1)
        assert cycle.pre_heat_start == local(20, 21)
        assert cycle.wake_time == local(21, 6)

    def test_evening_refers_to_coming_night(self):
        cycle = build_sleep_cycle(local(19, 21, 5), "22:00", "06:00", lead_time_hours=1)
        assert cycle.pre_heat_start == local(19, 21)
        assert cycle.wake_time == local(20, 6)

    def test_long_night_stays_in_one_cycle(self):
        cycle = build_sleep_cycle(local(19, 21, 30), "20:00", "10:00", lead_time_hours=3)
        assert cycle.mid_stage_start <= local(19, 21, 30) < cycle.final_stage_start
        assert cycle.wake_time == local(20, 10)

    def test_lookahead_picks_coming_night_before_pre_heat(self):
        # 22:00-07:30 with 3 h lead: at 18:50 the next wake-up is 12 h 40 min away
        now = local(19, 18, 50)
        cycle = build_sleep_cycle(now, "22:00", "07:30", lead_time_hours=3)
        assert cycle.wake_time == local(19, 7, 30)

        cycle = build_sleep_cycle(now, "22:00", "07:30", lead_time_hours=3, lookahead_minutes=15)
        assert cycle.pre_heat_start == local(19, 19)
        assert cycle.wake_time == local(20, 7, 30)

    def test_lookahead_does_not_reach_further_back(self):
        cycle = build_sleep_cycle(local(19, 18, 40), "22:00", "07:30", lead_time_hours=3,
                                  lookahead_minutes=15)
        assert cycle.wake_time == local(19, 7, 30)

    @pytest.mark.parametrize("lookahead", [0, 15, 60])
    def test_idempotent_with_lookahead(self, lookahead):
        start = local(19, 0)
        for step in range(0, 24 * 60, 10):
            now = start + timedelta(minutes=step)
            once = build_sleep_cycle(now, "22:00", "07:30", lead_time_hours=3,
                                     lookahead_minutes=lookahead)
            assert normalize_cycle(once, now, lookahead_minutes=lookahead) == once
            assert once.pre_heat_start - now <= timedelta(minutes=max(lookahead, 12 * 60))

    @pytest.mark.parametrize("bed,wake,lead", [
        ("22:00", "06:00", 1), ("22:00", "06:00", 3), ("23:00", "07:30", 2),
        ("20:00", "10:00", 3), ("01:00", "09:00", 1), ("23:00", "01:30", 1),
    ])
    def test_idempotent_and_ordered_through_the_day(self, bed, wake, lead):
        start = local(19, 0)
        for step in range(0, 24 * 60, 20):
            now = start + timedelta(minutes=step)
            once = build_sleep_cycle(now, bed, wake, lead_time_hours=lead, warming_enabled=True)
            assert normalize_cycle(once, now) == once
            points = once.boundaries()
            assert points == sorted(points)
            # Within one cycle length of now
            assert once.pre_heat_start - now < timedelta(days=1)
            assert now - once.wake_time < timedelta(days=1)

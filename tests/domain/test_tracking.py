"""
Tracking number and clock tests -- pure, no database.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from storefront_kernel.domain.clock import DeterministicClock, SystemClock
from storefront_kernel.domain.tracking import TrackingNumberGenerator, to_base36


class TestBase36:

    @pytest.mark.parametrize(
        "value, expected",
        [(0, "0"), (9, "9"), (10, "A"), (35, "Z"), (36, "10"), (1295, "ZZ")],
    )
    def test_known_values(self, value, expected):
        assert to_base36(value) == expected

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            to_base36(-1)

    @given(st.integers(min_value=0, max_value=2**63))
    def test_parses_back_with_int(self, value):
        assert int(to_base36(value), 36) == value


class TestTrackingNumberGenerator:

    def test_format(self):
        clock = DeterministicClock(datetime(2024, 1, 1, 12, 0, 0))
        stamp = to_base36(
            int(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc).timestamp() * 1000)
        )

        number = TrackingNumberGenerator(clock)()

        assert number.startswith("TN" + stamp)
        assert len(number) == 2 + len(stamp) + 5
        assert re.fullmatch(r"[0-9A-Z]+", number)

    def test_custom_prefix_and_suffix(self):
        generator = TrackingNumberGenerator(
            DeterministicClock(), prefix="SHIP", suffix_length=8
        )

        number = generator()

        assert number.startswith("SHIP")
        assert re.fullmatch(r"SHIP[0-9A-Z]+", number)

    def test_timestamp_moves_with_clock(self):
        clock = DeterministicClock(datetime(2024, 1, 1, 12, 0, 0))
        generator = TrackingNumberGenerator(clock, suffix_length=1)
        first = generator()[:-1]
        clock.advance(3600)
        second = generator()[:-1]

        assert first != second
        assert int(second[2:], 36) - int(first[2:], 36) == 3_600_000

    def test_suffix_varies(self):
        generator = TrackingNumberGenerator(DeterministicClock(), suffix_length=10)
        assert len({generator() for _ in range(20)}) > 1

    def test_suffix_length_must_be_positive(self):
        with pytest.raises(ValueError):
            TrackingNumberGenerator(DeterministicClock(), suffix_length=0)


class TestClocks:

    def test_deterministic_clock_is_fixed_until_advanced(self):
        start = datetime(2024, 1, 1, 12, 0, 0)
        clock = DeterministicClock(start)

        assert clock.now() == clock.now() == start
        clock.advance(90)
        assert clock.now() == start + timedelta(seconds=90)
        assert clock.tick() == start + timedelta(seconds=91)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock(datetime(2024, 1, 1))
        clock.advance(500)
        clock.set_time(datetime(2025, 6, 1))

        assert clock.now() == datetime(2025, 6, 1)

    def test_naive_time_stays_naive(self):
        assert DeterministicClock(datetime(2024, 1, 1)).now().tzinfo is None

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo == timezone.utc

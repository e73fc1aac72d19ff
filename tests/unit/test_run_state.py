"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Test suite for run counters and the time estimate.
"""

import pytest

from witsync.run_state import RunState, format_duration


@pytest.mark.unit
class TestRunState:
    """Tests for RunState."""

    def test_average_and_eta(self):
        state = RunState(name="work_items", total=10)
        state.record(2.0)
        state.record(4.0)

        assert state.average == 3.0
        assert state.remaining == 8
        assert state.eta == 24.0

    def test_eta_before_first_item(self):
        state = RunState(name="work_items", total=10)

        assert state.average == 0.0
        assert state.eta == 0.0

    def test_eta_never_negative(self):
        state = RunState(name="work_items", total=1)
        state.record(1.0)
        state.record(1.0)
        state.record(-5.0)

        assert state.remaining == 0
        assert state.eta >= 0.0

    def test_summary(self):
        state = RunState(name="nodes", attempted=3, migrated=2, skipped=1)

        summary = state.summary()

        assert summary["name"] == "nodes"
        assert summary["attempted"] == summary["migrated"] + summary["skipped"] + summary["failed"]

    def test_progress_line(self):
        state = RunState(name="work_items", total=3)
        state.record(1.5)

        assert state.progress_line() == (
            "Average time of 1.500 seconds per item and "
            "0 hours 0 minutes 3.000 seconds estimated to completion"
        )


@pytest.mark.unit
class TestFormatDuration:
    """Tests for duration formatting."""

    @pytest.mark.parametrize(
        "seconds, expected",
        [
            (0, "0 hours 0 minutes 0.000 seconds"),
            (61.25, "0 hours 1 minutes 1.250 seconds"),
            (3725.5, "1 hours 2 minutes 5.500 seconds"),
            (-3, "0 hours 0 minutes 0.000 seconds"),
        ],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected

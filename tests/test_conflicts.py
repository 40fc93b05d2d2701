"""Tests for buffered conflict detection."""

import pytest

from boardroom.models import TimeInterval
from boardroom.scheduling.conflicts import find_conflict


class TestFindConflict:
    def test_buffered_end_touching_candidate_is_not_a_conflict(self, busy, at):
        existing = [busy((9, 0), (9, 45))]
        candidate = TimeInterval(at(10), at(10, 30))
        assert find_conflict(candidate, existing, buffer_minutes=15) is None

    @pytest.mark.parametrize("buffer_minutes", [1, 5, 15, 30])
    def test_start_exactly_buffer_after_end_is_allowed(self, busy, at, buffer_minutes):
        existing = [busy((9, 0), (10, 0))]
        start = at(10, buffer_minutes)
        candidate = TimeInterval(start, at(11, 30))
        assert find_conflict(candidate, existing, buffer_minutes) is None

    @pytest.mark.parametrize("buffer_minutes", [1, 5, 15, 30])
    def test_start_one_minute_inside_buffer_conflicts(self, busy, at, buffer_minutes):
        event = busy((9, 0), (10, 0))
        start = at(10, buffer_minutes - 1)
        candidate = TimeInterval(start, at(11, 30))
        assert find_conflict(candidate, [event], buffer_minutes) == event

    def test_candidate_end_is_not_buffered(self, busy, at):
        # Ending right when a later meeting starts is fine
        existing = [busy((11, 0), (12, 0))]
        candidate = TimeInterval(at(10), at(11))
        assert find_conflict(candidate, existing, buffer_minutes=15) is None

    def test_first_match_in_input_order_wins(self, busy, at):
        later = busy((10, 15), (10, 45), "later")
        earlier = busy((9, 45), (10, 10), "earlier")
        candidate = TimeInterval(at(10), at(11))
        assert find_conflict(candidate, [later, earlier], 5).title == "later"
        assert find_conflict(candidate, [earlier, later], 5).title == "earlier"

    def test_no_events(self, at):
        assert find_conflict(TimeInterval(at(10), at(11)), [], 5) is None

    def test_zero_buffer_touching_is_allowed(self, busy, at):
        existing = [busy((9, 0), (10, 0))]
        assert find_conflict(TimeInterval(at(10), at(11)), existing, 0) is None

"""First-aid guide parsing and the step walk / timer session."""

from __future__ import annotations

import pytest

from conftest import guide_payload
from mediscan.emergency.guide import GuideSession, parse_guide
from mediscan.errors import SchemaValidationError


@pytest.fixture
def session() -> GuideSession:
    return GuideSession(parse_guide(guide_payload(steps=3)))


class TestParseGuide:
    def test_parses_steps_and_timer(self):
        guide = parse_guide(guide_payload())
        assert guide.severity == "Critical"
        assert guide.steps[1].has_timer
        assert guide.steps[1].timer_seconds == 120
        assert guide.steps[0].timer_seconds is None
        assert guide.post_emergency == ("Stay with the person until help arrives",)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"severity": "Mild"},
            {"steps": []},
            {"title": ""},
            {"postEmergency": "call a doctor"},
            {"steps": [{"title": "", "instruction": "Press", "hasTimer": False, "timerSeconds": None, "warning": None}]},
        ],
    )
    def test_invalid_guides_rejected(self, overrides):
        with pytest.raises(SchemaValidationError):
            parse_guide({**guide_payload(), **overrides})


class TestNavigation:
    def test_previous_on_first_step_is_noop(self, session):
        session.previous_step()
        assert session.step_index == 0

    def test_next_on_last_step_is_noop(self, session):
        session.next_step()
        session.next_step()
        assert session.is_last
        session.next_step()
        assert session.step_index == 2

    def test_walk_forward_and_back(self, session):
        assert session.next_step().title == "Step 2"
        assert session.previous_step().title == "Step 1"


class TestTimer:
    def test_start_resets_counter(self, session):
        session.start_timer()
        session.tick(45)
        session.stop_timer()
        assert session.timer_elapsed == 45
        session.start_timer()
        assert session.timer_elapsed == 0

    def test_tick_ignored_when_stopped(self, session):
        session.tick(10)
        assert session.timer_elapsed == 0

    def test_toggle(self, session):
        assert session.toggle_timer() is True
        session.tick(3)
        assert session.toggle_timer() is False
        assert session.format_timer() == "0:03"

    def test_timer_independent_of_navigation(self, session):
        session.start_timer()
        session.tick(5)
        session.next_step()
        assert session.timer_running
        assert session.timer_elapsed == 5

    def test_remaining_seconds_on_timed_step(self, session):
        assert session.remaining_seconds is None
        session.next_step()
        session.start_timer()
        session.tick(100)
        assert session.remaining_seconds == 20
        session.tick(60)
        assert session.remaining_seconds == 0

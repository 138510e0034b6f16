"""
Tests for the pure pulse transitions.
"""
from datetime import datetime, timedelta, timezone

import pytest

from pulsetime.errors import Conflict, ValidationError
from pulsetime.lifecycle import apply_break, apply_pause, apply_resume, apply_stop
from pulsetime.models import Pulse, PulseStatus

T0 = datetime(2024, 3, 13, 9, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.fixture
def pulse():
    return Pulse(id="p1", project_id="proj", user_id="alice", start_time=T0)


def test_pause_appends_open_entry(pulse):
    """Test pause opens a pause entry."""
    paused = apply_pause(pulse, at(30))
    assert paused.status == PulseStatus.PAUSED
    assert len(paused.pause_history) == 1
    assert paused.pause_history[0].paused_at == at(30)
    assert paused.pause_history[0].resumed_at is None
    assert paused.version == pulse.version + 1
    # input record untouched
    assert pulse.status == PulseStatus.ACTIVE
    assert pulse.pause_history == []


def test_resume_closes_entry_and_accumulates(pulse):
    """Test resume closes the entry and adds paused minutes."""
    resumed = apply_resume(apply_pause(pulse, at(30)), at(40))
    entry = resumed.pause_history[-1]
    assert resumed.status == PulseStatus.ACTIVE
    assert entry.resumed_at == at(40)
    assert entry.duration == 10
    assert resumed.paused_duration == 10


def test_repeated_pause_resume_is_additive(pulse):
    """Test repeated pause and resume cycles accumulate."""
    p = pulse
    for start, length in [(10, 5), (30, 7), (60, 3)]:
        p = apply_resume(apply_pause(p, at(start)), at(start + length))
    assert p.paused_duration == 15
    assert [e.duration for e in p.pause_history] == [5, 7, 3]
    assert all(e.resumed_at is not None for e in p.pause_history)


def test_stop_records_gross_duration(pulse):
    """Test stop records the gross wall-clock duration."""
    p = apply_resume(apply_pause(pulse, at(30)), at(40))
    stopped = apply_stop(p, at(100), notes="done")
    assert stopped.status == PulseStatus.COMPLETED
    assert stopped.end_time == at(100)
    assert stopped.duration == 100
    assert stopped.paused_duration == 10
    assert stopped.actual_duration == 90
    assert stopped.notes == "done"


def test_stop_while_paused_equals_resume_then_stop(pulse):
    """Stopping a paused pulse closes the open pause at the same instant."""
    paused = apply_pause(pulse, at(30))
    direct = apply_stop(paused, at(50))
    two_step = apply_stop(apply_resume(paused, at(50)), at(50))

    assert direct.duration == two_step.duration == 50
    assert direct.paused_duration == two_step.paused_duration == 20
    assert direct.pause_history == two_step.pause_history
    assert direct.version == paused.version + 1


def test_stop_keeps_notes_when_not_given(pulse):
    """Test stop without notes keeps existing notes."""
    p = pulse.model_copy(update={"notes": "original"})
    assert apply_stop(p, at(5)).notes == "original"


@pytest.mark.parametrize("op", ["pause", "resume", "stop"])
def test_completed_pulse_rejects_transitions(pulse, op):
    """Test completed pulses reject every transition."""
    done = apply_stop(pulse, at(10))
    fn = {"pause": apply_pause, "resume": apply_resume, "stop": apply_stop}[op]
    with pytest.raises(Conflict) as exc_info:
        fn(done, at(20))
    assert exc_info.value.details["actual"] == "completed"


def test_pause_requires_active(pulse):
    """Test pausing a paused pulse conflicts."""
    paused = apply_pause(pulse, at(1))
    with pytest.raises(Conflict) as exc_info:
        apply_pause(paused, at(2))
    assert exc_info.value.details == {"expected": ["active"], "actual": "paused"}


def test_resume_requires_paused(pulse):
    """Test resuming an active pulse conflicts."""
    with pytest.raises(Conflict):
        apply_resume(pulse, at(1))


def test_break_adds_to_paused_duration_without_status_change(pulse):
    """Test a manual break adds paused minutes and keeps status."""
    p = apply_break(pulse, at(20), "lunch", 30)
    assert p.status == PulseStatus.ACTIVE
    assert p.paused_duration == 30
    assert p.breaks[0].reason == "lunch"
    assert p.pause_history == []


def test_break_and_pause_are_additive(pulse):
    """Test breaks and pauses add up."""
    p = apply_break(pulse, at(20), "lunch", 30)
    p = apply_resume(apply_pause(p, at(60)), at(75))
    p = apply_stop(p, at(120))
    assert p.paused_duration == 45
    assert p.actual_duration == 75


def test_break_rejects_negative_duration(pulse):
    """Test negative break durations are rejected."""
    with pytest.raises(ValidationError):
        apply_break(pulse, at(1), "oops", -5)


def test_focus_score_counts_pauses(pulse):
    """Test focus score drops per pause and floors at zero."""
    p = pulse
    for i in range(3):
        p = apply_resume(apply_pause(p, at(i * 10)), at(i * 10 + 1))
    assert p.focus_score == 70
    for i in range(3, 12):
        p = apply_resume(apply_pause(p, at(i * 10)), at(i * 10 + 1))
    assert p.focus_score == 0


def test_earnings_use_net_minutes():
    """Test earnings are computed from net minutes."""
    p = Pulse(
        id="p",
        project_id="proj",
        user_id="alice",
        start_time=T0,
        end_time=at(90),
        status=PulseStatus.COMPLETED,
        duration=90,
        paused_duration=30,
        hourly_rate=60,
    )
    assert p.earnings == 60.0
    assert p.model_copy(update={"billable": False}).earnings == 0.0
    assert p.formatted_duration == "1h"

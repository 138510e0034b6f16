"""
Pure state transitions for a Pulse.

Each function takes the current record and the transition instant and returns
a new record; nothing here touches storage. The session service persists the
result with a conditional update keyed on the record's version.
"""
from datetime import datetime
from typing import Optional

from pulsetime.errors import Conflict, ValidationError
from pulsetime.models import OPEN_STATES, BreakEntry, PauseEntry, Pulse, PulseStatus
from pulsetime.utils.timemath import elapsed_minutes


def _bump(pulse: Pulse, now: datetime, **changes) -> Pulse:
    return pulse.model_copy(
        update={**changes, "version": pulse.version + 1, "updated_at": now},
        deep=True,
    )


def apply_pause(pulse: Pulse, now: datetime) -> Pulse:
    if pulse.status != PulseStatus.ACTIVE:
        raise Conflict.state(PulseStatus.ACTIVE, pulse.status, "pause")
    history = [*pulse.pause_history, PauseEntry(paused_at=now)]
    return _bump(pulse, now, status=PulseStatus.PAUSED, pause_history=history)


def apply_resume(pulse: Pulse, now: datetime) -> Pulse:
    if pulse.status != PulseStatus.PAUSED:
        raise Conflict.state(PulseStatus.PAUSED, pulse.status, "resume")
    open_pause = pulse.open_pause
    if open_pause is None:
        raise Conflict(
            "Session is paused but has no open pause to resume",
            details={"expected": "open pause", "actual": "none"},
        )
    minutes = elapsed_minutes(open_pause.paused_at, now)
    closed = open_pause.model_copy(update={"resumed_at": now, "duration": minutes})
    history = [*pulse.pause_history[:-1], closed]
    return _bump(
        pulse,
        now,
        status=PulseStatus.ACTIVE,
        pause_history=history,
        paused_duration=pulse.paused_duration + minutes,
    )


def apply_stop(pulse: Pulse, now: datetime, notes: Optional[str] = None) -> Pulse:
    """
    Close the session. A paused session is resumed at the same instant first,
    so the open pause is accounted before the duration is finalized.
    duration is the gross wall-clock span; paused time stays in paused_duration.
    """
    if pulse.status not in OPEN_STATES:
        raise Conflict.state(OPEN_STATES, pulse.status, "stop")
    if pulse.status == PulseStatus.PAUSED:
        pulse = apply_resume(pulse, now)
        # resume + stop are a single transition
        pulse = pulse.model_copy(update={"version": pulse.version - 1})

    changes = {
        "status": PulseStatus.COMPLETED,
        "end_time": now,
        "duration": elapsed_minutes(pulse.start_time, now),
    }
    if notes is not None:
        changes["notes"] = notes
    return _bump(pulse, now, **changes)


def apply_break(pulse: Pulse, now: datetime, reason: str, duration: int) -> Pulse:
    """Record a manual break. Status is unchanged; minutes add to paused_duration."""
    if pulse.status not in OPEN_STATES:
        raise Conflict.state(OPEN_STATES, pulse.status, "add a break to")
    if duration < 0:
        raise ValidationError("Break duration cannot be negative", details={"duration": duration})
    entry = BreakEntry(started_at=now, reason=reason, duration=duration)
    return _bump(
        pulse,
        now,
        breaks=[*pulse.breaks, entry],
        paused_duration=pulse.paused_duration + duration,
    )

"""
In-process folds over completed pulses.

Everything here is a pure function of a list of Pulse records; the caller
decides which records are in range. Durations are gross minutes, earnings use
net (actual) minutes of billable pulses at each pulse's rate snapshot.
"""
from __future__ import annotations
from collections import defaultdict
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from pulsetime.models import Project, Pulse, PulseStatus
from pulsetime.utils.timemath import day_key, get_zone

SHORT_SESSION_MINUTES = 15
LONG_SESSION_MINUTES = 60


class Totals(BaseModel):
    total_duration: int = 0
    total_paused: int = 0
    total_actual: int = 0
    total_sessions: int = 0
    average_session_duration: float = 0
    total_earnings: float = 0
    working_days: int = 0


class ProjectRow(BaseModel):
    project_id: str
    project_name: Optional[str] = None
    project_color: Optional[str] = None
    total_duration: int = 0
    session_count: int = 0
    earnings: float = 0


class DayRow(BaseModel):
    date: str
    total_duration: int = 0
    session_count: int = 0
    earnings: float = 0


class BucketRow(BaseModel):
    bucket: int
    total_duration: int = 0
    session_count: int = 0


class Distribution(BaseModel):
    rows: List[BucketRow]
    peak: Optional[int] = None


class FocusSummary(BaseModel):
    average_focus_score: float = 0
    total_pauses: int = 0
    short_sessions: int = 0
    medium_sessions: int = 0
    long_sessions: int = 0


class EarningsSummary(BaseModel):
    total: float = 0
    billable_minutes: int = 0
    by_day: List[DayRow]
    by_project: List[ProjectRow]


class Comparison(BaseModel):
    previous_start: datetime
    previous_end: datetime
    previous: Totals
    duration_change: float
    sessions_change: float
    earnings_change: float
    working_days_change: float


class AnalyticsReport(BaseModel):
    start: datetime
    end: datetime
    project_id: Optional[str] = None
    totals: Totals
    projects: List[ProjectRow]
    daily: List[DayRow]
    hourly: Distribution
    weekday: Distribution
    earnings: EarningsSummary
    focus: FocusSummary
    comparison: Optional[Comparison] = None


def _completed(pulses: Iterable[Pulse]) -> List[Pulse]:
    return [p for p in pulses if p.status == PulseStatus.COMPLETED]


def pulse_earnings(pulse: Pulse) -> float:
    if not pulse.billable or not pulse.hourly_rate:
        return 0.0
    return pulse.actual_duration / 60 * pulse.hourly_rate


def percent_change(current: float, previous: float) -> float:
    if previous:
        return round((current - previous) / previous * 100, 1)
    return 100.0 if current > 0 else 0.0


def totals(pulses: Sequence[Pulse], tz: tzinfo | str | None = None) -> Totals:
    done = _completed(pulses)
    count = len(done)
    duration = sum(p.duration for p in done)
    return Totals(
        total_duration=duration,
        total_paused=sum(p.paused_duration for p in done),
        total_actual=sum(p.actual_duration for p in done),
        total_sessions=count,
        average_session_duration=round(duration / count, 1) if count else 0,
        total_earnings=round(sum(pulse_earnings(p) for p in done), 2),
        working_days=len({day_key(p.start_time, tz) for p in done}),
    )


def project_breakdown(
    pulses: Sequence[Pulse],
    projects: Optional[Mapping[str, Project]] = None,
) -> List[ProjectRow]:
    """Per-project sums, longest first, ties by project id."""
    projects = projects or {}
    rows: Dict[str, ProjectRow] = {}
    earned: Dict[str, float] = defaultdict(float)
    for p in _completed(pulses):
        row = rows.get(p.project_id)
        if row is None:
            project = projects.get(p.project_id)
            row = rows[p.project_id] = ProjectRow(
                project_id=p.project_id,
                project_name=project.name if project else None,
                project_color=project.color if project else None,
            )
        row.total_duration += p.duration
        row.session_count += 1
        earned[p.project_id] += pulse_earnings(p)

    for project_id, row in rows.items():
        row.earnings = round(earned[project_id], 2)
    return sorted(rows.values(), key=lambda r: (-r.total_duration, r.project_id))


def daily_activity(pulses: Sequence[Pulse], tz: tzinfo | str | None = None) -> List[DayRow]:
    rows: Dict[str, DayRow] = {}
    earned: Dict[str, float] = defaultdict(float)
    for p in _completed(pulses):
        key = day_key(p.start_time, tz)
        row = rows.setdefault(key, DayRow(date=key))
        row.total_duration += p.duration
        row.session_count += 1
        earned[key] += pulse_earnings(p)

    for key, row in rows.items():
        row.earnings = round(earned[key], 2)
    return [rows[k] for k in sorted(rows)]


def _distribution(pulses: Sequence[Pulse], buckets: range, key) -> Distribution:
    rows = {b: BucketRow(bucket=b) for b in buckets}
    for p in _completed(pulses):
        row = rows[key(p)]
        row.total_duration += p.duration
        row.session_count += 1

    peak = None
    best = 0
    # strict > keeps the lowest bucket on ties
    for b in buckets:
        if rows[b].total_duration > best:
            best = rows[b].total_duration
            peak = b
    return Distribution(rows=[rows[b] for b in buckets], peak=peak)


def hourly_distribution(pulses: Sequence[Pulse], tz: tzinfo | str | None = None) -> Distribution:
    zone = get_zone(tz)
    return _distribution(pulses, range(0, 24), lambda p: p.start_time.astimezone(zone).hour)


def weekday_distribution(pulses: Sequence[Pulse], tz: tzinfo | str | None = None) -> Distribution:
    """ISO weekdays: 1 = Monday ... 7 = Sunday."""
    zone = get_zone(tz)
    return _distribution(
        pulses, range(1, 8), lambda p: p.start_time.astimezone(zone).isoweekday()
    )


def earnings_summary(
    pulses: Sequence[Pulse],
    projects: Optional[Mapping[str, Project]] = None,
    tz: tzinfo | str | None = None,
) -> EarningsSummary:
    billable = [p for p in _completed(pulses) if p.billable]
    return EarningsSummary(
        total=round(sum(pulse_earnings(p) for p in billable), 2),
        billable_minutes=sum(p.actual_duration for p in billable),
        by_day=[r for r in daily_activity(billable, tz) if r.earnings],
        by_project=[r for r in project_breakdown(billable, projects) if r.earnings],
    )


def focus_summary(pulses: Sequence[Pulse]) -> FocusSummary:
    done = _completed(pulses)
    if not done:
        return FocusSummary()
    return FocusSummary(
        average_focus_score=round(sum(p.focus_score for p in done) / len(done), 1),
        total_pauses=sum(len(p.pause_history) for p in done),
        short_sessions=sum(1 for p in done if p.duration < SHORT_SESSION_MINUTES),
        medium_sessions=sum(
            1 for p in done if SHORT_SESSION_MINUTES <= p.duration < LONG_SESSION_MINUTES
        ),
        long_sessions=sum(1 for p in done if p.duration >= LONG_SESSION_MINUTES),
    )


def compare(
    current: Totals,
    previous: Totals,
    previous_start: datetime,
    previous_end: datetime,
) -> Comparison:
    return Comparison(
        previous_start=previous_start,
        previous_end=previous_end,
        previous=previous,
        duration_change=percent_change(current.total_duration, previous.total_duration),
        sessions_change=percent_change(current.total_sessions, previous.total_sessions),
        earnings_change=percent_change(current.total_earnings, previous.total_earnings),
        working_days_change=percent_change(current.working_days, previous.working_days),
    )


def build_report(
    pulses: Sequence[Pulse],
    start: datetime,
    end: datetime,
    projects: Optional[Mapping[str, Project]] = None,
    tz: tzinfo | str | None = None,
    project_id: Optional[str] = None,
) -> AnalyticsReport:
    return AnalyticsReport(
        start=start,
        end=end,
        project_id=project_id,
        totals=totals(pulses, tz),
        projects=project_breakdown(pulses, projects),
        daily=daily_activity(pulses, tz),
        hourly=hourly_distribution(pulses, tz),
        weekday=weekday_distribution(pulses, tz),
        earnings=earnings_summary(pulses, projects, tz),
        focus=focus_summary(pulses),
    )

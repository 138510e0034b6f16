from __future__ import annotations
import logging
from datetime import date, datetime
from typing import Callable, Optional

from pulsetime import analytics
from pulsetime.analytics import AnalyticsReport
from pulsetime.errors import ValidationError
from pulsetime.models import Period, utc_now
from pulsetime.services.repository import ProjectRepository, SessionRepository
from pulsetime.utils.timemath import period_bounds, previous_bounds, range_bounds

logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Read-only reports over a user's completed pulses.
    Active and paused pulses do not contribute until they are stopped.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        projects: ProjectRepository,
        timezone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sessions = sessions
        self.projects = projects
        self.timezone = timezone
        self.clock = clock

    def resolve_bounds(
        self,
        period: Optional[Period] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ):
        if start_date or end_date:
            if period is not None:
                raise ValidationError("Give either a period or a date range, not both")
            if not (start_date and end_date):
                raise ValidationError("Both start_date and end_date are required")
            return range_bounds(start_date, end_date, self.timezone)
        return period_bounds(period or Period.WEEK, self.clock(), self.timezone)

    async def report(
        self,
        user_id: str,
        period: Optional[Period] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        project_id: Optional[str] = None,
        compare: bool = False,
    ) -> AnalyticsReport:
        if project_id:
            await self.projects.find_owned_project(project_id, user_id)

        start, end = self.resolve_bounds(period, start_date, end_date)
        pulses = await self.sessions.find_completed_in_range(user_id, start, end, project_id)
        projects = {
            p.id: p for p in await self.projects.find_by_ids({x.project_id for x in pulses})
        }

        report = analytics.build_report(
            pulses, start, end, projects=projects, tz=self.timezone, project_id=project_id
        )

        if compare:
            prev_start, prev_end = previous_bounds(start, end)
            previous = await self.sessions.find_completed_in_range(
                user_id, prev_start, prev_end, project_id
            )
            report.comparison = analytics.compare(
                report.totals,
                analytics.totals(previous, self.timezone),
                prev_start,
                prev_end,
            )

        logger.debug(
            f"Analytics report {start.isoformat()}..{end.isoformat()}: {len(pulses)} pulses",
            extra={"user_id": user_id},
        )
        return report

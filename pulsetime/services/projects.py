from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pulsetime.errors import Conflict, NotFound
from pulsetime.models import (
    Project,
    ProjectCreate,
    ProjectStatus,
    ProjectUpdate,
    utc_now,
)
from pulsetime.observability.metrics import tracked_minutes_total
from pulsetime.services.repository import ProjectRepository, SessionRepository
from pulsetime.utils.ids import ulid

logger = logging.getLogger(__name__)


class ProjectService:
    """
    Project CRUD plus the running-total accumulator fed by completed pulses.
    """

    def __init__(
        self,
        projects: ProjectRepository,
        sessions: SessionRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.projects = projects
        self.sessions = sessions
        self.clock = clock

    async def create(self, user_id: str, body: ProjectCreate) -> Project:
        now = self.clock()
        project = Project(
            id=ulid(),
            owner_id=user_id,
            created_at=now,
            updated_at=now,
            completed_at=now if body.status == ProjectStatus.COMPLETED else None,
            **body.model_dump(),
        )
        project = await self.projects.create(project)
        logger.info(
            f"Project created: {project.name}",
            extra={"user_id": user_id, "project_id": project.id},
        )
        return project

    async def get(self, user_id: str, project_id: str) -> Project:
        return await self.projects.find_owned_project(project_id, user_id)

    async def list(self, user_id: str, status: Optional[ProjectStatus] = None) -> List[Project]:
        return await self.projects.list_owned(user_id, status)

    async def update(self, user_id: str, project_id: str, body: ProjectUpdate) -> Project:
        project = await self.projects.find_owned_project(project_id, user_id)
        changes: Dict[str, Any] = body.model_dump(exclude_unset=True)
        now = self.clock()

        if "status" in changes:
            if changes["status"] == ProjectStatus.COMPLETED:
                changes["completed_at"] = project.completed_at or now
            else:
                changes["completed_at"] = None
        if "actual_minutes" in changes:
            logger.info(
                f"Administrative edit of tracked time: {project.actual_minutes} -> {changes['actual_minutes']}",
                extra={"user_id": user_id, "project_id": project_id},
            )
        changes["updated_at"] = now

        updated = await self.projects.update(project_id, changes)
        if updated is None:
            raise NotFound("Project not found", details={"project_id": project_id})
        return updated

    async def delete(self, user_id: str, project_id: str) -> int:
        """
        Delete a project and its pulse history.
        Blocked while any pulse on the project is active or paused.
        Returns the number of pulses removed.
        """
        await self.projects.find_owned_project(project_id, user_id)

        open_count = await self.sessions.count_open_for_project(project_id)
        if open_count:
            raise Conflict(
                "Cannot delete a project with an active or paused session",
                details={"project_id": project_id, "open_sessions": open_count},
            )

        # project first: a start racing this delete sees it gone and backs out
        await self.projects.delete(project_id)
        removed = await self.sessions.delete_for_project(project_id)
        logger.info(
            f"Project deleted with {removed} sessions",
            extra={"user_id": user_id, "project_id": project_id},
        )
        return removed

    async def increment(self, project_id: str, minutes: int) -> Optional[Project]:
        """Add ``minutes`` to the project's running total."""
        if minutes <= 0:
            return await self.projects.get(project_id)
        project = await self.projects.add_minutes(project_id, minutes)
        if project is None:
            # project deleted while the session was running
            logger.warning(
                f"Cannot accumulate {minutes}m, project no longer exists",
                extra={"project_id": project_id},
            )
            return None
        tracked_minutes_total.inc(minutes)
        return project

    async def recompute_total(self, project_id: str) -> Project:
        """Re-derive the running total from completed pulse durations."""
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFound("Project not found", details={"project_id": project_id})
        pulses = await self.sessions.find_completed_for_project(project_id)
        total = sum(p.duration for p in pulses)
        if total != project.actual_minutes:
            logger.warning(
                f"Project total drifted: stored={project.actual_minutes} derived={total}",
                extra={"project_id": project_id},
            )
        updated = await self.projects.update(
            project_id, {"actual_minutes": total, "updated_at": self.clock()}
        )
        return updated

    async def stats(self, user_id: str, project_id: str) -> Dict[str, Any]:
        project = await self.projects.find_owned_project(project_id, user_id)
        pulses = await self.sessions.find_completed_for_project(project_id)
        total_sessions = len(pulses)
        total_time = sum(p.duration for p in pulses)
        return {
            "project": project,
            "totalSessions": total_sessions,
            "totalTime": total_time,
            "totalPaused": sum(p.paused_duration for p in pulses),
            "totalEarnings": round(sum(p.earnings for p in pulses), 2),
            "averageSessionTime": round(total_time / total_sessions, 1) if total_sessions else 0,
        }

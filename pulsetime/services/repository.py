"""
Query helpers over the store that encode the ownership and
single-current-session invariants.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from pulsetime.errors import NotFound
from pulsetime.models import OPEN_STATES, Project, Pulse, PulseStatus, SessionFilter, utc_now
from pulsetime.storage.base import OneOf, Range, Store, UniqueConstraint

logger = logging.getLogger(__name__)

PULSES = "pulses"
PROJECTS = "projects"

# backs "at most one active-or-paused pulse per user"
ONE_OPEN_PULSE_PER_USER = UniqueConstraint(
    name="pulses.user_open_session",
    fields=("user_id",),
    where={"status": OneOf(OPEN_STATES)},
)


class SessionRepository:
    def __init__(self, store: Store):
        self.store = store
        self.store.add_constraint(PULSES, ONE_OPEN_PULSE_PER_USER)

    async def create(self, pulse: Pulse) -> Pulse:
        doc = await self.store.create(PULSES, pulse.to_document())
        return Pulse.model_validate(doc)

    async def find_active_or_paused(self, user_id: str) -> Optional[Pulse]:
        doc = await self.store.find_one(
            PULSES, {"user_id": user_id, "status": OneOf(OPEN_STATES)}
        )
        return Pulse.model_validate(doc) if doc else None

    async def find_owned(self, session_id: str, user_id: str) -> Pulse:
        """Foreign ids look exactly like missing ones."""
        doc = await self.store.get(PULSES, session_id)
        if doc is None or doc.get("user_id") != user_id:
            raise NotFound("Session not found", details={"session_id": session_id})
        return Pulse.model_validate(doc)

    async def save_if_unchanged(self, previous: Pulse, updated: Pulse) -> Optional[Pulse]:
        """
        Write ``updated`` only if the stored record is still at
        ``previous.version`` and status. Returns None when the race was lost.
        """
        doc = await self.store.update(
            PULSES,
            previous.id,
            updated.to_document(),
            expect={
                "user_id": previous.user_id,
                "version": previous.version,
                "status": previous.status,
            },
        )
        return Pulse.model_validate(doc) if doc else None

    async def delete(self, session_id: str) -> bool:
        return await self.store.delete(PULSES, session_id)

    async def page(
        self,
        user_id: str,
        flt: SessionFilter,
        page: int,
        limit: int,
    ) -> Tuple[List[Pulse], int]:
        query = {"user_id": user_id}
        if flt.project_id:
            query["project_id"] = flt.project_id
        if flt.status:
            query["status"] = flt.status
        if flt.start_date or flt.end_date:
            query["start_time"] = Range(gte=flt.start_date, lte=flt.end_date)

        skip = (page - 1) * limit
        docs = await self.store.find(
            PULSES, query, sort=[("start_time", -1), ("id", -1)], skip=skip, limit=limit
        )
        total = await self.store.count(PULSES, query)
        return [Pulse.model_validate(d) for d in docs], total

    async def find_completed_in_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        project_id: Optional[str] = None,
    ) -> List[Pulse]:
        query = {
            "user_id": user_id,
            "status": PulseStatus.COMPLETED,
            "start_time": Range(gte=start, lt=end),
        }
        if project_id:
            query["project_id"] = project_id
        docs = await self.store.find(PULSES, query, sort=[("start_time", 1), ("id", 1)])
        return [Pulse.model_validate(d) for d in docs]

    async def find_completed_for_project(self, project_id: str) -> List[Pulse]:
        docs = await self.store.find(
            PULSES, {"project_id": project_id, "status": PulseStatus.COMPLETED}
        )
        return [Pulse.model_validate(d) for d in docs]

    async def count_open_for_project(self, project_id: str) -> int:
        return await self.store.count(
            PULSES, {"project_id": project_id, "status": OneOf(OPEN_STATES)}
        )

    async def delete_for_project(self, project_id: str) -> int:
        return await self.store.delete_many(PULSES, {"project_id": project_id})


class ProjectRepository:
    def __init__(self, store: Store, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def _load(self, doc) -> Project:
        return Project.model_validate(doc).as_of(self.clock())

    async def create(self, project: Project) -> Project:
        doc = await self.store.create(PROJECTS, project.to_document())
        return self._load(doc)

    async def find_owned_project(self, project_id: str, user_id: str) -> Project:
        doc = await self.store.get(PROJECTS, project_id)
        if doc is None or doc.get("owner_id") != user_id:
            raise NotFound("Project not found", details={"project_id": project_id})
        return self._load(doc)

    async def get(self, project_id: str) -> Optional[Project]:
        doc = await self.store.get(PROJECTS, project_id)
        return self._load(doc) if doc else None

    async def list_owned(self, user_id: str, status=None) -> List[Project]:
        query = {"owner_id": user_id}
        if status:
            query["status"] = status
        docs = await self.store.find(PROJECTS, query, sort=[("created_at", -1), ("id", -1)])
        return [self._load(d) for d in docs]

    async def find_by_ids(self, project_ids) -> List[Project]:
        docs = await self.store.find(PROJECTS, {"id": OneOf(project_ids)})
        return [self._load(d) for d in docs]

    async def update(self, project_id: str, changes: dict) -> Optional[Project]:
        doc = await self.store.update(PROJECTS, project_id, changes)
        return self._load(doc) if doc else None

    async def add_minutes(self, project_id: str, minutes: int) -> Optional[Project]:
        doc = await self.store.increment(PROJECTS, project_id, "actual_minutes", minutes)
        return self._load(doc) if doc else None

    async def delete(self, project_id: str) -> bool:
        return await self.store.delete(PROJECTS, project_id)

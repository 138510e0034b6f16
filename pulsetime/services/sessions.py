"""
Session state machine: start, pause, resume, stop and manual breaks.

    active -> paused -> active -> ... -> completed (terminal)

Each transition reads the owned record, computes the new state with a pure
function from pulsetime.lifecycle and writes it back conditionally on the
record's version. A writer that loses the race gets a Conflict instead of
overwriting the winner.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, List, Optional

from pulsetime import lifecycle
from pulsetime.errors import ActiveSessionExists, Conflict, DuplicateKeyError, NotFound
from pulsetime.models import (
    Pulse,
    PulseStatus,
    PulseType,
    SessionFilter,
    SessionPage,
    SessionUpdate,
    utc_now,
)
from pulsetime.observability.metrics import pulse_conflicts_total, pulse_transitions_total
from pulsetime.services.projects import ProjectService
from pulsetime.services.repository import (
    ONE_OPEN_PULSE_PER_USER,
    ProjectRepository,
    SessionRepository,
)
from pulsetime.utils.ids import ulid

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(
        self,
        sessions: SessionRepository,
        projects: ProjectRepository,
        accumulator: ProjectService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sessions = sessions
        self.projects = projects
        self.accumulator = accumulator
        self.clock = clock

    # ----- Lifecycle -----
    async def start(
        self,
        user_id: str,
        project_id: str,
        notes: str = "",
        tags: Optional[List[str]] = None,
        pulse_type: PulseType = PulseType.WORK,
        billable: bool = True,
    ) -> Pulse:
        project = await self.projects.find_owned_project(project_id, user_id)

        current = await self.sessions.find_active_or_paused(user_id)
        if current is not None:
            raise self._active_exists(user_id, current.id)

        now = self.clock()
        pulse = Pulse(
            id=ulid(),
            project_id=project.id,
            user_id=user_id,
            start_time=now,
            status=PulseStatus.ACTIVE,
            notes=notes or "",
            tags=list(tags or []),
            type=pulse_type,
            billable=billable,
            hourly_rate=project.hourly_rate,
            created_at=now,
            updated_at=now,
        )
        try:
            pulse = await self.sessions.create(pulse)
        except DuplicateKeyError as e:
            # a concurrent start won between our check and the insert
            if e.constraint != ONE_OPEN_PULSE_PER_USER.name:
                raise
            raise self._active_exists(user_id) from e

        if await self.projects.get(project.id) is None:
            # the project was deleted while this pulse was being created
            await self.sessions.delete(pulse.id)
            raise NotFound("Project not found", details={"project_id": project.id})

        pulse_transitions_total.labels(transition="start").inc()
        logger.info(
            "Pulse started",
            extra={"user_id": user_id, "pulse_id": pulse.id, "project_id": project.id},
        )
        return pulse

    async def pause(self, user_id: str, session_id: str) -> Pulse:
        return await self._transition(
            user_id, session_id, "pause", lambda p, now: lifecycle.apply_pause(p, now)
        )

    async def resume(self, user_id: str, session_id: str) -> Pulse:
        return await self._transition(
            user_id, session_id, "resume", lambda p, now: lifecycle.apply_resume(p, now)
        )

    async def stop(self, user_id: str, session_id: str, notes: Optional[str] = None) -> Pulse:
        pulse = await self._transition(
            user_id,
            session_id,
            "stop",
            lambda p, now: lifecycle.apply_stop(p, now, notes),
        )
        # only the writer that committed the completion gets here
        await self.accumulator.increment(pulse.project_id, pulse.duration)
        return pulse

    async def add_break(
        self, user_id: str, session_id: str, reason: str, duration: int
    ) -> Pulse:
        return await self._transition(
            user_id,
            session_id,
            "break",
            lambda p, now: lifecycle.apply_break(p, now, reason, duration),
        )

    async def get_active(self, user_id: str) -> Optional[Pulse]:
        return await self.sessions.find_active_or_paused(user_id)

    # ----- Records -----
    async def get(self, user_id: str, session_id: str) -> Pulse:
        return await self.sessions.find_owned(session_id, user_id)

    async def list(
        self,
        user_id: str,
        flt: Optional[SessionFilter] = None,
        page: int = 1,
        limit: int = 10,
    ) -> SessionPage:
        page = max(int(page), 1)
        limit = max(int(limit), 1)
        items, total = await self.sessions.page(user_id, flt or SessionFilter(), page, limit)
        return SessionPage(
            items=items,
            total=total,
            page=page,
            limit=limit,
            totalPages=(total + limit - 1) // limit,
        )

    async def update(self, user_id: str, session_id: str, body: SessionUpdate) -> Pulse:
        changes = body.model_dump(exclude_unset=True, exclude_none=True)

        def edit(pulse: Pulse, now: datetime) -> Pulse:
            if pulse.status == PulseStatus.COMPLETED:
                raise Conflict.state(
                    (PulseStatus.ACTIVE, PulseStatus.PAUSED), pulse.status, "edit"
                )
            return pulse.model_copy(
                update={**changes, "version": pulse.version + 1, "updated_at": now}
            )

        return await self._transition(user_id, session_id, "edit", edit)

    async def delete(self, user_id: str, session_id: str) -> None:
        pulse = await self.sessions.find_owned(session_id, user_id)
        if pulse.is_open:
            raise Conflict.state(PulseStatus.COMPLETED, pulse.status, "delete")
        await self.sessions.delete(session_id)
        logger.info(
            "Pulse deleted",
            extra={"user_id": user_id, "pulse_id": session_id},
        )

    # ----- Internals -----
    async def _transition(self, user_id: str, session_id: str, name: str, apply) -> Pulse:
        current = await self.sessions.find_owned(session_id, user_id)
        try:
            updated = apply(current, self.clock())
        except Conflict:
            pulse_conflicts_total.labels(operation=name).inc()
            raise

        saved = await self.sessions.save_if_unchanged(current, updated)
        if saved is None:
            pulse_conflicts_total.labels(operation=name).inc()
            raise Conflict(
                f"Session changed concurrently, {name} was not applied",
                details={"session_id": session_id, "expected_version": current.version},
            )

        pulse_transitions_total.labels(transition=name).inc()
        logger.info(
            f"Pulse {name}: {current.status.value} -> {saved.status.value}",
            extra={"user_id": user_id, "pulse_id": session_id},
        )
        return saved

    def _active_exists(self, user_id: str, session_id: Optional[str] = None) -> ActiveSessionExists:
        pulse_conflicts_total.labels(operation="start").inc()
        details = {"user_id": user_id}
        if session_id:
            details["session_id"] = session_id
        return ActiveSessionExists(
            "You already have an active session. Please stop it first.",
            details=details,
        )

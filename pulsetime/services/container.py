"""
Explicit wiring of repositories and services around one store.
The FastAPI app keeps a Services instance on app.state; tests build their own.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request

from pulsetime.config import settings
from pulsetime.models import utc_now
from pulsetime.services.analytics import AnalyticsService
from pulsetime.services.projects import ProjectService
from pulsetime.services.repository import ProjectRepository, SessionRepository
from pulsetime.services.sessions import SessionService
from pulsetime.storage.base import Store, create_store

# register built-in backends
from pulsetime.storage import memory  # noqa: F401


@dataclass
class Services:
    store: Store
    sessions: SessionService
    projects: ProjectService
    analytics: AnalyticsService


def build_services(
    store: Optional[Store] = None,
    clock: Callable[[], datetime] = utc_now,
    timezone: Optional[str] = None,
) -> Services:
    store = store or create_store(settings.STORE_BACKEND)
    session_repo = SessionRepository(store)
    project_repo = ProjectRepository(store, clock=clock)
    projects = ProjectService(project_repo, session_repo, clock=clock)
    return Services(
        store=store,
        sessions=SessionService(session_repo, project_repo, projects, clock=clock),
        projects=projects,
        analytics=AnalyticsService(
            session_repo,
            project_repo,
            timezone=timezone or settings.TIMEZONE,
            clock=clock,
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services

from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, PrivateAttr, computed_field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    ON_HOLD = "on-hold"


class ProjectPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"


class PulseStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


# states that count as "the current session" for a user
OPEN_STATES = (PulseStatus.ACTIVE, PulseStatus.PAUSED)


class PulseType(str, Enum):
    WORK = "work"
    BREAK = "break"
    MEETING = "meeting"
    RESEARCH = "research"
    OTHER = "other"


class Period(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"
FOCUS_PAUSE_PENALTY = 10
MAX_TAG_LENGTH = 30


class PauseEntry(BaseModel):
    """One clock-driven pause interval. Open while resumed_at is None."""
    paused_at: datetime
    resumed_at: Optional[datetime] = None
    duration: int = 0  # minutes

    @property
    def is_open(self) -> bool:
        return self.resumed_at is None


class BreakEntry(BaseModel):
    """Manually declared break (lunch etc.), does not suspend the clock."""
    started_at: datetime
    reason: str = ""
    duration: int = 0  # minutes


class Project(BaseModel):
    """Project record."""
    id: str
    owner_id: str
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    color: str = Field(default="#3B82F6", pattern=HEX_COLOR_PATTERN)
    status: ProjectStatus = ProjectStatus.ACTIVE
    priority: ProjectPriority = ProjectPriority.MEDIUM
    estimated_hours: float = Field(default=0, ge=0)
    actual_minutes: int = Field(default=0, ge=0)
    hourly_rate: float = Field(default=0, ge=0)
    tags: List[str] = Field(default_factory=list)
    deadline: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # reference instant for deadline_status, stamped by the repository clock
    _as_of: Optional[datetime] = PrivateAttr(default=None)

    def as_of(self, now: datetime) -> "Project":
        self._as_of = now
        return self

    @computed_field
    @property
    def actual_hours(self) -> float:
        return round(self.actual_minutes / 60, 2)

    @computed_field
    @property
    def completion_percentage(self) -> int:
        if not self.estimated_hours:
            return 0
        return min(int(self.actual_hours / self.estimated_hours * 100 + 0.5), 100)

    @computed_field
    @property
    def time_remaining(self) -> float:
        return round(max(self.estimated_hours - self.actual_hours, 0), 2)

    @computed_field
    @property
    def deadline_status(self) -> str:
        if self.deadline is None:
            return "no-deadline"
        deadline = self.deadline
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        days = (deadline - (self._as_of or utc_now())).total_seconds() / 86400
        if days < 0:
            return "overdue"
        if days <= 3:
            return "urgent"
        if days <= 7:
            return "soon"
        return "normal"

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude=DERIVED_PROJECT_FIELDS)


DERIVED_PROJECT_FIELDS = {
    "actual_hours",
    "completion_percentage",
    "time_remaining",
    "deadline_status",
}


class Pulse(BaseModel):
    """Work session record."""
    id: str
    project_id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: PulseStatus = PulseStatus.ACTIVE
    duration: int = 0  # gross minutes, finalized on stop
    paused_duration: int = 0
    pause_history: List[PauseEntry] = Field(default_factory=list)
    breaks: List[BreakEntry] = Field(default_factory=list)
    notes: str = Field(default="", max_length=1000)
    tags: List[str] = Field(default_factory=list)
    billable: bool = True
    hourly_rate: float = Field(default=0, ge=0)
    type: PulseType = PulseType.WORK
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATES

    @property
    def open_pause(self) -> Optional[PauseEntry]:
        if self.pause_history and self.pause_history[-1].is_open:
            return self.pause_history[-1]
        return None

    @computed_field
    @property
    def actual_duration(self) -> int:
        return max(self.duration - self.paused_duration, 0)

    @computed_field
    @property
    def earnings(self) -> float:
        if not self.billable or not self.hourly_rate:
            return 0.0
        return round(self.actual_duration / 60 * self.hourly_rate, 2)

    @computed_field
    @property
    def formatted_duration(self) -> str:
        from pulsetime.utils.timemath import format_duration
        return format_duration(self.actual_duration)

    @computed_field
    @property
    def focus_score(self) -> int:
        return max(100 - FOCUS_PAUSE_PENALTY * len(self.pause_history), 0)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude=DERIVED_PULSE_FIELDS)


DERIVED_PULSE_FIELDS = {"actual_duration", "earnings", "formatted_duration", "focus_score"}


# Request bodies

class ProjectCreate(BaseModel):
    """Request body for creating a project."""
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    color: str = Field(default="#3B82F6", pattern=HEX_COLOR_PATTERN)
    status: ProjectStatus = ProjectStatus.ACTIVE
    priority: ProjectPriority = ProjectPriority.MEDIUM
    estimated_hours: float = Field(default=0, ge=0)
    hourly_rate: float = Field(default=0, ge=0)
    tags: List[str] = Field(default_factory=list)
    deadline: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Project name is required")
        return v


class ProjectUpdate(BaseModel):
    """Partial project update. actual_minutes is an administrative edit."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    status: Optional[ProjectStatus] = None
    priority: Optional[ProjectPriority] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_minutes: Optional[int] = Field(default=None, ge=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    tags: Optional[List[str]] = None
    deadline: Optional[datetime] = None


def clean_tags(tags: List[str]) -> List[str]:
    """Strip tags, drop blanks, reject tags over MAX_TAG_LENGTH."""
    cleaned = [t.strip() for t in tags if t and t.strip()]
    if any(len(t) > MAX_TAG_LENGTH for t in cleaned):
        raise ValueError(f"Tag cannot exceed {MAX_TAG_LENGTH} characters")
    return cleaned


class StartSessionRequest(BaseModel):
    project_id: str
    notes: str = Field(default="", max_length=1000)
    tags: List[str] = Field(default_factory=list)
    type: PulseType = PulseType.WORK
    billable: bool = True

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, v: List[str]) -> List[str]:
        return clean_tags(v)


class StopSessionRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=1000)


class BreakRequest(BaseModel):
    reason: str = Field(default="", max_length=200)
    duration: int = Field(ge=0, le=24 * 60)


class SessionUpdate(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return clean_tags(v) if v is not None else None


class SessionFilter(BaseModel):
    project_id: Optional[str] = None
    status: Optional[PulseStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SessionPage(BaseModel):
    items: List[Pulse]
    total: int
    page: int
    limit: int
    totalPages: int


# API Response Envelopes
class ApiError(BaseModel):
    """Structured error response."""
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ApiResponse(BaseModel):
    """Standard API response envelope."""
    ok: bool
    data: Optional[Any] = None
    error: Optional[ApiError] = None
    requestId: str = ""

    @classmethod
    def success(cls, data: Any = None, request_id: str = "") -> "ApiResponse":
        """Create a success response."""
        return cls(ok=True, data=data, requestId=request_id)

    @classmethod
    def failure(
        cls,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        request_id: str = "",
    ) -> "ApiResponse":
        """Create an error response."""
        return cls(
            ok=False,
            error=ApiError(code=code, message=message, details=details),
            requestId=request_id,
        )

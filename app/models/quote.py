from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

if TYPE_CHECKING:
    from app.models.events import SSEEvent
    from app.services.broadcaster import Subscriber


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class WorkerStatus(StrEnum):
    INITIALIZING = "initializing"
    NAVIGATING = "navigating"
    SEARCHING = "searching"
    EXTRACTING = "extracting"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkerStatus.COMPLETED, WorkerStatus.ERROR)


class LogType(StrEnum):
    INFO = "info"
    ACTION = "action"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True)
class SearchContext:
    """The slice of the media classification that drives a quote search."""

    category: str = ""
    subcategory: str = ""
    problem_summary: str = ""
    scope_of_work: str = ""


@dataclass(frozen=True, slots=True)
class LogEntry:
    message: str
    type: LogType = LogType.INFO
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "type": self.type.value,
        }


@dataclass(frozen=True, slots=True)
class Review:
    text: str
    rating: float | None = None
    author: str = "Anonymous"
    date: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "rating": self.rating,
            "author": self.author,
            "date": self.date,
        }


@dataclass(frozen=True, slots=True)
class Contractor:
    id: str
    name: str
    platform: str
    rating: float
    review_count: int
    description: str
    profile_url: str
    profile_image: str
    price: str | None = None
    needs_quote: bool = True
    specialties: tuple[str, ...] = ()
    years_experience: int | None = None
    top_rated: bool = False
    positive_reviews: tuple[Review, ...] = ()
    negative_reviews: tuple[Review, ...] = ()
    availability: str = ""
    phone_number: str | None = None
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "platform": self.platform,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "description": self.description,
            "profileUrl": self.profile_url,
            "profileImage": self.profile_image,
            "price": self.price,
            "needsQuote": self.needs_quote,
            "specialties": list(self.specialties),
            "yearsExperience": self.years_experience,
            "topRated": self.top_rated,
            "positiveReviews": [r.to_dict() for r in self.positive_reviews],
            "negativeReviews": [r.to_dict() for r in self.negative_reviews],
            "availability": self.availability,
            "phoneNumber": self.phone_number,
            "email": self.email,
        }


@dataclass(slots=True)
class WorkerRecord:
    """State of one platform search, mutated only through its methods."""

    platform: str
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    status: WorkerStatus = WorkerStatus.INITIALIZING
    progress: int = 0
    current_action: str = "Waiting to start"
    live_view_url: str | None = None
    browser_session_id: str | None = None
    logs: list[LogEntry] = field(default_factory=list)
    error: str | None = None
    start_time: datetime = field(default_factory=utc_now)
    end_time: datetime | None = None
    contractors: list[Contractor] = field(default_factory=list)

    def transition(
        self,
        status: WorkerStatus,
        *,
        progress: int | None = None,
        current_action: str | None = None,
    ) -> bool:
        """Apply a status change. Returns False once the record is terminal."""
        if self.status.is_terminal:
            return False
        self.status = status
        if progress is not None:
            self.progress = max(self.progress, min(int(progress), 100))
        if current_action is not None:
            self.current_action = current_action
        if status.is_terminal:
            self.end_time = utc_now()
        return True

    def bump_progress(self, progress: int, current_action: str | None = None) -> bool:
        """Raise progress within the current phase."""
        if self.status.is_terminal or progress <= self.progress:
            return False
        self.progress = min(int(progress), 100)
        if current_action is not None:
            self.current_action = current_action
        return True

    def append_log(self, message: str, type: LogType = LogType.INFO) -> LogEntry:
        entry = LogEntry(message=message, type=type)
        self.logs.append(entry)
        return entry

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "platform": self.platform,
            "status": self.status.value,
            "progress": self.progress,
            "currentAction": self.current_action,
            "liveViewUrl": self.live_view_url,
            "browserbaseSessionID": self.browser_session_id,
            "contractors": [c.to_dict() for c in self.contractors],
            "logs": [entry.to_dict() for entry in self.logs],
            "error": self.error,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
        }


@dataclass(eq=False)
class QuoteSession:
    """Server-side aggregate for one contractor search job."""

    job_id: str
    zip_code: str
    city: str = ""
    context: SearchContext = field(default_factory=SearchContext)
    is_running: bool = True
    workers: list[WorkerRecord] = field(default_factory=list)
    contractors: list[Contractor] = field(default_factory=list)
    subscribers: "weakref.WeakSet[Subscriber]" = field(default_factory=weakref.WeakSet)
    created_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    final_event: "SSEEvent | None" = None

    def snapshot(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "zipCode": self.zip_code,
            "city": self.city,
            "category": self.context.category,
            "subcategory": self.context.subcategory,
            "isRunning": self.is_running,
            "sessions": [w.to_dict() for w in self.workers],
            "contractors": [c.to_dict() for c in self.contractors],
            "totalContractors": len(self.contractors),
            "subscriberCount": len(self.subscribers),
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
        }

from __future__ import annotations

from app.models.events import EventType, SSEEvent
from app.models.quote import Contractor, WorkerRecord


def session_update(worker: WorkerRecord) -> SSEEvent:
    """Emit the full current state of one platform worker."""
    return SSEEvent(event=EventType.SESSION_UPDATE, data={"session": worker.to_dict()})


def contractors_found(platform: str | None, contractors: list[Contractor]) -> SSEEvent:
    """Announce contractors; `platform` is None for the aggregate of a whole job."""
    data = {"contractors": [c.to_dict() for c in contractors]}
    if platform:
        data["platform"] = platform
    return SSEEvent(event=EventType.CONTRACTORS_FOUND, data=data)


def complete(total_contractors: int, *, platforms: dict[str, str] | None = None) -> SSEEvent:
    data = {
        "totalContractors": total_contractors,
        "message": f"Search complete. Found {total_contractors} contractors.",
    }
    if platforms:
        data["platforms"] = platforms
    return SSEEvent(event=EventType.COMPLETE, data=data)


def error(message: str, platform: str | None = None) -> SSEEvent:
    data = {"message": message}
    if platform:
        data["platform"] = platform
    return SSEEvent(event=EventType.ERROR, data=data)

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    SESSION_UPDATE = "session_update"
    CONTRACTORS_FOUND = "contractors_found"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (EventType.COMPLETE, EventType.ERROR)


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        # The browser client dispatches on a `type` field of unnamed messages.
        return {"type": self.event.value, **self.data}

    def to_json(self) -> str:
        return json.dumps(self.payload())

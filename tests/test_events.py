from __future__ import annotations

import json

from app.models.events import EventType
from app.models.quote import LogType, WorkerRecord, WorkerStatus
from app.services import streaming


def test_events_serialize_with_type_field():
    event = streaming.error("Search failed", platform="thumbtack")
    assert event.event == EventType.ERROR
    assert event.event.is_terminal
    assert json.loads(event.to_json()) == {
        "type": "error",
        "message": "Search failed",
        "platform": "thumbtack",
    }


def test_aggregate_contractors_event_has_no_platform():
    event = streaming.contractors_found(None, [])
    assert event.payload() == {"type": "contractors_found", "contractors": []}
    assert not event.event.is_terminal


def test_session_update_carries_worker_state():
    record = WorkerRecord(platform="taskrabbit")
    record.transition(WorkerStatus.SEARCHING, progress=25, current_action="Searching")
    record.append_log("Reasoning line", LogType.INFO)
    record.browser_session_id = "bb-1"

    session = streaming.session_update(record).data["session"]

    assert session["status"] == "searching"
    assert session["progress"] == 25
    assert session["currentAction"] == "Searching"
    assert session["browserbaseSessionID"] == "bb-1"
    assert session["logs"][0]["type"] == "info"
    assert session["endTime"] is None


def test_worker_progress_never_goes_down():
    record = WorkerRecord(platform="thumbtack")
    record.transition(WorkerStatus.SEARCHING, progress=40)
    record.transition(WorkerStatus.EXTRACTING, progress=30)
    assert record.progress == 40
    assert record.bump_progress(35) is False
    assert record.bump_progress(150) is True
    assert record.progress == 100


def test_error_is_terminal_and_stamps_end_time():
    record = WorkerRecord(platform="thumbtack")
    assert record.transition(WorkerStatus.ERROR, current_action="Error: boom")
    assert record.end_time is not None
    assert record.transition(WorkerStatus.COMPLETED, progress=100) is False
    assert record.status == WorkerStatus.ERROR

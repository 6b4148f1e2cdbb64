from __future__ import annotations

from fastapi import Request

from app.agents.orchestrator import QuoteSearchOrchestrator
from app.services.broadcaster import ProgressBroadcaster
from app.services.session_registry import SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_broadcaster(request: Request) -> ProgressBroadcaster:
    return request.app.state.broadcaster


def get_orchestrator(request: Request) -> QuoteSearchOrchestrator:
    return request.app.state.orchestrator

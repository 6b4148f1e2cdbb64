from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.quote import SearchContext


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Requests ---


class QuoteSearchRequest(CamelModel):
    job_id: str | None = Field(default=None, alias="jobId")
    zip_code: str | None = Field(default=None, alias="zipCode")
    city: str | None = None
    category: str | None = None
    subcategory: str | None = None
    problem_summary: str | None = Field(default=None, alias="problemSummary")
    # Either free text or the classifier's scope object ({"summary": ...}).
    scope_of_work: str | dict[str, Any] | None = Field(default=None, alias="scopeOfWork")

    def scope_summary(self) -> str:
        scope = self.scope_of_work
        if isinstance(scope, dict):
            return str(scope.get("summary") or "")
        return scope or ""

    def to_context(self) -> SearchContext:
        return SearchContext(
            category=self.category or "",
            subcategory=self.subcategory or "",
            problem_summary=self.problem_summary or "",
            scope_of_work=self.scope_summary(),
        )


# --- Responses ---


class QuoteSearchStartResponse(CamelModel):
    success: bool = True
    job_id: str = Field(alias="jobId")
    already_running: bool | None = Field(default=None, alias="alreadyRunning")


class ScopeOfWork(CamelModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    summary: str = ""
    required_tasks: list[Any] = Field(default_factory=list, alias="requiredTasks")


class MediaAnalysis(CamelModel):
    """Classification of uploaded media; unknown keys from the model are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    category: str = "other"
    subcategory: str = ""
    problem_summary: str = Field(default="", alias="problemSummary")
    urgency: str = "Medium"
    severity: str = "Moderate"
    scope_of_work: ScopeOfWork = Field(default_factory=ScopeOfWork, alias="scopeOfWork")
    scope_items: list[Any] = Field(default_factory=list, alias="scopeItems")


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: str

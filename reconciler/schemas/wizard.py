from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class DecisionRequest(BaseModel):
    """What the reviewer picked for the incongruence on screen."""

    option: Optional[str] = None
    custom_value: Optional[str] = None
    create_rule: bool = False
    range_min: Optional[float] = None
    range_max: Optional[float] = None


class AnalyzeRequest(BaseModel):
    batch_id: str = Field(min_length=1)


class CancelRequest(BaseModel):
    confirm: bool = False


class ApplyReport(BaseModel):
    changes_applied: int = 0
    rules_created: int = 0
    records_modified: int = 0
    # Rules this service stored before the processor ran, by short description.
    rules_synthesized: list[str] = Field(default_factory=list)


class ExportResult(BaseModel):
    success: bool
    path: str
    size_bytes: Optional[int] = None
    filename: Optional[str] = None


class ReviewSummary(BaseModel):
    decisions: int
    rules_flagged: int
    normalizations: int


class CurrentIncongruence(BaseModel):
    number: int
    total: int
    incongruence: dict[str, Any]
    options: list[dict[str, Any]]
    range_editable: bool
    # Value of the option the reviewer is nudged towards
    favorite: Optional[str] = None


class SessionState(BaseModel):
    id: str
    phase: str
    selected_batch_id: Optional[str] = None
    current_index: int
    total_incongruences: int
    decisions: list[dict[str, Any]]
    revising_number: Optional[int] = None
    pending: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    report: Optional[ApplyReport] = None
    current: Optional[CurrentIncongruence] = None
    summary: Optional[ReviewSummary] = None

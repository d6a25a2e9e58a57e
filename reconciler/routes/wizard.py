from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from reconciler.dependencies import get_engine, get_registry
from reconciler.schemas.wizard import (
    AnalyzeRequest,
    ApplyReport,
    CancelRequest,
    DecisionRequest,
    ExportResult,
    SessionState,
)
from reconciler.services.export import load_export_payload
from reconciler.services.wizard import DecisionEngine, SessionRegistry

router = APIRouter(prefix="/wizard/sessions", tags=["wizard"])


class ReplayRequest(BaseModel):
    batch_id: str = Field(min_length=1)
    export: dict[str, Any]


# ─────────────────────────────────────────────────────────────────────────────
# Session lifecycle
# ─────────────────────────────────────────────────────────────────────────────

@router.post("", response_model=SessionState, status_code=201)
def create_session(
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    return engine.state(registry.create())


@router.get("/{session_id}", response_model=SessionState)
def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    return engine.state(registry.get(session_id))


@router.delete("/{session_id}")
def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    registry.drop(session_id)
    return {"message": "Session deleted"}


# ─────────────────────────────────────────────────────────────────────────────
# Step 1: analyze a batch
# ─────────────────────────────────────────────────────────────────────────────

@router.post("/{session_id}/analyze", response_model=SessionState)
async def analyze(
    session_id: str,
    body: AnalyzeRequest,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    session = registry.get(session_id)
    await engine.select_batch(session, body.batch_id)
    return engine.state(session)


# ─────────────────────────────────────────────────────────────────────────────
# Step 2: one decision per incongruence
# ─────────────────────────────────────────────────────────────────────────────

@router.post("/{session_id}/confirm", response_model=SessionState)
def confirm(
    session_id: str,
    body: DecisionRequest,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    session = registry.get(session_id)
    engine.confirm(session, body)
    return engine.state(session)


@router.post("/{session_id}/skip", response_model=SessionState)
def skip(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    session = registry.get(session_id)
    engine.skip(session)
    return engine.state(session)


# ─────────────────────────────────────────────────────────────────────────────
# Step 3: final review: modify, apply, export, cancel
# ─────────────────────────────────────────────────────────────────────────────

@router.post("/{session_id}/modify/{number}", response_model=SessionState)
def modify(
    session_id: str,
    number: int,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    session = registry.get(session_id)
    engine.modify(session, number)
    return engine.state(session)


@router.post("/{session_id}/apply", response_model=ApplyReport)
async def apply(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    return await engine.apply_all(registry.get(session_id))


@router.post("/{session_id}/export", response_model=ExportResult)
async def export(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    return await engine.export(registry.get(session_id))


@router.post("/{session_id}/replay", response_model=SessionState)
def replay(
    session_id: str,
    body: ReplayRequest,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    """Load an exported decision set into final review."""
    session = registry.get(session_id)
    engine.load_decisions(session, body.batch_id, load_export_payload(body.export))
    return engine.state(session)


@router.post("/{session_id}/cancel", response_model=SessionState)
def cancel(
    session_id: str,
    body: CancelRequest,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    session = registry.get(session_id)
    engine.cancel(session, confirmed=body.confirm)
    return engine.state(session)


@router.post("/{session_id}/reset", response_model=SessionState)
def reset(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    engine: DecisionEngine = Depends(get_engine),
):
    session = registry.get(session_id)
    engine.reset(session)
    return engine.state(session)

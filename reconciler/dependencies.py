"""Wiring of collaborators for the API layer.  Tests override these."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from reconciler.config import settings
from reconciler.database import get_db
from reconciler.services.apply import ApplyPhase
from reconciler.services.collaborators import (
    BatchSourceClient,
    DetectorClient,
    HttpExporter,
    ProcessorClient,
)
from reconciler.services.rule_store import RuleStore
from reconciler.services.rule_synthesizer import RuleSynthesizer
from reconciler.services.storage import S3Exporter
from reconciler.services.wizard import DecisionEngine, SessionRegistry


@lru_cache()
def get_registry() -> SessionRegistry:
    return SessionRegistry(
        idle_ttl_seconds=settings.SESSION_IDLE_TTL_SECONDS,
        abandon_ttl_seconds=settings.SESSION_ABANDON_TTL_SECONDS,
    )


@lru_cache()
def get_exporter():
    if settings.EXPORT_BACKEND == "s3":
        return S3Exporter()
    return HttpExporter()


def get_batch_source() -> BatchSourceClient:
    return BatchSourceClient()


def get_rule_store(db: Session = Depends(get_db)) -> RuleStore:
    return RuleStore(db)


def get_engine(store: RuleStore = Depends(get_rule_store)) -> DecisionEngine:
    return DecisionEngine(
        detector=DetectorClient(),
        apply_phase=ApplyPhase(ProcessorClient(), RuleSynthesizer(store)),
        exporter=get_exporter(),
    )

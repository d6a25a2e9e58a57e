"""
Shared fixtures: an in-memory SQLite rule database and hand-written fakes for
the processing-service collaborators, so no network or server is needed.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reconciler.database import Base
from reconciler.models import rules  # noqa: F401  (registers the tables)
from reconciler.schemas.batch import AnalysisResult, ProcessorResult
from reconciler.schemas.wizard import ExportResult


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ============================================================================
# COLLABORATOR FAKES
# ============================================================================

class FakeDetector:
    def __init__(self, incongruences=None, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.incongruences = incongruences or []
        self.error = error
        self.gate = gate
        self.calls: list[str] = []

    async def analyze(self, batch_id: str) -> AnalysisResult:
        self.calls.append(batch_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return AnalysisResult(
            incongruences=self.incongruences,
            total=len(self.incongruences),
            levels_applied=[1, 2, 3, 4, 5],
        )


class FakeProcessor:
    def __init__(self, result: ProcessorResult | None = None, error: Exception | None = None):
        self.result = result or ProcessorResult(
            success=True, changes_applied=0, rules_created=0, records_modified=0
        )
        self.error = error
        self.calls: list[tuple[str, list, bool]] = []

    async def apply(self, batch_id, decisions, confirm=True) -> ProcessorResult:
        self.calls.append((batch_id, list(decisions), confirm))
        if self.error is not None:
            raise self.error
        return self.result


class FakeExporter:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.exports: list[tuple[dict, str]] = []

    async def export(self, payload, filename) -> ExportResult:
        if self.error is not None:
            raise self.error
        self.exports.append((payload, filename))
        return ExportResult(success=True, path=f"/exports/{filename}", size_bytes=123, filename=filename)


# ============================================================================
# WIRE-FORMAT INCONGRUENCES
# ============================================================================

def name_variation(variations=("Manzana", "manzana ", "MANZANA"), field="Especie", **extra) -> dict:
    return {"tipo": "variaciones_nombre", "campo": field, "variaciones": list(variations), **extra}


def zero_value(field="Precio", affected=3, total=100, **extra) -> dict:
    return {
        "tipo": "valores_cero",
        "campo": field,
        "impacto": {"registros_afectados": affected, "total_registros": total, "porcentaje": 3.0},
        **extra,
    }


def outlier(field="Kilos", **extra) -> dict:
    return {"tipo": "outliers_estadisticos", "campo": field, "rango_actual": {"min": 1, "max": 500}, **extra}

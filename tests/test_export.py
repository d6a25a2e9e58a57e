"""
Tests for export file names and payloads
"""

from datetime import datetime, timedelta, timezone

import pytest

from reconciler.errors import ValidationError
from reconciler.schemas.decision import Action, Decision, DecisionRecord
from reconciler.schemas.incongruence import parse_incongruence
from reconciler.services.export import build_export_payload, export_filename, load_export_payload

from conftest import name_variation, zero_value


def make_records():
    name = parse_incongruence(name_variation())
    zero = parse_incongruence(zero_value())
    return [
        DecisionRecord(
            sequence_number=1,
            incongruence=name,
            decision=Decision(action=Action.NORMALIZE, value="Manzana", create_rule=True,
                              kind=name.kind_value, field=name.field),
            position=0,
        ),
        DecisionRecord(
            sequence_number=2,
            incongruence=zero,
            decision=Decision(action=Action.DELETE, value="eliminar", kind=zero.kind_value, field=zero.field),
            position=1,
        ),
    ]


class TestExportFilename:
    def test_utc_milliseconds(self):
        now = datetime(2026, 1, 5, 9, 7, 3, 45000, tzinfo=timezone.utc)
        assert export_filename(now) == "decisions_2026-01-05T09-07-03-045Z.json"

    def test_converted_to_utc(self):
        madrid = timezone(timedelta(hours=2))
        now = datetime(2026, 6, 1, 12, 0, 0, tzinfo=madrid)
        assert export_filename(now) == "decisions_2026-06-01T10-00-00-000Z.json"

    def test_no_colons_or_dots_before_extension(self):
        name = export_filename()
        stem = name[: -len(".json")]
        assert name.startswith("decisions_")
        assert ":" not in stem
        assert "." not in stem


class TestExportPayload:
    def test_wire_shape(self):
        payload = build_export_payload(make_records())
        first = payload["decisiones"][0]
        assert first["numero"] == 1
        assert first["incongruencia"]["tipo"] == "variaciones_nombre"
        assert first["decision"] == {
            "accion": "normalizar",
            "valor": "Manzana",
            "crear_regla": True,
            "tipo": "variaciones_nombre",
            "campo": "Especie",
        }
        assert "posicion" not in first

    def test_empty(self):
        assert build_export_payload([]) == {"decisiones": []}

    def test_load_restores_records(self):
        records = make_records()
        loaded = load_export_payload(build_export_payload(records))
        assert [r.to_wire() for r in loaded] == [r.to_wire() for r in records]
        assert loaded[0].position is None

    def test_load_sorts_by_number(self):
        payload = build_export_payload(make_records())
        payload["decisiones"].reverse()
        loaded = load_export_payload(payload)
        assert [r.sequence_number for r in loaded] == [1, 2]

    def test_load_rejects_gaps(self):
        payload = build_export_payload(make_records())
        payload["decisiones"][1]["numero"] = 3
        with pytest.raises(ValidationError):
            load_export_payload(payload)

    @pytest.mark.parametrize("data", [None, [], {}, {"decisiones": "x"}])
    def test_load_rejects_wrong_shape(self, data):
        with pytest.raises(ValidationError):
            load_export_payload(data)

    def test_load_rejects_invalid_decision(self):
        payload = build_export_payload(make_records())
        del payload["decisiones"][0]["decision"]["valor"]
        with pytest.raises(ValidationError):
            load_export_payload(payload)

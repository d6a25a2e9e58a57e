"""
Tests for the apply phase: rules stored first, processor counts reported as-is.
"""

import asyncio

import pytest

from reconciler.errors import CollaboratorError
from reconciler.schemas.batch import ProcessorResult
from reconciler.schemas.decision import Action, Decision, DecisionRecord
from reconciler.schemas.incongruence import parse_incongruence
from reconciler.services.apply import ApplyPhase, RuleLedger
from reconciler.services.rule_store import RuleStore
from reconciler.services.rule_synthesizer import RuleSynthesizer

from conftest import FakeProcessor, name_variation, zero_value


def records():
    name = parse_incongruence(name_variation())
    zero = parse_incongruence(zero_value())
    return [
        DecisionRecord(
            sequence_number=1,
            incongruence=name,
            decision=Decision(action=Action.NORMALIZE, value="Manzana", create_rule=True,
                              kind=name.kind_value, field=name.field),
        ),
        DecisionRecord(
            sequence_number=2,
            incongruence=zero,
            decision=Decision(action=Action.FLAG_FOR_REVIEW, value="marcar_revision",
                              kind=zero.kind_value, field=zero.field),
        ),
    ]


class TestApplyPhase:
    def test_report_uses_processor_counts(self, db):
        processor = FakeProcessor(
            ProcessorResult(success=True, changes_applied=4, rules_created=1, records_modified=3)
        )
        phase = ApplyPhase(processor, RuleSynthesizer(RuleStore(db)))

        report = asyncio.run(phase.run("entradas/lote.xlsx", records()))

        assert report.changes_applied == 4
        assert report.rules_created == 1
        assert report.records_modified == 3
        assert report.rules_synthesized == ["normalization 'manzana' -> 'Manzana'"]

    def test_processor_receives_every_decision_confirmed(self, db):
        processor = FakeProcessor()
        phase = ApplyPhase(processor, RuleSynthesizer(RuleStore(db)))
        decisions = records()

        asyncio.run(phase.run("lote.xlsx", decisions))

        batch_id, sent, confirm = processor.calls[0]
        assert batch_id == "lote.xlsx"
        assert sent == decisions
        assert confirm is True

    def test_rules_survive_processor_failure(self, db):
        store = RuleStore(db)
        phase = ApplyPhase(FakeProcessor(error=CollaboratorError("processor down")), RuleSynthesizer(store))

        with pytest.raises(CollaboratorError):
            asyncio.run(phase.run("lote.xlsx", records()))

        assert store.list_rules().normalizations == {"manzana": "Manzana"}

    def test_nothing_flagged(self, db):
        store = RuleStore(db)
        unflagged = [r.model_copy(update={"decision": r.decision.model_copy(update={"create_rule": False})})
                     for r in records()]
        report = asyncio.run(ApplyPhase(FakeProcessor(), RuleSynthesizer(store)).run("lote.xlsx", unflagged))
        assert report.rules_synthesized == []
        assert store.list_rules().total_normalizations == 0


def flag_zero_with_rule():
    zero = parse_incongruence(zero_value())
    return DecisionRecord(
        sequence_number=1,
        incongruence=zero,
        decision=Decision(action=Action.DELETE, value="eliminar", create_rule=True,
                          kind=zero.kind_value, field=zero.field),
    )


class TestRuleLedger:
    def test_retry_with_ledger_stores_rules_once(self, db):
        store = RuleStore(db)
        processor = FakeProcessor(error=CollaboratorError("processor down"))
        phase = ApplyPhase(processor, RuleSynthesizer(store))
        ledger = RuleLedger()
        decisions = [flag_zero_with_rule()]

        with pytest.raises(CollaboratorError):
            asyncio.run(phase.run("lote.xlsx", decisions, ledger))
        processor.error = None
        report = asyncio.run(phase.run("lote.xlsx", decisions, ledger))

        assert store.list_rules().total_automatic_rules == 1
        assert report.rules_synthesized == ["automatic valores_cero/Precio -> eliminar"]

    def test_renumbered_decision_is_still_recognised(self, db):
        store = RuleStore(db)
        phase = ApplyPhase(FakeProcessor(), RuleSynthesizer(store))
        ledger = RuleLedger()
        first = flag_zero_with_rule()

        asyncio.run(phase.run("lote.xlsx", [first], ledger))
        asyncio.run(phase.run("lote.xlsx", [first.model_copy(update={"sequence_number": 2})], ledger))

        assert store.list_rules().total_automatic_rules == 1

    def test_changed_decision_stores_its_own_rule(self, db):
        store = RuleStore(db)
        phase = ApplyPhase(FakeProcessor(), RuleSynthesizer(store))
        ledger = RuleLedger()
        first = flag_zero_with_rule()
        changed = first.model_copy(
            update={"decision": first.decision.model_copy(update={"action": Action.FLAG_FOR_REVIEW})}
        )

        asyncio.run(phase.run("lote.xlsx", [first], ledger))
        asyncio.run(phase.run("lote.xlsx", [changed], ledger))

        actions = [r.action for r in store.list_rules().automatic_rules]
        assert actions == ["eliminar", "marcar_revision"]

    def test_without_ledger_every_run_stores_again(self, db):
        store = RuleStore(db)
        phase = ApplyPhase(FakeProcessor(), RuleSynthesizer(store))
        asyncio.run(phase.run("lote.xlsx", [flag_zero_with_rule()]))
        asyncio.run(phase.run("lote.xlsx", [flag_zero_with_rule()]))
        assert store.list_rules().total_automatic_rules == 2

"""
Tests for the rule store and rule synthesizer

- Normalization rules: case-insensitive upsert, delete by pattern
- Automatic rules: append, delete by index
- clear_all / restore_backup: single backup slot, transactional
- Synthesizer: create-rule decisions become stored rules
"""

from datetime import datetime

import pytest

from reconciler.errors import ConflictError, NotFoundError, ValidationError
from reconciler.models.rules import RuleBackup
from reconciler.schemas.decision import Action, Decision, DecisionRecord
from reconciler.schemas.incongruence import parse_incongruence
from reconciler.schemas.rules import AutomaticRuleSchema
from reconciler.services.rule_store import RuleStore, fold_pattern
from reconciler.services.rule_synthesizer import RuleSynthesizer

from conftest import name_variation, zero_value


@pytest.fixture
def store(db):
    return RuleStore(db)


def automatic(kind="valores_cero", field="Precio", action="marcar_revision", value=None):
    return AutomaticRuleSchema(
        kind=kind, field=field, action=action, value=value, created_at=datetime(2026, 3, 1, 12, 30)
    )


# ============================================================================
# NORMALIZATION RULES
# ============================================================================

class TestFoldPattern:
    def test_trim_collapse_casefold(self):
        assert fold_pattern("  Manzana   Golden ") == "manzana golden"
        assert fold_pattern("MANZANA") == "manzana"

    def test_blank(self):
        assert fold_pattern("   ") == ""


class TestNormalizationRules:
    def test_create_and_list(self, store):
        store.create_normalization("Manzana ", "Manzana")
        listing = store.list_rules()
        assert listing.normalizations == {"manzana": "Manzana"}
        assert listing.total_normalizations == 1

    def test_upsert_is_case_insensitive(self, store):
        store.create_normalization("MANZANA", "Manzana")
        store.create_normalization("manzana", "Manzana Golden")
        listing = store.list_rules()
        assert listing.normalizations == {"manzana": "Manzana Golden"}

    def test_blank_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create_normalization("  ", "Manzana")
        with pytest.raises(ValidationError):
            store.create_normalization("pera", " ")

    def test_delete_matches_folded_pattern(self, store):
        store.create_normalization("Pera", "Pera")
        store.delete_normalization("PERA")
        assert store.list_rules().normalizations == {}

    def test_delete_missing(self, store):
        with pytest.raises(NotFoundError):
            store.delete_normalization("kiwi")


# ============================================================================
# AUTOMATIC RULES
# ============================================================================

class TestAutomaticRules:
    def test_create_and_list(self, store):
        created = store.create_automatic(automatic())
        assert created.kind == "valores_cero"
        assert created.created_at == datetime(2026, 3, 1, 12, 30)
        listing = store.list_rules()
        assert listing.total_automatic_rules == 1
        assert listing.automatic_rules[0].action == "marcar_revision"

    def test_identical_rules_not_merged(self, store):
        store.create_automatic(automatic())
        store.create_automatic(automatic())
        assert store.list_rules().total_automatic_rules == 2

    def test_delete_by_index(self, store):
        store.create_automatic(automatic(field="Precio"))
        store.create_automatic(automatic(field="Kilos"))
        store.delete_automatic(0)
        rules = store.list_rules().automatic_rules
        assert [r.field for r in rules] == ["Kilos"]

    def test_delete_out_of_range(self, store):
        store.create_automatic(automatic())
        with pytest.raises(NotFoundError):
            store.delete_automatic(1)
        with pytest.raises(NotFoundError):
            store.delete_automatic(-1)

    def test_wire_aliases(self, store):
        store.create_automatic(automatic())
        dumped = store.list_rules().model_dump(by_alias=True, mode="json")
        assert dumped["total_reglas_automaticas"] == 1
        assert dumped["reglas_automaticas"][0]["tipo"] == "valores_cero"
        assert dumped["reglas_automaticas"][0]["campo"] == "Precio"


# ============================================================================
# CLEAR / RESTORE
# ============================================================================

class TestClearAndRestore:
    def seed(self, store):
        store.create_normalization("manzana", "Manzana")
        store.create_normalization("PERA", "Pera")
        store.create_automatic(automatic())

    def test_clear_then_restore_round_trip(self, store):
        self.seed(store)
        before = store.list_rules()

        backed_up = store.clear_all()
        assert backed_up.total_normalizations == 2
        assert backed_up.total_automatic_rules == 1
        assert store.list_rules().total_normalizations == 0
        assert store.list_rules().total_automatic_rules == 0
        assert store.has_backup()

        restored = store.restore_backup()
        assert restored == before
        assert not store.has_backup()

    def test_empty_store_round_trip(self, store):
        backed_up = store.clear_all()
        assert backed_up.total_normalizations == 0
        assert store.has_backup()
        assert store.restore_backup() == store.list_rules()
        assert store.list_rules().total_normalizations == 0

    def test_clearing_an_already_cleared_store_restores_empty(self, store):
        store.create_normalization("manzana", "Manzana")
        store.clear_all()
        before = store.list_rules()

        with pytest.raises(ConflictError):
            store.clear_all()
        store.clear_all(overwrite_backup=True)

        restored = store.restore_backup()
        assert restored == before
        assert restored.normalizations == {}

    def test_existing_backup_needs_override(self, store):
        self.seed(store)
        store.clear_all()
        store.create_normalization("kiwi", "Kiwi")

        with pytest.raises(ConflictError):
            store.clear_all()
        assert store.list_rules().normalizations == {"kiwi": "Kiwi"}

        store.clear_all(overwrite_backup=True)
        restored = store.restore_backup()
        assert restored.normalizations == {"kiwi": "Kiwi"}

    def test_restore_without_backup(self, store):
        with pytest.raises(NotFoundError):
            store.restore_backup()

    def test_restore_consumes_the_slot(self, store):
        self.seed(store)
        store.clear_all()
        store.restore_backup()
        with pytest.raises(NotFoundError):
            store.restore_backup()

    def test_restore_replaces_rules_added_after_clear(self, store):
        self.seed(store)
        store.clear_all()
        store.create_normalization("kiwi", "Kiwi")
        restored = store.restore_backup()
        assert "kiwi" not in restored.normalizations
        assert restored.total_normalizations == 2

    def test_failed_clear_leaves_rules_untouched(self, store, db, monkeypatch):
        self.seed(store)

        def boom():
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "_delete_all_rules", boom)
        with pytest.raises(RuntimeError):
            store.clear_all()

        assert db.query(RuleBackup).count() == 0
        listing = store.list_rules()
        assert listing.total_normalizations == 2
        assert listing.total_automatic_rules == 1


# ============================================================================
# SYNTHESIZER
# ============================================================================

def record(incongruence, action, value=None, create_rule=True, number=1):
    inc = parse_incongruence(incongruence)
    return DecisionRecord(
        sequence_number=number,
        incongruence=inc,
        decision=Decision(
            action=action, value=value, create_rule=create_rule, kind=inc.kind_value, field=inc.field
        ),
    )


class TestRuleSynthesizer:
    def test_normalize_teaches_every_variation(self, store):
        created = RuleSynthesizer(store).synthesize(
            record(name_variation(), Action.NORMALIZE, "Manzana")
        )
        assert created == ["normalization 'manzana' -> 'Manzana'"]
        assert store.list_rules().normalizations == {"manzana": "Manzana"}

    def test_distinct_variations_give_distinct_rules(self, store):
        RuleSynthesizer(store).synthesize(
            record(name_variation(variations=["Golden", "Goldem", "GOLDEN"]), Action.NORMALIZE, "Golden")
        )
        assert store.list_rules().normalizations == {"golden": "Golden", "goldem": "Golden"}

    def test_replayed_normalize_without_variations_becomes_automatic(self, store):
        # Only reachable through a hand-edited export loaded with /replay.
        created = RuleSynthesizer(store).synthesize(
            record({"tipo": "valores_vacios", "campo": "Variedad"}, Action.NORMALIZE, "Golden")
        )
        assert created == ["automatic valores_vacios/Variedad -> normalizar"]
        assert store.list_rules().total_normalizations == 0

    def test_other_actions_become_automatic_rules(self, store):
        created = RuleSynthesizer(store).synthesize(record(zero_value(), Action.FLAG_FOR_REVIEW))
        assert created == ["automatic valores_cero/Precio -> marcar_revision"]
        rules = store.list_rules().automatic_rules
        assert len(rules) == 1
        assert rules[0].field == "Precio"

    def test_row_level_rule(self, store):
        created = RuleSynthesizer(store).synthesize(
            record({"tipo": "duplicados_exactos"}, Action.DELETE)
        )
        assert created == ["automatic duplicados_exactos/* -> eliminar"]

    def test_not_flagged_creates_nothing(self, store):
        created = RuleSynthesizer(store).synthesize(
            record(name_variation(), Action.NORMALIZE, "Manzana", create_rule=False)
        )
        assert created == []
        assert store.list_rules().total_normalizations == 0

"""Promote decisions flagged "create rule" into persistent rules."""

from __future__ import annotations

from datetime import datetime

from reconciler.schemas.decision import Action, DecisionRecord
from reconciler.schemas.rules import AutomaticRuleSchema
from reconciler.services.rule_store import RuleStore, fold_pattern


class RuleSynthesizer:
    def __init__(self, store: RuleStore):
        self.store = store

    def synthesize(self, record: DecisionRecord) -> list[str]:
        """Persist the rule(s) a decision implies; returns one description per rule.

        A normalize decision teaches every observed spelling (case-folded) to map
        to the chosen value.  Any other decision, including a normalize decision
        without spellings, becomes a standing automatic rule for its kind and
        field.
        """
        decision = record.decision
        if not decision.create_rule:
            return []

        variations = getattr(record.incongruence, "variations", None) or []
        patterns = [p for p in dict.fromkeys(fold_pattern(v) for v in variations) if p]
        if decision.action == Action.NORMALIZE and patterns:
            created = []
            for pattern in patterns:
                rule = self.store.create_normalization(pattern, decision.value)
                created.append(f"normalization '{rule.pattern}' -> '{rule.normalized_value}'")
            return created

        rule = self.store.create_automatic(
            AutomaticRuleSchema(
                kind=decision.kind,
                field=decision.field,
                action=decision.action.value,
                value=decision.value,
                created_at=datetime.utcnow(),
            )
        )
        return [f"automatic {rule.kind}/{rule.field or '*'} -> {rule.action}"]

"""
Rule store: persistent normalization and automatic rules.

Normalization rules map a case-folded pattern to its canonical value, one rule
per pattern.  Automatic rules are standing instructions for every future batch
with the same kind and field; they are addressed by their position in
creation order.

``clear_all`` snapshots everything into a single backup slot before deleting,
inside one transaction, so a failure leaves either the old rules or a valid
backup, never a half-cleared store.  ``restore_backup`` consumes the slot.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.orm import Session

from reconciler.errors import ConflictError, NotFoundError, ValidationError
from reconciler.logging_config import get_logger
from reconciler.models.rules import AutomaticRule, NormalizationRule, RuleBackup
from reconciler.schemas.rules import AutomaticRuleSchema, NormalizationRuleSchema, RuleListing

logger = get_logger(__name__)


def fold_pattern(pattern: str) -> str:
    return " ".join(pattern.split()).casefold()


class RuleStore:
    def __init__(self, db: Session):
        self.db = db

    # ─────────────────────────────────────────────────────────────────
    # Internal helpers
    # ─────────────────────────────────────────────────────────────────

    def _automatic_rows(self) -> list[AutomaticRule]:
        return self.db.query(AutomaticRule).order_by(AutomaticRule.id).all()

    def _snapshot(self) -> dict:
        return {
            "normalizations": {
                r.pattern: r.normalized_value
                for r in self.db.query(NormalizationRule).order_by(NormalizationRule.id).all()
            },
            "automatic_rules": [
                {
                    "kind": r.kind,
                    "field": r.field,
                    "action": r.action,
                    "value": r.value,
                    "created_at": r.created_at.isoformat() if r.created_at else None,
                }
                for r in self._automatic_rows()
            ],
        }

    def _delete_all_rules(self) -> None:
        self.db.query(NormalizationRule).delete(synchronize_session=False)
        self.db.query(AutomaticRule).delete(synchronize_session=False)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def _transaction(self):
        """Commit everything done inside the block, or roll all of it back."""
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ─────────────────────────────────────────────────────────────────
    # Create / list / delete
    # ─────────────────────────────────────────────────────────────────

    def create_normalization(self, pattern: str, normalized_value: str) -> NormalizationRuleSchema:
        """Create or overwrite the rule for a pattern (matched case-insensitively)."""
        key = fold_pattern(pattern)
        value = normalized_value.strip()
        if not key or not value:
            raise ValidationError("Pattern and normalized value must not be empty")

        rule = self.db.query(NormalizationRule).filter(NormalizationRule.pattern == key).first()
        if rule:
            rule.normalized_value = value
        else:
            self.db.add(NormalizationRule(pattern=key, normalized_value=value))
        self._commit()
        logger.info("Normalization rule '%s' -> '%s'", key, value)
        return NormalizationRuleSchema(pattern=key, normalized_value=value)

    def create_automatic(self, rule: AutomaticRuleSchema) -> AutomaticRuleSchema:
        """Append an automatic rule; identical rules are not merged."""
        row = AutomaticRule(
            kind=rule.kind,
            field=rule.field,
            action=rule.action,
            value=rule.value,
            created_at=rule.created_at or datetime.utcnow(),
        )
        self.db.add(row)
        self._commit()
        logger.info("Automatic rule %s/%s -> %s", rule.kind, rule.field, rule.action)
        return AutomaticRuleSchema.model_validate(row)

    def list_rules(self) -> RuleListing:
        normalizations = {
            r.pattern: r.normalized_value
            for r in self.db.query(NormalizationRule).order_by(NormalizationRule.id).all()
        }
        automatic = [AutomaticRuleSchema.model_validate(r) for r in self._automatic_rows()]
        return RuleListing(
            normalizations=normalizations,
            automatic_rules=automatic,
            total_normalizations=len(normalizations),
            total_automatic_rules=len(automatic),
        )

    def delete_normalization(self, pattern: str) -> None:
        key = fold_pattern(pattern)
        rule = self.db.query(NormalizationRule).filter(NormalizationRule.pattern == key).first()
        if not rule:
            raise NotFoundError(f"No normalization rule for pattern '{pattern}'")
        self.db.delete(rule)
        self._commit()

    def delete_automatic(self, index: int) -> None:
        rows = self._automatic_rows()
        if index < 0 or index >= len(rows):
            raise NotFoundError(f"No automatic rule at index {index}")
        self.db.delete(rows[index])
        self._commit()

    # ─────────────────────────────────────────────────────────────────
    # Bulk clear with backup
    # ─────────────────────────────────────────────────────────────────

    def has_backup(self) -> bool:
        return self.db.query(RuleBackup).first() is not None

    def clear_all(self, overwrite_backup: bool = False) -> RuleListing:
        """Back up every rule, then delete them all.  Returns what was backed up.

        Refuses to replace an existing backup unless ``overwrite_backup`` is set.
        An empty store is backed up too, so the following restore always
        returns exactly what was cleared.
        """
        snapshot = self._snapshot()
        if self.has_backup() and not overwrite_backup:
            raise ConflictError(
                "A rule backup already exists and would be overwritten; confirm to replace it"
            )

        with self._transaction():
            self.db.query(RuleBackup).delete(synchronize_session=False)
            self.db.add(RuleBackup(snapshot=snapshot))
            self._delete_all_rules()

        logger.warning(
            "Cleared %d normalization and %d automatic rules (backup kept)",
            len(snapshot["normalizations"]),
            len(snapshot["automatic_rules"]),
        )
        return self._listing_from_snapshot(snapshot)

    def restore_backup(self) -> RuleListing:
        """Replace the current rules with the backup and empty the slot."""
        backup = self.db.query(RuleBackup).order_by(RuleBackup.id.desc()).first()
        if not backup:
            raise NotFoundError("No rule backup to restore")

        snapshot = backup.snapshot
        taken_at = backup.created_at
        with self._transaction():
            self._delete_all_rules()
            for pattern, value in snapshot.get("normalizations", {}).items():
                self.db.add(NormalizationRule(pattern=pattern, normalized_value=value))
            for item in snapshot.get("automatic_rules", []):
                created_at = item.get("created_at")
                self.db.add(
                    AutomaticRule(
                        kind=item["kind"],
                        field=item.get("field"),
                        action=item["action"],
                        value=item.get("value"),
                        created_at=datetime.fromisoformat(created_at) if created_at else datetime.utcnow(),
                    )
                )
            self.db.delete(backup)

        logger.info("Restored rules from backup taken at %s", taken_at)
        return self.list_rules()

    @staticmethod
    def _listing_from_snapshot(snapshot: dict) -> RuleListing:
        automatic = [AutomaticRuleSchema(**item) for item in snapshot["automatic_rules"]]
        return RuleListing(
            normalizations=dict(snapshot["normalizations"]),
            automatic_rules=automatic,
            total_normalizations=len(snapshot["normalizations"]),
            total_automatic_rules=len(automatic),
        )

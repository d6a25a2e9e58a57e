"""
Apply phase: commit a finalized decision set to its batch.

1. Every decision flagged "create rule" becomes a stored rule first, so learned
   rules survive even when the batch mutation fails.  A ledger remembers which
   decisions already had their rules stored, so a retry does not store them
   again.
2. The processing service mutates the rows; nothing here touches data.
3. The report counts come from the processor's response as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from reconciler.logging_config import get_logger
from reconciler.schemas.decision import DecisionRecord
from reconciler.schemas.wizard import ApplyReport
from reconciler.services.collaborators import Processor
from reconciler.services.rule_synthesizer import RuleSynthesizer

logger = get_logger(__name__)


@dataclass
class RuleLedger:
    """Decisions whose rules are already stored, with the rules stored for each.

    Keyed by (incongruence, decision) rather than sequence number, because
    numbers shift when a decision is modified between attempts.
    """

    entries: list[tuple[tuple, list[str]]] = field(default_factory=list)

    @staticmethod
    def _key(record: DecisionRecord) -> tuple:
        return (record.incongruence, record.decision)

    def lookup(self, record: DecisionRecord) -> Optional[list[str]]:
        key = self._key(record)
        return next((stored for k, stored in self.entries if k == key), None)

    def add(self, record: DecisionRecord, stored: list[str]) -> None:
        self.entries.append((self._key(record), stored))


class ApplyPhase:
    def __init__(self, processor: Processor, synthesizer: RuleSynthesizer):
        self.processor = processor
        self.synthesizer = synthesizer

    def _store_rules(self, records: list[DecisionRecord], ledger: RuleLedger) -> list[str]:
        synthesized: list[str] = []
        new = 0
        for record in records:
            if not record.decision.create_rule:
                continue
            stored = ledger.lookup(record)
            if stored is None:
                stored = self.synthesizer.synthesize(record)
                ledger.add(record, stored)
                new += len(stored)
            synthesized.extend(stored)
        if new:
            logger.info("Stored %d new rule(s)", new)
        return synthesized

    async def run(
        self, batch_id: str, records: list[DecisionRecord], ledger: Optional[RuleLedger] = None
    ) -> ApplyReport:
        synthesized = self._store_rules(records, ledger if ledger is not None else RuleLedger())

        result = await self.processor.apply(batch_id, records, confirm=True)

        logger.info(
            "Applied %d decisions to %s: %d changes, %d records modified",
            len(records), batch_id, result.changes_applied, result.records_modified,
        )
        return ApplyReport(
            changes_applied=result.changes_applied,
            rules_created=result.rules_created,
            records_modified=result.records_modified,
            rules_synthesized=synthesized,
        )

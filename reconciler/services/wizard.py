"""
Incongruence-resolution wizard: the decision state machine.

    idle ──select_batch──▶ analyzing ──▶ reviewing ──(last confirm/skip)──▶ finalizing
      ▲                        │            ▲   │                           │   │   │
      └──── none found / error ┘            │   └ confirm / skip: index+1   │   │   └ export
                                            └──────── revising ◀── modify n ┘   │
    any state ──cancel(confirm) / reset──▶ idle          finalizing ──apply──▶ applied

Each WizardSession is an explicit object handed to every operation; the engine
itself keeps no per-user state.  Only one analyze/apply/export may be in flight
per session, and a response that arrives after the session was reset is
dropped instead of being applied to the fresh state.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from reconciler.errors import ConflictError, NotFoundError, ReconcilerError, ValidationError
from reconciler.logging_config import get_logger
from reconciler.schemas.decision import Action, DecisionRecord
from reconciler.schemas.incongruence import IncongruenceBase
from reconciler.schemas.wizard import (
    ApplyReport,
    CurrentIncongruence,
    DecisionRequest,
    ExportResult,
    ReviewSummary,
    SessionState,
)
from reconciler.services.apply import ApplyPhase, RuleLedger
from reconciler.services.collaborators import Detector, Exporter
from reconciler.services.export import build_export_payload, export_filename
from reconciler.services.options import build_decision, favorite_option, resolve_options

logger = get_logger(__name__)

NO_INCONGRUENCES_MESSAGE = "No incongruences found. The file is clean."


class Phase(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    REVIEWING = "reviewing"
    REVISING = "revising"
    FINALIZING = "finalizing"
    APPLIED = "applied"


@dataclass
class WizardSession:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    phase: Phase = Phase.IDLE
    selected_batch_id: Optional[str] = None
    incongruences: list[IncongruenceBase] = field(default_factory=list)
    current_index: int = 0
    decisions: list[DecisionRecord] = field(default_factory=list)
    revising_number: Optional[int] = None
    error: Optional[str] = None
    message: Optional[str] = None
    report: Optional[ApplyReport] = None
    pending: Optional[str] = None
    # Bumped on every reset; in-flight calls compare it to spot stale responses.
    generation: int = 0
    # Rules already stored by an earlier apply attempt of this decision set.
    rule_ledger: RuleLedger = field(default_factory=RuleLedger)
    last_seen: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def clear(self) -> None:
        self.phase = Phase.IDLE
        self.selected_batch_id = None
        self.incongruences = []
        self.current_index = 0
        self.decisions = []
        self.revising_number = None
        self.error = None
        self.message = None
        self.report = None
        self.pending = None
        self.rule_ledger = RuleLedger()
        self.generation += 1


def _renumber(records: list[DecisionRecord]) -> list[DecisionRecord]:
    return [
        r if r.sequence_number == n else r.model_copy(update={"sequence_number": n})
        for n, r in enumerate(records, start=1)
    ]


class DecisionEngine:
    def __init__(
        self,
        detector: Detector,
        apply_phase: ApplyPhase,
        exporter: Exporter,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.detector = detector
        self.apply_phase = apply_phase
        self.exporter = exporter
        self.clock = clock

    # ─────────────────────────────────────────────────────────────────
    # Guards
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _require(session: WizardSession, *phases: Phase) -> None:
        if session.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise ConflictError(f"Not allowed while {session.phase.value} (needs: {allowed})")

    @staticmethod
    def _require_nothing_pending(session: WizardSession) -> None:
        if session.pending:
            raise ConflictError(f"Wait for the running {session.pending} to finish")

    @staticmethod
    def _stale(session: WizardSession, generation: int, operation: str) -> bool:
        if session.generation != generation:
            logger.info("Session %s was reset during %s; dropping the late response", session.id, operation)
            return True
        return False

    # ─────────────────────────────────────────────────────────────────
    # Analysis
    # ─────────────────────────────────────────────────────────────────

    async def select_batch(self, session: WizardSession, batch_id: str) -> WizardSession:
        """Analyze a batch and start reviewing its incongruences."""
        self._require_nothing_pending(session)
        self._require(session, Phase.IDLE, Phase.APPLIED)
        if not batch_id or not batch_id.strip():
            raise ValidationError("Select a file to analyze")

        session.clear()
        generation = session.generation
        session.selected_batch_id = batch_id
        session.phase = Phase.ANALYZING
        session.pending = "analyze"

        try:
            result = await self.detector.analyze(batch_id)
        except Exception as e:
            if self._stale(session, generation, "analyze"):
                return session
            session.pending = None
            session.phase = Phase.IDLE
            session.error = e.message if isinstance(e, ReconcilerError) else f"Error analyzing file: {e}"
            raise

        if self._stale(session, generation, "analyze"):
            return session

        session.pending = None
        if not result.incongruences:
            session.phase = Phase.IDLE
            session.message = NO_INCONGRUENCES_MESSAGE
            return session

        session.incongruences = list(result.incongruences)
        session.current_index = 0
        session.phase = Phase.REVIEWING
        logger.info("Session %s reviewing %d incongruences in %s", session.id, len(session.incongruences), batch_id)
        return session

    # ─────────────────────────────────────────────────────────────────
    # Reviewing
    # ─────────────────────────────────────────────────────────────────

    def current(self, session: WizardSession) -> Optional[CurrentIncongruence]:
        if session.phase not in (Phase.REVIEWING, Phase.REVISING):
            return None
        inc = session.incongruences[session.current_index]
        options = resolve_options(inc)
        favorite = favorite_option(options)
        return CurrentIncongruence(
            number=session.current_index + 1,
            total=len(session.incongruences),
            incongruence=inc.to_wire(),
            options=[o.model_dump(by_alias=True, exclude_none=True) for o in options],
            favorite=favorite.value if favorite else None,
            range_editable=inc.is_range_sensitive,
        )

    def _advance(self, session: WizardSession) -> None:
        if session.phase == Phase.REVISING:
            session.revising_number = None
            session.decisions = _renumber(session.decisions)
            session.phase = Phase.FINALIZING
        elif session.current_index >= len(session.incongruences) - 1:
            session.phase = Phase.FINALIZING
        else:
            session.current_index += 1

    def confirm(self, session: WizardSession, request: DecisionRequest) -> DecisionRecord:
        """Record the reviewer's decision for the incongruence on screen."""
        self._require(session, Phase.REVIEWING, Phase.REVISING)
        inc = session.incongruences[session.current_index]
        decision = build_decision(inc, request)

        session.decisions.append(
            DecisionRecord(
                sequence_number=len(session.decisions) + 1,
                incongruence=inc,
                decision=decision,
                position=session.current_index,
            )
        )
        session.error = None
        self._advance(session)
        return session.decisions[-1]

    def skip(self, session: WizardSession) -> None:
        """Move on without a decision.  While revising, this drops the decision."""
        self._require(session, Phase.REVIEWING, Phase.REVISING)
        session.error = None
        self._advance(session)

    # ─────────────────────────────────────────────────────────────────
    # Final review
    # ─────────────────────────────────────────────────────────────────

    def modify(self, session: WizardSession, number: int) -> None:
        """Take decision ``number`` back and return to its incongruence."""
        self._require(session, Phase.FINALIZING)
        self._require_nothing_pending(session)
        record = next((r for r in session.decisions if r.sequence_number == number), None)
        if record is None:
            raise NotFoundError(f"Decision #{number} does not exist")

        position = record.position
        if position is None:
            position = next(
                (i for i, inc in enumerate(session.incongruences) if inc == record.incongruence),
                None,
            )
        if position is None:
            raise NotFoundError(f"Incongruence for decision #{number} is no longer in this session")

        session.decisions = [r for r in session.decisions if r is not record]
        session.current_index = position
        session.revising_number = number
        session.phase = Phase.REVISING
        session.error = None

    def summary(self, session: WizardSession) -> ReviewSummary:
        return ReviewSummary(
            decisions=len(session.decisions),
            rules_flagged=sum(1 for r in session.decisions if r.decision.create_rule),
            normalizations=sum(1 for r in session.decisions if r.decision.action == Action.NORMALIZE),
        )

    def load_decisions(
        self, session: WizardSession, batch_id: str, records: list[DecisionRecord]
    ) -> None:
        """Resume an exported decision set in final review, ready to apply again."""
        self._require_nothing_pending(session)
        self._require(session, Phase.IDLE, Phase.APPLIED)
        if not records:
            raise ValidationError("There are no decisions to load")

        session.clear()
        session.selected_batch_id = batch_id
        session.incongruences = [r.incongruence for r in records]
        session.decisions = _renumber(
            [r.model_copy(update={"position": i}) for i, r in enumerate(records)]
        )
        session.current_index = len(records) - 1
        session.phase = Phase.FINALIZING

    async def apply_all(self, session: WizardSession) -> ApplyReport:
        """Commit every decision.  On failure the decision set stays for a retry."""
        self._require(session, Phase.FINALIZING)
        self._require_nothing_pending(session)
        generation = session.generation
        session.pending = "apply"
        session.error = None

        try:
            report = await self.apply_phase.run(
                session.selected_batch_id, list(session.decisions), session.rule_ledger
            )
        except Exception as e:
            if self._stale(session, generation, "apply"):
                raise
            session.pending = None
            session.error = e.message if isinstance(e, ReconcilerError) else f"Error applying decisions: {e}"
            raise

        if not self._stale(session, generation, "apply"):
            session.pending = None
            session.report = report
            session.phase = Phase.APPLIED
        return report

    async def export(self, session: WizardSession) -> ExportResult:
        """Persist the decision set without applying it."""
        self._require(session, Phase.FINALIZING)
        self._require_nothing_pending(session)
        generation = session.generation
        filename = export_filename(self.clock())
        payload = build_export_payload(session.decisions)
        session.pending = "export"

        try:
            result = await self.exporter.export(payload, filename)
        except Exception as e:
            if self._stale(session, generation, "export"):
                raise
            session.pending = None
            session.error = e.message if isinstance(e, ReconcilerError) else f"Error exporting decisions: {e}"
            raise

        if not self._stale(session, generation, "export"):
            session.pending = None
            session.error = None
            session.message = f"Decisions exported to {result.path}"
        logger.info("Exported %d decisions to %s", len(session.decisions), result.path)
        return result

    # ─────────────────────────────────────────────────────────────────
    # Leaving the wizard
    # ─────────────────────────────────────────────────────────────────

    def cancel(self, session: WizardSession, confirmed: bool = False) -> None:
        """Discard everything.  The caller must pass the reviewer's confirmation."""
        if not confirmed:
            raise ConflictError("Cancelling discards every decision; confirm to proceed")
        logger.info("Session %s cancelled with %d decisions discarded", session.id, len(session.decisions))
        session.clear()

    def reset(self, session: WizardSession) -> None:
        """Start over, e.g. to process another file after applying."""
        session.clear()

    def state(self, session: WizardSession) -> SessionState:
        return SessionState(
            id=session.id,
            phase=session.phase.value,
            selected_batch_id=session.selected_batch_id,
            current_index=session.current_index,
            total_incongruences=len(session.incongruences),
            decisions=[r.to_wire() for r in session.decisions],
            revising_number=session.revising_number,
            pending=session.pending,
            error=session.error,
            message=session.message,
            report=session.report,
            current=self.current(session),
            summary=self.summary(session) if session.phase == Phase.FINALIZING else None,
        )


class SessionRegistry:
    """Live wizard sessions of this process, one per reviewer tab.

    Tabs that close without deleting their session are evicted lazily on the
    next create or get: idle and applied sessions after ``idle_ttl_seconds``
    without a request, any other session after ``abandon_ttl_seconds``.  A
    session with a call in flight is never evicted.
    """

    def __init__(
        self,
        idle_ttl_seconds: float = 1800,
        abandon_ttl_seconds: float = 86400,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._sessions: dict[str, WizardSession] = {}
        self.idle_ttl = timedelta(seconds=idle_ttl_seconds)
        self.abandon_ttl = timedelta(seconds=abandon_ttl_seconds)
        self.clock = clock

    def _expired(self, session: WizardSession, now: datetime) -> bool:
        if session.pending:
            return False
        ttl = self.idle_ttl if session.phase in (Phase.IDLE, Phase.APPLIED) else self.abandon_ttl
        return now - session.last_seen > ttl

    def evict_expired(self) -> int:
        now = self.clock()
        expired = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Evicted %d abandoned wizard session(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> WizardSession:
        self.evict_expired()
        session = WizardSession(last_seen=self.clock())
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> WizardSession:
        self.evict_expired()
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Wizard session '{session_id}' not found")
        session.last_seen = self.clock()
        return session

    def drop(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise NotFoundError(f"Wizard session '{session_id}' not found")

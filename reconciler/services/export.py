"""Export payloads and file names for finalized decision sets."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from reconciler.errors import ValidationError
from reconciler.schemas.decision import DecisionRecord


def export_filename(now: Optional[datetime] = None) -> str:
    """``decisions_<ISO-8601 UTC, ':' and '.' replaced by '-'>.json``"""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"decisions_{re.sub(r'[:.]', '-', stamp)}.json"


def build_export_payload(records: list[DecisionRecord]) -> dict[str, Any]:
    return {"decisiones": [r.to_wire() for r in records]}


def load_export_payload(data: Any) -> list[DecisionRecord]:
    """Parse an exported payload back into records (audit / replay)."""
    if not isinstance(data, dict) or not isinstance(data.get("decisiones"), list):
        raise ValidationError("Export payload must be an object with a 'decisiones' list")
    try:
        records = [DecisionRecord.model_validate(item) for item in data["decisiones"]]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid exported decision: {e.errors()[0]['msg']}") from e

    numbers = [r.sequence_number for r in records]
    if sorted(numbers) != list(range(1, len(records) + 1)):
        raise ValidationError("Exported decisions must be numbered 1..N without gaps")
    return sorted(records, key=lambda r: r.sequence_number)

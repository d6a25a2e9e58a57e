from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reconciler.schemas.incongruence import Incongruence, ValueRange, is_range_kind


class Action(str, Enum):
    NORMALIZE = "normalizar"
    DELETE = "eliminar"
    KEEP = "mantener"
    FLAG_FOR_REVIEW = "marcar_revision"
    FILL = "rellenar"


VALUE_ACTIONS = frozenset({Action.NORMALIZE, Action.FILL})


class Decision(BaseModel):
    """The reviewer's resolution for exactly one incongruence."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: Action = Field(alias="accion")
    value: Optional[str] = Field(default=None, alias="valor")
    create_rule: bool = Field(default=False, alias="crear_regla")
    kind: str = Field(alias="tipo")
    field: Optional[str] = Field(default=None, alias="campo")
    range_override: Optional[ValueRange] = Field(default=None, alias="rango")

    @model_validator(mode="after")
    def _consistent(self) -> "Decision":
        if self.action in VALUE_ACTIONS and not (self.value or "").strip():
            raise ValueError(f"action '{self.action.value}' needs a value")
        if self.range_override is not None:
            if not is_range_kind(self.kind):
                raise ValueError(f"kind '{self.kind}' does not accept a range override")
            if self.range_override.min is None and self.range_override.max is None:
                raise ValueError("range override needs a minimum or a maximum")
        return self


class DecisionRecord(BaseModel):
    """A confirmed decision paired with the incongruence it resolves.

    ``position`` is the incongruence's index in the analyzed list; it drives
    "modify" and never goes out on the wire.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sequence_number: int = Field(alias="numero", ge=1)
    incongruence: Incongruence = Field(alias="incongruencia")
    decision: Decision
    position: Optional[int] = Field(default=None, alias="posicion", ge=0)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude={"position"}, exclude_none=True)

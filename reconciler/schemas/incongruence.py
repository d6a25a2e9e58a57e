"""
Incongruence model: one data-quality issue the analysis service found in a batch.

The analysis service speaks Spanish on the wire (``tipo``, ``campo``,
``variaciones`` ...), so every field carries its wire alias and models accept
either spelling.  Shapes vary by kind:

    NameIncongruence       variaciones_nombre, incoherencia_cliente
    RangeIncongruence      outliers_estadisticos, rangos_illogicos, patron_cliente_anomalo
    ValueIncongruence      valores_cero, valores_negativos, valores_vacios,
                           fechas_futuras, fechas_antiguas, espacios_multiples
    DuplicateIncongruence  duplicados_exactos (row-level, no field)
    OtherIncongruence      any tag the analysis service adds later

Instances are frozen: decisions reference them, never change them.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, ClassVar, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    computed_field,
    field_validator,
    model_validator,
)

MAX_EXAMPLES = 3


class IncongruenceKind(str, Enum):
    NAME_VARIATION = "variaciones_nombre"
    ZERO_VALUE = "valores_cero"
    NEGATIVE_VALUE = "valores_negativos"
    EMPTY_VALUE = "valores_vacios"
    FUTURE_DATE = "fechas_futuras"
    PAST_DATE = "fechas_antiguas"
    EXCESS_WHITESPACE = "espacios_multiples"
    EXACT_DUPLICATE = "duplicados_exactos"
    ILLOGICAL_RANGE = "rangos_illogicos"
    CLIENT_INCOHERENCE = "incoherencia_cliente"
    STATISTICAL_OUTLIER = "outliers_estadisticos"
    ANOMALOUS_CLIENT_PATTERN = "patron_cliente_anomalo"


NAME_KINDS = frozenset({IncongruenceKind.NAME_VARIATION, IncongruenceKind.CLIENT_INCOHERENCE})

RANGE_KINDS = frozenset({
    IncongruenceKind.STATISTICAL_OUTLIER,
    IncongruenceKind.ILLOGICAL_RANGE,
    IncongruenceKind.ANOMALOUS_CLIENT_PATTERN,
})

VALUE_KINDS = frozenset({
    IncongruenceKind.ZERO_VALUE,
    IncongruenceKind.NEGATIVE_VALUE,
    IncongruenceKind.EMPTY_VALUE,
    IncongruenceKind.FUTURE_DATE,
    IncongruenceKind.PAST_DATE,
    IncongruenceKind.EXCESS_WHITESPACE,
})

DUPLICATE_KINDS = frozenset({IncongruenceKind.EXACT_DUPLICATE})

KNOWN_KIND_VALUES = frozenset(k.value for k in IncongruenceKind)


def kind_value(kind: Any) -> str:
    """Wire string for a kind given as enum member or raw tag."""
    return kind.value if isinstance(kind, IncongruenceKind) else str(kind)


def is_name_kind(kind: Any) -> bool:
    return kind_value(kind) in {k.value for k in NAME_KINDS}


def is_range_kind(kind: Any) -> bool:
    return kind_value(kind) in {k.value for k in RANGE_KINDS}


# ─────────────────────────────────────────────────────────────────────────────
# Building blocks
# ─────────────────────────────────────────────────────────────────────────────

class ValueRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: Optional[float] = None
    max: Optional[float] = None

    @model_validator(mode="after")
    def _bounds_in_order(self) -> "ValueRange":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"range minimum {self.min} is greater than maximum {self.max}")
        return self


class Impact(BaseModel):
    """How many records the issue touches.  The percentage is always derived."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    affected_count: int = Field(alias="registros_afectados", ge=0)
    total_count: int = Field(alias="total_registros", ge=0)

    @computed_field(alias="porcentaje")
    @property
    def percentage(self) -> float:
        if self.total_count == 0:
            return 0.0
        return round(self.affected_count / self.total_count * 100, 1)


class Option(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    value: str = Field(alias="valor")
    frequency: Optional[int] = Field(default=None, alias="frecuencia")
    percentage: Optional[float] = Field(default=None, alias="porcentaje")
    description: Optional[str] = Field(default=None, alias="descripcion")
    is_favorite: bool = Field(default=False, alias="es_favorito")


def with_single_favorite(options: list[Option]) -> list[Option]:
    """Keep exactly one favorite: the first one marked, else the first option."""
    if not options:
        return []
    favorite = next((i for i, o in enumerate(options) if o.is_favorite), 0)
    return [
        o if o.is_favorite == (i == favorite) else o.model_copy(update={"is_favorite": i == favorite})
        for i, o in enumerate(options)
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Variants
# ─────────────────────────────────────────────────────────────────────────────

class IncongruenceBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    allowed_kinds: ClassVar[frozenset] = frozenset()

    kind: IncongruenceKind = Field(alias="tipo")
    field: Optional[str] = Field(default=None, alias="campo")
    count: Optional[int] = Field(default=None, alias="cantidad", ge=0)
    examples: list[Any] = Field(default_factory=list, alias="ejemplos")
    impact: Optional[Impact] = Field(default=None, alias="impacto")
    options: list[Option] = Field(default_factory=list, alias="opciones")

    @field_validator("kind")
    @classmethod
    def _kind_matches_variant(cls, v):
        if cls.allowed_kinds and v not in cls.allowed_kinds:
            raise ValueError(f"kind '{kind_value(v)}' does not belong to {cls.__name__}")
        return v

    @field_validator("examples")
    @classmethod
    def _bound_examples(cls, v: list[Any]) -> list[Any]:
        return list(v[:MAX_EXAMPLES])

    @field_validator("options")
    @classmethod
    def _one_favorite(cls, v: list[Option]) -> list[Option]:
        return with_single_favorite(v)

    @property
    def kind_value(self) -> str:
        return kind_value(self.kind)

    @property
    def is_range_sensitive(self) -> bool:
        return is_range_kind(self.kind)

    @property
    def affected_count(self) -> Optional[int]:
        if self.impact is not None:
            return self.impact.affected_count
        return self.count

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class NameIncongruence(IncongruenceBase):
    """Several spellings of what should be one name (species, variety, client)."""

    allowed_kinds: ClassVar[frozenset] = NAME_KINDS

    variations: list[str] = Field(alias="variaciones", min_length=1)
    # Observed count per variation when the analysis service reports it.
    frequencies: dict[str, int] = Field(default_factory=dict, alias="frecuencias")

    @field_validator("variations")
    @classmethod
    def _distinct_variations(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class RangeIncongruence(IncongruenceBase):
    allowed_kinds: ClassVar[frozenset] = RANGE_KINDS

    current_range: Optional[ValueRange] = Field(default=None, alias="rango_actual")


class ValueIncongruence(IncongruenceBase):
    allowed_kinds: ClassVar[frozenset] = VALUE_KINDS


class DuplicateIncongruence(IncongruenceBase):
    allowed_kinds: ClassVar[frozenset] = DUPLICATE_KINDS


class OtherIncongruence(IncongruenceBase):
    """A kind this service does not know yet; handled with the generic menu."""

    kind: str = Field(alias="tipo", min_length=1)

    @field_validator("kind")
    @classmethod
    def _kind_matches_variant(cls, v):
        if v in KNOWN_KIND_VALUES:
            raise ValueError(f"kind '{v}' is a known kind")
        return v


def _variant_tag(data: Any) -> str:
    if isinstance(data, dict):
        raw = data.get("tipo", data.get("kind"))
    else:
        raw = getattr(data, "kind", None)
    value = kind_value(raw) if raw is not None else ""
    if value in {k.value for k in NAME_KINDS}:
        return "name"
    if value in {k.value for k in RANGE_KINDS}:
        return "range"
    if value in {k.value for k in VALUE_KINDS}:
        return "value"
    if value in {k.value for k in DUPLICATE_KINDS}:
        return "duplicate"
    return "other"


Incongruence = Annotated[
    Union[
        Annotated[NameIncongruence, Tag("name")],
        Annotated[RangeIncongruence, Tag("range")],
        Annotated[ValueIncongruence, Tag("value")],
        Annotated[DuplicateIncongruence, Tag("duplicate")],
        Annotated[OtherIncongruence, Tag("other")],
    ],
    Discriminator(_variant_tag),
]

_incongruence_adapter: TypeAdapter = TypeAdapter(Incongruence)
_incongruence_list_adapter: TypeAdapter = TypeAdapter(list[Incongruence])


def parse_incongruence(data: Any) -> IncongruenceBase:
    return _incongruence_adapter.validate_python(data)


def parse_incongruences(data: Any) -> list[IncongruenceBase]:
    return _incongruence_list_adapter.validate_python(data)

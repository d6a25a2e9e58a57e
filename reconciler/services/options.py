"""
Resolution options and action derivation.

The analysis service usually sends each incongruence with its own option menu
(real frequencies, a favorite).  When it does not, the menu is synthesized
from a fixed table keyed by kind.  Option values are the keywords the
processing service understands; the action for a chosen value is derived from
those keywords, so the same (kind, value) always yields the same action.
"""

from __future__ import annotations

from typing import Optional

from reconciler.errors import ValidationError
from reconciler.schemas.decision import Action, Decision
from reconciler.schemas.incongruence import (
    IncongruenceBase,
    IncongruenceKind,
    NameIncongruence,
    Option,
    ValueRange,
    is_name_kind,
    with_single_favorite,
)
from reconciler.schemas.wizard import DecisionRequest

_FLAG = Option(value="marcar_revision", description="Flag for manual review")

_MENUS: dict[IncongruenceKind, list[Option]] = {
    IncongruenceKind.ZERO_VALUE: [
        Option(value="eliminar", description="Delete records"),
        Option(value="mantener", description="Keep (may be valid)"),
        _FLAG,
    ],
    IncongruenceKind.EMPTY_VALUE: [
        Option(value="mantener", description="Keep empty"),
        Option(value="rellenar", description="Fill with value"),
        _FLAG,
    ],
    IncongruenceKind.FUTURE_DATE: [
        Option(value="corregir", description="Correct date manually"),
        Option(value="eliminar", description="Delete record"),
        _FLAG,
    ],
    IncongruenceKind.EXCESS_WHITESPACE: [
        Option(value="limpiar", description="Clean automatically"),
        Option(value="revisar", description="Review manually"),
    ],
    IncongruenceKind.EXACT_DUPLICATE: [
        Option(value="eliminar_duplicados", description="Remove duplicates (keep one)"),
        Option(value="mantener_todos", description="Keep all"),
        Option(value="revisar", description="Review one by one"),
    ],
    IncongruenceKind.ILLOGICAL_RANGE: [
        Option(value="eliminar", description="Delete record"),
        Option(value="corregir", description="Correct manually"),
        _FLAG,
    ],
    IncongruenceKind.STATISTICAL_OUTLIER: [
        Option(value="mantener", description="Keep value (may be valid)"),
        Option(value="eliminar", description="Delete record"),
        Option(value="corregir", description="Correct value manually"),
    ],
    IncongruenceKind.ANOMALOUS_CLIENT_PATTERN: [
        Option(value="mantener", description="Keep (may be valid)"),
        Option(value="revisar", description="Review manually"),
        Option(value="corregir", description="Correct price"),
    ],
}
_MENUS[IncongruenceKind.NEGATIVE_VALUE] = _MENUS[IncongruenceKind.ZERO_VALUE]
_MENUS[IncongruenceKind.PAST_DATE] = _MENUS[IncongruenceKind.FUTURE_DATE]

_GENERIC_MENU = [
    Option(value="mantener", description="Keep as is"),
    Option(value="revisar", description="Review manually"),
]

# Checked in this order; the first keyword found in the value wins.
_ACTION_KEYWORDS: list[tuple[Action, tuple[str, ...]]] = [
    (Action.DELETE, ("eliminar", "delete")),
    (Action.KEEP, ("mantener", "keep")),
    (Action.FLAG_FOR_REVIEW, ("marcar", "revisar", "review")),
    (Action.FILL, ("rellenar", "corregir", "fill", "correct")),
]


# ─────────────────────────────────────────────────────────────────────────────
# Option menus
# ─────────────────────────────────────────────────────────────────────────────

def _variation_options(inc: NameIncongruence) -> list[Option]:
    affected = inc.affected_count
    options = []
    for variation in inc.variations:
        frequency = inc.frequencies.get(variation)
        percentage = None
        if frequency is not None and affected:
            percentage = round(frequency / affected * 100, 1)
        options.append(Option(value=variation, frequency=frequency, percentage=percentage))
    # Unknown frequencies rank last, in the order they were observed.
    options.sort(key=lambda o: (o.frequency is None, -(o.frequency or 0)))
    return options


def synthesize_options(inc: IncongruenceBase) -> list[Option]:
    """Build the fixed menu for an incongruence that arrived without options."""
    kind = inc.kind
    if kind == IncongruenceKind.NAME_VARIATION:
        options = _variation_options(inc)
    elif kind == IncongruenceKind.CLIENT_INCOHERENCE:
        options = [Option(value=v, description=f'Normalize to "{v}"') for v in inc.variations]
    else:
        options = list(_MENUS.get(kind, _GENERIC_MENU))
    return with_single_favorite(options)


def resolve_options(inc: IncongruenceBase) -> list[Option]:
    """Options the reviewer chooses from: the detector's own, else synthesized."""
    if inc.options:
        return list(inc.options)
    return synthesize_options(inc)


def favorite_option(options: list[Option]) -> Optional[Option]:
    return next((o for o in options if o.is_favorite), None)


# ─────────────────────────────────────────────────────────────────────────────
# Action derivation
# ─────────────────────────────────────────────────────────────────────────────

def map_action(value: str, kind) -> Action:
    """Derive the action implied by a chosen option value."""
    folded = value.casefold()
    for action, keywords in _ACTION_KEYWORDS:
        if any(word in folded for word in keywords):
            return action
    if is_name_kind(kind):
        return Action.NORMALIZE
    return Action.KEEP


def custom_action(kind) -> Action:
    """Free-text values rename for name kinds and replace values otherwise."""
    return Action.NORMALIZE if is_name_kind(kind) else Action.FILL


def build_decision(inc: IncongruenceBase, request: DecisionRequest) -> Decision:
    """Turn a reviewer's choice into a Decision, rejecting unusable input."""
    if request.custom_value is not None:
        value = request.custom_value.strip()
        if not value:
            raise ValidationError("Custom value is empty")
        action = custom_action(inc.kind)
    elif request.option:
        menu = [o.value for o in resolve_options(inc)]
        if request.option not in menu:
            raise ValidationError(f"'{request.option}' is not one of the options for this incongruence")
        value = request.option
        action = map_action(value, inc.kind)
    else:
        raise ValidationError("Choose an option or enter a custom value")

    range_override = None
    if request.range_min is not None or request.range_max is not None:
        if not inc.is_range_sensitive:
            raise ValidationError(f"Incongruence kind '{inc.kind_value}' has no adjustable range")
        if (
            request.range_min is not None
            and request.range_max is not None
            and request.range_min > request.range_max
        ):
            raise ValidationError("Range minimum is greater than maximum")
        range_override = ValueRange(min=request.range_min, max=request.range_max)

    return Decision(
        action=action,
        value=value,
        create_rule=request.create_rule,
        kind=inc.kind_value,
        field=inc.field,
        range_override=range_override,
    )

from __future__ import annotations

from fastapi import APIRouter, Body, Depends

from reconciler.dependencies import get_rule_store
from reconciler.schemas.rules import (
    CreateRuleRequest,
    DeleteRuleRequest,
    RuleListing,
    RuleOperationResponse,
)
from reconciler.services.rule_store import RuleStore

router = APIRouter(prefix="/reglas", tags=["rules"])


@router.get("/", response_model=RuleListing)
def list_rules(store: RuleStore = Depends(get_rule_store)):
    return store.list_rules()


@router.post("/crear", response_model=RuleOperationResponse, status_code=201)
def create_rule(body: CreateRuleRequest, store: RuleStore = Depends(get_rule_store)):
    if body.type == "normalizacion":
        rule = store.create_normalization(body.normalization.pattern, body.normalization.normalized_value)
        message = f"Normalization rule '{rule.pattern}' -> '{rule.normalized_value}' saved"
    else:
        rule = store.create_automatic(body.automatic_rule)
        message = f"Automatic rule for '{rule.kind}' saved"
    return RuleOperationResponse(message=message)


@router.delete("/eliminar", response_model=RuleOperationResponse)
def delete_rule(body: DeleteRuleRequest = Body(...), store: RuleStore = Depends(get_rule_store)):
    if body.type == "normalizacion":
        store.delete_normalization(body.pattern)
        message = f"Normalization rule '{body.pattern}' deleted"
    else:
        store.delete_automatic(body.index)
        message = f"Automatic rule #{body.index} deleted"
    return RuleOperationResponse(message=message)


@router.delete("/limpiar-todo", response_model=RuleOperationResponse)
def clear_rules(overwrite_backup: bool = False, store: RuleStore = Depends(get_rule_store)):
    """Delete every rule after taking a backup.

    An existing backup is only replaced with ``?overwrite_backup=true``.
    """
    backed_up = store.clear_all(overwrite_backup=overwrite_backup)
    return RuleOperationResponse(
        message=(
            f"Cleared {backed_up.total_normalizations} normalization and "
            f"{backed_up.total_automatic_rules} automatic rules; backup saved"
        ),
        rules=backed_up,
    )


@router.post("/restaurar-backup", response_model=RuleOperationResponse)
def restore_backup(store: RuleStore = Depends(get_rule_store)):
    restored = store.restore_backup()
    return RuleOperationResponse(message="Rules restored from backup", rules=restored)

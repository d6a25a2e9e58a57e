from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class NormalizationRuleSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pattern: str = Field(alias="patron", min_length=1)
    normalized_value: str = Field(alias="valor_normalizado", min_length=1)


class AutomaticRuleSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    kind: str = Field(alias="tipo", min_length=1)
    field: Optional[str] = Field(default=None, alias="campo")
    action: str = Field(alias="accion", min_length=1)
    value: Optional[str] = Field(default=None, alias="valor")
    created_at: Optional[datetime] = Field(default=None, alias="creada")


class RuleListing(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    normalizations: dict[str, str] = Field(default_factory=dict, alias="normalizaciones")
    automatic_rules: list[AutomaticRuleSchema] = Field(default_factory=list, alias="reglas_automaticas")
    total_normalizations: int = Field(default=0, alias="total_normalizaciones")
    total_automatic_rules: int = Field(default=0, alias="total_reglas_automaticas")


class CreateRuleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["normalizacion", "automatica"] = Field(alias="tipo")
    normalization: Optional[NormalizationRuleSchema] = Field(default=None, alias="normalizacion")
    automatic_rule: Optional[AutomaticRuleSchema] = Field(default=None, alias="regla_automatica")

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "CreateRuleRequest":
        if self.type == "normalizacion" and self.normalization is None:
            raise ValueError("'normalizacion' payload is required")
        if self.type == "automatica" and self.automatic_rule is None:
            raise ValueError("'regla_automatica' payload is required")
        return self


class DeleteRuleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["normalizacion", "automatica"] = Field(alias="tipo")
    pattern: Optional[str] = Field(default=None, alias="patron")
    index: Optional[int] = Field(default=None, alias="indice")

    @model_validator(mode="after")
    def _key_matches_type(self) -> "DeleteRuleRequest":
        if self.type == "normalizacion" and not self.pattern:
            raise ValueError("'patron' is required to delete a normalization rule")
        if self.type == "automatica" and self.index is None:
            raise ValueError("'indice' is required to delete an automatic rule")
        return self


class RuleOperationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(default=True, alias="exitoso")
    message: str = Field(alias="mensaje")
    rules: Optional[RuleListing] = Field(default=None, alias="reglas")

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from reconciler.schemas.incongruence import Incongruence


class BatchFile(BaseModel):
    """A spreadsheet the processing service holds, ready to be analyzed."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="nombre")
    path: Optional[str] = Field(default=None, alias="ruta")
    size: int = Field(default=0, alias="tamano")
    modified_at: Optional[datetime] = Field(default=None, alias="fecha_modificacion")
    type: Literal["entradas", "salidas", "desconocido"] = Field(default="desconocido", alias="tipo")


class UploadResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(alias="exitoso")
    message: str = Field(default="", alias="mensaje")
    batch_id: Optional[str] = Field(default=None, alias="archivo")


class AnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    incongruences: list[Incongruence] = Field(default_factory=list, alias="incongruencias")
    total: int = 0
    levels_applied: list[int] = Field(default_factory=list, alias="niveles_aplicados")


class ProcessorResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(alias="exitoso")
    changes_applied: int = Field(default=0, alias="cambios_aplicados")
    rules_created: int = Field(default=0, alias="reglas_creadas")
    records_modified: int = Field(default=0, alias="registros_modificados")

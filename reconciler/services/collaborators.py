"""
Clients for the processing service the wizard depends on.

The processing service owns the batches: it lists and receives uploaded
spreadsheets, runs the incongruence detectors, mutates rows when decisions are
applied and can write exported JSON.  This module only speaks its HTTP API;
every transport or payload failure surfaces as ``CollaboratorError`` with the
service's own ``detail`` message when it sent one.
"""

from __future__ import annotations

import mimetypes
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from reconciler.config import settings
from reconciler.errors import CollaboratorError
from reconciler.logging_config import get_logger
from reconciler.schemas.batch import AnalysisResult, BatchFile, ProcessorResult, UploadResult
from reconciler.schemas.decision import DecisionRecord
from reconciler.schemas.wizard import ExportResult
from reconciler.services.storage import validate_spreadsheet

logger = get_logger(__name__)


class Detector(Protocol):
    async def analyze(self, batch_id: str) -> AnalysisResult: ...


class Processor(Protocol):
    async def apply(
        self, batch_id: str, decisions: list[DecisionRecord], confirm: bool = True
    ) -> ProcessorResult: ...


class Exporter(Protocol):
    async def export(self, payload: dict[str, Any], filename: str) -> ExportResult: ...


def _error_detail(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or default
    if isinstance(body, dict) and body.get("detail"):
        detail = body["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return default


class ProcessingServiceClient:
    """Shared transport: base URL, timeout, error translation."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.PROCESSOR_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PROCESSOR_TIMEOUT_SECONDS
        self._transport = transport

    async def _request(self, method: str, path: str, error_message: str, **kwargs) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise CollaboratorError(f"{error_message}: {e}") from e

        if response.is_error:
            detail = _error_detail(response, error_message)
            logger.error("%s %s -> %d: %s", method, path, response.status_code, detail)
            raise CollaboratorError(detail)

        try:
            return response.json()
        except ValueError as e:
            raise CollaboratorError(f"{error_message}: response is not JSON") from e


class DetectorClient(ProcessingServiceClient):
    async def analyze(self, batch_id: str) -> AnalysisResult:
        data = await self._request(
            "POST",
            f"/procesador/analizar-incongruencias/{quote(batch_id, safe='')}",
            "Error analyzing incongruences",
        )
        try:
            result = AnalysisResult.model_validate(data)
        except PydanticValidationError as e:
            raise CollaboratorError(f"Malformed analysis for '{batch_id}': {e.error_count()} invalid field(s)") from e
        logger.info(
            "Batch %s: %d incongruences (levels %s)",
            batch_id, len(result.incongruences), result.levels_applied,
        )
        return result


class ProcessorClient(ProcessingServiceClient):
    async def apply(
        self, batch_id: str, decisions: list[DecisionRecord], confirm: bool = True
    ) -> ProcessorResult:
        data = await self._request(
            "POST",
            f"/procesador/aplicar-decisiones/{quote(batch_id, safe='')}",
            "Error applying decisions",
            json={"decisiones": [d.to_wire() for d in decisions], "confirmar": confirm},
        )
        try:
            result = ProcessorResult.model_validate(data)
        except PydanticValidationError as e:
            raise CollaboratorError("Malformed response from the processor") from e
        if not result.success:
            raise CollaboratorError(f"The processor could not apply the decisions to '{batch_id}'")
        return result


class HttpExporter(ProcessingServiceClient):
    """Asks the processing service to write the JSON file on its side."""

    async def export(self, payload: dict[str, Any], filename: str) -> ExportResult:
        data = await self._request(
            "POST",
            "/procesador/exportar-json",
            "Error exporting JSON",
            json={"datos": payload, "nombre_archivo": filename, "convertir_nan": True},
        )
        if not isinstance(data, dict) or not data.get("exitoso"):
            raise CollaboratorError(f"The processor could not export '{filename}'")
        return ExportResult(
            success=True,
            path=data.get("ruta_archivo", ""),
            size_bytes=data.get("tamano_bytes"),
            filename=filename,
        )


class BatchSourceClient(ProcessingServiceClient):
    async def list_files(self) -> list[BatchFile]:
        data = await self._request("GET", "/procesador/archivos", "Error listing files")
        try:
            return [BatchFile.model_validate(item) for item in data.get("archivos", [])]
        except (AttributeError, PydanticValidationError) as e:
            raise CollaboratorError("Malformed file listing from the processor") from e

    async def upload(self, filename: str, content: bytes) -> UploadResult:
        """Send a spreadsheet to the processing service.

        Raises:
            ValidationError: not an .xls/.xlsx file, empty, or too large.
                Raised before any request is made.
        """
        validate_spreadsheet(filename, len(content))
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        data = await self._request(
            "POST",
            "/procesador/upload",
            "Error uploading file",
            files={"file": (filename, content, content_type)},
        )
        try:
            return UploadResult.model_validate(data)
        except PydanticValidationError as e:
            raise CollaboratorError("Malformed upload response from the processor") from e

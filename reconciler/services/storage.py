import asyncio
import json
import os
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from reconciler.config import settings
from reconciler.errors import CollaboratorError, ValidationError
from reconciler.schemas.wizard import ExportResult

ALLOWED_EXTENSIONS = [".xls", ".xlsx"]


def check_extension(filename: str) -> str:
    file_ext = os.path.splitext(filename or "")[1].lower()
    if file_ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type '{file_ext or filename}' not allowed. Only .xls and .xlsx files accepted."
        )
    return file_ext


def validate_spreadsheet(filename: str, file_size: int, max_size: Optional[int] = None) -> str:
    """Check an upload before it leaves this service.  Returns the extension."""
    file_ext = check_extension(filename)

    if file_size == 0:
        raise ValidationError(f"File '{filename}' is empty")

    max_size = max_size if max_size is not None else settings.MAX_UPLOAD_BYTES
    if file_size > max_size:
        raise ValidationError(
            f"File too large ({file_size / 1024 / 1024:.1f}MB). Maximum {max_size / 1024 / 1024:.0f}MB."
        )
    return file_ext


class S3Exporter:
    """Writes exported decision sets to object storage under ``exports/``."""

    def __init__(self, s3_client=None, bucket_name: Optional[str] = None):
        self.s3_client = s3_client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT or None,
            aws_access_key_id=settings.S3_ACCESS_KEY or None,
            aws_secret_access_key=settings.S3_SECRET_KEY or None,
            region_name="us-east-1",
        )
        self.bucket_name = bucket_name or settings.S3_BUCKET

    def _put(self, key: str, body: bytes) -> None:
        self.s3_client.put_object(
            Bucket=self.bucket_name, Key=key, Body=body, ContentType="application/json"
        )

    async def export(self, payload: dict[str, Any], filename: str) -> ExportResult:
        body = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
        key = f"exports/{filename}"
        try:
            await asyncio.to_thread(self._put, key, body)
        except (ClientError, BotoCoreError) as e:
            raise CollaboratorError(f"Export upload failed: {str(e)}") from e
        return ExportResult(
            success=True,
            path=f"s3://{self.bucket_name}/{key}",
            size_bytes=len(body),
            filename=filename,
        )

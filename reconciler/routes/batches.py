from typing import List

from fastapi import APIRouter, Depends, File, UploadFile

from reconciler.dependencies import get_batch_source
from reconciler.schemas.batch import BatchFile, UploadResult
from reconciler.services.collaborators import BatchSourceClient
from reconciler.services.storage import check_extension

router = APIRouter(prefix="/batches", tags=["batches"])


@router.get("/", response_model=List[BatchFile])
async def list_batches(source: BatchSourceClient = Depends(get_batch_source)):
    """Spreadsheets the processing service holds (entradas / salidas)."""
    return await source.list_files()


@router.post("/upload", response_model=UploadResult, status_code=201)
async def upload_batch(
    file: UploadFile = File(...),
    source: BatchSourceClient = Depends(get_batch_source),
):
    """Upload an .xls/.xlsx file.  Anything else is refused before it is read."""
    check_extension(file.filename)
    content = await file.read()
    return await source.upload(file.filename, content)

"""Upload routes for QDash.

Routes:
- POST   /uploads/{domain}              - Upload and ingest a spreadsheet (CSV/XLSX)
- GET    /uploads/{domain}              - Upload history, newest first
- DELETE /uploads/{domain}/{upload_id}  - Delete a batch and its records
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from qdash.config import AppConfig
from qdash.db.store import RecordStore
from qdash.ingestion.domains import DomainSpec
from qdash.ingestion.uploads import delete_upload, ingest_upload, list_uploads
from qdash.web.dependencies import get_app_config, get_store, resolve_domain
from qdash.web.models import UploadHistoryItem, UploadResponse

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("/{domain}", response_model=UploadResponse)
async def upload_spreadsheet(
    file: UploadFile = File(...),
    target_month: str | None = Form(default=None),
    spec: DomainSpec = Depends(resolve_domain),
    store: RecordStore = Depends(get_store),
    config: AppConfig = Depends(get_app_config),
):
    """Ingest an uploaded spreadsheet into a domain.

    With ``target_month`` (YYYY-MM), existing records of that month are
    replaced. Parts price uploads reconcile by part name instead.
    Empty or unsupported files are rejected with 400 before anything is
    written; database failures return 503 with a remediation hint.
    """
    content = await file.read()
    result = await ingest_upload(
        store,
        spec.name,
        content,
        file.filename or "upload",
        target_month=target_month,
        config=config,
    )
    return UploadResponse(message=f"Imported {result.record_count} records", **result.to_dict())


@router.get("/{domain}", response_model=list[UploadHistoryItem])
async def upload_history(
    spec: DomainSpec = Depends(resolve_domain),
    store: RecordStore = Depends(get_store),
):
    """Upload batches for a domain, newest first."""
    uploads = await list_uploads(store, spec.name)
    return [UploadHistoryItem(**upload.to_dict()) for upload in uploads]


@router.delete("/{domain}/{upload_id}")
async def remove_upload(
    upload_id: UUID,
    spec: DomainSpec = Depends(resolve_domain),
    store: RecordStore = Depends(get_store),
):
    """Delete an upload batch together with every record it created."""
    deleted = await delete_upload(store, spec.name, upload_id)
    if deleted is None:
        raise HTTPException(status_code=404, detail=f"Upload {upload_id} not found")
    return {"success": True, "records_deleted": deleted}

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from sync_api.api.deps import require_merchant
from sync_api.db.session import get_db
from sync_api.schemas.sync import ConfigureRequest, SyncConfigOut, SyncHistoryOut, SyncStatusOut, TriggerResponse
from sync_api.services.sync import (
    configure_sync,
    disable_sync,
    get_sync_config,
    get_sync_history,
    get_sync_status,
    trigger_sync,
    upload_catalog,
)

router = APIRouter(prefix="/v1/merchants/{merchant_id}/sync", tags=["sync"])


@router.put("/configure", response_model=SyncConfigOut)
@router.post("/configure", response_model=SyncConfigOut)
def configure(
    payload: ConfigureRequest,
    merchant_id: str = Depends(require_merchant),
    db: Session = Depends(get_db),
) -> SyncConfigOut:
    return configure_sync(db, merchant_id, payload)


@router.get("/configure", response_model=SyncConfigOut)
def read_configuration(merchant_id: str = Depends(require_merchant), db: Session = Depends(get_db)) -> SyncConfigOut:
    return get_sync_config(db, merchant_id)


@router.delete("/configure", response_model=SyncConfigOut)
def disable(merchant_id: str = Depends(require_merchant), db: Session = Depends(get_db)) -> SyncConfigOut:
    return disable_sync(db, merchant_id)


@router.post("/trigger", response_model=TriggerResponse)
def trigger(merchant_id: str = Depends(require_merchant), db: Session = Depends(get_db)) -> TriggerResponse:
    return trigger_sync(db, merchant_id)


@router.get("/status", response_model=SyncStatusOut)
def status(merchant_id: str = Depends(require_merchant), db: Session = Depends(get_db)) -> SyncStatusOut:
    return get_sync_status(db, merchant_id)


@router.get("/history", response_model=SyncHistoryOut)
def history(
    limit: int = Query(default=10, ge=1, le=100),
    merchant_id: str = Depends(require_merchant),
    db: Session = Depends(get_db),
) -> SyncHistoryOut:
    return get_sync_history(db, merchant_id, limit=limit)


@router.post("/upload", response_model=TriggerResponse)
def upload(
    file: UploadFile = File(...),
    file_format: str | None = Form(default=None),
    field_mapping: str | None = Form(default=None),
    merchant_id: str = Depends(require_merchant),
    db: Session = Depends(get_db),
) -> TriggerResponse:
    content = file.file.read()
    return upload_catalog(
        db,
        merchant_id,
        content=content,
        filename=file.filename,
        content_type=file.content_type,
        file_format=file_format,
        field_mapping=field_mapping,
    )

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from sync_api.db.session import get_db
from sync_api.schemas.sync import TriggerResponse
from sync_api.services.sync import receive_webhook

router = APIRouter(prefix="/v1/merchants/{merchant_id}/sync", tags=["webhooks"])


@router.post("/webhook", response_model=TriggerResponse)
async def webhook(
    merchant_id: str,
    request: Request,
    x_signature_256: str | None = Header(default=None),
    x_webhook_event: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> TriggerResponse:
    # Signature is computed over the exact bytes received.
    body = await request.body()
    return await run_in_threadpool(receive_webhook, db, merchant_id, body, x_signature_256, x_webhook_event)

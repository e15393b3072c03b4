import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_pipeline
from app.api.schemas.webhooks import WebhookAck
from app.core.errors import WebhookSignatureError
from app.services.crm_sync import WebhookSyncPipeline

logger = logging.getLogger("uvicorn.error")

router = APIRouter()


@router.post("/api/stripe/webhook", response_model=WebhookAck, response_model_exclude_none=True)
async def api_stripe_webhook(request: Request, pipeline: WebhookSyncPipeline = Depends(get_pipeline)):
    # raw bytes: the signature covers the exact body
    payload_bytes = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        event = pipeline.provider.construct_event(payload_bytes, signature)
    except WebhookSignatureError as e:
        logger.error("[webhook] signature verification failed: %s", e)
        return JSONResponse(status_code=400, content={"received": False, "error": str(e)})

    try:
        result = await pipeline.process(event)
    except Exception:
        logger.exception("[webhook] handler error: id=%s type=%s", event.event_id, event.event_type)
        return JSONResponse(status_code=500, content={"received": False})

    logger.info(
        "[webhook] processed: id=%s type=%s outcome=%s email=%s",
        event.event_id,
        event.event_type,
        result.outcome.value,
        result.email,
    )
    return WebhookAck(received=True)

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from chatcommerce.core.config import META_WA_VERIFY_TOKEN
from chatcommerce.deps import get_conversation_service
from chatcommerce.schemas.events import InboundEvent
from chatcommerce.services.conversation import ConversationService
from chatcommerce.whatsapp.cloud_provider import parse_cloud_webhook

router = APIRouter(tags=["webhook"])
logger = logging.getLogger(__name__)


@router.get("/webhook")
async def verify_webhook(request: Request):
    qp = request.query_params
    mode = qp.get("hub.mode")
    token = qp.get("hub.verify_token")
    challenge = qp.get("hub.challenge")

    if mode == "subscribe" and META_WA_VERIFY_TOKEN and token == META_WA_VERIFY_TOKEN:
        return PlainTextResponse(challenge or "")

    raise HTTPException(status_code=403, detail="Invalid verify token")


@router.post("/webhook")
async def whatsapp_webhook(
    request: Request,
    service: ConversationService = Depends(get_conversation_service),
):
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("webhook body is not valid json")
        return {"status": "ignored"}

    messages = parse_cloud_webhook(payload if isinstance(payload, dict) else {})
    if not messages:
        return {"status": "ignored"}

    results = []
    redeliver = False
    for extracted in messages:
        try:
            event = InboundEvent.from_webhook_message(extracted)
        except ValidationError:
            logger.warning("webhook message discarded message_id=%s", extracted.get("message_id"))
            continue
        # handle_event bloqueia (banco, httpx, backoff): fora do event loop
        outcome = await run_in_threadpool(service.handle_event, event)
        redeliver = redeliver or outcome.should_redeliver
        results.append({"delivery_id": event.delivery_id, "status": outcome.status, "step": outcome.step})

    if redeliver:
        # a Cloud API reenvia o webhook em respostas não-2xx
        return JSONResponse(status_code=503, content={"status": "retry", "results": results})
    if len(results) == 1:
        return results[0]
    return {"status": "ok", "results": results}

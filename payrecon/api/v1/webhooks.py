import logging
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from payrecon.services.webhook_service import process_delivery

router = APIRouter()
log = logging.getLogger("payrecon.webhook")


@router.post("/{provider}", response_class=PlainTextResponse)
async def receive_webhook(provider: str, request: Request):
    """
    Provider delivery endpoint. The body is read raw so the signature is checked
    over the exact bytes sent. 200 tells the provider to stop retrying; 500 asks
    it to redeliver.
    """
    raw_body = await request.body()
    outcome = await process_delivery(provider.lower(), raw_body, request.headers)
    if outcome.status_code >= 400:
        log.warning(f"Webhook from {provider} answered {outcome.status_code}: {outcome.message}")
    return PlainTextResponse(outcome.message, status_code=outcome.status_code)

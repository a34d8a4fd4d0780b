"""Provider webhook intake routed through the idempotency ledger."""

import json
import logging
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from api.deps import get_handler_registry, get_ledger
from api.models.webhook import (
    PROVIDER_MODELS,
    LedgerStatsResponse,
    ProviderStats,
    WebhookResponse,
)
from cascade.errors import DuplicateEvent, StoreError
from cascade.ledger import (
    HandlerRegistry,
    IdempotencyLedger,
    process_with_idempotency,
    skip_event,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_payload(request: Request) -> dict[str, Any]:
    """JSON body, or form-encoded body (Twilio status callbacks)."""
    body = await request.body()
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/x-www-form-urlencoded"):
        return dict(parse_qsl(body.decode("utf-8")))

    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")
    return payload


@router.get("/stats", response_model=LedgerStatsResponse)
async def get_webhook_stats(
    provider: str | None = None,
    hours: int = Query(default=24, ge=1, le=24 * 30),
    ledger: IdempotencyLedger = Depends(get_ledger),
) -> LedgerStatsResponse:
    """Per-provider ledger statistics for the last `hours`."""
    try:
        stats = await ledger.get_stats(provider=provider, hours=hours)
    except StoreError as e:
        logger.error(f"Failed to load webhook stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load webhook stats") from e

    return LedgerStatsResponse(
        hours=hours,
        providers=[ProviderStats(**vars(s)) for s in stats],
    )


@router.post("/{provider}", response_model=WebhookResponse)
async def receive_webhook(
    provider: str,
    request: Request,
    ledger: IdempotencyLedger = Depends(get_ledger),
    registry: HandlerRegistry = Depends(get_handler_registry),
) -> WebhookResponse:
    """
    Receive a provider webhook and process it at most once.

    Returns:
        200 {"status": "processed" | "duplicate" | "skipped"}

    Raises:
        HTTPException: 404 unknown provider, 400 missing event id/type,
            500 handler or store failure (the provider will redeliver)
    """
    model = PROVIDER_MODELS.get(provider)
    if model is None:
        raise HTTPException(status_code=404, detail=f"Unknown webhook provider: {provider}")

    payload = await _read_payload(request)
    try:
        event = model.model_validate(payload)
    except ValidationError as e:
        logger.warning(
            f"Rejected {provider} webhook without event id/type",
            extra={"provider": provider, "request_path": request.url.path},
        )
        raise HTTPException(status_code=400, detail="Missing event id or event type") from e

    log_extra = {
        "provider": provider,
        "external_event_id": event.event_id,
        "event_type": event.event_type,
        "request_path": request.url.path,
    }
    handler = registry.get(provider, event.event_type)

    try:
        if handler is None:
            outcome = await skip_event(
                ledger, provider, event.event_id, event.event_type, payload
            )
            status = "skipped"
        else:
            outcome = await process_with_idempotency(
                ledger, provider, event.event_id, event.event_type, payload, handler
            )
            status = "processed"
    except DuplicateEvent as e:
        logger.info(f"Duplicate webhook acknowledged: {e}", extra=log_extra)
        return WebhookResponse(status="duplicate")
    except Exception as e:
        logger.error(f"Webhook processing failed: {e}", extra=log_extra, exc_info=True)
        raise HTTPException(status_code=500, detail="Webhook processing failed") from e

    return WebhookResponse(status=status, ledger_id=str(outcome.ledger_id))

# app/routes/webhooks.py
"""
Shopify webhook endpoints.

Each route verifies the HMAC signature over the raw body, validates the
payload, schedules the sync as a background task and answers 200 straight
away. Failures after that point are logged only: a non-2xx answer would make
Shopify redeliver the event and multiply the duplicate processing.
"""

import json
import logging
from typing import Awaitable, Callable, Optional, Type, TypeVar

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings, get_settings
from app.core.enums import SyncStatus, WebhookTopic
from app.core.exceptions import WebhookPayloadError
from app.core.security import verify_shopify_webhook
from app.dependencies import get_sync_service
from app.schemas.inventory import SyncOutcome
from app.schemas.webhooks import InventoryLevelWebhook, OrderWebhook
from app.services.inventory_sync import InventorySyncService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


async def verify_webhook_signature(
    request: Request,
    x_shopify_hmac_sha256: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings)
) -> bytes:
    """Verify the webhook signature and hand the raw body to the route"""
    body = await request.body()
    if not verify_shopify_webhook(body, x_shopify_hmac_sha256, settings.WEBHOOK_SECRET):
        logger.warning(f"Webhook verification failed for {request.url.path}")
        raise HTTPException(status_code=401, detail="Webhook verification failed")
    return body


def parse_payload(body: bytes, schema: Type[PayloadT]) -> PayloadT:
    """Decode the raw body and validate it against ``schema``."""
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, ValueError):
        raise WebhookPayloadError("Body is not valid JSON")
    if not isinstance(data, dict):
        raise WebhookPayloadError("Body must be a JSON object")
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in e.errors())
        raise WebhookPayloadError(f"Invalid payload fields: {fields}")


async def run_sync_in_background(
    topic: WebhookTopic,
    handler: Callable[[PayloadT], Awaitable[SyncOutcome]],
    payload: PayloadT,
):
    """Run a sync handler after the response is sent; errors end here"""
    try:
        outcome = await handler(payload)
        message = (
            f"{topic.value} webhook processed: {outcome.status.value}"
            f" (sku={outcome.sku}, updated={outcome.updated}) {outcome.detail}".rstrip()
        )
        if outcome.status == SyncStatus.FAILED:
            logger.error(message)
        elif outcome.status == SyncStatus.TIMED_OUT:
            logger.warning(f"{message}; stopped early after {outcome.updated} changes")
        elif outcome.status.is_noop and not outcome.updated:
            logger.info(f"{message}; no changes made")
        else:
            logger.info(message)
    except Exception as e:
        logger.error(f"Error processing {topic.value} webhook: {e}", exc_info=True)


def _accept(
    topic: WebhookTopic,
    body: bytes,
    schema: Type[PayloadT],
    handler: Callable[[PayloadT], Awaitable[SyncOutcome]],
    background_tasks: BackgroundTasks,
) -> dict:
    try:
        payload = parse_payload(body, schema)
    except WebhookPayloadError as e:
        logger.warning(f"Rejected {topic.value} webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Incoming {topic.value} webhook: {payload.model_dump()}")

    try:
        background_tasks.add_task(run_sync_in_background, topic, handler, payload)
    except Exception as e:
        logger.error(f"Error scheduling {topic.value} webhook: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

    return {"status": "accepted"}


@router.post("/inventory_levels/update")
async def inventory_levels_update_webhook(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verify_webhook_signature),
    service: InventorySyncService = Depends(get_sync_service)
):
    """Copy a changed available quantity to every variant sharing the SKU"""
    return _accept(
        WebhookTopic.INVENTORY_LEVELS_UPDATE,
        body,
        InventoryLevelWebhook,
        service.handle_inventory_level_update,
        background_tasks,
    )


@router.post("/orders/create")
async def orders_create_webhook(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verify_webhook_signature),
    service: InventorySyncService = Depends(get_sync_service)
):
    """Decrement every variant sharing an ordered SKU"""
    return _accept(
        WebhookTopic.ORDERS_CREATE,
        body,
        OrderWebhook,
        service.handle_order_created,
        background_tasks,
    )


@router.post("/orders/cancelled")
async def orders_cancelled_webhook(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verify_webhook_signature),
    service: InventorySyncService = Depends(get_sync_service)
):
    """Restore stock on every variant sharing a cancelled or returned SKU"""
    return _accept(
        WebhookTopic.ORDERS_CANCELLED,
        body,
        OrderWebhook,
        service.handle_order_cancelled,
        background_tasks,
    )

from typing import List
from fastapi import APIRouter, Depends, Response, status

from norruva.core.dependencies import get_api_key_service, get_current_user, get_webhook_service
from norruva.db.schema import User, Webhook
from norruva.models.developer import (
    ApiKeyCreate,
    ApiKeyCreated,
    ApiKeyRead,
    ApiKeyUpdate,
    WebhookCreate,
    WebhookUpdate,
)
from norruva.services.api_key import ApiKeyService
from norruva.services.webhook import WebhookService

api_keys_router = APIRouter()
webhooks_router = APIRouter()


# ==========================================================================
# API KEYS
# ==========================================================================

@api_keys_router.get("/", response_model=List[ApiKeyRead], summary="List API Keys")
def list_api_keys(
    current_user: User = Depends(get_current_user),
    service: ApiKeyService = Depends(get_api_key_service)
):
    return service.list_keys(current_user)


@api_keys_router.post(
    "/",
    response_model=ApiKeyCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create API Key"
)
def create_api_key(
    payload: ApiKeyCreate,
    current_user: User = Depends(get_current_user),
    service: ApiKeyService = Depends(get_api_key_service)
):
    """The raw token is in this response only. It cannot be retrieved again."""
    key, raw_token = service.create_key(current_user, payload)
    return ApiKeyCreated(key=ApiKeyRead.model_validate(key), raw_token=raw_token)


@api_keys_router.patch("/{key_id}", response_model=ApiKeyRead, summary="Update API Key")
def update_api_key(
    key_id: str,
    payload: ApiKeyUpdate,
    current_user: User = Depends(get_current_user),
    service: ApiKeyService = Depends(get_api_key_service)
):
    return service.update_key(current_user, key_id, payload)


@api_keys_router.post("/{key_id}/revoke", response_model=ApiKeyRead, summary="Revoke API Key")
def revoke_api_key(
    key_id: str,
    current_user: User = Depends(get_current_user),
    service: ApiKeyService = Depends(get_api_key_service)
):
    return service.revoke_key(current_user, key_id)


@api_keys_router.delete("/{key_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete API Key")
def delete_api_key(
    key_id: str,
    current_user: User = Depends(get_current_user),
    service: ApiKeyService = Depends(get_api_key_service)
):
    service.delete_key(current_user, key_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ==========================================================================
# WEBHOOKS
# ==========================================================================

@webhooks_router.get("/", response_model=List[Webhook], summary="List Webhooks")
def list_webhooks(
    current_user: User = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    return service.list_webhooks(current_user)


@webhooks_router.post("/", response_model=Webhook, status_code=status.HTTP_201_CREATED, summary="Create Webhook")
def create_webhook(
    payload: WebhookCreate,
    current_user: User = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    return service.create_webhook(current_user, payload)


@webhooks_router.patch("/{webhook_id}", response_model=Webhook, summary="Update Webhook")
def update_webhook(
    webhook_id: str,
    payload: WebhookUpdate,
    current_user: User = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    return service.update_webhook(current_user, webhook_id, payload)


@webhooks_router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete Webhook")
def delete_webhook(
    webhook_id: str,
    current_user: User = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    service.delete_webhook(current_user, webhook_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@webhooks_router.post(
    "/replay/{log_id}",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Replay Failed Delivery"
)
async def replay_webhook(
    log_id: str,
    current_user: User = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Re-sends the exact body stored with a `webhook.delivery.failure` audit entry."""
    service.replay_webhook(current_user, log_id)
    return {"status": "replay scheduled", "log_id": log_id}

import json
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from norruva.core.audit import SYSTEM_ACTOR, AuditLogger
from norruva.core.config import settings
from norruva.core.exceptions import NotFound, ValidationFailed
from norruva.core.permissions import Action, check_permission, can
from norruva.core.tasks import BackgroundTaskRunner
from norruva.db.schema import Product, User, Webhook, WebhookStatus, utcnow
from norruva.db.store import EntityStore
from norruva.models.developer import WebhookCreate, WebhookUpdate
from norruva.models.product import ProductRead
from norruva.utils.hashing import sign_payload

USER_AGENT = "Norruva-Webhook/1.0"
DELIVERY_FAILURE = "webhook.delivery.failure"


def build_event_body(event: str, product: Product) -> str:
    return json.dumps({
        "event": event,
        "created_at": utcnow().isoformat(),
        "payload": ProductRead.model_validate(product).model_dump(mode="json"),
    })


class WebhookDispatcher:
    """
    Performs the HTTP POST of one event to one subscriber.
    Never raises: every outcome ends up in the audit log, and failures
    keep the serialized body so they can be replayed.
    """

    def __init__(self, audit: AuditLogger, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.audit = audit
        self.transport = transport

    def _headers(self, event: str, body: str) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "X-Norruva-Event": event,
        }
        if settings.webhook_signing_enabled:
            headers["X-Norruva-Signature"] = sign_payload(settings.secret_key, body)
        return headers

    async def deliver(self, webhook: Webhook, event: str, body: str) -> bool:
        logger.info(f"Sending webhook '{event}' to {webhook.url}")
        error: Optional[str] = None
        status_code: Optional[int] = None

        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=settings.webhook_timeout_seconds,
            ) as client:
                response = await client.post(webhook.url, content=body, headers=self._headers(event, body))
            status_code = response.status_code
            if response.is_error:
                error = f"HTTP {response.status_code}"
        except Exception as e:
            error = f"{type(e).__name__}: {e}"

        if error:
            logger.error(f"Webhook delivery to {webhook.url} failed: {error}")
            self.audit.log_event(
                DELIVERY_FAILURE,
                webhook.id,
                {"url": webhook.url, "event": event, "status_code": status_code, "error": error, "payload": body},
                SYSTEM_ACTOR,
            )
            return False

        self.audit.log_event(
            "webhook.delivery.success",
            webhook.id,
            {"url": webhook.url, "event": event, "status_code": status_code},
            SYSTEM_ACTOR,
        )
        return True


class WebhookService:
    """Subscription management (owner-only) and event fan-out."""

    def __init__(
        self,
        store: EntityStore,
        audit: AuditLogger,
        runner: BackgroundTaskRunner,
        dispatcher: WebhookDispatcher,
    ):
        self.store = store
        self.audit = audit
        self.runner = runner
        self.dispatcher = dispatcher

    # --- Subscriptions ---

    def list_webhooks(self, user: User) -> List[Webhook]:
        if not can(user, Action.DEVELOPER_MANAGE_API):
            return []
        return self.store.webhooks.list(lambda wh: wh.user_id == user.id)

    def get_webhook(self, user: User, webhook_id: str) -> Webhook:
        check_permission(user, Action.DEVELOPER_MANAGE_API)
        webhook = self.store.webhooks.get(webhook_id)
        if not webhook or webhook.user_id != user.id:
            raise NotFound("Webhook not found.")
        return webhook

    def create_webhook(self, user: User, data: WebhookCreate) -> Webhook:
        check_permission(user, Action.DEVELOPER_MANAGE_API)

        webhook = Webhook(user_id=user.id, url=str(data.url), events=data.events, status=data.status)
        self.store.webhooks.add(webhook)

        self.audit.log_event("webhook.created", webhook.id, {"url": webhook.url}, user.id)
        return webhook

    def update_webhook(self, user: User, webhook_id: str, data: WebhookUpdate) -> Webhook:
        webhook = self.get_webhook(user, webhook_id)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for key in changes:
            value = getattr(data, key)
            setattr(webhook, key, str(value) if key == "url" else value)
        self.store.webhooks.save(webhook)

        self.audit.log_event("webhook.updated", webhook.id, {"changes": sorted(changes.keys())}, user.id)
        return webhook

    def delete_webhook(self, user: User, webhook_id: str) -> None:
        webhook = self.get_webhook(user, webhook_id)
        self.store.webhooks.delete(webhook.id)
        self.audit.log_event("webhook.deleted", webhook.id, {}, user.id)

    # --- Delivery ---

    def subscribers(self, event: str) -> List[Webhook]:
        return self.store.webhooks.list(
            lambda wh: wh.status == WebhookStatus.ACTIVE and event in wh.events
        )

    def publish(self, event: str, product: Product) -> int:
        """Spawns one detached delivery per active subscriber. Returns how many."""
        targets = self.subscribers(event)
        if not targets:
            return 0

        logger.info(f"Found {len(targets)} webhook(s) for {event} event")
        body = build_event_body(event, product)
        for webhook in targets:
            self.runner.spawn(
                lambda webhook=webhook: self.dispatcher.deliver(webhook, event, body),
                name=f"webhook:{webhook.id}:{event}",
            )
        return len(targets)

    def replay_webhook(self, user: User, log_id: str) -> None:
        check_permission(user, Action.DEVELOPER_MANAGE_API)

        log = self.audit.get_log(log_id)
        if not log or log.action != DELIVERY_FAILURE:
            raise NotFound("Log not found or not a failed delivery.")

        webhook = self.store.webhooks.get(log.entity_id)
        body = log.details.get("payload")
        if not webhook or webhook.user_id != user.id:
            raise NotFound("Could not find the original webhook for replay.")
        if not body:
            raise ValidationFailed("The failed delivery carries no payload to replay.")

        event = log.details.get("event", "")
        self.runner.spawn(
            lambda: self.dispatcher.deliver(webhook, event, body),
            name=f"webhook-replay:{webhook.id}",
        )
        self.audit.log_event("webhook.replay.initiated", webhook.id, {"original_log_id": log_id}, user.id)

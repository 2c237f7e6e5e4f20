from __future__ import annotations

import json

import httpx
import pytest

from norruva.core.config import settings
from norruva.core.dependencies import ServiceContainer
from norruva.core.exceptions import NotFound, PermissionDenied, ValidationFailed
from norruva.db.schema import User, WebhookStatus
from norruva.db.store import EntityStore
from norruva.models.developer import WebhookCreate, WebhookUpdate
from norruva.utils.hashing import sign_payload

HOOK_URL = "https://hooks.example.com/norruva"


class Receiver:
    """Records requests and answers with a configurable status."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)


def _container(store: EntityStore, receiver: Receiver) -> ServiceContainer:
    return ServiceContainer(store=store, webhook_transport=httpx.MockTransport(receiver))


async def _publish_pp003(container: ServiceContainer, auditor: User) -> None:
    await container.workflow.approve_passport(auditor, "pp-003")
    await container.runner.drain()


class TestSubscriptions:

    def test_create_and_list(self, container: ServiceContainer, developer: User) -> None:
        webhook = container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"])
        )

        assert webhook.url.startswith("https://hooks.example.com")
        assert container.webhooks.list_webhooks(developer) == [webhook]
        assert container.audit.get_logs_for_entity(webhook.id)[0].action == "webhook.created"

    def test_requires_developer_role(self, container: ServiceContainer, supplier: User) -> None:
        with pytest.raises(PermissionDenied):
            container.webhooks.create_webhook(supplier, WebhookCreate(url=HOOK_URL, events=["product.published"]))
        assert container.webhooks.list_webhooks(supplier) == []

    def test_owner_only(self, container: ServiceContainer, developer: User, admin: User) -> None:
        webhook = container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"])
        )
        with pytest.raises(NotFound):
            container.webhooks.update_webhook(admin, webhook.id, WebhookUpdate(status=WebhookStatus.INACTIVE))

    def test_delete(self, container: ServiceContainer, developer: User) -> None:
        webhook = container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"])
        )
        container.webhooks.delete_webhook(developer, webhook.id)

        assert container.webhooks.list_webhooks(developer) == []


class TestDelivery:

    async def test_signed_delivery_on_publish(self, store: EntityStore, developer: User, auditor: User) -> None:
        receiver = Receiver()
        container = _container(store, receiver)
        webhook = container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"])
        )

        await _publish_pp003(container, auditor)

        assert len(receiver.requests) == 1
        request = receiver.requests[0]
        body = request.content.decode("utf-8")
        assert request.headers["X-Norruva-Event"] == "product.published"
        assert request.headers["X-Norruva-Signature"] == sign_payload(settings.secret_key, body)
        assert json.loads(body)["payload"]["id"] == "pp-003"

        logs = container.store.audit_logs.list(entity_id=webhook.id, action="webhook.delivery.success")
        assert len(logs) == 1

    async def test_inactive_and_unsubscribed_skipped(
        self, store: EntityStore, developer: User, auditor: User
    ) -> None:
        receiver = Receiver()
        container = _container(store, receiver)
        container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"], status=WebhookStatus.INACTIVE)
        )
        container.webhooks.create_webhook(developer, WebhookCreate(url=HOOK_URL, events=["product.archived"]))

        await _publish_pp003(container, auditor)

        assert receiver.requests == []

    async def test_failure_is_logged_with_payload(self, store: EntityStore, developer: User, auditor: User) -> None:
        receiver = Receiver(status_code=500)
        container = _container(store, receiver)
        webhook = container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"])
        )

        await _publish_pp003(container, auditor)

        # The passport is published regardless of the subscriber
        assert container.store.products.get("pp-003").is_minting is False
        failure = container.store.audit_logs.list(entity_id=webhook.id, action="webhook.delivery.failure")[0]
        assert failure.user_id == "system"
        assert failure.details["status_code"] == 500
        assert json.loads(failure.details["payload"])["event"] == "product.published"


class TestReplay:

    async def test_replay_resends_original_body(
        self, store: EntityStore, developer: User, auditor: User
    ) -> None:
        receiver = Receiver(status_code=503)
        container = _container(store, receiver)
        webhook = container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"])
        )
        await _publish_pp003(container, auditor)
        failure = container.store.audit_logs.list(action="webhook.delivery.failure")[0]

        receiver.status_code = 200
        container.webhooks.replay_webhook(developer, failure.id)
        await container.runner.drain()

        assert len(receiver.requests) == 2
        assert receiver.requests[1].content == receiver.requests[0].content
        actions = [log.action for log in container.store.audit_logs.list(entity_id=webhook.id)]
        assert actions[-2:] == ["webhook.replay.initiated", "webhook.delivery.success"]

    def test_replay_unknown_log(self, container: ServiceContainer, developer: User) -> None:
        with pytest.raises(NotFound):
            container.webhooks.replay_webhook(developer, "log-missing")

    def test_replay_of_non_failure_log(self, container: ServiceContainer, developer: User) -> None:
        log = container.audit.log_event("webhook.delivery.success", "wh-1")
        with pytest.raises(NotFound):
            container.webhooks.replay_webhook(developer, log.id)

    def test_replay_without_payload(self, container: ServiceContainer, developer: User) -> None:
        webhook = container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"])
        )
        log = container.audit.log_event("webhook.delivery.failure", webhook.id, {"event": "product.published"})

        with pytest.raises(ValidationFailed):
            container.webhooks.replay_webhook(developer, log.id)

    def test_replay_of_foreign_webhook(self, container: ServiceContainer, developer: User, admin: User) -> None:
        webhook = container.webhooks.create_webhook(
            developer, WebhookCreate(url=HOOK_URL, events=["product.published"])
        )
        log = container.audit.log_event("webhook.delivery.failure", webhook.id, {"payload": "{}"})

        with pytest.raises(NotFound):
            container.webhooks.replay_webhook(admin, log.id)

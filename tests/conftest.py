from __future__ import annotations

import os
from collections.abc import AsyncIterator
from typing import Any, Dict, List

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["LOG_FILE"] = ""
os.environ["SEED_DEMO_DATA"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient

from norruva.core.dependencies import ServiceContainer
from norruva.core.exceptions import OracleFailure
from norruva.db.schema import DataQualityWarning, Product, User
from norruva.db.seed import seed_demo_data
from norruva.db.store import EntityStore
from norruva.main import create_app
from norruva.services.oracles.anchoring import AnchoringOracle, AnchorResult
from norruva.services.oracles.scoring import ScoringOracle, ScoringResult

from tests.utils import complete_product_payload


class FailingScoringOracle(ScoringOracle):
    """Every call blows up, like an AI provider outage."""

    async def score_product(self, product: Product) -> ScoringResult:
        raise OracleFailure("scoring provider unavailable")

    async def validate_data(self, product: Product) -> List[DataQualityWarning]:
        raise OracleFailure("scoring provider unavailable")

    async def predict_lifecycle(self, product: Product) -> Dict[str, Any]:
        raise OracleFailure("scoring provider unavailable")


class FailingAnchoringOracle(AnchoringOracle):
    async def anchor(self, product_id: str, data_hash: str) -> AnchorResult:
        raise OracleFailure("ledger node unreachable")


@pytest.fixture()
def store() -> EntityStore:
    return seed_demo_data(EntityStore())


@pytest.fixture()
def container(store: EntityStore) -> ServiceContainer:
    return ServiceContainer(store=store)


@pytest.fixture()
def failing_container(store: EntityStore) -> ServiceContainer:
    return ServiceContainer(
        store=store,
        scorer=FailingScoringOracle(),
        anchoring=FailingAnchoringOracle(),
    )


def _user(store: EntityStore, user_id: str) -> User:
    user = store.users.get(user_id)
    assert user is not None
    return user


@pytest.fixture()
def admin(store: EntityStore) -> User:
    return _user(store, "user-admin")


@pytest.fixture()
def supplier(store: EntityStore) -> User:
    """Supplier at GreenTech (owner of pp-001 and pp-002)."""
    return _user(store, "user-supplier")


@pytest.fixture()
def other_supplier(store: EntityStore) -> User:
    """Supplier at EcoTextiles (owner of pp-003)."""
    return _user(store, "user-supplier-2")


@pytest.fixture()
def auditor(store: EntityStore) -> User:
    return _user(store, "user-auditor")


@pytest.fixture()
def compliance_manager(store: EntityStore) -> User:
    return _user(store, "user-compliance")


@pytest.fixture()
def recycler(store: EntityStore) -> User:
    return _user(store, "user-recycler")


@pytest.fixture()
def developer(store: EntityStore) -> User:
    return _user(store, "user-developer")


@pytest.fixture()
def service_provider(store: EntityStore) -> User:
    return _user(store, "user-service")


@pytest.fixture()
def retailer(store: EntityStore) -> User:
    return _user(store, "user-retailer")


@pytest.fixture()
async def draft_product(container: ServiceContainer, supplier: User) -> Product:
    """A freshly created and scored Draft owned by GreenTech."""
    product = await container.products.save_product(supplier, complete_product_payload())
    await container.runner.drain()
    return product


@pytest.fixture()
def api_tokens(container: ServiceContainer) -> Dict[str, str]:
    """Raw bearer token per demo user id."""
    tokens = {}
    for user in container.store.users.list():
        _, raw_token = container.api_keys.issue_key(user, "Test key", ["*"])
        tokens[user.id] = raw_token
    return tokens

@pytest.fixture()
async def async_client(container: ServiceContainer) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to an app that uses the test container."""
    app = create_app(container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

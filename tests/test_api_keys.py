from __future__ import annotations

import pytest

from norruva.core.dependencies import ServiceContainer
from norruva.core.exceptions import AuthenticationRequired, NotFound, PermissionDenied, RateLimitExceeded
from norruva.core.rate_limit import RateLimiter
from norruva.db.schema import ApiKeyStatus, User
from norruva.models.developer import ApiKeyCreate, ApiKeyUpdate
from norruva.services.api_key import TOKEN_PREFIX, mask_token


class TestApiKeys:
    """Only the hash of a key is stored; the raw token is shown once."""

    def test_create_returns_raw_token_once(self, container: ServiceContainer, developer: User) -> None:
        key, raw_token = container.api_keys.create_key(developer, ApiKeyCreate(label="CI"))

        assert raw_token.startswith(TOKEN_PREFIX)
        assert key.token == mask_token(raw_token)
        assert raw_token not in key.token
        assert key.token.endswith(raw_token[-4:])
        assert key.token_hash != raw_token

    def test_authenticate(self, container: ServiceContainer, developer: User) -> None:
        key, raw_token = container.api_keys.create_key(developer, ApiKeyCreate(label="CI"))

        user, resolved = container.api_keys.authenticate(raw_token)

        assert user.id == developer.id
        assert resolved.id == key.id
        assert resolved.last_used is not None

    def test_unknown_token_rejected(self, container: ServiceContainer) -> None:
        with pytest.raises(AuthenticationRequired):
            container.api_keys.authenticate("nor_doesnotexist")

    def test_revoked_token_rejected(self, container: ServiceContainer, developer: User) -> None:
        key, raw_token = container.api_keys.create_key(developer, ApiKeyCreate(label="CI"))
        container.api_keys.revoke_key(developer, key.id)

        assert key.status == ApiKeyStatus.REVOKED
        with pytest.raises(AuthenticationRequired):
            container.api_keys.authenticate(raw_token)

    def test_requires_developer_role(self, container: ServiceContainer, supplier: User) -> None:
        with pytest.raises(PermissionDenied):
            container.api_keys.create_key(supplier, ApiKeyCreate(label="Nope"))
        assert container.api_keys.list_keys(supplier) == []

    def test_owner_only(self, container: ServiceContainer, developer: User, admin: User) -> None:
        key, _ = container.api_keys.create_key(developer, ApiKeyCreate(label="CI"))

        with pytest.raises(NotFound):
            container.api_keys.delete_key(admin, key.id)

    def test_update_and_delete_audited(self, container: ServiceContainer, developer: User) -> None:
        key, _ = container.api_keys.create_key(developer, ApiKeyCreate(label="CI"))
        container.api_keys.update_key(developer, key.id, ApiKeyUpdate(label="Deploy"))
        container.api_keys.delete_key(developer, key.id)

        actions = [log.action for log in container.store.audit_logs.list(entity_id=key.id)]
        assert actions == ["api_key.created", "api_key.updated", "api_key.deleted"]
        assert key.id not in container.store.api_keys


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    """Sliding window per key."""

    def test_blocks_over_limit(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(3, clock=clock)
        for _ in range(3):
            limiter.check("key-1")

        with pytest.raises(RateLimitExceeded) as exc_info:
            limiter.check("key-1")
        assert exc_info.value.retry_after == 60

    def test_window_slides(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(2, clock=clock)
        limiter.check("key-1")
        clock.now += 30
        limiter.check("key-1")

        clock.now += 31
        # The first hit has left the window
        limiter.check("key-1")

        with pytest.raises(RateLimitExceeded) as exc_info:
            limiter.check("key-1")
        assert exc_info.value.retry_after == 29

    def test_keys_are_independent(self) -> None:
        limiter = RateLimiter(1, clock=FakeClock())
        limiter.check("key-1")
        limiter.check("key-2")

    def test_zero_disables(self) -> None:
        limiter = RateLimiter(0, clock=FakeClock())
        for _ in range(100):
            limiter.check("key-1")

    def test_reset(self) -> None:
        limiter = RateLimiter(1, clock=FakeClock())
        limiter.check("key-1")
        limiter.reset("key-1")
        limiter.check("key-1")

import secrets
from typing import List, Tuple

from norruva.core.audit import AuditLogger
from norruva.core.exceptions import AuthenticationRequired, NotFound
from norruva.core.permissions import Action, can, check_permission
from norruva.db.schema import ApiKey, ApiKeyStatus, User, utcnow
from norruva.db.store import EntityStore
from norruva.models.developer import ApiKeyCreate, ApiKeyUpdate
from norruva.utils.hashing import hash_token

TOKEN_PREFIX = "nor_"


def generate_raw_token() -> str:
    return f"{TOKEN_PREFIX}{secrets.token_hex(16)}"


def mask_token(raw_token: str) -> str:
    return f"{TOKEN_PREFIX}{'*' * 18}{raw_token[-4:]}"


class ApiKeyService:
    """
    Developer API keys. Only the SHA-256 of the raw secret is stored;
    the raw token leaves this service once, at creation.
    """

    def __init__(self, store: EntityStore, audit: AuditLogger):
        self.store = store
        self.audit = audit

    def list_keys(self, user: User) -> List[ApiKey]:
        if not can(user, Action.DEVELOPER_MANAGE_API):
            return []
        return self.store.api_keys.list(lambda k: k.user_id == user.id)

    def _get_owned(self, user: User, key_id: str) -> ApiKey:
        key = self.store.api_keys.get(key_id)
        if not key or key.user_id != user.id:
            raise NotFound("API Key not found.")
        return key

    def create_key(self, user: User, data: ApiKeyCreate) -> Tuple[ApiKey, str]:
        check_permission(user, Action.DEVELOPER_MANAGE_API)
        return self.issue_key(user, data.label, data.scopes)

    def issue_key(self, user: User, label: str, scopes: List[str]) -> Tuple[ApiKey, str]:
        raw_token = generate_raw_token()
        key = ApiKey(
            user_id=user.id,
            label=label,
            scopes=scopes,
            token=mask_token(raw_token),
            token_hash=hash_token(raw_token),
        )
        self.store.api_keys.add(key)

        self.audit.log_event("api_key.created", key.id, {"label": key.label}, user.id)
        return key, raw_token

    def update_key(self, user: User, key_id: str, data: ApiKeyUpdate) -> ApiKey:
        check_permission(user, Action.DEVELOPER_MANAGE_API)
        key = self._get_owned(user, key_id)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            setattr(key, field, value)
        self.store.api_keys.save(key)

        self.audit.log_event("api_key.updated", key.id, {"changes": sorted(changes.keys())}, user.id)
        return key

    def revoke_key(self, user: User, key_id: str) -> ApiKey:
        check_permission(user, Action.DEVELOPER_MANAGE_API)
        key = self._get_owned(user, key_id)

        key.status = ApiKeyStatus.REVOKED
        self.store.api_keys.save(key)

        self.audit.log_event("api_key.revoked", key.id, {}, user.id)
        return key

    def delete_key(self, user: User, key_id: str) -> None:
        check_permission(user, Action.DEVELOPER_MANAGE_API)
        key = self._get_owned(user, key_id)

        self.store.api_keys.delete(key.id)
        self.audit.log_event("api_key.deleted", key.id, {}, user.id)

    def authenticate(self, raw_token: str) -> Tuple[User, ApiKey]:
        """Resolves a bearer token to its owner. Unknown or revoked keys fail."""
        key = self.store.api_keys.find_by_hash(hash_token(raw_token))
        if not key or key.status != ApiKeyStatus.ACTIVE:
            raise AuthenticationRequired("Invalid or revoked API key.")

        user = self.store.users.get(key.user_id)
        if not user:
            raise AuthenticationRequired("API key owner no longer exists.")

        key.last_used = utcnow()
        return user, key

from typing import Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from sqlmodel import SQLModel

from norruva.db.schema import (
    ApiKey, AuditLog, Company, CompliancePath, Product, ServiceTicket, User, Webhook, utcnow
)

T = TypeVar("T", bound=SQLModel)


class InMemoryRepository(Generic[T]):
    """
    Authoritative in-memory collection keyed by entity id.
    Entities are stored by reference: callers mutate the returned object
    and hand it back through `save()` so timestamps stay correct.
    """

    def __init__(self, items: Optional[Iterable[T]] = None):
        self._items: Dict[str, T] = {}
        for item in items or []:
            self._items[item.id] = item

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._items

    def get(self, entity_id: str) -> Optional[T]:
        return self._items.get(entity_id)

    def list(self, predicate: Optional[Callable[[T], bool]] = None) -> List[T]:
        items = list(self._items.values())
        if predicate:
            items = [item for item in items if predicate(item)]
        return items

    def add(self, entity: T) -> T:
        if entity.id in self._items:
            raise KeyError(f"Duplicate id '{entity.id}'")
        self._items[entity.id] = entity
        return entity

    def save(self, entity: T) -> T:
        if hasattr(entity, "updated_at"):
            entity.updated_at = utcnow()
        self._items[entity.id] = entity
        return entity

    def delete(self, entity_id: str) -> bool:
        return self._items.pop(entity_id, None) is not None


class ProductRepository(InMemoryRepository[Product]):

    def find_by_gtin(self, gtin: str) -> Optional[Product]:
        for product in self._items.values():
            if product.gtin == gtin:
                return product
        return None

    def list_for_company(self, company_id: str) -> List[Product]:
        return self.list(lambda p: p.company_id == company_id)


class UserRepository(InMemoryRepository[User]):

    def list_for_company(self, company_id: str) -> List[User]:
        return self.list(lambda u: u.company_id == company_id)

    def find_by_email(self, email: str) -> Optional[User]:
        email = email.lower()
        for user in self._items.values():
            if user.email.lower() == email:
                return user
        return None


class ApiKeyRepository(InMemoryRepository[ApiKey]):

    def find_by_hash(self, token_hash: str) -> Optional[ApiKey]:
        for key in self._items.values():
            if key.token_hash == token_hash:
                return key
        return None


class AuditLogRepository:
    """
    Append-only log. There is no update or delete path and every read
    returns copies, so no caller can alter a stored entry.
    """

    def __init__(self):
        self._entries: List[AuditLog] = []
        self._index: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: AuditLog) -> AuditLog:
        if entry.id in self._index:
            raise KeyError(f"Duplicate audit log id '{entry.id}'")
        stored = entry.model_copy(deep=True)
        self._index[stored.id] = len(self._entries)
        self._entries.append(stored)
        return stored.model_copy(deep=True)

    def get(self, log_id: str) -> Optional[AuditLog]:
        position = self._index.get(log_id)
        if position is None:
            return None
        return self._entries[position].model_copy(deep=True)

    def list(
        self,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[AuditLog]:
        """Entries in insertion (chronological) order."""
        results = []
        for entry in self._entries:
            if entity_id and entry.entity_id != entity_id:
                continue
            if action and entry.action != action:
                continue
            if user_id and entry.user_id != user_id:
                continue
            results.append(entry.model_copy(deep=True))
        return results


class EntityStore:
    """
    Bundle of repositories handed to every service.
    A fresh instance is the whole state of the application.
    """

    def __init__(self):
        self.companies: InMemoryRepository[Company] = InMemoryRepository()
        self.users = UserRepository()
        self.products = ProductRepository()
        self.compliance_paths: InMemoryRepository[CompliancePath] = InMemoryRepository()
        self.audit_logs = AuditLogRepository()
        self.api_keys = ApiKeyRepository()
        self.webhooks: InMemoryRepository[Webhook] = InMemoryRepository()
        self.service_tickets: InMemoryRepository[ServiceTicket] = InMemoryRepository()

from typing import List, Optional

from norruva.core.audit import AuditLogger
from norruva.core.exceptions import NotFound
from norruva.core.permissions import Action, check_permission
from norruva.db.schema import CompliancePath, User
from norruva.db.store import EntityStore
from norruva.models.compliance import CompliancePathCreate, CompliancePathUpdate


class CompliancePathService:
    """Rule sets products are evaluated against. Readable by anyone signed in."""

    def __init__(self, store: EntityStore, audit: AuditLogger):
        self.store = store
        self.audit = audit

    def list_paths(self, category: Optional[str] = None) -> List[CompliancePath]:
        paths = self.store.compliance_paths.list()
        if category:
            paths = [p for p in paths if p.category == category]
        return sorted(paths, key=lambda p: p.name)

    def get_path(self, path_id: str) -> CompliancePath:
        path = self.store.compliance_paths.get(path_id)
        if not path:
            raise NotFound("Compliance path not found.")
        return path

    def create_path(self, user: User, data: CompliancePathCreate) -> CompliancePath:
        check_permission(user, Action.COMPLIANCE_MANAGE)

        path = CompliancePath(**data.model_dump())
        self.store.compliance_paths.add(path)

        self.audit.log_event("compliance_path.created", path.id, {"name": path.name}, user.id)
        return path

    def update_path(self, user: User, path_id: str, data: CompliancePathUpdate) -> CompliancePath:
        path = self.get_path(path_id)
        check_permission(user, Action.COMPLIANCE_MANAGE, path)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field in changes:
            setattr(path, field, getattr(data, field))
        self.store.compliance_paths.save(path)

        self.audit.log_event("compliance_path.updated", path.id, {"changes": sorted(changes.keys())}, user.id)
        return path

    def delete_path(self, user: User, path_id: str) -> None:
        path = self.get_path(path_id)
        check_permission(user, Action.COMPLIANCE_MANAGE, path)

        self.store.compliance_paths.delete(path.id)
        self.audit.log_event("compliance_path.deleted", path.id, {"name": path.name}, user.id)

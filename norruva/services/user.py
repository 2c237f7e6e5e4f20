from typing import List

from norruva.core.audit import AuditLogger
from norruva.core.exceptions import NotFound, ValidationFailed
from norruva.core.permissions import Action, check_permission
from norruva.db.schema import User
from norruva.db.store import EntityStore
from norruva.models.user import UserCreate, UserProfileUpdate, UserUpdate


class UserService:
    def __init__(self, store: EntityStore, audit: AuditLogger):
        self.store = store
        self.audit = audit

    def get_user_by_id(self, user_id: str) -> User:
        user = self.store.users.get(user_id)
        if not user:
            raise NotFound("User not found.")
        return user

    def list_users(self, actor: User) -> List[User]:
        check_permission(actor, Action.USER_MANAGE)
        return sorted(self.store.users.list(), key=lambda u: u.created_at)

    def _ensure_company(self, company_id: str) -> None:
        if company_id not in self.store.companies:
            raise ValidationFailed(
                f"Company {company_id} does not exist.",
                errors=[{"field": "company_id", "message": "Unknown company."}],
            )

    def create_user(self, actor: User, data: UserCreate) -> User:
        check_permission(actor, Action.USER_MANAGE)

        if self.store.users.find_by_email(data.email):
            raise ValidationFailed(
                "Email already registered.",
                errors=[{"field": "email", "message": "Already in use."}],
            )
        self._ensure_company(data.company_id)

        user = User(email=data.email, full_name=data.full_name, company_id=data.company_id, roles=data.roles)
        self.store.users.add(user)

        self.audit.log_event("user.created", user.id, {"email": user.email, "roles": [role.value for role in user.roles]}, actor.id)
        return user

    def update_user(self, actor: User, user_id: str, data: UserUpdate) -> User:
        user = self.get_user_by_id(user_id)
        check_permission(actor, Action.USER_MANAGE, user)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "company_id" in changes:
            self._ensure_company(changes["company_id"])

        for field in changes:
            setattr(user, field, getattr(data, field))
        if "roles" in changes:
            user.roles = list(dict.fromkeys(user.roles))
        self.store.users.save(user)

        self.audit.log_event("user.updated", user.id, {"changes": sorted(changes.keys())}, actor.id)
        return user

    def delete_user(self, actor: User, user_id: str) -> None:
        user = self.get_user_by_id(user_id)
        check_permission(actor, Action.USER_MANAGE, user)

        self.store.users.delete(user.id)
        self.audit.log_event("user.deleted", user.id, {"email": user.email}, actor.id)

    def update_profile(self, actor: User, user_id: str, data: UserProfileUpdate) -> User:
        """Self-service edit; `user:edit` only passes for the actor's own record."""
        user = self.get_user_by_id(user_id)
        check_permission(actor, Action.USER_EDIT, user)

        user.full_name = data.full_name
        self.store.users.save(user)

        self.audit.log_event("user.profile.updated", user.id, {"changes": ["full_name"]}, actor.id)
        return user

from typing import List

from norruva.core.audit import AuditLogger
from norruva.core.exceptions import NotFound, ResourceInUse
from norruva.core.permissions import Action, check_permission
from norruva.db.schema import Company, User
from norruva.db.store import EntityStore
from norruva.models.company import CompanyCreate, CompanyUpdate


class CompanyService:
    """Tenant records. Any signed-in user may read them; only admins manage them."""

    def __init__(self, store: EntityStore, audit: AuditLogger):
        self.store = store
        self.audit = audit

    def list_companies(self) -> List[Company]:
        return sorted(self.store.companies.list(), key=lambda c: c.name)

    def get_company(self, company_id: str) -> Company:
        company = self.store.companies.get(company_id)
        if not company:
            raise NotFound("Company not found.")
        return company

    def create_company(self, user: User, data: CompanyCreate) -> Company:
        check_permission(user, Action.COMPANY_MANAGE)

        company = Company(**data.model_dump(), owner_id=user.id)
        self.store.companies.add(company)

        self.audit.log_event("company.created", company.id, {"name": company.name}, user.id)
        return company

    def update_company(self, user: User, company_id: str, data: CompanyUpdate) -> Company:
        company = self.get_company(company_id)
        check_permission(user, Action.COMPANY_MANAGE, company)

        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") is None:
            changes.pop("name", None)
        for field, value in changes.items():
            setattr(company, field, value)
        self.store.companies.save(company)

        self.audit.log_event("company.updated", company.id, {"changes": sorted(changes.keys())}, user.id)
        return company

    def delete_company(self, user: User, company_id: str) -> None:
        company = self.get_company(company_id)
        check_permission(user, Action.COMPANY_MANAGE, company)

        # Users and passports carry the company id; removing it would orphan them
        members = self.store.users.list_for_company(company.id)
        products = self.store.products.list_for_company(company.id)
        if members or products:
            raise ResourceInUse(
                f"Company {company.id} still has {len(members)} user(s) and {len(products)} product(s)."
            )

        self.store.companies.delete(company.id)
        self.audit.log_event("company.deleted", company.id, {"name": company.name}, user.id)

from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Optional, Union
from enum import Enum

from norruva.core.exceptions import PermissionDenied
from norruva.db.schema import Product, ProductStatus, Role, User


class Action(str, Enum):
    PRODUCT_CREATE = "product:create"
    PRODUCT_EDIT = "product:edit"
    PRODUCT_DELETE = "product:delete"
    PRODUCT_ARCHIVE = "product:archive"
    PRODUCT_SUBMIT = "product:submit"
    PRODUCT_APPROVE = "product:approve"
    PRODUCT_REJECT = "product:reject"
    PRODUCT_OVERRIDE_VERIFICATION = "product:override_verification"
    PRODUCT_RESOLVE = "product:resolve"
    PRODUCT_RECYCLE = "product:recycle"
    PRODUCT_RECALCULATE = "product:recalculate"
    PRODUCT_VALIDATE_DATA = "product:validate_data"
    PRODUCT_RUN_PREDICTION = "product:run_prediction"
    PRODUCT_RUN_COMPLIANCE = "product:run_compliance"
    PRODUCT_EXPORT_DATA = "product:export_data"
    PRODUCT_ADD_SERVICE_RECORD = "product:add_service_record"
    PRODUCT_CUSTOMS_INSPECT = "product:customs_inspect"
    COMPLIANCE_MANAGE = "compliance:manage"
    AUDIT_VIEW = "audit:view"
    TICKET_MANAGE = "ticket:manage"
    DEVELOPER_MANAGE_API = "developer:manage_api"
    USER_EDIT = "user:edit"
    USER_MANAGE = "user:manage"
    COMPANY_MANAGE = "company:manage"


ActionLike = Union[Action, str]


# Static role table. Admin is intentionally absent: it short-circuits in can().
PERMISSION_MATRIX: Dict[Role, FrozenSet[Action]] = {
    Role.SUPPLIER: frozenset({
        Action.PRODUCT_CREATE,
        Action.PRODUCT_EDIT,
        Action.PRODUCT_DELETE,
        Action.PRODUCT_ARCHIVE,
        Action.PRODUCT_SUBMIT,
        Action.PRODUCT_RECALCULATE,
        Action.PRODUCT_VALIDATE_DATA,
        Action.PRODUCT_RUN_PREDICTION,
        Action.PRODUCT_RUN_COMPLIANCE,
        Action.PRODUCT_EXPORT_DATA,
        Action.USER_EDIT,
    }),
    Role.AUDITOR: frozenset({
        Action.PRODUCT_APPROVE,
        Action.PRODUCT_REJECT,
        Action.PRODUCT_OVERRIDE_VERIFICATION,
        Action.PRODUCT_RUN_COMPLIANCE,
        Action.COMPLIANCE_MANAGE,
        Action.AUDIT_VIEW,
        Action.USER_EDIT,
    }),
    Role.COMPLIANCE_MANAGER: frozenset({
        Action.PRODUCT_ARCHIVE,
        Action.PRODUCT_RESOLVE,
        Action.PRODUCT_RUN_COMPLIANCE,
        Action.COMPLIANCE_MANAGE,
        Action.AUDIT_VIEW,
        Action.USER_EDIT,
    }),
    Role.MANUFACTURER: frozenset({
        Action.PRODUCT_EXPORT_DATA,
        Action.PRODUCT_RUN_PREDICTION,
        Action.USER_EDIT,
    }),
    Role.SERVICE_PROVIDER: frozenset({
        Action.PRODUCT_ADD_SERVICE_RECORD,
        Action.TICKET_MANAGE,
        Action.USER_EDIT,
    }),
    Role.RECYCLER: frozenset({
        Action.PRODUCT_RECYCLE,
        Action.USER_EDIT,
    }),
    Role.DEVELOPER: frozenset({
        Action.DEVELOPER_MANAGE_API,
        Action.PRODUCT_EXPORT_DATA,
        Action.USER_EDIT,
    }),
    Role.RETAILER: frozenset({
        Action.PRODUCT_EXPORT_DATA,
        Action.PRODUCT_CUSTOMS_INSPECT,
        Action.USER_EDIT,
    }),
    Role.BUSINESS_ANALYST: frozenset({
        Action.PRODUCT_EXPORT_DATA,
        Action.PRODUCT_RUN_PREDICTION,
        Action.USER_EDIT,
    }),
}

# Roles that may read every product regardless of owner or status.
GLOBAL_READ_ROLES: FrozenSet[Role] = frozenset({
    Role.ADMIN,
    Role.AUDITOR,
    Role.COMPLIANCE_MANAGER,
    Role.RECYCLER,
    Role.SERVICE_PROVIDER,
    Role.BUSINESS_ANALYST,
    Role.DEVELOPER,
    Role.MANUFACTURER,
    Role.RETAILER,
})


# ==========================================================================
# RESOURCE POLICIES
# ==========================================================================

class ResourcePolicy(ABC):
    """
    Second-tier refinement applied once the role table allows an action.
    A gated action called without a resource is always denied.
    """
    name = "any"

    @abstractmethod
    def allows(self, user: User, resource: Any) -> bool:
        ...


class SameCompany(ResourcePolicy):
    name = "same_company"

    def allows(self, user: User, resource: Any) -> bool:
        return getattr(resource, "company_id", None) == user.company_id


class SameCompanyDraft(SameCompany):
    name = "same_company_draft"

    def allows(self, user: User, resource: Any) -> bool:
        return super().allows(user, resource) and getattr(resource, "status", None) == ProductStatus.DRAFT


class SelfOnly(ResourcePolicy):
    name = "self_only"

    def allows(self, user: User, resource: Any) -> bool:
        return getattr(resource, "id", None) == user.id


_same_company = SameCompany()

RESOURCE_POLICIES: Dict[Action, ResourcePolicy] = {
    Action.PRODUCT_EDIT: _same_company,
    Action.PRODUCT_ARCHIVE: _same_company,
    Action.PRODUCT_RECALCULATE: _same_company,
    Action.PRODUCT_VALIDATE_DATA: _same_company,
    Action.PRODUCT_RUN_PREDICTION: _same_company,
    Action.PRODUCT_DELETE: SameCompanyDraft(),
    Action.USER_EDIT: SelfOnly(),
}


def _normalize(action: ActionLike) -> Optional[Action]:
    try:
        return Action(action)
    except ValueError:
        return None


def allowed_actions(user: User) -> FrozenSet[Action]:
    """Union of the role table over every role the user holds."""
    if Role.ADMIN in user.roles:
        return frozenset(Action)
    granted = set()
    for role in user.roles:
        granted |= PERMISSION_MATRIX.get(role, frozenset())
    return frozenset(granted)


def can(user: Optional[User], action: ActionLike, resource: Any = None) -> bool:
    if user is None:
        return False

    # 1. Super-user escape hatch
    if Role.ADMIN in user.roles:
        return True

    # 2. Role table
    normalized = _normalize(action)
    if normalized is None or normalized not in allowed_actions(user):
        return False

    # 3. Resource refinement
    policy = RESOURCE_POLICIES.get(normalized)
    if policy is None:
        return True
    if resource is None:
        return False
    return policy.allows(user, resource)


def check_permission(user: Optional[User], action: ActionLike, resource: Any = None) -> None:
    """Raises PermissionDenied iff `can` returns False."""
    if not can(user, action, resource):
        label = action.value if isinstance(action, Action) else action
        raise PermissionDenied(f"Permission denied for action '{label}'.")


def has_global_read(user: Optional[User]) -> bool:
    return user is not None and any(role in GLOBAL_READ_ROLES for role in user.roles)


def can_view_product(viewer: Optional[User], product: Product) -> bool:
    """
    Read-path shaping rule shared by every product entry point.
    Guests and foreign companies only see Published passports.
    """
    if product.status == ProductStatus.PUBLISHED:
        return True
    if viewer is None:
        return False
    return viewer.company_id == product.company_id or has_global_read(viewer)

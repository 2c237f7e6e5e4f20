from typing import Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from norruva.core.audit import AuditLogger
from norruva.core.config import settings
from norruva.core.exceptions import AuthenticationRequired
from norruva.core.rate_limit import RateLimiter
from norruva.core.tasks import BackgroundTaskRunner
from norruva.db.schema import User
from norruva.db.store import EntityStore
from norruva.services.api_key import ApiKeyService
from norruva.services.company import CompanyService
from norruva.services.compliance_path import CompliancePathService
from norruva.services.oracles.anchoring import AnchoringOracle, MockAnchoringOracle
from norruva.services.oracles.checklist import ChecklistValidator
from norruva.services.oracles.compliance import ComplianceOracle, RuleBasedComplianceOracle
from norruva.services.oracles.credential import CredentialIssuer, JwsCredentialIssuer
from norruva.services.oracles.scoring import MockScoringOracle, ScoringOracle
from norruva.services.product import ProductService
from norruva.services.service_ticket import ServiceTicketService
from norruva.services.user import UserService
from norruva.services.webhook import WebhookDispatcher, WebhookService
from norruva.services.workflow import WorkflowService

bearer_scheme = HTTPBearer(auto_error=False)


class ServiceContainer:
    """
    Wires the store, the background runner, the oracles and every service.
    Oracles and the webhook transport can be swapped for fakes in tests.
    """

    def __init__(
        self,
        store: Optional[EntityStore] = None,
        scorer: Optional[ScoringOracle] = None,
        anchoring: Optional[AnchoringOracle] = None,
        issuer: Optional[CredentialIssuer] = None,
        compliance: Optional[ComplianceOracle] = None,
        webhook_transport: Optional[httpx.AsyncBaseTransport] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.store = store or EntityStore()
        self.audit = AuditLogger(self.store)
        self.runner = BackgroundTaskRunner()
        self.rate_limiter = rate_limiter or RateLimiter(settings.rate_limit_per_minute)

        self.checklist = ChecklistValidator()
        self.scorer = scorer or MockScoringOracle()
        self.anchoring = anchoring or MockAnchoringOracle()
        self.issuer = issuer or JwsCredentialIssuer()
        self.compliance = compliance or RuleBasedComplianceOracle()

        self.dispatcher = WebhookDispatcher(self.audit, transport=webhook_transport)
        self.webhooks = WebhookService(self.store, self.audit, self.runner, self.dispatcher)
        self.products = ProductService(self.store, self.audit, self.runner, self.scorer, self.checklist)
        self.workflow = WorkflowService(
            self.store,
            self.audit,
            self.runner,
            self.products,
            scorer=self.scorer,
            anchoring=self.anchoring,
            issuer=self.issuer,
            compliance=self.compliance,
            checklist=self.checklist,
            webhooks=self.webhooks,
        )
        self.api_keys = ApiKeyService(self.store, self.audit)
        self.users = UserService(self.store, self.audit)
        self.companies = CompanyService(self.store, self.audit)
        self.compliance_paths = CompliancePathService(self.store, self.audit)
        self.service_tickets = ServiceTicketService(self.store, self.audit)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_product_service(container: ServiceContainer = Depends(get_container)) -> ProductService:
    return container.products


def get_workflow_service(container: ServiceContainer = Depends(get_container)) -> WorkflowService:
    return container.workflow


def get_webhook_service(container: ServiceContainer = Depends(get_container)) -> WebhookService:
    return container.webhooks


def get_api_key_service(container: ServiceContainer = Depends(get_container)) -> ApiKeyService:
    return container.api_keys


def get_user_service(container: ServiceContainer = Depends(get_container)) -> UserService:
    return container.users


def get_company_service(container: ServiceContainer = Depends(get_container)) -> CompanyService:
    return container.companies


def get_compliance_path_service(container: ServiceContainer = Depends(get_container)) -> CompliancePathService:
    return container.compliance_paths


def get_service_ticket_service(container: ServiceContainer = Depends(get_container)) -> ServiceTicketService:
    return container.service_tickets


def get_audit_logger(container: ServiceContainer = Depends(get_container)) -> AuditLogger:
    return container.audit


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container),
) -> Optional[User]:
    """
    Resolves the API key in the Authorization header.
    No header means an anonymous (guest) caller; a bad key is always rejected.
    """
    if credentials is None:
        return None

    # 1. Verify the key
    user, key = container.api_keys.authenticate(credentials.credentials)

    # 2. Apply the per-key sliding window
    container.rate_limiter.check(key.id)

    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """Gatekeeper for mutating routes."""
    if user is None:
        raise AuthenticationRequired()
    return user

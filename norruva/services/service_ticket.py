from typing import List

from norruva.core.audit import AuditLogger
from norruva.core.exceptions import NotFound
from norruva.core.permissions import Action, check_permission
from norruva.db.schema import Role, ServiceTicket, TicketStatus, User
from norruva.db.store import EntityStore
from norruva.models.compliance import ServiceTicketCreate, ServiceTicketUpdate

TICKET_READ_ROLES = (Role.ADMIN, Role.SERVICE_PROVIDER)


class ServiceTicketService:
    def __init__(self, store: EntityStore, audit: AuditLogger):
        self.store = store
        self.audit = audit

    def list_tickets(self, user: User) -> List[ServiceTicket]:
        """Admins and Service Providers see every ticket, other roles none."""
        if not any(user.has_role(role) for role in TICKET_READ_ROLES):
            return []
        return sorted(self.store.service_tickets.list(), key=lambda t: t.created_at, reverse=True)

    def _get(self, ticket_id: str) -> ServiceTicket:
        ticket = self.store.service_tickets.get(ticket_id)
        if not ticket:
            raise NotFound("Ticket not found.")
        return ticket

    def create_ticket(self, user: User, data: ServiceTicketCreate) -> ServiceTicket:
        check_permission(user, Action.TICKET_MANAGE)
        if data.product_id not in self.store.products:
            raise NotFound("Product not found.")

        ticket = ServiceTicket(**data.model_dump(), user_id=user.id)
        self.store.service_tickets.add(ticket)

        self.audit.log_event("ticket.created", ticket.id, {"product_id": ticket.product_id}, user.id)
        return ticket

    def update_ticket(self, user: User, ticket_id: str, data: ServiceTicketUpdate) -> ServiceTicket:
        ticket = self._get(ticket_id)
        check_permission(user, Action.TICKET_MANAGE, ticket)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field in changes:
            setattr(ticket, field, getattr(data, field))
        ticket.user_id = user.id
        self.store.service_tickets.save(ticket)

        self.audit.log_event("ticket.updated", ticket.id, {"changes": sorted(changes.keys())}, user.id)
        return ticket

    def update_status(self, user: User, ticket_id: str, status: TicketStatus) -> ServiceTicket:
        ticket = self._get(ticket_id)
        check_permission(user, Action.TICKET_MANAGE, ticket)

        ticket.status = status
        self.store.service_tickets.save(ticket)

        self.audit.log_event("ticket.status.updated", ticket.id, {"status": status.value}, user.id)
        return ticket

from typing import List
from fastapi import APIRouter, Depends, status

from norruva.core.dependencies import get_current_user, get_service_ticket_service
from norruva.db.schema import ServiceTicket, User
from norruva.models.compliance import ServiceTicketCreate, ServiceTicketStatusUpdate, ServiceTicketUpdate
from norruva.services.service_ticket import ServiceTicketService

router = APIRouter()


@router.get("/", response_model=List[ServiceTicket], summary="List Service Tickets")
def list_tickets(
    current_user: User = Depends(get_current_user),
    service: ServiceTicketService = Depends(get_service_ticket_service)
):
    return service.list_tickets(current_user)


@router.post("/", response_model=ServiceTicket, status_code=status.HTTP_201_CREATED, summary="Open Service Ticket")
def create_ticket(
    payload: ServiceTicketCreate,
    current_user: User = Depends(get_current_user),
    service: ServiceTicketService = Depends(get_service_ticket_service)
):
    return service.create_ticket(current_user, payload)


@router.patch("/{ticket_id}", response_model=ServiceTicket, summary="Update Service Ticket")
def update_ticket(
    ticket_id: str,
    payload: ServiceTicketUpdate,
    current_user: User = Depends(get_current_user),
    service: ServiceTicketService = Depends(get_service_ticket_service)
):
    return service.update_ticket(current_user, ticket_id, payload)


@router.patch("/{ticket_id}/status", response_model=ServiceTicket, summary="Change Ticket Status")
def update_ticket_status(
    ticket_id: str,
    payload: ServiceTicketStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: ServiceTicketService = Depends(get_service_ticket_service)
):
    return service.update_status(current_user, ticket_id, payload.status)

from typing import List
from fastapi import APIRouter, Depends, Response, status

from norruva.core.dependencies import get_company_service, get_current_user
from norruva.db.schema import Company, User
from norruva.models.company import CompanyCreate, CompanyUpdate
from norruva.services.company import CompanyService

router = APIRouter()


@router.get("/", response_model=List[Company], summary="List Companies")
def list_companies(
    current_user: User = Depends(get_current_user),
    service: CompanyService = Depends(get_company_service)
):
    return service.list_companies()


@router.get("/{company_id}", response_model=Company, summary="Get Company")
def get_company(
    company_id: str,
    current_user: User = Depends(get_current_user),
    service: CompanyService = Depends(get_company_service)
):
    return service.get_company(company_id)


@router.post("/", response_model=Company, status_code=status.HTTP_201_CREATED, summary="Create Company")
def create_company(
    payload: CompanyCreate,
    current_user: User = Depends(get_current_user),
    service: CompanyService = Depends(get_company_service)
):
    return service.create_company(current_user, payload)


@router.patch("/{company_id}", response_model=Company, summary="Update Company")
def update_company(
    company_id: str,
    payload: CompanyUpdate,
    current_user: User = Depends(get_current_user),
    service: CompanyService = Depends(get_company_service)
):
    return service.update_company(current_user, company_id, payload)


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete Company")
def delete_company(
    company_id: str,
    current_user: User = Depends(get_current_user),
    service: CompanyService = Depends(get_company_service)
):
    """Only companies without users or products can be removed."""
    service.delete_company(current_user, company_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

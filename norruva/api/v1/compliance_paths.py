from typing import List, Optional
from fastapi import APIRouter, Depends, Response, status

from norruva.core.dependencies import get_compliance_path_service, get_current_user
from norruva.db.schema import CompliancePath, User
from norruva.models.compliance import CompliancePathCreate, CompliancePathUpdate
from norruva.services.compliance_path import CompliancePathService

router = APIRouter()


@router.get("/", response_model=List[CompliancePath], summary="List Compliance Paths")
def list_compliance_paths(
    category: Optional[str] = None,
    service: CompliancePathService = Depends(get_compliance_path_service)
):
    return service.list_paths(category=category)


@router.get("/{path_id}", response_model=CompliancePath, summary="Get Compliance Path")
def get_compliance_path(
    path_id: str,
    service: CompliancePathService = Depends(get_compliance_path_service)
):
    return service.get_path(path_id)


@router.post("/", response_model=CompliancePath, status_code=status.HTTP_201_CREATED, summary="Create Compliance Path")
def create_compliance_path(
    payload: CompliancePathCreate,
    current_user: User = Depends(get_current_user),
    service: CompliancePathService = Depends(get_compliance_path_service)
):
    return service.create_path(current_user, payload)


@router.patch("/{path_id}", response_model=CompliancePath, summary="Update Compliance Path")
def update_compliance_path(
    path_id: str,
    payload: CompliancePathUpdate,
    current_user: User = Depends(get_current_user),
    service: CompliancePathService = Depends(get_compliance_path_service)
):
    return service.update_path(current_user, path_id, payload)


@router.delete("/{path_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete Compliance Path")
def delete_compliance_path(
    path_id: str,
    current_user: User = Depends(get_current_user),
    service: CompliancePathService = Depends(get_compliance_path_service)
):
    service.delete_path(current_user, path_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status

from norruva.core.audit import AuditLogger
from norruva.core.dependencies import (
    get_audit_logger, get_current_user, get_optional_user, get_product_service
)
from norruva.core.exceptions import PermissionDenied
from norruva.core.permissions import Action, can
from norruva.db.schema import AuditLog, User, VerificationStatus
from norruva.models.product import ProductCreate, ProductRead, ProductUpdate
from norruva.services.product import ProductService
from norruva.utils.qr import generate_qr_png, passport_url

router = APIRouter()


@router.get(
    "/",
    response_model=List[ProductRead],
    summary="List Products",
    tags=["Products"]
)
def list_products(
    search: Optional[str] = Query(default=None, max_length=200),
    category: Optional[str] = None,
    verification_status: Optional[VerificationStatus] = None,
    current_user: Optional[User] = Depends(get_optional_user),
    service: ProductService = Depends(get_product_service)
):
    """
    Lists the passports visible to the caller, most recently updated first.
    Anonymous callers only see published passports.
    """
    return service.get_products(
        viewer=current_user,
        search=search,
        category=category,
        verification_status=verification_status,
    )


@router.post(
    "/",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Product Passport",
    tags=["Products"]
)
async def create_product(
    payload: ProductCreate,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service)
):
    """
    Creates a Draft passport owned by the caller's company.
    Scoring runs in the background; `is_processing` is true until it finishes.
    """
    return await service.save_product(user=current_user, data=payload)


@router.get(
    "/gtin/{gtin}",
    response_model=ProductRead,
    summary="Lookup by GTIN",
    tags=["Products"]
)
def get_product_by_gtin(
    gtin: str,
    current_user: Optional[User] = Depends(get_optional_user),
    service: ProductService = Depends(get_product_service)
):
    return service.get_product_by_gtin(gtin, viewer=current_user)


@router.get(
    "/{product_id}",
    response_model=ProductRead,
    summary="Get Digital Product Passport (DPP)",
    tags=["Products"]
)
def get_product(
    product_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    service: ProductService = Depends(get_product_service)
):
    return service.get_product_by_id(product_id, viewer=current_user)


@router.patch(
    "/{product_id}",
    response_model=ProductRead,
    summary="Update Passport",
    tags=["Products"]
)
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service)
):
    """
    Merges the sent fields. Rejected (Failed) passports go back to Draft.
    Returns 409 while a previous scoring run is still in flight.
    """
    return await service.save_product(user=current_user, data=payload, product_id=product_id)


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Draft Passport",
    tags=["Products"]
)
async def delete_product(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service)
):
    await service.delete_product(user=current_user, product_id=product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{product_id}/qr",
    summary="Passport QR Code",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
    tags=["Products"]
)
def get_product_qr(
    product_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    service: ProductService = Depends(get_product_service)
):
    """PNG QR code pointing at the public passport page."""
    product = service.get_product_by_id(product_id, viewer=current_user)
    return Response(content=generate_qr_png(passport_url(product.id)), media_type="image/png")


@router.get(
    "/{product_id}/export",
    summary="Export Passport Data",
    tags=["Products"]
)
def export_product(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service)
):
    return service.export_product(user=current_user, product_id=product_id)


@router.get(
    "/{product_id}/audit-logs",
    response_model=List[AuditLog],
    summary="Passport History",
    tags=["Products", "Audit"]
)
def get_product_audit_logs(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Owning company members and audit roles can read a passport's trail."""
    product = service.get_product_by_id(product_id, viewer=current_user)
    if current_user.company_id != product.company_id and not can(current_user, Action.AUDIT_VIEW):
        raise PermissionDenied()
    return audit.get_logs_for_entity(product.id)

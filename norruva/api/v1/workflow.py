from fastapi import APIRouter, Depends, status

from norruva.core.dependencies import get_current_user, get_workflow_service
from norruva.db.schema import User
from norruva.models.product import (
    BulkImportRequest,
    BulkRequest,
    BulkResult,
    CustomsInspectionCreate,
    PassportRejection,
    ProductRead,
    ServiceRecordCreate,
    VerificationOverrideRequest,
)
from norruva.services.workflow import WorkflowService

router = APIRouter()


# ==========================================================================
# REVIEW CYCLE
# ==========================================================================

@router.post(
    "/{product_id}/workflow/submit",
    response_model=ProductRead,
    summary="Submit for Review",
    tags=["Workflow"]
)
async def submit_for_review(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    """
    Locks the passport for an Auditor. Fails with 422 and the list of
    missing checklist items when the data is incomplete.
    """
    return await service.submit_for_review(current_user, product_id)


@router.post(
    "/{product_id}/workflow/approve",
    response_model=ProductRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Approve and Anchor",
    tags=["Workflow"]
)
async def approve_passport(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    """
    Accepted immediately with `is_minting=true`. The passport becomes
    Verified/Published once anchoring and credential issuance complete.
    """
    return await service.approve_passport(current_user, product_id)


@router.post(
    "/{product_id}/workflow/reject",
    response_model=ProductRead,
    summary="Reject Passport",
    tags=["Workflow"]
)
async def reject_passport(
    product_id: str,
    payload: PassportRejection,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.reject_passport(current_user, product_id, payload.reason, payload.gaps)


@router.post(
    "/{product_id}/workflow/override",
    response_model=ProductRead,
    summary="Override Verification",
    tags=["Workflow"]
)
async def override_verification(
    product_id: str,
    payload: VerificationOverrideRequest,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.override_verification(current_user, product_id, payload.reason)


@router.post(
    "/{product_id}/workflow/resolve",
    response_model=ProductRead,
    summary="Reopen Failed Passport",
    tags=["Workflow"]
)
async def resolve_compliance_issue(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.resolve_compliance_issue(current_user, product_id)


@router.post(
    "/{product_id}/workflow/recycle",
    response_model=ProductRead,
    summary="Mark as Recycled",
    tags=["Workflow"]
)
async def mark_as_recycled(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    """Ends the product's life and credits the recycler's balance."""
    return await service.mark_as_recycled(current_user, product_id)


# ==========================================================================
# BACKGROUND ANALYSIS
# ==========================================================================

@router.post(
    "/{product_id}/workflow/recalculate",
    response_model=ProductRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Recalculate Score",
    tags=["Workflow - Analysis"]
)
async def recalculate_score(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.recalculate_score(current_user, product_id)


@router.post(
    "/{product_id}/workflow/validate",
    response_model=ProductRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run Data Validation",
    tags=["Workflow - Analysis"]
)
async def run_data_validation(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.run_data_validation(current_user, product_id)


@router.post(
    "/{product_id}/workflow/predict",
    response_model=ProductRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run Lifecycle Prediction",
    tags=["Workflow - Analysis"]
)
async def run_lifecycle_prediction(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.run_lifecycle_prediction(current_user, product_id)


@router.post(
    "/{product_id}/workflow/compliance-check",
    response_model=ProductRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run Compliance Check",
    tags=["Workflow - Analysis"]
)
async def run_compliance_check(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    """Compares the passport with its assigned compliance path."""
    return await service.run_compliance_check(current_user, product_id)


# ==========================================================================
# FIELD OPERATIONS
# ==========================================================================

@router.post(
    "/{product_id}/workflow/service-records",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add Service Record",
    tags=["Workflow - Field"]
)
async def add_service_record(
    product_id: str,
    payload: ServiceRecordCreate,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.add_service_record(current_user, product_id, payload.notes)


@router.post(
    "/{product_id}/workflow/customs-inspections",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record Customs Inspection",
    tags=["Workflow - Field"]
)
async def perform_customs_inspection(
    product_id: str,
    payload: CustomsInspectionCreate,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.perform_customs_inspection(current_user, product_id, payload)


# ==========================================================================
# BULK OPERATIONS
# ==========================================================================

@router.post("/bulk/anchor", response_model=BulkResult, summary="Bulk Approve and Anchor", tags=["Workflow - Bulk"])
async def bulk_anchor_products(
    payload: BulkRequest,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    """Each item is attempted independently; failures are reported per item."""
    return await service.bulk_anchor_products(current_user, payload.product_ids)


@router.post("/bulk/delete", response_model=BulkResult, summary="Bulk Delete", tags=["Workflow - Bulk"])
async def bulk_delete_products(
    payload: BulkRequest,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.bulk_delete_products(current_user, payload.product_ids)


@router.post("/bulk/submit", response_model=BulkResult, summary="Bulk Submit for Review", tags=["Workflow - Bulk"])
async def bulk_submit_for_review(
    payload: BulkRequest,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.bulk_submit_for_review(current_user, payload.product_ids)


@router.post("/bulk/archive", response_model=BulkResult, summary="Bulk Archive", tags=["Workflow - Bulk"])
async def bulk_archive_products(
    payload: BulkRequest,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.bulk_archive_products(current_user, payload.product_ids)


@router.post(
    "/bulk/import",
    response_model=BulkResult,
    status_code=status.HTTP_201_CREATED,
    summary="Bulk Import Drafts",
    tags=["Workflow - Bulk"]
)
async def bulk_create_products(
    payload: BulkImportRequest,
    current_user: User = Depends(get_current_user),
    service: WorkflowService = Depends(get_workflow_service)
):
    return await service.bulk_create_products(current_user, payload.products)

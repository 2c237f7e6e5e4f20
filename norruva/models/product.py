from typing import List, Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from norruva.db.schema import (
    BlockchainProof,
    Certification,
    ComplianceDeclarations,
    ComplianceGap,
    CustodyStep,
    CustomsOutcome,
    CustomsStatus,
    DataQualityWarning,
    EndOfLifeStatus,
    Lifecycle,
    Manufacturing,
    Material,
    Packaging,
    ProductStatus,
    ServiceRecord,
    SubmissionChecklist,
    SustainabilityData,
    VerificationOverride,
    VerificationStatus,
)


class ProductBase(SQLModel):
    product_name: str = Field(min_length=1, max_length=200)
    product_description: str = Field(default="", max_length=5000)
    category: str = Field(min_length=1, max_length=100)
    gtin: Optional[str] = None
    product_image: Optional[str] = None
    materials: List[Material] = []
    manufacturing: Optional[Manufacturing] = None
    certifications: List[Certification] = []
    packaging: Optional[Packaging] = None
    lifecycle: Optional[Lifecycle] = None
    compliance: ComplianceDeclarations = ComplianceDeclarations()
    compliance_path_id: Optional[str] = None


class ProductCreate(ProductBase):
    pass


class ProductUpdate(SQLModel):
    """
    Partial update. Only fields explicitly sent are merged.
    `status` may move a passport to Draft or Archived; publishing only
    happens through approval or override.
    """
    product_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    product_description: Optional[str] = Field(default=None, max_length=5000)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    gtin: Optional[str] = None
    product_image: Optional[str] = None
    materials: Optional[List[Material]] = None
    manufacturing: Optional[Manufacturing] = None
    certifications: Optional[List[Certification]] = None
    packaging: Optional[Packaging] = None
    lifecycle: Optional[Lifecycle] = None
    compliance: Optional[ComplianceDeclarations] = None
    compliance_path_id: Optional[str] = None
    status: Optional[ProductStatus] = None


class ProductRead(ProductBase):
    """Full Digital Product Passport view."""
    id: str
    company_id: str
    supplier: str
    status: ProductStatus
    verification_status: VerificationStatus
    end_of_life_status: EndOfLifeStatus
    sustainability: Optional[SustainabilityData] = None
    qr_label_text: Optional[str] = None
    data_quality_warnings: List[DataQualityWarning] = []
    submission_checklist: Optional[SubmissionChecklist] = None
    blockchain_proof: Optional[BlockchainProof] = None
    verifiable_credential: Optional[dict] = None
    ebsi_vc_id: Optional[str] = None
    verification_override: Optional[VerificationOverride] = None
    last_verification_date: Optional[datetime] = None
    chain_of_custody: List[CustodyStep] = []
    customs: Optional[CustomsStatus] = None
    service_history: List[ServiceRecord] = []
    is_minting: bool
    is_processing: bool
    created_at: datetime
    updated_at: datetime
    last_updated: datetime


# --- Workflow payloads ---

class PassportRejection(SQLModel):
    reason: str = Field(min_length=1, max_length=2000)
    gaps: List[ComplianceGap] = []


class VerificationOverrideRequest(SQLModel):
    reason: str = Field(min_length=1, max_length=2000)


class ServiceRecordCreate(SQLModel):
    notes: str = Field(min_length=1, max_length=5000)


class CustomsInspectionCreate(SQLModel):
    status: CustomsOutcome
    authority: str = Field(min_length=1, max_length=200)
    location: str = Field(min_length=1, max_length=200)
    notes: Optional[str] = None


# --- Bulk operations ---

class BulkRequest(SQLModel):
    product_ids: List[str] = Field(min_length=1)


class BulkFailure(SQLModel):
    # Position in the request (`#0`, `#1`, ...) for items that never got an id
    product_id: str
    reason: str


class BulkImportRequest(SQLModel):
    products: List[ProductCreate] = Field(min_length=1)


class BulkResult(SQLModel):
    """Outcome of a partial-failure tolerant batch."""
    succeeded: List[str] = []
    failed: List[BulkFailure] = []

    @property
    def count(self) -> int:
        return len(self.succeeded)

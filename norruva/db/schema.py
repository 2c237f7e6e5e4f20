from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
import uuid
from sqlmodel import SQLModel, Field
from pydantic import field_validator
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """
    Generates a prefixed, URL-safe identifier.
    Example: new_id('pp') -> 'pp-3f2a9c0e1b7d4e5f'
    """
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


class Role(str, Enum):
    ADMIN = "Admin"
    SUPPLIER = "Supplier"
    AUDITOR = "Auditor"
    COMPLIANCE_MANAGER = "Compliance Manager"
    MANUFACTURER = "Manufacturer"
    SERVICE_PROVIDER = "Service Provider"
    RECYCLER = "Recycler"
    DEVELOPER = "Developer"
    RETAILER = "Retailer"
    BUSINESS_ANALYST = "Business Analyst"


class ProductStatus(str, Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"
    ARCHIVED = "Archived"


class VerificationStatus(str, Enum):
    NOT_SUBMITTED = "Not Submitted"
    PENDING = "Pending"        # Locked, waiting for an Auditor
    VERIFIED = "Verified"      # Anchored (or overridden) and published
    FAILED = "Failed"          # Rejected, Supplier must fix


class EndOfLifeStatus(str, Enum):
    ACTIVE = "Active"
    RECYCLED = "Recycled"
    DISPOSED = "Disposed"


class ApiKeyStatus(str, Enum):
    ACTIVE = "Active"
    REVOKED = "Revoked"


class WebhookStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class TicketStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    CLOSED = "Closed"


class CustomsOutcome(str, Enum):
    CLEARED = "Cleared"
    DETAINED = "Detained"
    REJECTED = "Rejected"


class TimestampMixin(SQLModel):
    """
    Standard timestamps shared by every stored entity.
    `updated_at` is bumped by the repositories on every write.
    """
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ==========================================================================
# IDENTITY
# ==========================================================================

class Company(TimestampMixin, SQLModel):
    id: str = Field(default_factory=lambda: new_id("comp"))
    name: str
    owner_id: str
    industry: Optional[str] = None


class User(TimestampMixin, SQLModel):
    """
    A platform account. Belongs to exactly one Company and holds
    at least one Role.
    """
    id: str = Field(default_factory=lambda: new_id("user"))
    email: str
    full_name: str
    company_id: str
    roles: List[Role]
    circularity_credits: int = 0

    @field_validator("roles")
    @classmethod
    def roles_not_empty(cls, value: List[Role]) -> List[Role]:
        # Keep set semantics while staying JSON friendly
        unique = list(dict.fromkeys(value))
        if not unique:
            raise ValueError("A user must hold at least one role.")
        return unique

    def has_role(self, role: Role) -> bool:
        return role in self.roles


# ==========================================================================
# PRODUCT PASSPORT
# ==========================================================================

class Material(SQLModel):
    name: str
    percentage: Optional[float] = None
    recycled_content: Optional[float] = None
    origin: Optional[str] = None


class Certification(SQLModel):
    name: str
    issuer: str
    valid_until: Optional[str] = None
    document_url: Optional[str] = None


class Manufacturing(SQLModel):
    facility: str
    country: str
    emissions_kg_co2e: Optional[float] = None


class Packaging(SQLModel):
    type: str
    recycled_content: Optional[float] = None
    recyclable: bool = False


class Lifecycle(SQLModel):
    expected_lifespan: Optional[int] = None
    repairability_score: Optional[float] = None
    recyclability_percentage: Optional[float] = None


class ComplianceDeclarations(SQLModel):
    rohs_compliant: bool = False
    reach_svhc: bool = False
    weee_registered: bool = False
    eudr_compliant: bool = False


class ComplianceGap(SQLModel):
    regulation: str
    issue: str


class DataQualityWarning(SQLModel):
    field: str
    warning: str


class SubmissionChecklist(SQLModel):
    has_base_info: bool = False
    has_materials: bool = False
    has_manufacturing: bool = False
    has_lifecycle_data: bool = False
    has_compliance_path: bool = False
    passes_data_quality: bool = True

    def is_complete(self) -> bool:
        return all(self.model_dump().values())

    def missing(self) -> List[str]:
        return [key for key, passed in self.model_dump().items() if not passed]


class SustainabilityData(SQLModel):
    """Written only by the scoring oracle and the review workflow."""
    score: int = 0
    environmental: int = 0
    social: int = 0
    governance: int = 0
    summary: str = ""
    is_compliant: bool = False
    compliance_summary: str = "Awaiting compliance analysis."
    gaps: List[ComplianceGap] = Field(default_factory=list)
    lifecycle_prediction: Optional[Dict[str, Any]] = None


class BlockchainProof(SQLModel):
    """Written only by the anchoring task."""
    type: str = "SINGLE_HASH"
    tx_hash: str
    explorer_url: str
    block_height: int
    merkle_root: str


class VerificationOverride(SQLModel):
    user_id: str
    reason: str
    date: datetime


class CustodyStep(SQLModel):
    event: str
    location: str
    actor: str
    date: datetime = Field(default_factory=utcnow)


class CustomsStatus(SQLModel):
    status: CustomsOutcome
    authority: str
    location: str
    notes: Optional[str] = None
    date: datetime = Field(default_factory=utcnow)
    history: List[Dict[str, Any]] = Field(default_factory=list)


class ServiceRecord(TimestampMixin, SQLModel):
    id: str = Field(default_factory=lambda: new_id("serv"))
    provider_id: str
    provider_name: str
    notes: str


class Product(TimestampMixin, SQLModel):
    """
    The central aggregate: a Digital Product Passport.
    `company_id` is fixed at creation. `is_processing` and `is_minting` are
    advisory flags owned by the background task that set them.
    """
    id: str = Field(default_factory=lambda: new_id("pp"))
    company_id: str
    product_name: str
    product_description: str = ""
    product_image: Optional[str] = None
    category: str
    supplier: str = ""
    gtin: Optional[str] = None

    materials: List[Material] = Field(default_factory=list)
    manufacturing: Optional[Manufacturing] = None
    certifications: List[Certification] = Field(default_factory=list)
    packaging: Optional[Packaging] = None
    lifecycle: Optional[Lifecycle] = None
    compliance: ComplianceDeclarations = Field(default_factory=ComplianceDeclarations)
    compliance_path_id: Optional[str] = None

    status: ProductStatus = ProductStatus.DRAFT
    verification_status: VerificationStatus = VerificationStatus.NOT_SUBMITTED
    end_of_life_status: EndOfLifeStatus = EndOfLifeStatus.ACTIVE

    sustainability: Optional[SustainabilityData] = None
    qr_label_text: Optional[str] = None
    data_quality_warnings: List[DataQualityWarning] = Field(default_factory=list)
    submission_checklist: Optional[SubmissionChecklist] = None

    blockchain_proof: Optional[BlockchainProof] = None
    verifiable_credential: Optional[Dict[str, Any]] = None
    ebsi_vc_id: Optional[str] = None
    verification_override: Optional[VerificationOverride] = None
    last_verification_date: Optional[datetime] = None

    chain_of_custody: List[CustodyStep] = Field(default_factory=list)
    customs: Optional[CustomsStatus] = None
    service_history: List[ServiceRecord] = Field(default_factory=list)

    is_minting: bool = False
    is_processing: bool = False
    last_updated: datetime = Field(default_factory=utcnow)


# ==========================================================================
# COMPLIANCE & OPERATIONS
# ==========================================================================

class ComplianceRules(SQLModel):
    min_sustainability_score: Optional[int] = None
    required_keywords: List[str] = Field(default_factory=list)
    banned_keywords: List[str] = Field(default_factory=list)


class CompliancePath(TimestampMixin, SQLModel):
    id: str = Field(default_factory=lambda: new_id("cp"))
    name: str
    description: str = ""
    category: str
    jurisdiction: Optional[str] = None
    regulations: List[str] = Field(default_factory=list)
    rules: ComplianceRules = Field(default_factory=ComplianceRules)


class AuditLog(SQLModel):
    """
    Append-only record of what happened. `user_id` is a User id or one of
    the sentinel actors 'system' / 'guest'.
    """
    id: str = Field(default_factory=lambda: new_id("log"))
    user_id: str
    action: str
    entity_id: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class ApiKey(TimestampMixin, SQLModel):
    id: str = Field(default_factory=lambda: new_id("key"))
    user_id: str
    label: str
    scopes: List[str] = Field(default_factory=list)
    token: str                # masked display token, safe to show forever
    token_hash: str           # sha256 of the raw secret
    status: ApiKeyStatus = ApiKeyStatus.ACTIVE
    last_used: Optional[datetime] = None


class Webhook(TimestampMixin, SQLModel):
    id: str = Field(default_factory=lambda: new_id("wh"))
    user_id: str
    url: str
    events: List[str] = Field(default_factory=list)
    status: WebhookStatus = WebhookStatus.ACTIVE


class ServiceTicket(TimestampMixin, SQLModel):
    id: str = Field(default_factory=lambda: new_id("tkt"))
    product_id: str
    user_id: str
    customer_name: str
    issue: str
    status: TicketStatus = TicketStatus.OPEN

from typing import Any, Dict, List, Optional, Union
from loguru import logger

from norruva.core.audit import AuditLogger
from norruva.core.exceptions import InvalidTransition, NotFound, ProcessingInProgress, ValidationFailed
from norruva.core.permissions import Action, can_view_product, check_permission
from norruva.core.tasks import BackgroundTaskRunner
from norruva.db.schema import (
    Product, ProductStatus, SustainabilityData, User, VerificationStatus, utcnow
)
from norruva.db.store import EntityStore
from norruva.models.product import ProductCreate, ProductRead, ProductUpdate
from norruva.services.oracles.checklist import ChecklistValidator
from norruva.services.oracles.scoring import ScoringOracle

# Fields that a partial update may change but never clear
_REQUIRED_FIELDS = {"product_name", "product_description", "category", "materials", "certifications", "compliance"}


def ensure_not_minting(product: Product) -> None:
    """The anchoring task owns the passport until it clears `is_minting`."""
    if product.is_minting:
        raise ProcessingInProgress("Anchoring is in progress for this passport.")


def reopen_passport(product: Product) -> None:
    """Sends a Failed passport back to Draft and drops the rejection findings."""
    product.verification_status = VerificationStatus.NOT_SUBMITTED
    product.status = ProductStatus.DRAFT
    if product.sustainability:
        defaults = SustainabilityData()
        product.sustainability.is_compliant = defaults.is_compliant
        product.sustainability.compliance_summary = defaults.compliance_summary
        product.sustainability.gaps = []


class ProductService:
    """
    Passport CRUD plus the visibility rule every product read goes through.
    Saves are followed by background scoring; the `is_processing` flag is
    owned by that task.
    """

    def __init__(
        self,
        store: EntityStore,
        audit: AuditLogger,
        runner: BackgroundTaskRunner,
        scorer: ScoringOracle,
        checklist: ChecklistValidator,
    ):
        self.store = store
        self.audit = audit
        self.runner = runner
        self.scorer = scorer
        self.checklist = checklist

    # --- Reads ---

    def get_product_by_id(self, product_id: str, viewer: Optional[User] = None) -> Product:
        """
        Returns the product if the viewer may see it.
        A product hidden from the viewer is reported exactly like a missing one.
        """
        product = self.store.products.get(product_id)
        if not product or not can_view_product(viewer, product):
            raise NotFound("Product not found.")
        return product

    def get_products(
        self,
        viewer: Optional[User] = None,
        search: Optional[str] = None,
        category: Optional[str] = None,
        verification_status: Optional[VerificationStatus] = None,
    ) -> List[Product]:
        results = self.store.products.list(lambda p: can_view_product(viewer, p))

        if search:
            needle = search.lower()
            results = [
                p for p in results
                if needle in p.product_name.lower()
                or needle in p.supplier.lower()
                or needle in p.category.lower()
                or (p.gtin and needle in p.gtin.lower())
            ]
        if category:
            results = [p for p in results if p.category == category]
        if verification_status:
            results = [p for p in results if p.verification_status == verification_status]

        return sorted(results, key=lambda p: p.last_updated, reverse=True)

    def get_product_by_gtin(self, gtin: str, viewer: Optional[User] = None) -> Product:
        product = self.store.products.find_by_gtin(gtin)
        if not product or not can_view_product(viewer, product):
            raise NotFound(f"No product with GTIN {gtin}.")
        return product

    def export_product(self, user: User, product_id: str) -> Dict[str, Any]:
        product = self.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_EXPORT_DATA, product)

        self.audit.log_event("product.exported", product.id, {"format": "json"}, user.id)
        return ProductRead.model_validate(product).model_dump(mode="json")

    # --- Writes ---

    async def save_product(
        self,
        user: User,
        data: Union[ProductCreate, ProductUpdate],
        product_id: Optional[str] = None,
    ) -> Product:
        """
        Creates a passport (no `product_id`) or merges a partial update into
        an existing one, then schedules background scoring.
        """
        if product_id is None:
            product = self._create(user, data)
        else:
            product = self._update(user, product_id, data)

        product.submission_checklist = self.checklist.validate(product)
        self.spawn_scoring(product, user.id, failure_action="product.scoring.failed")
        return product

    def _create(self, user: User, data: ProductCreate) -> Product:
        check_permission(user, Action.PRODUCT_CREATE)

        company = self.store.companies.get(user.company_id)
        if not company:
            raise NotFound(f"Company with ID {user.company_id} not found.")
        if data.compliance_path_id and data.compliance_path_id not in self.store.compliance_paths:
            raise ValidationFailed(
                f"Compliance path {data.compliance_path_id} could not be found.",
                errors=[{"field": "compliance_path_id", "message": "Unknown compliance path."}],
            )

        now = utcnow()
        product = Product(
            **data.model_dump(),
            company_id=user.company_id,
            supplier=company.name,
            status=ProductStatus.DRAFT,
            verification_status=VerificationStatus.NOT_SUBMITTED,
            is_processing=True,
            created_at=now,
            updated_at=now,
            last_updated=now,
        )
        self.store.products.add(product)

        self.audit.log_event("product.created", product.id, {"product_name": product.product_name}, user.id)
        logger.info(f"Product {product.id} created by {user.id}")
        return product

    def _update(self, user: User, product_id: str, data: ProductUpdate) -> Product:
        # 1. Existence, then permission, then state
        product = self.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_EDIT, product)

        changes = data.model_dump(exclude_unset=True)
        requested_status = changes.pop("status", None)

        if requested_status == ProductStatus.ARCHIVED and product.status != ProductStatus.ARCHIVED:
            check_permission(user, Action.PRODUCT_ARCHIVE, product)

        ensure_not_minting(product)
        if product.is_processing:
            raise ProcessingInProgress()
        if requested_status == ProductStatus.PUBLISHED and product.verification_status != VerificationStatus.VERIFIED:
            raise InvalidTransition("Only verified passports can be published.")

        # 2. Merge
        for key, value in changes.items():
            if value is None and key in _REQUIRED_FIELDS:
                continue
            # Take the validated attribute, not the dumped dict
            setattr(product, key, getattr(data, key))

        if product.verification_status == VerificationStatus.FAILED:
            # Editing a rejected passport reopens it
            reopen_passport(product)
        elif requested_status is not None:
            product.status = requested_status

        product.is_processing = True
        product.last_updated = utcnow()
        self.store.products.save(product)

        details = {"changes": sorted(changes.keys()) + (["status"] if requested_status else [])}
        self.audit.log_event("product.updated", product.id, details, user.id)
        return product

    async def delete_product(self, user: User, product_id: str) -> None:
        product = self.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_DELETE, product)
        ensure_not_minting(product)

        self.store.products.delete(product.id)
        self.audit.log_event("product.deleted", product.id, {}, user.id)

    # --- Background scoring ---

    def spawn_scoring(self, product: Product, user_id: str, failure_action: str, success_action: Optional[str] = None):
        """Caller must already have set `is_processing`."""
        return self.runner.spawn(
            lambda: self._score_in_background(product.id, user_id, failure_action, success_action),
            name=f"score:{product.id}",
        )

    async def _score_in_background(
        self, product_id: str, user_id: str, failure_action: str, success_action: Optional[str]
    ) -> None:
        product = self.store.products.get(product_id)
        if product is None:
            return

        try:
            result = await self.scorer.score_product(product)

            # Deleted while the oracle was running
            if product_id not in self.store.products:
                logger.warning(f"Product {product_id} vanished during scoring, result dropped")
                return

            previous = product.sustainability or SustainabilityData()
            product.sustainability = SustainabilityData(
                score=result.score,
                environmental=result.environmental,
                social=result.social,
                governance=result.governance,
                summary=result.summary,
                is_compliant=previous.is_compliant,
                compliance_summary=previous.compliance_summary or result.compliance_summary,
                gaps=previous.gaps or result.gaps,
                lifecycle_prediction=previous.lifecycle_prediction,
            )
            product.qr_label_text = result.qr_label_text
            product.data_quality_warnings = result.data_quality_warnings
            product.submission_checklist = self.checklist.validate(product)
            product.is_processing = False
            product.last_updated = utcnow()
            self.store.products.save(product)

            logger.info(f"Scoring finished for product {product_id}: {result.score}")
            if success_action:
                self.audit.log_event(success_action, product_id, {"score": result.score}, user_id)

        except Exception as e:
            product.is_processing = False
            if product_id in self.store.products:
                self.store.products.save(product)
            logger.exception(f"Background scoring failed for product {product_id}")
            self.audit.log_event(failure_action, product_id, {"error": str(e)}, user_id)

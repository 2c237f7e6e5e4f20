from typing import Any, Awaitable, Callable, Dict, List, Optional
from loguru import logger

from norruva.core.audit import SYSTEM_ACTOR, AuditLogger
from norruva.core.config import settings
from norruva.core.exceptions import (
    DomainError, InvalidTransition, ProcessingInProgress, ValidationFailed
)
from norruva.core.permissions import Action, check_permission
from norruva.core.tasks import BackgroundTaskRunner, TaskHandle
from norruva.db.schema import (
    BlockchainProof,
    ComplianceGap,
    CustomsStatus,
    EndOfLifeStatus,
    Product,
    ProductStatus,
    ServiceRecord,
    SustainabilityData,
    User,
    VerificationOverride,
    VerificationStatus,
    utcnow,
)
from norruva.db.store import EntityStore
from norruva.models.product import BulkFailure, BulkResult, CustomsInspectionCreate, ProductCreate
from norruva.services.oracles.anchoring import AnchoringOracle
from norruva.services.oracles.checklist import ChecklistValidator
from norruva.services.oracles.compliance import ComplianceOracle
from norruva.services.oracles.credential import CredentialIssuer
from norruva.services.oracles.scoring import ScoringOracle
from norruva.services.product import ProductService, ensure_not_minting, reopen_passport
from norruva.services.webhook import WebhookService
from norruva.utils.hashing import hash_data

PUBLISHED_EVENT = "product.published"
BULK_ENTITY = "multiple"


def anchor_payload(product: Product) -> Dict[str, Any]:
    """User-controlled passport data covered by the ledger hash."""
    return {
        "product_name": product.product_name,
        "category": product.category,
        "supplier": product.supplier,
        "materials": [m.model_dump() for m in product.materials],
        "manufacturing": product.manufacturing.model_dump() if product.manufacturing else None,
        "certifications": [c.model_dump() for c in product.certifications],
    }


class WorkflowService:
    """
    The passport verification state machine.

    Every operation runs in the same order: locate the product (hidden
    products count as missing), check permission, check the state
    precondition, mutate, then audit. Slow work (anchoring, scoring,
    compliance) is handed to the background runner after the flag that
    owns it has been set.
    """

    def __init__(
        self,
        store: EntityStore,
        audit: AuditLogger,
        runner: BackgroundTaskRunner,
        products: ProductService,
        scorer: ScoringOracle,
        anchoring: AnchoringOracle,
        issuer: CredentialIssuer,
        compliance: ComplianceOracle,
        checklist: ChecklistValidator,
        webhooks: WebhookService,
    ):
        self.store = store
        self.audit = audit
        self.runner = runner
        self.products = products
        self.scorer = scorer
        self.anchoring = anchoring
        self.issuer = issuer
        self.compliance = compliance
        self.checklist = checklist
        self.webhooks = webhooks

    def _touch(self, product: Product) -> Product:
        product.last_updated = utcnow()
        return self.store.products.save(product)

    # ==========================================================================
    # REVIEW CYCLE
    # ==========================================================================

    async def submit_for_review(self, user: User, product_id: str) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_SUBMIT, product)

        if product.verification_status != VerificationStatus.NOT_SUBMITTED:
            raise InvalidTransition(
                f"Only passports that are not yet submitted can be submitted (current: {product.verification_status.value})."
            )

        checklist = self.checklist.validate(product)
        product.submission_checklist = checklist
        if not checklist.is_complete():
            raise ValidationFailed(
                "Submission checklist is not complete. Please fill in all required fields.",
                errors=[{"field": item, "message": "Requirement not met."} for item in checklist.missing()],
            )

        product.verification_status = VerificationStatus.PENDING
        self._touch(product)

        self.audit.log_event("passport.submitted", product.id, {}, user.id)
        return product

    async def approve_passport(self, user: User, product_id: str) -> Product:
        """
        Marks the passport as minting and returns immediately.
        Hashing, anchoring and credential issuance complete in the background.
        """
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_APPROVE, product)
        self._ensure_anchorable(product)

        self._start_anchoring(product, user.id)
        self.audit.log_event("passport.approved", product.id, {}, user.id)
        return product

    def _ensure_anchorable(self, product: Product) -> None:
        if product.is_minting:
            raise ProcessingInProgress("Anchoring is already in progress for this passport.")
        if product.verification_status != VerificationStatus.PENDING:
            raise InvalidTransition("Only passports pending review can be approved.")

    def _start_anchoring(self, product: Product, user_id: str) -> TaskHandle:
        # Intent is marked synchronously; the task owns clearing it
        product.is_minting = True
        self._touch(product)
        return self.runner.spawn(
            lambda: self._anchor_in_background(product.id, user_id),
            name=f"anchor:{product.id}",
        )

    async def _anchor_in_background(self, product_id: str, user_id: str) -> None:
        product = self.store.products.get(product_id)
        if product is None:
            return

        try:
            # 1. Hash the passport data
            data_hash = hash_data(anchor_payload(product))

            # 2. Anchor the hash on the ledger
            anchor = await self.anchoring.anchor(product.id, data_hash)
            proof = BlockchainProof(
                tx_hash=anchor.tx_hash,
                explorer_url=anchor.explorer_url,
                block_height=anchor.block_height,
                merkle_root=data_hash,
            )

            # 3. Issue the verifiable credential
            company = self.store.companies.get(product.company_id)
            credential = await self.issuer.issue(product, company, proof)

            if product_id not in self.store.products:
                logger.warning(f"Product {product_id} was deleted while anchoring, proof {proof.tx_hash} dropped")
                return

            now = utcnow()
            product.verification_status = VerificationStatus.VERIFIED
            product.status = ProductStatus.PUBLISHED
            product.blockchain_proof = proof
            product.verifiable_credential = credential
            product.ebsi_vc_id = credential.get("id")
            product.last_verification_date = now
            product.is_minting = False
            self._touch(product)

        except Exception as e:
            product.is_minting = False
            if product_id in self.store.products:
                self._touch(product)
            logger.exception(f"Anchoring failed for product {product_id}")
            self.audit.log_event("product.anchoring.failed", product_id, {"error": str(e)}, user_id)
            return

        logger.info(f"Product {product_id} anchored in tx {proof.tx_hash}")
        self.audit.log_event(
            "product.anchored",
            product_id,
            {"tx_hash": proof.tx_hash, "block_height": proof.block_height, "vc_id": product.ebsi_vc_id},
            user_id,
        )
        self.webhooks.publish(PUBLISHED_EVENT, product)

    async def reject_passport(
        self, user: User, product_id: str, reason: str, gaps: Optional[List[ComplianceGap]] = None
    ) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_REJECT, product)

        if product.verification_status != VerificationStatus.PENDING:
            raise InvalidTransition("Only passports pending review can be rejected.")

        gaps = gaps or []
        sustainability = product.sustainability or SustainabilityData()
        sustainability.compliance_summary = reason
        sustainability.gaps = list(gaps)
        sustainability.is_compliant = False

        product.sustainability = sustainability
        product.verification_status = VerificationStatus.FAILED
        product.last_verification_date = utcnow()
        self._touch(product)

        self.audit.log_event(
            "passport.rejected",
            product.id,
            {"reason": reason, "gaps": [gap.model_dump() for gap in gaps]},
            user.id,
        )
        return product

    async def override_verification(self, user: User, product_id: str, reason: str) -> Product:
        """Publishes a passport without anchoring. The override is recorded on the product."""
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_OVERRIDE_VERIFICATION, product)

        ensure_not_minting(product)
        if product.verification_status == VerificationStatus.VERIFIED:
            raise InvalidTransition("Passport is already verified.")

        now = utcnow()
        product.verification_status = VerificationStatus.VERIFIED
        product.status = ProductStatus.PUBLISHED
        product.verification_override = VerificationOverride(user_id=user.id, reason=reason, date=now)
        product.last_verification_date = now
        self._touch(product)

        self.audit.log_event("product.verification.overridden", product.id, {"reason": reason}, user.id)
        return product

    async def resolve_compliance_issue(self, user: User, product_id: str) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_RESOLVE, product)

        if product.verification_status != VerificationStatus.FAILED:
            raise InvalidTransition("Only failed passports can be reopened.")

        reopen_passport(product)
        self._touch(product)

        self.audit.log_event("compliance.resolved", product.id, {}, user.id)
        return product

    # ==========================================================================
    # END OF LIFE
    # ==========================================================================

    async def mark_as_recycled(self, user: User, product_id: str) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_RECYCLE, product)

        if product.end_of_life_status != EndOfLifeStatus.ACTIVE:
            raise InvalidTransition(f"Product is already {product.end_of_life_status.value}.")

        product.end_of_life_status = EndOfLifeStatus.RECYCLED
        self._touch(product)
        self.audit.log_event("product.recycled", product.id, {}, user.id)

        # Grant circularity credits to the recycler
        amount = settings.recycling_credit_amount
        user.circularity_credits += amount
        self.store.users.save(user)
        self.audit.log_event(
            "credits.minted",
            product.id,
            {"amount": amount, "new_balance": user.circularity_credits, "recipient": user.id},
            SYSTEM_ACTOR,
        )
        return product

    # ==========================================================================
    # FIELD OPERATIONS
    # ==========================================================================

    async def add_service_record(self, user: User, product_id: str, notes: str) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_ADD_SERVICE_RECORD, product)

        product.service_history.append(
            ServiceRecord(provider_id=user.id, provider_name=user.full_name, notes=notes)
        )
        self._touch(product)

        self.audit.log_event("product.serviced", product.id, {"notes": notes}, user.id)
        return product

    async def perform_customs_inspection(self, user: User, product_id: str, data: CustomsInspectionCreate) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_CUSTOMS_INSPECT, product)

        history = []
        if product.customs:
            # The previous latest event moves into history
            history = list(product.customs.history)
            history.append(product.customs.model_dump(mode="json", exclude={"history"}))

        product.customs = CustomsStatus(**data.model_dump(), history=history)
        self._touch(product)

        self.audit.log_event(
            "customs.inspected",
            product.id,
            product.customs.model_dump(mode="json", exclude={"history"}),
            user.id,
        )
        return product

    # ==========================================================================
    # BACKGROUND ANALYSIS
    # ==========================================================================

    def _claim_processing(self, product: Product) -> None:
        if product.is_processing:
            raise ProcessingInProgress()
        product.is_processing = True
        self._touch(product)

    def _spawn_analysis(
        self,
        product: Product,
        user_id: str,
        name: str,
        work: Callable[[Product], Awaitable[Dict[str, Any]]],
        success_action: str,
        failure_action: str,
    ) -> TaskHandle:
        """Runs `work` detached; the processing flag is cleared on every outcome."""
        product_id = product.id

        async def run() -> None:
            current = self.store.products.get(product_id)
            if current is None:
                return
            try:
                details = await work(current)
            except Exception as e:
                current.is_processing = False
                if product_id in self.store.products:
                    self._touch(current)
                logger.exception(f"{name} failed for product {product_id}")
                self.audit.log_event(failure_action, product_id, {"error": str(e)}, user_id)
                return

            current.is_processing = False
            if product_id in self.store.products:
                self._touch(current)
            self.audit.log_event(success_action, product_id, details, user_id)

        return self.runner.spawn(run, name=f"{name}:{product_id}")

    async def recalculate_score(self, user: User, product_id: str) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_RECALCULATE, product)
        self._claim_processing(product)

        self.audit.log_event("product.recalculate_score.started", product.id, {}, user.id)
        self.products.spawn_scoring(
            product,
            user.id,
            failure_action="product.recalculate_score.failed",
            success_action="product.recalculate_score.completed",
        )
        return product

    async def run_data_validation(self, user: User, product_id: str) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_VALIDATE_DATA, product)
        self._claim_processing(product)

        self.audit.log_event("product.validation.started", product.id, {}, user.id)

        async def validate(current: Product) -> Dict[str, Any]:
            warnings = await self.scorer.validate_data(current)
            current.data_quality_warnings = warnings
            current.submission_checklist = self.checklist.validate(current)
            return {"warnings": len(warnings)}

        self._spawn_analysis(
            product, user.id, "validation", validate,
            success_action="product.validation.completed",
            failure_action="product.validation.failed",
        )
        return product

    async def run_lifecycle_prediction(self, user: User, product_id: str) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_RUN_PREDICTION, product)
        self._claim_processing(product)

        self.audit.log_event("product.prediction.started", product.id, {"type": "lifecycle"}, user.id)

        async def predict(current: Product) -> Dict[str, Any]:
            prediction = await self.scorer.predict_lifecycle(current)
            sustainability = current.sustainability or SustainabilityData()
            sustainability.lifecycle_prediction = prediction
            current.sustainability = sustainability
            return {"type": "lifecycle"}

        self._spawn_analysis(
            product, user.id, "prediction", predict,
            success_action="product.prediction.success",
            failure_action="product.prediction.failed",
        )
        return product

    async def run_compliance_check(self, user: User, product_id: str) -> Product:
        product = self.products.get_product_by_id(product_id, user)
        check_permission(user, Action.PRODUCT_RUN_COMPLIANCE, product)

        if not product.compliance_path_id:
            raise ValidationFailed(
                "This product does not have a compliance path assigned.",
                errors=[{"field": "compliance_path_id", "message": "Required for a compliance check."}],
            )
        path = self.store.compliance_paths.get(product.compliance_path_id)
        if not path:
            raise ValidationFailed(f"Compliance path {product.compliance_path_id} could not be found.")

        self._claim_processing(product)
        self.audit.log_event("product.compliance.started", product.id, {"compliance_path_id": path.id}, user.id)

        async def check(current: Product) -> Dict[str, Any]:
            result = await self.compliance.summarize_compliance_gaps(current, path)
            sustainability = current.sustainability or SustainabilityData()
            sustainability.is_compliant = result.is_compliant
            sustainability.compliance_summary = result.compliance_summary
            sustainability.gaps = result.gaps
            current.sustainability = sustainability
            return {"result": result.model_dump()}

        self._spawn_analysis(
            product, user.id, "compliance", check,
            success_action="product.compliance.checked",
            failure_action="product.compliance.failed",
        )
        return product

    # ==========================================================================
    # BULK OPERATIONS
    # ==========================================================================

    async def _run_bulk(
        self,
        user: User,
        product_ids: List[str],
        label: str,
        summary_action: str,
        apply: Callable[[str], Awaitable[None]],
        failure_action: Optional[str] = None,
    ) -> BulkResult:
        """
        Attempts every item independently. Domain failures are logged and
        skipped; one summary event is written if anything succeeded.
        """
        result = BulkResult()

        for product_id in dict.fromkeys(product_ids):
            try:
                await apply(product_id)
            except DomainError as e:
                logger.warning(f"Could not {label} product {product_id}: {e.message}")
                result.failed.append(BulkFailure(product_id=product_id, reason=e.message))
                if failure_action:
                    self.audit.log_event(failure_action, product_id, {"error": e.message}, user.id)
                continue
            result.succeeded.append(product_id)

        if result.succeeded:
            self.audit.log_event(
                summary_action,
                BULK_ENTITY,
                {"count": len(result.succeeded), "product_ids": result.succeeded},
                user.id,
            )
        return result

    async def bulk_anchor_products(self, user: User, product_ids: List[str]) -> BulkResult:
        async def anchor(product_id: str) -> None:
            product = self.products.get_product_by_id(product_id, user)
            check_permission(user, Action.PRODUCT_APPROVE, product)
            self._ensure_anchorable(product)
            self._start_anchoring(product, user.id)

        return await self._run_bulk(
            user, product_ids, "anchor", "product.bulk_anchor", anchor,
            failure_action="product.bulk_anchor.failed",
        )

    async def bulk_delete_products(self, user: User, product_ids: List[str]) -> BulkResult:
        async def delete(product_id: str) -> None:
            product = self.products.get_product_by_id(product_id, user)
            check_permission(user, Action.PRODUCT_DELETE, product)
            ensure_not_minting(product)
            self.store.products.delete(product.id)

        return await self._run_bulk(user, product_ids, "delete", "product.bulk_delete", delete)

    async def bulk_submit_for_review(self, user: User, product_ids: List[str]) -> BulkResult:
        async def submit(product_id: str) -> None:
            await self.submit_for_review(user, product_id)

        return await self._run_bulk(user, product_ids, "submit", "product.bulk_submit", submit)

    async def bulk_archive_products(self, user: User, product_ids: List[str]) -> BulkResult:
        async def archive(product_id: str) -> None:
            product = self.products.get_product_by_id(product_id, user)
            check_permission(user, Action.PRODUCT_ARCHIVE, product)
            ensure_not_minting(product)
            if product.status == ProductStatus.ARCHIVED:
                raise InvalidTransition("Product is already archived.")
            product.status = ProductStatus.ARCHIVED
            self._touch(product)

        return await self._run_bulk(user, product_ids, "archive", "product.bulk_archive", archive)

    async def bulk_create_products(self, user: User, items: List[ProductCreate]) -> BulkResult:
        """Imports a batch of drafts; each one is scored like a single save."""
        check_permission(user, Action.PRODUCT_CREATE)
        result = BulkResult()

        for index, data in enumerate(items):
            try:
                product = await self.products.save_product(user, data)
            except DomainError as e:
                logger.warning(f"Could not import product #{index} ({data.product_name}): {e.message}")
                result.failed.append(BulkFailure(product_id=f"#{index}", reason=e.message))
                continue
            result.succeeded.append(product.id)

        if result.succeeded:
            self.audit.log_event(
                "product.bulk_import",
                BULK_ENTITY,
                {"count": len(result.succeeded), "product_ids": result.succeeded},
                user.id,
            )
        return result

from __future__ import annotations

import pytest

from norruva.core.config import settings
from norruva.core.dependencies import ServiceContainer
from norruva.core.exceptions import (
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ProcessingInProgress,
    ValidationFailed,
)
from norruva.db.schema import (
    ComplianceGap,
    CustomsOutcome,
    EndOfLifeStatus,
    Product,
    ProductStatus,
    User,
    VerificationStatus,
)
from norruva.models.product import CustomsInspectionCreate, ProductUpdate

from tests.utils import complete_product_payload


def _actions(container: ServiceContainer, entity_id: str) -> list[str]:
    """Audit actions for an entity in chronological order."""
    return [log.action for log in container.store.audit_logs.list(entity_id=entity_id)]


class TestHappyPath:
    """Draft -> Pending -> Verified/Published through the anchoring task."""

    async def test_submit_approve_anchor(
        self, container: ServiceContainer, supplier: User, auditor: User, draft_product: Product
    ) -> None:
        assert draft_product.status == ProductStatus.DRAFT
        assert draft_product.verification_status == VerificationStatus.NOT_SUBMITTED
        assert draft_product.is_processing is False

        product = await container.workflow.submit_for_review(supplier, draft_product.id)
        assert product.verification_status == VerificationStatus.PENDING

        product = await container.workflow.approve_passport(auditor, product.id)
        assert product.is_minting is True
        assert product.verification_status == VerificationStatus.PENDING

        await container.runner.drain()

        assert product.is_minting is False
        assert product.verification_status == VerificationStatus.VERIFIED
        assert product.status == ProductStatus.PUBLISHED
        assert product.blockchain_proof is not None
        assert product.blockchain_proof.tx_hash.startswith("0x")
        assert product.verifiable_credential["id"] == product.ebsi_vc_id
        assert product.last_verification_date is not None

        actions = _actions(container, product.id)
        workflow_actions = [a for a in actions if a in ("passport.submitted", "passport.approved", "product.anchored")]
        assert workflow_actions == ["passport.submitted", "passport.approved", "product.anchored"]

    async def test_credential_signature_verifies(
        self, container: ServiceContainer, supplier: User, auditor: User, draft_product: Product
    ) -> None:
        await container.workflow.submit_for_review(supplier, draft_product.id)
        await container.workflow.approve_passport(auditor, draft_product.id)
        await container.runner.drain()

        credential = draft_product.verifiable_credential
        assert credential["credentialSubject"]["anchor"]["tx_hash"] == draft_product.blockchain_proof.tx_hash
        assert container.issuer.verify(credential) is True

    async def test_approve_twice_while_minting(
        self, container: ServiceContainer, supplier: User, auditor: User, draft_product: Product
    ) -> None:
        await container.workflow.submit_for_review(supplier, draft_product.id)
        await container.workflow.approve_passport(auditor, draft_product.id)

        with pytest.raises(ProcessingInProgress):
            await container.workflow.approve_passport(auditor, draft_product.id)

        await container.runner.drain()


class TestSubmit:

    async def test_incomplete_checklist_rejected(self, container: ServiceContainer, supplier: User) -> None:
        product = await container.products.save_product(
            supplier, complete_product_payload(manufacturing=None, compliance_path_id=None)
        )
        await container.runner.drain()

        with pytest.raises(ValidationFailed) as exc_info:
            await container.workflow.submit_for_review(supplier, product.id)

        fields = {error["field"] for error in exc_info.value.errors}
        assert fields == {"has_manufacturing", "has_compliance_path"}
        assert product.verification_status == VerificationStatus.NOT_SUBMITTED
        assert "passport.submitted" not in _actions(container, product.id)

    async def test_already_pending(self, container: ServiceContainer, other_supplier: User) -> None:
        with pytest.raises(InvalidTransition):
            await container.workflow.submit_for_review(other_supplier, "pp-003")

    async def test_auditor_cannot_submit(self, container: ServiceContainer, auditor: User) -> None:
        with pytest.raises(PermissionDenied):
            await container.workflow.submit_for_review(auditor, "pp-002")

    async def test_hidden_product_is_not_found(self, container: ServiceContainer, other_supplier: User) -> None:
        # pp-002 is a GreenTech draft, invisible to EcoTextiles
        with pytest.raises(NotFound):
            await container.workflow.submit_for_review(other_supplier, "pp-002")


class TestReject:

    async def test_reject_keeps_reason(self, container: ServiceContainer, auditor: User) -> None:
        gaps = [ComplianceGap(regulation="REACH", issue="SVHC declaration missing.")]
        product = await container.workflow.reject_passport(auditor, "pp-003", "Missing SVHC declaration", gaps)

        assert product.verification_status == VerificationStatus.FAILED
        assert product.sustainability.compliance_summary == "Missing SVHC declaration"
        assert product.sustainability.gaps == gaps
        assert product.sustainability.is_compliant is False

        log = container.audit.get_logs_for_entity("pp-003")[0]
        assert log.action == "passport.rejected"
        assert log.details["reason"] == "Missing SVHC declaration"

    async def test_reject_requires_pending(self, container: ServiceContainer, auditor: User) -> None:
        with pytest.raises(InvalidTransition):
            await container.workflow.reject_passport(auditor, "pp-002", "Nope")

    async def test_supplier_cannot_reject(self, container: ServiceContainer, other_supplier: User) -> None:
        with pytest.raises(PermissionDenied):
            await container.workflow.reject_passport(other_supplier, "pp-003", "Self rejection")

    async def test_resolve_reopens_failed(
        self, container: ServiceContainer, auditor: User, compliance_manager: User
    ) -> None:
        await container.workflow.reject_passport(auditor, "pp-003", "Fix materials")
        product = await container.workflow.resolve_compliance_issue(compliance_manager, "pp-003")

        assert product.verification_status == VerificationStatus.NOT_SUBMITTED
        assert product.status == ProductStatus.DRAFT
        assert _actions(container, "pp-003")[-1] == "compliance.resolved"

    async def test_resolve_requires_failed(self, container: ServiceContainer, compliance_manager: User) -> None:
        with pytest.raises(InvalidTransition):
            await container.workflow.resolve_compliance_issue(compliance_manager, "pp-003")

    async def test_editing_failed_passport_reopens_it(
        self, container: ServiceContainer, auditor: User, other_supplier: User
    ) -> None:
        await container.workflow.reject_passport(auditor, "pp-003", "Fix description")

        product = await container.products.save_product(
            other_supplier, ProductUpdate(product_description="Now with a better description."), product_id="pp-003"
        )
        await container.runner.drain()

        assert product.verification_status == VerificationStatus.NOT_SUBMITTED
        assert product.status == ProductStatus.DRAFT
        assert product.product_description == "Now with a better description."

    async def test_resolve_drops_rejection_findings(
        self, container: ServiceContainer, auditor: User, compliance_manager: User
    ) -> None:
        gap = ComplianceGap(regulation="REACH", issue="Missing SVHC declaration.")
        await container.workflow.reject_passport(auditor, "pp-003", "Fix materials", gaps=[gap])

        product = await container.workflow.resolve_compliance_issue(compliance_manager, "pp-003")

        assert product.sustainability.compliance_summary != "Fix materials"
        assert product.sustainability.gaps == []
        assert product.sustainability.is_compliant is False

    async def test_rescoring_after_reopen_keeps_rejection_cleared(
        self, container: ServiceContainer, auditor: User, other_supplier: User
    ) -> None:
        gap = ComplianceGap(regulation="REACH", issue="Missing SVHC declaration.")
        await container.workflow.reject_passport(auditor, "pp-003", "Fix description", gaps=[gap])

        product = await container.products.save_product(
            other_supplier, ProductUpdate(product_description="Now with a better description."), product_id="pp-003"
        )
        await container.runner.drain()

        assert product.sustainability.compliance_summary != "Fix description"
        assert product.sustainability.gaps == []
        assert product.sustainability.score > 0


class TestOverride:

    async def test_override_publishes_without_anchor(self, container: ServiceContainer, auditor: User) -> None:
        product = await container.workflow.override_verification(auditor, "pp-003", "Manual review complete")

        assert product.verification_status == VerificationStatus.VERIFIED
        assert product.status == ProductStatus.PUBLISHED
        assert product.blockchain_proof is None
        assert product.verification_override.user_id == auditor.id
        assert product.verification_override.reason == "Manual review complete"

    async def test_override_verified_rejected(self, container: ServiceContainer, auditor: User) -> None:
        with pytest.raises(InvalidTransition):
            await container.workflow.override_verification(auditor, "pp-001", "Again")


class TestRecycle:

    async def test_recycler_earns_credits(self, container: ServiceContainer, recycler: User) -> None:
        product = await container.workflow.mark_as_recycled(recycler, "pp-001")

        assert product.end_of_life_status == EndOfLifeStatus.RECYCLED
        assert recycler.circularity_credits == settings.recycling_credit_amount

        logs = container.store.audit_logs.list(entity_id="pp-001")
        assert [log.action for log in logs][-2:] == ["product.recycled", "credits.minted"]
        assert logs[-1].user_id == "system"
        assert logs[-1].details["recipient"] == recycler.id

    async def test_recycle_twice_rejected(self, container: ServiceContainer, recycler: User) -> None:
        await container.workflow.mark_as_recycled(recycler, "pp-001")
        with pytest.raises(InvalidTransition):
            await container.workflow.mark_as_recycled(recycler, "pp-001")
        assert recycler.circularity_credits == settings.recycling_credit_amount

    async def test_supplier_cannot_recycle(self, container: ServiceContainer, supplier: User) -> None:
        with pytest.raises(PermissionDenied):
            await container.workflow.mark_as_recycled(supplier, "pp-001")


class TestFieldOperations:

    async def test_service_record(self, container: ServiceContainer, service_provider: User) -> None:
        product = await container.workflow.add_service_record(service_provider, "pp-001", "Replaced door seal")

        assert product.service_history[-1].notes == "Replaced door seal"
        assert product.service_history[-1].provider_id == service_provider.id
        assert _actions(container, "pp-001")[-1] == "product.serviced"

    async def test_customs_history_rolls_over(self, container: ServiceContainer, retailer: User) -> None:
        first = CustomsInspectionCreate(status=CustomsOutcome.DETAINED, authority="Zoll", location="Hamburg")
        second = CustomsInspectionCreate(status=CustomsOutcome.CLEARED, authority="Zoll", location="Hamburg")

        await container.workflow.perform_customs_inspection(retailer, "pp-001", first)
        product = await container.workflow.perform_customs_inspection(retailer, "pp-001", second)

        assert product.customs.status == CustomsOutcome.CLEARED
        assert len(product.customs.history) == 1
        assert product.customs.history[0]["status"] == CustomsOutcome.DETAINED.value


class TestDelete:

    async def test_published_delete_denied_without_side_effects(
        self, container: ServiceContainer, supplier: User
    ) -> None:
        before = len(container.store.audit_logs)

        with pytest.raises(PermissionDenied):
            await container.products.delete_product(supplier, "pp-001")

        assert "pp-001" in container.store.products
        assert len(container.store.audit_logs) == before

    async def test_draft_delete(self, container: ServiceContainer, supplier: User) -> None:
        await container.products.delete_product(supplier, "pp-002")

        assert "pp-002" not in container.store.products
        assert _actions(container, "pp-002") == ["product.deleted"]


class TestProcessingFlags:
    """Flags raised for background work always come back down."""

    async def test_scoring_failure_clears_flag(self, failing_container: ServiceContainer, supplier: User) -> None:
        product = await failing_container.products.save_product(supplier, complete_product_payload())
        assert product.is_processing is True

        await failing_container.runner.drain()

        assert product.is_processing is False
        assert "product.scoring.failed" in _actions(failing_container, product.id)

    async def test_anchor_failure_clears_minting(
        self, failing_container: ServiceContainer, auditor: User
    ) -> None:
        product = await failing_container.workflow.approve_passport(auditor, "pp-003")
        assert product.is_minting is True

        await failing_container.runner.drain()

        assert product.is_minting is False
        assert product.verification_status == VerificationStatus.PENDING
        assert product.blockchain_proof is None
        actions = _actions(failing_container, "pp-003")
        assert actions[-2:] == ["passport.approved", "product.anchoring.failed"]

    @pytest.mark.parametrize(
        "operation, failure_action",
        [
            ("recalculate_score", "product.recalculate_score.failed"),
            ("run_data_validation", "product.validation.failed"),
            ("run_lifecycle_prediction", "product.prediction.failed"),
        ],
    )
    async def test_analysis_failure_clears_flag(
        self, failing_container: ServiceContainer, supplier: User, operation: str, failure_action: str
    ) -> None:
        product = await getattr(failing_container.workflow, operation)(supplier, "pp-002")
        assert product.is_processing is True

        await failing_container.runner.drain()

        assert product.is_processing is False
        assert _actions(failing_container, "pp-002")[-1] == failure_action

    async def test_second_analysis_rejected_while_processing(
        self, container: ServiceContainer, supplier: User
    ) -> None:
        await container.workflow.recalculate_score(supplier, "pp-002")

        with pytest.raises(ProcessingInProgress):
            await container.workflow.run_data_validation(supplier, "pp-002")

        await container.runner.drain()
        assert container.store.products.get("pp-002").is_processing is False

    async def test_update_rejected_while_processing(
        self, container: ServiceContainer, supplier: User
    ) -> None:
        product = await container.products.save_product(supplier, complete_product_payload())

        with pytest.raises(ProcessingInProgress):
            await container.products.save_product(supplier, ProductUpdate(product_name="Renamed"), product_id=product.id)

        await container.runner.drain()

    async def test_edit_rejected_while_minting(
        self, container: ServiceContainer, auditor: User, other_supplier: User
    ) -> None:
        await container.workflow.approve_passport(auditor, "pp-003")

        with pytest.raises(ProcessingInProgress):
            await container.products.save_product(
                other_supplier, ProductUpdate(status=ProductStatus.ARCHIVED), product_id="pp-003"
            )

        await container.runner.drain()

        product = container.store.products.get("pp-003")
        assert product.status == ProductStatus.PUBLISHED
        assert product.verification_status == VerificationStatus.VERIFIED
        assert "product.updated" not in _actions(container, "pp-003")

    async def test_delete_rejected_while_minting(
        self, container: ServiceContainer, auditor: User, other_supplier: User
    ) -> None:
        await container.workflow.approve_passport(auditor, "pp-003")

        with pytest.raises(ProcessingInProgress):
            await container.products.delete_product(other_supplier, "pp-003")

        await container.runner.drain()

        assert "pp-003" in container.store.products
        actions = _actions(container, "pp-003")
        assert actions[-2:] == ["passport.approved", "product.anchored"]
        assert "product.deleted" not in actions

    async def test_bulk_delete_skips_minting_item(
        self, container: ServiceContainer, auditor: User, other_supplier: User
    ) -> None:
        await container.workflow.approve_passport(auditor, "pp-003")

        result = await container.workflow.bulk_delete_products(other_supplier, ["pp-003"])

        assert result.count == 0
        assert result.failed[0].product_id == "pp-003"
        assert "Anchoring" in result.failed[0].reason

        await container.runner.drain()
        assert "pp-003" in container.store.products
        assert "product.anchored" in _actions(container, "pp-003")

    async def test_deleted_during_scoring_is_not_resurrected(
        self, container: ServiceContainer, supplier: User
    ) -> None:
        product = await container.products.save_product(supplier, complete_product_payload())
        container.store.products.delete(product.id)

        await container.runner.drain()

        assert product.id not in container.store.products


class TestAnalysis:

    async def test_recalculate_records_score(self, container: ServiceContainer, supplier: User) -> None:
        await container.workflow.recalculate_score(supplier, "pp-002")
        await container.runner.drain()

        product = container.store.products.get("pp-002")
        assert product.sustainability is not None
        assert 0 <= product.sustainability.score <= 100
        actions = _actions(container, "pp-002")
        assert actions[-2:] == ["product.recalculate_score.started", "product.recalculate_score.completed"]

    async def test_validation_finds_bad_percentages(self, container: ServiceContainer, supplier: User) -> None:
        product = await container.products.save_product(
            supplier,
            complete_product_payload(materials=[{"name": "Steel", "percentage": 70}]),
        )
        await container.runner.drain()

        await container.workflow.run_data_validation(supplier, product.id)
        await container.runner.drain()

        assert [w.field for w in product.data_quality_warnings] == ["materials"]
        assert product.submission_checklist.passes_data_quality is False

    async def test_prediction_stored(self, container: ServiceContainer, supplier: User) -> None:
        await container.workflow.run_lifecycle_prediction(supplier, "pp-002")
        await container.runner.drain()

        prediction = container.store.products.get("pp-002").sustainability.lifecycle_prediction
        assert set(prediction) == {"predicted_lifespan_years", "key_failure_points", "end_of_life_recommendation"}

    async def test_compliance_check_records_gaps(self, container: ServiceContainer, other_supplier: User) -> None:
        # Organic cotton and REACH satisfy the textiles path; only the score rule is open
        await container.workflow.run_compliance_check(other_supplier, "pp-003")
        await container.runner.drain()

        product = container.store.products.get("pp-003")
        # No score yet, so the minimum-score rule fails
        assert product.sustainability.is_compliant is False
        assert any("below the required minimum" in gap.issue for gap in product.sustainability.gaps)
        assert _actions(container, "pp-003")[-1] == "product.compliance.checked"

    async def test_compliance_check_without_path(self, container: ServiceContainer, supplier: User) -> None:
        product = await container.products.save_product(supplier, complete_product_payload(compliance_path_id=None))
        await container.runner.drain()

        with pytest.raises(ValidationFailed):
            await container.workflow.run_compliance_check(supplier, product.id)
        assert product.is_processing is False

    async def test_foreign_company_cannot_recalculate(self, container: ServiceContainer, other_supplier: User) -> None:
        # pp-001 is published, so visible, but owned by GreenTech
        with pytest.raises(PermissionDenied):
            await container.workflow.recalculate_score(other_supplier, "pp-001")

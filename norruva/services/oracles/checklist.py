from norruva.db.schema import Product, SubmissionChecklist


class ChecklistValidator:
    """
    Deterministic data-completeness gate used before a passport can be
    submitted for review.
    """

    def validate(self, product: Product) -> SubmissionChecklist:
        manufacturing = product.manufacturing
        lifecycle = product.lifecycle

        return SubmissionChecklist(
            has_base_info=bool(product.product_name and product.product_description and product.category),
            has_materials=len(product.materials) > 0,
            has_manufacturing=bool(manufacturing and manufacturing.facility and manufacturing.country),
            has_lifecycle_data=bool(
                lifecycle
                and lifecycle.expected_lifespan
                and lifecycle.repairability_score is not None
            ),
            has_compliance_path=bool(product.compliance_path_id),
            passes_data_quality=not product.data_quality_warnings,
        )

from abc import ABC, abstractmethod
import asyncio
from typing import List
from sqlmodel import SQLModel, Field

from norruva.db.schema import ComplianceGap, CompliancePath, Product


class ComplianceResult(SQLModel):
    is_compliant: bool
    compliance_summary: str
    gaps: List[ComplianceGap] = Field(default_factory=list)


# Regulation key -> (declaration field, gap label, issue text)
REGULATION_FLAGS = {
    "rohs": ("rohs_compliant", "RoHS", "Product is not declared as RoHS compliant."),
    "reach": ("reach_svhc", "REACH", "Product has not been declared for Substances of Very High Concern (SVHC)."),
    "weee": ("weee_registered", "WEEE", "Product is not registered with a WEEE compliance scheme."),
    "eudr": ("eudr_compliant", "EUDR", "Product is not declared as EUDR compliant (deforestation-free)."),
}


def verify_product_against_path(product: Product, path: CompliancePath) -> List[ComplianceGap]:
    """
    Rule-based comparison of a product against a compliance path.
    Returns every gap found; an empty list means compliant.
    """
    gaps = []
    rules = path.rules

    # 1. Minimum sustainability score
    if rules.min_sustainability_score is not None:
        score = product.sustainability.score if product.sustainability else None
        if score is None or score < rules.min_sustainability_score:
            gaps.append(ComplianceGap(
                regulation=path.name,
                issue=f"Product ESG score of {score if score is not None else 'N/A'} is below the "
                      f"required minimum of {rules.min_sustainability_score}.",
            ))

    # 2. Banned material keywords
    banned = [keyword.lower() for keyword in rules.banned_keywords]
    for material in product.materials:
        if any(keyword in material.name.lower() for keyword in banned):
            gaps.append(ComplianceGap(
                regulation=path.name,
                issue=f"Product contains a banned material: '{material.name}'.",
            ))

    # 3. Required material keywords (any one is enough)
    required = [keyword.lower() for keyword in rules.required_keywords]
    if required:
        has_required = any(
            keyword in material.name.lower() for material in product.materials for keyword in required
        )
        if not has_required:
            gaps.append(ComplianceGap(
                regulation=path.name,
                issue=f"Product is missing a required material. Must include one of: {', '.join(rules.required_keywords)}.",
            ))

    # 4. Regulation declarations
    regulations = {regulation.lower() for regulation in path.regulations}
    for key, (field, label, issue) in REGULATION_FLAGS.items():
        if key in regulations and not getattr(product.compliance, field):
            gaps.append(ComplianceGap(regulation=label, issue=issue))

    return gaps


class ComplianceOracle(ABC):
    """Summarizes compliance gaps between a product and its compliance path."""

    @abstractmethod
    async def summarize_compliance_gaps(self, product: Product, path: CompliancePath) -> ComplianceResult:
        ...


class RuleBasedComplianceOracle(ComplianceOracle):

    async def summarize_compliance_gaps(self, product: Product, path: CompliancePath) -> ComplianceResult:
        await asyncio.sleep(0)
        gaps = verify_product_against_path(product, path)

        if gaps:
            summary = f"{len(gaps)} compliance gap(s) found against '{path.name}'."
        else:
            summary = f"Product meets all requirements of '{path.name}'."

        return ComplianceResult(is_compliant=not gaps, compliance_summary=summary, gaps=gaps)

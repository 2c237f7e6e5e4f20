from abc import ABC, abstractmethod
import asyncio
from typing import Any, Dict, List
from sqlmodel import SQLModel, Field

from norruva.db.schema import ComplianceGap, DataQualityWarning, Product


class ScoringResult(SQLModel):
    score: int
    environmental: int
    social: int
    governance: int
    summary: str
    compliance_summary: str = "Awaiting compliance analysis."
    gaps: List[ComplianceGap] = Field(default_factory=list)
    qr_label_text: str
    data_quality_warnings: List[DataQualityWarning] = Field(default_factory=list)


class ScoringOracle(ABC):
    """
    Contract for the AI scoring collaborator.
    Implementations are pure functions of the product snapshot and may be slow.
    """

    @abstractmethod
    async def score_product(self, product: Product) -> ScoringResult:
        ...

    @abstractmethod
    async def validate_data(self, product: Product) -> List[DataQualityWarning]:
        ...

    @abstractmethod
    async def predict_lifecycle(self, product: Product) -> Dict[str, Any]:
        ...


def _clamp(value: float) -> int:
    return max(0, min(100, int(round(value))))


class MockScoringOracle(ScoringOracle):
    """
    Deterministic stand-in for the ESG / QR / data-quality flows.
    Same product data always yields the same result.
    """

    def __init__(self, latency: float = 0):
        self.latency = latency

    async def score_product(self, product: Product) -> ScoringResult:
        await asyncio.sleep(self.latency)

        warnings = await self.validate_data(product)

        # Environmental: recycled content and packaging
        recycled = [m.recycled_content for m in product.materials if m.recycled_content is not None]
        environmental = 40 + (sum(recycled) / len(recycled) if recycled else 0) * 0.4
        if product.packaging and product.packaging.recyclable:
            environmental += 10
        if product.manufacturing and product.manufacturing.emissions_kg_co2e:
            environmental -= min(product.manufacturing.emissions_kg_co2e / 10, 20)

        # Social: traceable origins and certifications
        social = 50 + 10 * len(product.certifications)
        social += 5 * len([m for m in product.materials if m.origin])

        # Governance: declarations and documentation
        declarations = product.compliance.model_dump().values()
        governance = 40 + 12 * sum(1 for flag in declarations if flag)
        if product.lifecycle and product.lifecycle.repairability_score:
            governance += product.lifecycle.repairability_score

        env, soc, gov = _clamp(environmental), _clamp(social), _clamp(governance)
        score = _clamp((env + soc + gov) / 3)

        return ScoringResult(
            score=score,
            environmental=env,
            social=soc,
            governance=gov,
            summary=f"{product.product_name} scores {score}/100 on combined ESG metrics.",
            qr_label_text=f"{product.product_name}: ESG score {score}. Scan for the full passport.",
            data_quality_warnings=warnings,
        )

    async def validate_data(self, product: Product) -> List[DataQualityWarning]:
        await asyncio.sleep(self.latency)
        warnings = []

        shares = [m.percentage for m in product.materials if m.percentage is not None]
        if shares and abs(sum(shares) - 100) > 0.5:
            warnings.append(DataQualityWarning(
                field="materials",
                warning=f"Material percentages sum to {sum(shares):g}%, expected 100%.",
            ))

        for material in product.materials:
            if material.recycled_content is not None and not 0 <= material.recycled_content <= 100:
                warnings.append(DataQualityWarning(
                    field="materials.recycled_content",
                    warning=f"Recycled content for '{material.name}' must be between 0 and 100.",
                ))

        if product.lifecycle and product.lifecycle.expected_lifespan is not None:
            if product.lifecycle.expected_lifespan > 100:
                warnings.append(DataQualityWarning(
                    field="lifecycle.expected_lifespan",
                    warning="Expected lifespan above 100 years looks unrealistic.",
                ))

        if product.gtin and (not product.gtin.isdigit() or len(product.gtin) not in (8, 12, 13, 14)):
            warnings.append(DataQualityWarning(field="gtin", warning="GTIN is not a valid 8/12/13/14 digit code."))

        return warnings

    async def predict_lifecycle(self, product: Product) -> Dict[str, Any]:
        await asyncio.sleep(self.latency)
        lifespan = product.lifecycle.expected_lifespan if product.lifecycle and product.lifecycle.expected_lifespan else 5
        repairability = 5
        if product.lifecycle and product.lifecycle.repairability_score is not None:
            repairability = product.lifecycle.repairability_score

        return {
            "predicted_lifespan_years": round(lifespan * (0.8 + repairability / 50), 1),
            "key_failure_points": ["Wear of moving parts"] if repairability < 7 else [],
            "end_of_life_recommendation": "Refurbish and resell" if repairability >= 7 else "Material recovery",
        }

from __future__ import annotations

from typing import Any

from norruva.models.product import ProductCreate


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def complete_product_payload(**overrides: Any) -> ProductCreate:
    """A passport that passes every submission checklist item once scored."""
    data = {
        "product_name": "Eco Kettle K2",
        "product_description": "Stainless steel kettle with replaceable heating element.",
        "category": "Electronics",
        "gtin": "4006381333955",
        "materials": [
            {"name": "Stainless Steel", "percentage": 80, "recycled_content": 60, "origin": "Sweden"},
            {"name": "Polypropylene", "percentage": 20, "recycled_content": 10},
        ],
        "manufacturing": {"facility": "Plant Berlin", "country": "Germany", "emissions_kg_co2e": 40},
        "lifecycle": {"expected_lifespan": 8, "repairability_score": 7},
        "compliance": {"rohs_compliant": True, "reach_svhc": True, "weee_registered": True},
        "compliance_path_id": "cp-eu-electronics",
    }
    data.update(overrides)
    return ProductCreate(**data)

from typing import Dict, List
from loguru import logger

from norruva.db.schema import (
    Company,
    ComplianceDeclarations,
    CompliancePath,
    ComplianceRules,
    Lifecycle,
    Manufacturing,
    Material,
    Packaging,
    Product,
    ProductStatus,
    Role,
    User,
    VerificationStatus,
)
from norruva.db.store import EntityStore
from norruva.services.oracles.checklist import ChecklistValidator


# 1. Companies (fixed ids so demo links stay stable)
DEMO_COMPANIES = [
    {"id": "comp-norruva", "name": "Norruva Platform", "owner_id": "user-admin", "industry": "Software"},
    {"id": "comp-greentech", "name": "GreenTech Manufacturing", "owner_id": "user-supplier", "industry": "Electronics"},
    {"id": "comp-ecotextiles", "name": "EcoTextiles Ltd", "owner_id": "user-supplier-2", "industry": "Textiles"},
]

# 2. One account per role
DEMO_USERS = [
    ("user-admin", "admin@norruva.com", "Admin User", "comp-norruva", [Role.ADMIN]),
    ("user-supplier", "supplier@greentech.com", "Sam Supplier", "comp-greentech", [Role.SUPPLIER]),
    ("user-supplier-2", "supplier@ecotextiles.com", "Tess Textile", "comp-ecotextiles", [Role.SUPPLIER]),
    ("user-auditor", "auditor@norruva.com", "Alex Auditor", "comp-norruva", [Role.AUDITOR]),
    ("user-compliance", "compliance@greentech.com", "Casey Compliance", "comp-greentech", [Role.COMPLIANCE_MANAGER]),
    ("user-manufacturer", "manufacturer@greentech.com", "Morgan Maker", "comp-greentech", [Role.MANUFACTURER]),
    ("user-service", "service@norruva.com", "Sasha Service", "comp-norruva", [Role.SERVICE_PROVIDER]),
    ("user-recycler", "recycler@norruva.com", "Riley Recycler", "comp-norruva", [Role.RECYCLER]),
    ("user-developer", "developer@greentech.com", "Dana Developer", "comp-greentech", [Role.DEVELOPER]),
    ("user-retailer", "retailer@norruva.com", "Robin Retailer", "comp-norruva", [Role.RETAILER]),
    ("user-analyst", "analyst@norruva.com", "Bailey Analyst", "comp-norruva", [Role.BUSINESS_ANALYST]),
]

# 3. Compliance paths
DEMO_COMPLIANCE_PATHS = [
    {
        "id": "cp-eu-electronics",
        "name": "EU Electronics (RoHS / REACH / WEEE)",
        "description": "Baseline for electronic equipment placed on the EU market.",
        "category": "Electronics",
        "jurisdiction": "EU",
        "regulations": ["RoHS", "REACH", "WEEE"],
        "rules": {"min_sustainability_score": 50, "banned_keywords": ["lead", "mercury", "cadmium"]},
    },
    {
        "id": "cp-eu-textiles",
        "name": "EU Sustainable Textiles",
        "description": "ESPR textile requirements with organic fibre content.",
        "category": "Textiles",
        "jurisdiction": "EU",
        "regulations": ["REACH"],
        "rules": {"min_sustainability_score": 40, "required_keywords": ["organic", "recycled"]},
    },
    {
        "id": "cp-eudr",
        "name": "EU Deforestation Regulation",
        "description": "Deforestation-free supply chain declaration.",
        "category": "Home Goods",
        "jurisdiction": "EU",
        "regulations": ["EUDR"],
        "rules": {},
    },
]


def _demo_products() -> List[Product]:
    return [
        Product(
            id="pp-001",
            company_id="comp-greentech",
            supplier="GreenTech Manufacturing",
            product_name="EcoSmart Refrigerator X500",
            product_description="Energy efficient A+++ refrigerator with recycled steel housing.",
            category="Electronics",
            gtin="4006381333931",
            materials=[
                Material(name="Recycled Steel", percentage=60, recycled_content=80, origin="Germany"),
                Material(name="ABS Plastic", percentage=40, recycled_content=20, origin="Poland"),
            ],
            manufacturing=Manufacturing(facility="Plant Berlin", country="Germany", emissions_kg_co2e=120),
            packaging=Packaging(type="Cardboard", recycled_content=90, recyclable=True),
            lifecycle=Lifecycle(expected_lifespan=15, repairability_score=8),
            compliance=ComplianceDeclarations(rohs_compliant=True, reach_svhc=True, weee_registered=True),
            compliance_path_id="cp-eu-electronics",
            status=ProductStatus.PUBLISHED,
            verification_status=VerificationStatus.VERIFIED,
        ),
        Product(
            id="pp-002",
            company_id="comp-greentech",
            supplier="GreenTech Manufacturing",
            product_name="Solar Charger S1",
            product_description="Portable solar charger for phones and tablets.",
            category="Electronics",
            gtin="4006381333948",
            materials=[Material(name="Monocrystalline Silicon", percentage=70), Material(name="Aluminium", percentage=30)],
            manufacturing=Manufacturing(facility="Plant Berlin", country="Germany"),
            lifecycle=Lifecycle(expected_lifespan=6, repairability_score=5),
            compliance_path_id="cp-eu-electronics",
        ),
        Product(
            id="pp-003",
            company_id="comp-ecotextiles",
            supplier="EcoTextiles Ltd",
            product_name="Organic Cotton T-Shirt",
            product_description="Unisex t-shirt made from certified organic cotton.",
            category="Textiles",
            gtin="5012345678900",
            materials=[Material(name="Organic Cotton", percentage=95, origin="India"), Material(name="Elastane", percentage=5)],
            manufacturing=Manufacturing(facility="Dhaka Mill 4", country="Bangladesh"),
            lifecycle=Lifecycle(expected_lifespan=4, repairability_score=6),
            compliance=ComplianceDeclarations(reach_svhc=True),
            compliance_path_id="cp-eu-textiles",
            verification_status=VerificationStatus.PENDING,
        ),
    ]


def seed_companies(store: EntityStore):
    logger.info("--- Seeding Companies ---")
    for data in DEMO_COMPANIES:
        if data["id"] not in store.companies:
            store.companies.add(Company(**data))


def seed_users(store: EntityStore):
    logger.info("--- Seeding Users ---")
    for user_id, email, full_name, company_id, roles in DEMO_USERS:
        if user_id not in store.users:
            store.users.add(User(id=user_id, email=email, full_name=full_name, company_id=company_id, roles=roles))


def seed_compliance_paths(store: EntityStore):
    logger.info("--- Seeding Compliance Paths ---")
    for data in DEMO_COMPLIANCE_PATHS:
        if data["id"] not in store.compliance_paths:
            store.compliance_paths.add(
                CompliancePath(**{**data, "rules": ComplianceRules(**data["rules"])})
            )


def seed_products(store: EntityStore):
    logger.info("--- Seeding Products ---")
    checklist = ChecklistValidator()
    for product in _demo_products():
        if product.id not in store.products:
            product.submission_checklist = checklist.validate(product)
            store.products.add(product)


def seed_demo_data(store: EntityStore) -> EntityStore:
    """Idempotent: running it twice leaves the same data."""
    seed_companies(store)
    seed_users(store)
    seed_compliance_paths(store)
    seed_products(store)
    logger.info("Demo data seeding completed successfully.")
    return store


def issue_demo_api_keys(store: EntityStore, api_keys) -> Dict[str, str]:
    """
    Issues one API key per demo user and returns email -> raw token.
    Raw tokens are never stored, so this is the only chance to see them.
    """
    tokens = {}
    for user in store.users.list():
        _, raw_token = api_keys.issue_key(user, "Demo key", ["*"])
        tokens[user.email] = raw_token
        logger.info(f"Demo API key for {user.email}: {raw_token}")
    return tokens

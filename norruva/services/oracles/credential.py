from abc import ABC, abstractmethod
import asyncio
import uuid
from typing import Any, Dict, Optional

import jwt

from norruva.core.config import settings
from norruva.core.exceptions import OracleFailure
from norruva.db.schema import BlockchainProof, Company, Product, utcnow

ALGORITHM = "HS256"


class CredentialIssuer(ABC):
    """Contract for issuing the W3C Verifiable Credential of a passport."""

    @abstractmethod
    async def issue(self, product: Product, company: Company, proof: Optional[BlockchainProof] = None) -> Dict[str, Any]:
        ...


class JwsCredentialIssuer(CredentialIssuer):
    """
    Builds a JSON-LD shaped credential and attaches a compact JWS over it.
    The signature is an HMAC with the application secret, not a DID key.
    """

    def __init__(self, issuer_did: Optional[str] = None, secret_key: Optional[str] = None):
        self.issuer_did = issuer_did or settings.credential_issuer_did
        self.secret_key = secret_key or settings.secret_key

    async def issue(self, product: Product, company: Company, proof: Optional[BlockchainProof] = None) -> Dict[str, Any]:
        await asyncio.sleep(0)

        if company is None:
            raise OracleFailure(f"Company associated with product {product.id} not found.")

        issuance_date = utcnow().isoformat()

        credential_subject = {
            "id": f"did:dpp:product:{product.id}",
            "type": "Product",
            "name": product.product_name,
            "gtin": product.gtin,
            "category": product.category,
            "manufacturer": company.name,
            "compliance": product.compliance.model_dump(),
            "materials": [m.model_dump() for m in product.materials],
        }
        if proof:
            credential_subject["anchor"] = {"tx_hash": proof.tx_hash, "merkle_root": proof.merkle_root}

        payload = {
            "@context": [
                "https://www.w3.org/2018/credentials/v1",
                "https://schema.org",
                "https://w3id.org/dpp/v1",
            ],
            "id": f"urn:uuid:{uuid.uuid4()}",
            "type": ["VerifiableCredential", "DigitalProductPassport"],
            "issuer": {"id": self.issuer_did, "name": "Norruva Platform"},
            "issuanceDate": issuance_date,
            "credentialSubject": credential_subject,
        }

        signature = jwt.encode({"vc": payload}, self.secret_key, algorithm=ALGORITHM)

        return {
            **payload,
            "proof": {
                "type": "JsonWebSignature2020",
                "created": issuance_date,
                "proofPurpose": "assertionMethod",
                "verificationMethod": f"{self.issuer_did}#keys-1",
                "jws": signature,
            },
        }

    def verify(self, credential: Dict[str, Any]) -> bool:
        """True when the attached JWS matches the credential body."""
        body = {key: value for key, value in credential.items() if key != "proof"}
        token = credential.get("proof", {}).get("jws")
        if not token:
            return False
        try:
            decoded = jwt.decode(token, self.secret_key, algorithms=[ALGORITHM])
        except jwt.InvalidTokenError:
            return False
        return decoded.get("vc") == body

import hashlib
import hmac
import json
from typing import Any, Dict


def canonical_json(data: Dict[str, Any]) -> str:
    """Stable serialization: sorted keys, no whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def hash_data(data: Dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form, hex encoded."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def sign_payload(secret: str, body: str) -> str:
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()

from abc import ABC, abstractmethod
import asyncio
import hashlib
import re
from sqlmodel import SQLModel

from norruva.core.config import settings
from norruva.core.exceptions import OracleFailure

_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")


class AnchorResult(SQLModel):
    tx_hash: str
    explorer_url: str
    block_height: int


class AnchoringOracle(ABC):
    """
    Contract for the ledger anchoring collaborator.
    Failures raise OracleFailure; a mock proof is never returned in their place.
    Anchoring the same hash twice is safe to retry.
    """

    @abstractmethod
    async def anchor(self, product_id: str, data_hash: str) -> AnchorResult:
        ...


class MockAnchoringOracle(AnchoringOracle):
    """Deterministic ledger: the transaction hash is derived from the inputs."""

    GENESIS_BLOCK = 5_000_000

    def __init__(self, latency: float = 0):
        self.latency = latency
        self._anchored = {}

    async def anchor(self, product_id: str, data_hash: str) -> AnchorResult:
        await asyncio.sleep(self.latency)

        if not _SHA256_HEX.match(data_hash or ""):
            raise OracleFailure(f"Refusing to anchor malformed hash for {product_id}.")

        key = (product_id, data_hash)
        if key not in self._anchored:
            tx_hash = "0x" + hashlib.sha256(f"{product_id}:{data_hash}".encode("utf-8")).hexdigest()
            self._anchored[key] = AnchorResult(
                tx_hash=tx_hash,
                explorer_url=f"{settings.anchoring_explorer_url}/{tx_hash}",
                block_height=self.GENESIS_BLOCK + len(self._anchored),
            )
        return self._anchored[key].model_copy()

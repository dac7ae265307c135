# herbchain/storage/base.py
"""
Persistence contract for the ledger core.

Everything that must change together (a ledger entry and the conservation
counters it moves) goes through one WriteTransaction: either all staged
writes are applied when the `write()` block exits cleanly, or none are.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import List, NamedTuple, Optional, Tuple

from herbchain.models.ledger import LedgerTransaction
from herbchain.models.provenance import Provenance


class UsageKey(NamedTuple):
    species: str
    zone: str
    period: str  # "day:2024-01-15" or "season:2023-2024"

    def as_id(self) -> str:
        return f"{self.species}|{self.zone}|{self.period}"


class WriteTransaction(ABC):
    @abstractmethod
    async def head(self) -> Tuple[int, Optional[str]]:
        """(next height, latest hash) including entries staged in this transaction."""

    @abstractmethod
    async def append(self, entry: LedgerTransaction) -> None:
        """Stage an entry; a reused quality-test certificate raises DuplicateCertificate."""

    @abstractmethod
    async def usage(self, key: UsageKey) -> float:
        """Committed total plus anything staged in this transaction."""

    @abstractmethod
    async def add_usage(self, key: UsageKey, amount: float) -> None:
        ...


class LedgerStore(ABC):
    # =========================
    # LEDGER
    # =========================
    @abstractmethod
    def write(self) -> AbstractAsyncContextManager[WriteTransaction]:
        ...

    @abstractmethod
    async def head(self) -> Tuple[int, Optional[str]]:
        """(number of entries, hash of the latest entry or None)."""

    @abstractmethod
    async def entry(self, height: int) -> Optional[LedgerTransaction]:
        ...

    @abstractmethod
    async def entries(self, start: int = 0, limit: Optional[int] = None) -> List[LedgerTransaction]:
        ...

    @abstractmethod
    async def entries_for_batch(self, batch_id: str) -> List[LedgerTransaction]:
        ...

    @abstractmethod
    async def certificate_recorded(self, certificate_hash: str) -> bool:
        """Whether a quality test with this certificate hash is on the ledger."""

    # =========================
    # CONSERVATION COUNTERS
    # =========================
    @abstractmethod
    async def usage(self, key: UsageKey) -> float:
        ...

    # =========================
    # PROVENANCE
    # =========================
    @abstractmethod
    async def save_provenance(self, provenance: Provenance) -> None:
        """Store the document, replacing any previous one for the batch."""

    @abstractmethod
    async def provenance(self, batch_id: str) -> Optional[Provenance]:
        ...

    # =========================
    # RULES & ACCOUNTS
    # =========================
    @abstractmethod
    async def load_rules(self) -> List[dict]:
        ...

    @abstractmethod
    async def save_rule(self, doc: dict) -> None:
        ...

    @abstractmethod
    async def get_organization(self, email: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def create_organization(self, doc: dict) -> dict:
        ...

    async def close(self) -> None:
        pass

# herbchain/storage/memory.py
"""In-process store used when no MONGO_URI is configured, and by the tests."""

import copy
import uuid
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple

from herbchain.errors import ConcurrencyConflict, DuplicateCertificate
from herbchain.models.ledger import LedgerTransaction, TransactionKind
from herbchain.models.provenance import Provenance
from herbchain.storage.base import LedgerStore, UsageKey, WriteTransaction


def _certificate(entry: LedgerTransaction) -> Optional[str]:
    if entry.kind == TransactionKind.QUALITY_TEST:
        return entry.payload.get("certificate_hash")
    return None


class _MemoryWrite(WriteTransaction):
    def __init__(self, store: "MemoryLedgerStore"):
        self._store = store
        self.entries: List[LedgerTransaction] = []
        self.usage_deltas: Dict[UsageKey, float] = {}

    async def head(self) -> Tuple[int, Optional[str]]:
        if self.entries:
            return self.entries[-1].height + 1, self.entries[-1].hash
        return await self._store.head()

    async def append(self, entry: LedgerTransaction) -> None:
        certificate = _certificate(entry)
        if certificate is not None and (
            certificate in self._store._certificates or any(_certificate(e) == certificate for e in self.entries)
        ):
            raise DuplicateCertificate(certificate)
        self.entries.append(entry)

    async def usage(self, key: UsageKey) -> float:
        return self._store._usage.get(key, 0.0) + self.usage_deltas.get(key, 0.0)

    async def add_usage(self, key: UsageKey, amount: float) -> None:
        self.usage_deltas[key] = self.usage_deltas.get(key, 0.0) + amount


class MemoryLedgerStore(LedgerStore):
    def __init__(self, rules: Optional[List[dict]] = None):
        self._entries: List[LedgerTransaction] = []
        self._by_batch: Dict[str, List[int]] = {}
        self._certificates: Dict[str, int] = {}
        self._usage: Dict[UsageKey, float] = {}
        self._provenance: Dict[str, Provenance] = {}
        self._rules: Dict[str, dict] = {r["id"]: copy.deepcopy(r) for r in rules or []}
        self._organizations: Dict[str, dict] = {}

    # =========================
    # LEDGER
    # =========================
    @asynccontextmanager
    async def write(self):
        txn = _MemoryWrite(self)
        yield txn
        # Only reached when the block exited cleanly.
        self._apply(txn.entries, txn.usage_deltas)

    def _apply(self, entries: List[LedgerTransaction], usage_deltas: Dict[UsageKey, float]) -> None:
        # No await in here: staged writes land together or not at all.
        for entry in entries:
            if entry.height != len(self._entries):
                raise ConcurrencyConflict(f"height {entry.height} does not extend ledger of {len(self._entries)}")
        for entry in entries:
            self._entries.append(entry)
            self._by_batch.setdefault(entry.batch_id, []).append(entry.height)
            certificate = _certificate(entry)
            if certificate is not None:
                self._certificates[certificate] = entry.height
        for key, amount in usage_deltas.items():
            self._usage[key] = self._usage.get(key, 0.0) + amount

    async def head(self) -> Tuple[int, Optional[str]]:
        if not self._entries:
            return 0, None
        return len(self._entries), self._entries[-1].hash

    async def entry(self, height: int) -> Optional[LedgerTransaction]:
        if 0 <= height < len(self._entries):
            return self._entries[height]
        return None

    async def entries(self, start: int = 0, limit: Optional[int] = None) -> List[LedgerTransaction]:
        end = None if limit is None else start + limit
        return list(self._entries[start:end])

    async def entries_for_batch(self, batch_id: str) -> List[LedgerTransaction]:
        return [self._entries[h] for h in self._by_batch.get(batch_id, [])]

    async def certificate_recorded(self, certificate_hash: str) -> bool:
        return certificate_hash in self._certificates

    # =========================
    # CONSERVATION COUNTERS
    # =========================
    async def usage(self, key: UsageKey) -> float:
        return self._usage.get(key, 0.0)

    # =========================
    # PROVENANCE
    # =========================
    async def save_provenance(self, provenance: Provenance) -> None:
        self._provenance[provenance.batch_id] = provenance

    async def provenance(self, batch_id: str) -> Optional[Provenance]:
        return self._provenance.get(batch_id)

    # =========================
    # RULES & ACCOUNTS
    # =========================
    async def load_rules(self) -> List[dict]:
        return [copy.deepcopy(r) for r in self._rules.values()]

    async def save_rule(self, doc: dict) -> None:
        self._rules[doc["id"]] = copy.deepcopy(doc)

    async def get_organization(self, email: str) -> Optional[dict]:
        org = self._organizations.get(email)
        return dict(org) if org else None

    async def create_organization(self, doc: dict) -> dict:
        stored = dict(doc, id=uuid.uuid4().hex)
        self._organizations[doc["email"]] = stored
        return dict(stored)

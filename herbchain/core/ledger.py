# herbchain/core/ledger.py
"""
Ledger: append-only, hash-chained transaction log.

    hash(n)          = SHA-256(canonical(payload(n)) | previous_hash(n) | organization_id(n))
    previous_hash(n) = hash(n - 1), GENESIS_HASH for entry 0
    signature(n)     = HMAC-SHA-256(signing_key, hash(n) | organization_id(n))

There is a single append point. Ledger.write() holds the ledger lock and a
store write transaction for the whole block, so heights and previous hashes
are assigned strictly in order and anything else staged in the block (the
conservation counters) lands together with the entry.
"""

import asyncio
import hashlib
import hmac
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, List, Optional

from herbchain.errors import IntegrityError, NotFoundError
from herbchain.models.ledger import GENESIS_HASH, LedgerTransaction, TransactionKind
from herbchain.storage.base import LedgerStore, WriteTransaction

logger = logging.getLogger(__name__)

_SEPARATOR = b"|"


def canonical_bytes(payload: Any) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")


def compute_hash(payload: dict, previous_hash: str, organization_id: str) -> str:
    digest = hashlib.sha256()
    digest.update(canonical_bytes(payload))
    digest.update(_SEPARATOR + previous_hash.encode("utf-8"))
    digest.update(_SEPARATOR + organization_id.encode("utf-8"))
    return digest.hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Ledger:
    def __init__(self, store: LedgerStore, signing_key: str, clock: Callable[[], datetime] = _utcnow):
        self._store = store
        self._key = signing_key.encode("utf-8")
        self._clock = clock
        self._lock = asyncio.Lock()

    def sign(self, entry_hash: str, organization_id: str) -> str:
        return hmac.new(self._key, f"{entry_hash}|{organization_id}".encode("utf-8"), hashlib.sha256).hexdigest()

    # =========================
    # WRITES
    # =========================

    @asynccontextmanager
    async def write(self) -> AsyncIterator[WriteTransaction]:
        """Serialized write scope; everything staged in it commits together."""
        async with self._lock:
            async with self._store.write() as txn:
                yield txn

    async def append(
        self,
        kind: TransactionKind,
        payload: dict,
        organization_id: str,
        txn: Optional[WriteTransaction] = None,
    ) -> LedgerTransaction:
        """
        Hash `payload` onto the chain.

        Pass `txn` to append inside an open write() block (the caller already
        holds the lock); otherwise a write scope is opened for this entry
        alone. Fails with StorageFault or ConcurrencyConflict from the store,
        and with DuplicateCertificate when a quality test reuses a
        certificate hash; never on business-rule grounds.
        """
        if txn is None:
            async with self.write() as own:
                entry = await self.append(kind, payload, organization_id, txn=own)
            logger.info("Ledger append %s at height %d", kind.value, entry.height)
            return entry

        height, previous = await txn.head()
        previous = previous or GENESIS_HASH
        entry_hash = compute_hash(payload, previous, organization_id)
        entry = LedgerTransaction(
            height=height,
            kind=kind,
            batch_id=payload["batch_id"],
            payload=payload,
            timestamp=self._clock(),
            organization_id=organization_id,
            hash=entry_hash,
            previous_hash=previous,
            signature=self.sign(entry_hash, organization_id),
        )
        await txn.append(entry)
        return entry

    # =========================
    # READS
    # =========================

    async def latest_hash(self) -> str:
        _, latest = await self._store.head()
        return latest or GENESIS_HASH

    async def height(self) -> int:
        count, _ = await self._store.head()
        return count

    async def transaction_at(self, height: int) -> LedgerTransaction:
        entry = await self._store.entry(height)
        if entry is None:
            raise NotFoundError(f"No ledger entry at height {height}")
        return entry

    async def transactions_for_batch(self, batch_id: str) -> List[LedgerTransaction]:
        return await self._store.entries_for_batch(batch_id)

    async def certificate_recorded(self, certificate_hash: str) -> bool:
        return await self._store.certificate_recorded(certificate_hash)

    async def export(self, start: int = 0, limit: Optional[int] = None) -> List[LedgerTransaction]:
        return await self._store.entries(start, limit)

    # =========================
    # INTEGRITY
    # =========================

    def verify_entry(self, entry: LedgerTransaction) -> None:
        """Recompute one entry's hash and signature against its stored previous hash."""
        expected = compute_hash(entry.payload, entry.previous_hash, entry.organization_id)
        if not hmac.compare_digest(expected, entry.hash):
            logger.error("Hash mismatch at height %d", entry.height, extra={"batch_id": entry.batch_id})
            raise IntegrityError(f"Ledger entry {entry.height} hash does not match its contents", entry.height)
        if not hmac.compare_digest(self.sign(entry.hash, entry.organization_id), entry.signature):
            logger.error("Signature mismatch at height %d", entry.height, extra={"batch_id": entry.batch_id})
            raise IntegrityError(f"Ledger entry {entry.height} signature is invalid", entry.height)

    async def verify_chain(self) -> int:
        """Walk the whole chain; return the number of verified entries."""
        previous = GENESIS_HASH
        entries = await self._store.entries()
        for expected_height, entry in enumerate(entries):
            if entry.height != expected_height:
                raise IntegrityError(f"Ledger height gap at {expected_height}", expected_height)
            if entry.previous_hash != previous:
                logger.error("Chain link broken at height %d", entry.height)
                raise IntegrityError(f"Ledger entry {entry.height} does not link to its predecessor", entry.height)
            self.verify_entry(entry)
            previous = entry.hash
        return len(entries)

# herbchain/storage/mongo.py
"""
MongoDB store on motor.

Writes run in a multi-document transaction (requires a replica set), so a
ledger entry and its counter increments commit together. Driver errors
surface as StorageFault; a duplicate height means another process extended
the chain first and surfaces as ConcurrencyConflict.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from herbchain import database
from herbchain.errors import ConcurrencyConflict, DuplicateCertificate, StorageFault
from herbchain.models.ledger import LedgerTransaction, TransactionKind
from herbchain.models.provenance import Provenance
from herbchain.storage.base import LedgerStore, UsageKey, WriteTransaction

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _driver_errors(action: str):
    try:
        yield
    except DuplicateKeyError as e:
        raise ConcurrencyConflict(f"{action}: {e}") from e
    except PyMongoError as e:
        logger.warning("MongoDB %s failed: %s", action, e)
        raise StorageFault(f"{action} failed: {e}") from e


class _MongoWrite(WriteTransaction):
    def __init__(self, db, session):
        self._db = db
        self._session = session
        self._staged_head: Optional[Tuple[int, str]] = None

    async def head(self) -> Tuple[int, Optional[str]]:
        if self._staged_head:
            return self._staged_head
        latest = await self._db[database.LEDGER].find_one(
            {}, sort=[("height", DESCENDING)], session=self._session
        )
        if not latest:
            return 0, None
        return latest["height"] + 1, latest["hash"]

    async def append(self, entry: LedgerTransaction) -> None:
        try:
            await self._db[database.LEDGER].insert_one(database.ledger_document(entry), session=self._session)
        except DuplicateKeyError as e:
            if database.CERTIFICATE_INDEX in str(e):
                raise DuplicateCertificate(entry.payload["certificate_hash"]) from e
            raise
        self._staged_head = (entry.height + 1, entry.hash)

    async def usage(self, key: UsageKey) -> float:
        doc = await self._db[database.USAGE].find_one({"_id": key.as_id()}, session=self._session)
        return doc["amount"] if doc else 0.0

    async def add_usage(self, key: UsageKey, amount: float) -> None:
        await self._db[database.USAGE].update_one(
            {"_id": key.as_id()},
            {
                "$inc": {"amount": amount},
                "$set": {"species": key.species, "zone": key.zone, "period": key.period},
            },
            upsert=True,
            session=self._session,
        )


class MongoLedgerStore(LedgerStore):
    def __init__(self, uri: str, db_name: str):
        self._client, self._db = database.connect(uri, db_name)

    async def init(self) -> "MongoLedgerStore":
        async with _driver_errors("index creation"):
            await database.ensure_indexes(self._db)
        return self

    # =========================
    # LEDGER
    # =========================
    @asynccontextmanager
    async def write(self):
        async with _driver_errors("ledger commit"):
            async with await self._client.start_session() as session:
                async with session.start_transaction():
                    yield _MongoWrite(self._db, session)

    async def head(self) -> Tuple[int, Optional[str]]:
        async with _driver_errors("head lookup"):
            latest = await self._db[database.LEDGER].find_one({}, sort=[("height", DESCENDING)])
        if not latest:
            return 0, None
        return latest["height"] + 1, latest["hash"]

    async def entry(self, height: int) -> Optional[LedgerTransaction]:
        async with _driver_errors("entry lookup"):
            doc = await self._db[database.LEDGER].find_one({"height": height})
        return LedgerTransaction(**database.strip_id(doc)) if doc else None

    async def entries(self, start: int = 0, limit: Optional[int] = None) -> List[LedgerTransaction]:
        query = self._db[database.LEDGER].find({"height": {"$gte": start}}).sort("height", 1)
        if limit is not None:
            query = query.limit(limit)
        async with _driver_errors("ledger export"):
            return [LedgerTransaction(**database.strip_id(d)) async for d in query]

    async def entries_for_batch(self, batch_id: str) -> List[LedgerTransaction]:
        query = self._db[database.LEDGER].find({"batch_id": batch_id}).sort("height", 1)
        async with _driver_errors("batch history"):
            return [LedgerTransaction(**database.strip_id(d)) async for d in query]

    async def certificate_recorded(self, certificate_hash: str) -> bool:
        async with _driver_errors("certificate lookup"):
            doc = await self._db[database.LEDGER].find_one(
                {"kind": TransactionKind.QUALITY_TEST.value, "payload.certificate_hash": certificate_hash},
                projection={"_id": 1},
            )
        return doc is not None

    # =========================
    # CONSERVATION COUNTERS
    # =========================
    async def usage(self, key: UsageKey) -> float:
        async with _driver_errors("usage lookup"):
            doc = await self._db[database.USAGE].find_one({"_id": key.as_id()})
        return doc["amount"] if doc else 0.0

    # =========================
    # PROVENANCE
    # =========================
    async def save_provenance(self, provenance: Provenance) -> None:
        async with _driver_errors("provenance save"):
            await self._db[database.PROVENANCE].replace_one(
                {"batch_id": provenance.batch_id},
                provenance.model_dump(mode="json"),
                upsert=True,
            )

    async def provenance(self, batch_id: str) -> Optional[Provenance]:
        async with _driver_errors("provenance lookup"):
            doc = await self._db[database.PROVENANCE].find_one({"batch_id": batch_id})
        return Provenance(**database.strip_id(doc)) if doc else None

    # =========================
    # RULES & ACCOUNTS
    # =========================
    async def load_rules(self) -> List[dict]:
        async with _driver_errors("rule load"):
            return [database.strip_id(d) async for d in self._db[database.RULES].find()]

    async def save_rule(self, doc: dict) -> None:
        async with _driver_errors("rule save"):
            await self._db[database.RULES].replace_one(
                {"id": doc["id"]}, dict(doc, lastModified=datetime.now(timezone.utc)), upsert=True
            )

    async def get_organization(self, email: str) -> Optional[dict]:
        async with _driver_errors("organization lookup"):
            org = await self._db[database.ORGANIZATIONS].find_one({"email": email})
        return database.organization_helper(org) if org else None

    async def create_organization(self, doc: dict) -> dict:
        async with _driver_errors("organization insert"):
            res = await self._db[database.ORGANIZATIONS].insert_one(dict(doc))
        return database.organization_helper(dict(doc, _id=res.inserted_id))

    async def close(self) -> None:
        self._client.close()

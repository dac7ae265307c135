# herbchain/database.py
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

# ==============================
# MongoDB Connection
# ==============================

LEDGER = "ledger"
USAGE = "conservation_usage"
PROVENANCE = "provenance"
RULES = "rules"
ORGANIZATIONS = "organizations"

CERTIFICATE_INDEX = "quality_test_certificate_unique"


def connect(uri: str, db_name: str) -> tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    client = AsyncIOMotorClient(uri)
    return client, client[db_name]


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    # A second writer extending the same head fails on the unique height.
    await database[LEDGER].create_index([("height", ASCENDING)], unique=True)
    await database[LEDGER].create_index([("batch_id", ASCENDING), ("height", ASCENDING)])
    await database[LEDGER].create_index(
        [("payload.certificate_hash", ASCENDING)],
        name=CERTIFICATE_INDEX,
        unique=True,
        partialFilterExpression={"kind": "quality_test"},
    )
    await database[PROVENANCE].create_index([("batch_id", ASCENDING)], unique=True)
    await database[PROVENANCE].create_index([("final_product.product_code", ASCENDING)])
    await database[RULES].create_index([("species", ASCENDING), ("type", ASCENDING), ("active", DESCENDING)])
    await database[ORGANIZATIONS].create_index([("email", ASCENDING)], unique=True)


# ==============================
# Helpers
# ==============================

def strip_id(doc: dict | None) -> dict | None:
    if not doc:
        return None
    new_doc = dict(doc)
    new_doc.pop("_id", None)
    return new_doc


def organization_helper(org: dict) -> dict:
    return {
        "id": str(org["_id"]),
        "fullName": org.get("fullName"),
        "email": org.get("email"),
        "role": org.get("role"),
        "organizationType": org.get("organizationType"),
        "passwordHash": org.get("passwordHash"),
        "createdAt": org.get("createdAt"),
    }


# ==============================
# LEDGER ENTRY DOCUMENT
# ==============================

# Ledger documents mirror LedgerTransaction field for field. `height` is the
# natural key; `_id` is left to MongoDB.
def ledger_document(entry) -> dict:
    return entry.model_dump(mode="json")

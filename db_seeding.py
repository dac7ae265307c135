# db_seeding.py
import asyncio
import logging
from datetime import datetime, timezone

from passlib.context import CryptContext
from pymongo.errors import PyMongoError

from herbchain import database
from herbchain.catalog import DEFAULT_RULES
from herbchain.config import get_config
from herbchain.logging_config import configure_logging

logger = logging.getLogger("db_seeding")

pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

DEMO_PASSWORD = "herbchain123"

DEMO_ORGANIZATIONS = [
    ("Rajasthan Herb Collectors Cooperative", "collector1@herbchain.com", "Collector", "cooperative"),
    ("Madhya Pradesh Wild Harvest Group", "collector2@herbchain.com", "Collector", "cooperative"),
    ("Jaipur Drying & Milling Works", "processor1@herbchain.com", "Processor", "processor"),
    ("Ayush Standards Laboratory", "lab1@herbchain.com", "Tester", "laboratory"),
    ("Himalaya Botanicals Pvt Ltd", "manufacturer1@herbchain.com", "Manufacturer", "manufacturer"),
]


async def seed_database():
    """Install the default rules and demo organization accounts."""
    config = get_config()
    if not config.MONGO_URI:
        raise SystemExit("MONGO_URI is not set; nothing to seed")

    client, db = database.connect(config.MONGO_URI, config.MONGO_DB)
    try:
        await client.admin.command("ping")
        logger.info("Connected to MongoDB %s", config.MONGO_DB)
        await database.ensure_indexes(db)

        # ================= RULES =================
        for rule in DEFAULT_RULES:
            await db[database.RULES].replace_one(
                {"id": rule["id"]},
                dict(rule, lastModified=datetime.now(timezone.utc)),
                upsert=True,
            )
        logger.info("Seeded %d rules", len(DEFAULT_RULES))

        # ================= ORGANIZATIONS =================
        created = 0
        for name, email, role, org_type in DEMO_ORGANIZATIONS:
            if await db[database.ORGANIZATIONS].find_one({"email": email}):
                continue
            await db[database.ORGANIZATIONS].insert_one({
                "fullName": name,
                "email": email,
                "role": role,
                "organizationType": org_type,
                "passwordHash": pwd_ctx.hash(DEMO_PASSWORD),
                "createdAt": datetime.now(timezone.utc),
            })
            created += 1
        logger.info("Created %d organizations (password: %s)", created, DEMO_PASSWORD)
    except PyMongoError:
        logger.exception("Seeding failed")
        raise
    finally:
        client.close()


if __name__ == "__main__":
    configure_logging("INFO")
    asyncio.run(seed_database())

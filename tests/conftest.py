"""
Shared fixtures: an in-memory store loaded with the default Ashwagandha
rules, and the components wired on top of it the way the app lifespan
wires them.
"""

from datetime import datetime, timezone

import pytest

from herbchain.catalog import ASHWAGANDHA, DEFAULT_RULES
from herbchain.config import Config
from herbchain.core.ledger import Ledger
from herbchain.core.product_code import ProductCodeSigner
from herbchain.core.provenance import ProvenanceBuilder
from herbchain.core.registry import RuleRegistry
from herbchain.core.service import SubmissionService
from herbchain.core.tracker import ConservationTracker
from herbchain.models.events import CollectionEvent, ProcessingStep, QualityTest
from herbchain.storage.memory import MemoryLedgerStore

SIGNING_KEY = "test-ledger-key"
PRODUCT_SECRET = "test-product-key"


class FastRetryConfig(Config):
    STORAGE_RETRY_ATTEMPTS = 3
    CONFLICT_RETRY_ATTEMPTS = 50


@pytest.fixture
def store():
    return MemoryLedgerStore(rules=DEFAULT_RULES)


@pytest.fixture
def registry():
    return RuleRegistry.from_documents(DEFAULT_RULES)


@pytest.fixture
def ledger(store):
    return Ledger(store, SIGNING_KEY)


@pytest.fixture
def tracker(store):
    return ConservationTracker(store, season_start_month=6)


@pytest.fixture
def signer():
    return ProductCodeSigner(PRODUCT_SECRET)


@pytest.fixture
def builder(ledger, store, signer):
    return ProvenanceBuilder(ledger, store, signer, Config)


@pytest.fixture
def service(registry, tracker, ledger):
    return SubmissionService(registry, tracker, ledger, FastRetryConfig)


def make_event(**overrides) -> CollectionEvent:
    data = {
        "batch_id": "BATCH-001",
        "lat": 26.5,
        "lng": 74.5,
        "timestamp": datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc),
        "collector_id": "collector-1",
        "species": ASHWAGANDHA,
        "quality": {"moisture": 10.0, "visual_grade": "good", "estimated_yield": 20.0},
        "zone": "Rajasthan Zone A",
    }
    quality = overrides.pop("quality", {})
    data["quality"] = {**data["quality"], **quality}
    data.update(overrides)
    return CollectionEvent(**data)


def make_step(**overrides) -> ProcessingStep:
    data = {
        "batch_id": "BATCH-001",
        "step_type": "drying",
        "parameters": {"method": "shade"},
        "temperature": 35.0,
        "humidity": 40.0,
        "duration": 2880,
        "timestamp": datetime(2024, 1, 17, 9, 0, tzinfo=timezone.utc),
        "processor_id": "processor-1",
    }
    data.update(overrides)
    return ProcessingStep(**data)


def make_test(**overrides) -> QualityTest:
    data = {
        "batch_id": "BATCH-001",
        "test_type": "heavy_metals",
        "result": "pass",
        "values": {"lead": 2.0, "cadmium": 0.1, "mercury": 0.2, "arsenic": 1.0},
        "certificate_hash": "cert-0001",
        "lab_id": "lab-1",
        "timestamp": datetime(2024, 1, 25, 14, 0, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return QualityTest(**data)

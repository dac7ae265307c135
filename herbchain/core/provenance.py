# herbchain/core/provenance.py
"""
Provenance Builder.

A provenance document is a view over the ledger: every recorded event of a
batch, verified and put in time order, plus the batch's sustainability
attestations and a signed final-product record. Rebuilding replaces the
stored document; nothing is merged.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from pydantic import TypeAdapter

from herbchain.catalog import SUSTAINABILITY_PROOFS
from herbchain.config import Config
from herbchain.core.ledger import Ledger
from herbchain.core.product_code import ProductCodeSigner
from herbchain.errors import NotFoundError
from herbchain.models.events import StepType
from herbchain.models.ledger import LedgerTransaction, TransactionKind
from herbchain.models.provenance import (
    CustodyStep,
    FinalProduct,
    Location,
    Provenance,
    ProvenanceLookup,
    SustainabilityProof,
)
from herbchain.storage.base import LedgerStore

logger = logging.getLogger(__name__)

_timestamp = TypeAdapter(datetime)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def event_time(entry: LedgerTransaction) -> datetime:
    """When the event happened, as reported in its payload."""
    raw = entry.payload.get("timestamp")
    value = _timestamp.validate_python(raw) if raw is not None else entry.timestamp
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class ProvenanceBuilder:
    def __init__(
        self,
        ledger: Ledger,
        store: LedgerStore,
        signer: ProductCodeSigner,
        config=Config,
        attestations: Iterable[dict] = SUSTAINABILITY_PROOFS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._ledger = ledger
        self._store = store
        self._signer = signer
        self._config = config
        self._attestations = [SustainabilityProof.model_validate(a) for a in attestations]
        self._clock = clock

    # =========================
    # BUILD
    # =========================

    async def build(
        self,
        batch_id: str,
        product_name: Optional[str] = None,
        manufacturer_id: Optional[str] = None,
        batch_size: Optional[float] = None,
    ) -> Provenance:
        entries = await self._ledger.transactions_for_batch(batch_id)
        if not entries:
            raise NotFoundError(f"Batch {batch_id} has no ledger history")
        for entry in entries:
            self._ledger.verify_entry(entry)

        ordered = sorted(entries, key=lambda e: (event_time(e), e.height))
        generated_at = self._clock()
        manufacturer = manufacturer_id or self._manufacturer(ordered)
        code = self._signer.generate(batch_id, manufacturer, generated_at)

        provenance = Provenance(
            batch_id=batch_id,
            chain_of_custody=[self._custody_step(e) for e in ordered],
            sustainability_proofs=list(self._attestations),
            final_product=FinalProduct(
                product_code=code,
                product_name=product_name or self._config.DEFAULT_PRODUCT_NAME,
                manufacturer_id=manufacturer,
                batch_size=batch_size if batch_size is not None else self._batch_size(ordered),
                expiry_date=(generated_at + timedelta(days=self._config.SHELF_LIFE_DAYS)).date(),
            ),
            generated_at=generated_at,
            ledger_height=max(e.height for e in entries),
        )
        await self._store.save_provenance(provenance)
        logger.info(
            "Provenance built for %s with %d custody steps",
            batch_id,
            len(provenance.chain_of_custody),
            extra={"batch_id": batch_id},
        )
        return provenance

    def _custody_step(self, entry: LedgerTransaction) -> CustodyStep:
        payload = entry.payload
        if entry.kind == TransactionKind.COLLECTION_EVENT:
            action = f"Harvested {payload['species']}"
            location = Location(lat=payload["lat"], lng=payload["lng"])
        elif entry.kind == TransactionKind.PROCESSING_STEP:
            action = f"Processing: {payload['step_type']}"
            lat, lng = self._config.PROCESSING_FACILITY
            location = Location(lat=lat, lng=lng)
        else:
            action = f"Quality test: {payload['test_type']}"
            lat, lng = self._config.LAB_FACILITY
            location = Location(lat=lat, lng=lng)
        return CustodyStep(
            organization_id=entry.organization_id,
            action=action,
            location=location,
            timestamp=event_time(entry),
            height=entry.height,
            transaction_hash=entry.hash,
        )

    def _manufacturer(self, ordered: List[LedgerTransaction]) -> str:
        for entry in reversed(ordered):
            if (
                entry.kind == TransactionKind.PROCESSING_STEP
                and entry.payload.get("step_type") == StepType.PACKAGING.value
            ):
                return entry.organization_id
        return self._config.DEFAULT_MANUFACTURER_ID

    @staticmethod
    def _batch_size(ordered: List[LedgerTransaction]) -> float:
        return sum(
            e.payload["quality"]["estimated_yield"]
            for e in ordered
            if e.kind == TransactionKind.COLLECTION_EVENT and e.payload.get("accepted")
        )

    # =========================
    # LOOKUP
    # =========================

    async def find_by_batch(self, batch_id: str) -> Provenance:
        provenance = await self._store.provenance(batch_id)
        if provenance is None:
            raise NotFoundError(f"No provenance generated for batch {batch_id}")
        return provenance

    async def find_by_product_identifier(self, code: str) -> ProvenanceLookup:
        """
        Resolve a scanned product code.

        Signed codes must verify (IntegrityError otherwise). Legacy codes
        only name the batch and come back unverified.
        """
        parsed = self._signer.parse(code)
        provenance = await self.find_by_batch(parsed.batch_id)
        return ProvenanceLookup(provenance=provenance, verified=parsed.verified, code_format=parsed.format)

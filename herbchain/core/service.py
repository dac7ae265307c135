# herbchain/core/service.py
"""
Submission Service: validate, then commit.

An accepted collection event moves the conservation counters and lands on
the ledger inside one Ledger.write() block. Validation runs outside the
ledger lock against a counter snapshot; the commit re-checks that snapshot
under the lock and the whole validate-then-commit step is re-run when
another submission got there first.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from herbchain.config import Config
from herbchain.core.engine import assess_quality_test, evaluate, quota_zone
from herbchain.core.ledger import Ledger
from herbchain.core.registry import RuleRegistry
from herbchain.core.tracker import ConservationTracker
from herbchain.errors import ConcurrencyConflict, DuplicateCertificate, NotFoundError, StorageFault
from herbchain.models.events import CollectionEvent, LabTestResult, ProcessingStep, QualityTest
from herbchain.models.ledger import LedgerTransaction, SubmissionOutcome, TransactionKind, ValidationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SubmissionService:
    def __init__(
        self,
        registry: RuleRegistry,
        tracker: ConservationTracker,
        ledger: Ledger,
        config=Config,
    ):
        self.registry = registry
        self.tracker = tracker
        self.ledger = ledger
        self._config = config

    async def _retrying(self, attempt: Callable[[], Awaitable[T]], batch_id: str) -> T:
        conflicts = faults = 0
        while True:
            try:
                return await attempt()
            except ConcurrencyConflict:
                conflicts += 1
                if conflicts >= self._config.CONFLICT_RETRY_ATTEMPTS:
                    logger.error("Giving up on %s after %d conflicts", batch_id, conflicts)
                    raise
                logger.warning("Commit conflict for %s, retrying (%d)", batch_id, conflicts)
            except StorageFault:
                faults += 1
                if faults >= self._config.STORAGE_RETRY_ATTEMPTS:
                    logger.error("Storage unavailable for %s after %d attempts", batch_id, faults)
                    raise
                logger.warning("Storage fault for %s, retrying (%d)", batch_id, faults)

    # =========================
    # LOOKUPS
    # =========================

    async def _accepted_collection(self, batch_id: str) -> Optional[LedgerTransaction]:
        for entry in await self.ledger.transactions_for_batch(batch_id):
            if entry.kind == TransactionKind.COLLECTION_EVENT and entry.payload.get("accepted"):
                return entry
        return None

    async def _require_batch(self, batch_id: str) -> LedgerTransaction:
        entry = await self._accepted_collection(batch_id)
        if entry is None:
            raise NotFoundError(f"Batch {batch_id} has no accepted collection event")
        return entry

    async def _duplicate_batch(self, event: CollectionEvent, result: ValidationResult) -> bool:
        if await self._accepted_collection(event.batch_id) is None:
            return False
        result.errors.append(f"Batch ID {event.batch_id} is already recorded on the ledger")
        return True

    # =========================
    # COLLECTION EVENTS
    # =========================

    async def validate_collection(self, event: CollectionEvent) -> ValidationResult:
        """Dry run: evaluate against current totals, commit nothing."""
        rules = self.registry.rules_for(event.species)
        state = await self.tracker.snapshot(event.species, quota_zone(event, rules), event.timestamp)
        result = evaluate(event, rules, state)
        await self._duplicate_batch(event, result)
        return result

    async def submit_collection(self, event: CollectionEvent, organization_id: str) -> SubmissionOutcome:
        async def attempt() -> SubmissionOutcome:
            rules = self.registry.rules_for(event.species)
            state = await self.tracker.snapshot(event.species, quota_zone(event, rules), event.timestamp)
            result = evaluate(event, rules, state)
            if not result.accepted:
                await self._duplicate_batch(event, result)
                return SubmissionOutcome(validation=result)

            accepted = event.mark_accepted()
            async with self.ledger.write() as txn:
                if await self._duplicate_batch(event, result):
                    return SubmissionOutcome(validation=result)
                await self.tracker.commit(
                    event.species,
                    state.zone,
                    event.quality.estimated_yield,
                    event.timestamp,
                    txn,
                    expected=state,
                )
                entry = await self.ledger.append(
                    TransactionKind.COLLECTION_EVENT,
                    accepted.model_dump(mode="json"),
                    organization_id,
                    txn=txn,
                )
            return SubmissionOutcome(validation=result, transaction=entry)

        outcome = await self._retrying(attempt, event.batch_id)
        extra = {"batch_id": event.batch_id, "organization_id": organization_id}
        if outcome.transaction is not None:
            logger.info(
                "Collection event %s accepted at height %d", event.batch_id, outcome.transaction.height, extra=extra
            )
        else:
            logger.info(
                "Collection event %s rejected: %s", event.batch_id, "; ".join(outcome.validation.errors), extra=extra
            )
        return outcome

    # =========================
    # PROCESSING & TESTING
    # =========================

    async def submit_processing_step(self, step: ProcessingStep, organization_id: str) -> LedgerTransaction:
        async def attempt() -> LedgerTransaction:
            async with self.ledger.write() as txn:
                await self._require_batch(step.batch_id)
                return await self.ledger.append(
                    TransactionKind.PROCESSING_STEP, step.model_dump(mode="json"), organization_id, txn=txn
                )

        entry = await self._retrying(attempt, step.batch_id)
        logger.info(
            "Processing step %s recorded for %s",
            step.step_type.value,
            step.batch_id,
            extra={"batch_id": step.batch_id, "organization_id": organization_id},
        )
        return entry

    async def submit_quality_test(self, test: QualityTest, organization_id: str) -> SubmissionOutcome:
        """
        Record a lab result with its compliance assessment.

        Non-compliant results are recorded too. Only a reused certificate
        hash keeps a test off the ledger.
        """

        async def attempt() -> SubmissionOutcome:
            collection = await self._require_batch(test.batch_id)
            assessment = assess_quality_test(test, self.registry.rules_for(collection.payload["species"]))
            compliant = assessment.accepted and test.result == LabTestResult.PASS
            try:
                async with self.ledger.write() as txn:
                    if await self.ledger.certificate_recorded(test.certificate_hash):
                        raise DuplicateCertificate(test.certificate_hash)
                    entry = await self.ledger.append(
                        TransactionKind.QUALITY_TEST,
                        test.with_compliance(compliant).model_dump(mode="json"),
                        organization_id,
                        txn=txn,
                    )
            except DuplicateCertificate as e:
                assessment.errors.append(str(e))
                return SubmissionOutcome(validation=assessment)
            return SubmissionOutcome(validation=assessment, transaction=entry)

        outcome = await self._retrying(attempt, test.batch_id)
        if outcome.transaction is not None:
            logger.info(
                "Quality test %s recorded for %s (compliance=%s)",
                test.test_type.value,
                test.batch_id,
                outcome.transaction.payload["compliance"],
                extra={"batch_id": test.batch_id, "organization_id": organization_id},
            )
        return outcome

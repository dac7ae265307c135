"""
Tests for the submission service: validate-then-commit, retries and the
conservation invariant.
"""

import asyncio

import pytest

from conftest import SIGNING_KEY, FastRetryConfig, make_event, make_step, make_test
from herbchain.catalog import ASHWAGANDHA, DEFAULT_RULES
from herbchain.core.ledger import Ledger
from herbchain.core.service import SubmissionService
from herbchain.core.tracker import ConservationTracker
from herbchain.errors import NotFoundError, StorageFault
from herbchain.storage.memory import MemoryLedgerStore

ZONE = "Rajasthan Zone A"


class FlakyStore(MemoryLedgerStore):
    """Fails the first `failures` commits with a storage fault."""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.commits = 0

    def _apply(self, entries, usage_deltas):
        self.commits += 1
        if self.failures:
            self.failures -= 1
            raise StorageFault("connection reset")
        super()._apply(entries, usage_deltas)


class NoScanStore(MemoryLedgerStore):
    """Refuses full-ledger reads."""

    async def entries(self, start=0, limit=None):
        raise AssertionError("full ledger scan")


class StaleCertificateStore(MemoryLedgerStore):
    """Lookup always misses, as if another writer committed in between."""

    async def certificate_recorded(self, certificate_hash):
        return False


def _service_on(store, registry):
    ledger = Ledger(store, SIGNING_KEY)
    return SubmissionService(registry, ConservationTracker(store), ledger, FastRetryConfig), ledger


class TestCollection:
    @pytest.mark.asyncio
    async def test_accepted_event_is_recorded(self, service, ledger, tracker):
        outcome = await service.submit_collection(make_event(), "org-collector")

        assert outcome.validation.accepted
        assert outcome.transaction.height == 0
        assert outcome.transaction.payload["accepted"] is True
        assert outcome.transaction.organization_id == "org-collector"
        assert await tracker.daily_usage(ASHWAGANDHA, ZONE, make_event().timestamp.date()) == 20.0

    @pytest.mark.asyncio
    async def test_rejected_event_changes_nothing(self, service, ledger, tracker):
        outcome = await service.submit_collection(make_event(lat=20.0, lng=70.0), "org-collector")

        assert not outcome.validation.accepted
        assert outcome.transaction is None
        assert await ledger.height() == 0
        assert await tracker.daily_usage(ASHWAGANDHA, ZONE, make_event().timestamp.date()) == 0.0

    @pytest.mark.asyncio
    async def test_validate_is_a_dry_run(self, service, ledger):
        result = await service.validate_collection(make_event())

        assert result.accepted
        assert await ledger.height() == 0

    @pytest.mark.asyncio
    async def test_batch_id_assigned_once(self, service, ledger):
        await service.submit_collection(make_event(), "org-collector")

        outcome = await service.submit_collection(make_event(), "org-collector")

        assert not outcome.validation.accepted
        assert "already recorded" in outcome.validation.errors[0]
        assert await ledger.height() == 1

    @pytest.mark.asyncio
    async def test_daily_quota_across_submissions(self, service):
        for i in range(3):
            outcome = await service.submit_collection(
                make_event(batch_id=f"B-{i}", quality={"estimated_yield": 30.0}), "org-collector"
            )
            assert outcome.validation.accepted

        outcome = await service.submit_collection(
            make_event(batch_id="B-3", quality={"estimated_yield": 30.0}), "org-collector"
        )

        assert outcome.validation.errors == ["Daily harvest limit exceeded in Rajasthan Zone A: 120.0kg > 100kg"]

    @pytest.mark.asyncio
    async def test_relabelled_zone_shares_quota(self, service, tracker):
        day = make_event().timestamp.date()
        first = await service.submit_collection(
            make_event(batch_id="B-1", quality={"estimated_yield": 90.0}), "org-collector"
        )

        second = await service.submit_collection(
            make_event(batch_id="B-2", zone="Made Up Zone", quality={"estimated_yield": 90.0}), "org-collector"
        )

        assert first.validation.accepted
        assert not second.validation.accepted
        assert "Daily harvest limit exceeded in Rajasthan Zone A: 180.0kg > 100kg" in second.validation.errors
        assert await tracker.daily_usage(ASHWAGANDHA, ZONE, day) == 90.0
        assert await tracker.daily_usage(ASHWAGANDHA, "Made Up Zone", day) == 0.0

    @pytest.mark.asyncio
    async def test_mislabelled_event_charged_to_fenced_zone(self, service, tracker):
        outcome = await service.submit_collection(make_event(zone="Made Up Zone"), "org-collector")

        assert outcome.validation.accepted
        assert await tracker.daily_usage(ASHWAGANDHA, ZONE, make_event().timestamp.date()) == 20.0

    @pytest.mark.asyncio
    async def test_concurrent_submissions_never_exceed_quota(self, service, tracker, ledger):
        events = [make_event(batch_id=f"B-{i}", quality={"estimated_yield": 30.0}) for i in range(10)]

        outcomes = await asyncio.gather(*(service.submit_collection(e, "org-collector") for e in events))

        accepted = [o for o in outcomes if o.validation.accepted]
        used = await tracker.daily_usage(ASHWAGANDHA, ZONE, events[0].timestamp.date())
        assert len(accepted) == 3
        assert used == 90.0
        assert await ledger.height() == 3
        assert await ledger.verify_chain() == 3


class TestStorageFaults:
    @pytest.mark.asyncio
    async def test_transient_fault_is_retried(self, registry):
        store = FlakyStore(failures=2, rules=DEFAULT_RULES)
        service, ledger = _service_on(store, registry)

        outcome = await service.submit_collection(make_event(), "org-collector")

        assert outcome.transaction is not None
        assert store.commits == 3
        assert await ledger.height() == 1

    @pytest.mark.asyncio
    async def test_persistent_fault_leaves_state_unchanged(self, registry):
        store = FlakyStore(failures=10, rules=DEFAULT_RULES)
        service, ledger = _service_on(store, registry)

        with pytest.raises(StorageFault):
            await service.submit_collection(make_event(), "org-collector")

        assert await ledger.height() == 0
        assert await service.tracker.daily_usage(ASHWAGANDHA, ZONE, make_event().timestamp.date()) == 0.0


class TestProcessingAndTesting:
    @pytest.mark.asyncio
    async def test_step_for_unknown_batch(self, service):
        with pytest.raises(NotFoundError):
            await service.submit_processing_step(make_step(batch_id="NOPE"), "org-processor")

    @pytest.mark.asyncio
    async def test_step_for_rejected_batch(self, service):
        await service.submit_collection(make_event(lat=20.0, lng=70.0), "org-collector")

        with pytest.raises(NotFoundError):
            await service.submit_processing_step(make_step(), "org-processor")

    @pytest.mark.asyncio
    async def test_step_recorded(self, service):
        await service.submit_collection(make_event(), "org-collector")

        entry = await service.submit_processing_step(make_step(), "org-processor")

        assert entry.kind.value == "processing_step"
        assert entry.payload["step_type"] == "drying"
        assert entry.height == 1

    @pytest.mark.asyncio
    async def test_compliant_quality_test(self, service):
        await service.submit_collection(make_event(), "org-collector")

        outcome = await service.submit_quality_test(make_test(), "org-lab")

        assert outcome.transaction.payload["compliance"] is True

    @pytest.mark.asyncio
    async def test_failing_quality_test_still_recorded(self, service):
        await service.submit_collection(make_event(), "org-collector")

        outcome = await service.submit_quality_test(make_test(values={"lead": 25.0}), "org-lab")

        assert not outcome.validation.accepted
        assert outcome.transaction is not None
        assert outcome.transaction.payload["compliance"] is False

    @pytest.mark.asyncio
    async def test_certificate_hash_unique(self, service, ledger):
        await service.submit_collection(make_event(), "org-collector")
        await service.submit_quality_test(make_test(), "org-lab")

        outcome = await service.submit_quality_test(make_test(test_type="potency"), "org-lab")

        assert outcome.transaction is None
        assert any("already recorded" in e for e in outcome.validation.errors)
        assert await ledger.height() == 2
        assert await ledger.certificate_recorded("cert-0001")

    @pytest.mark.asyncio
    async def test_certificate_lookup_avoids_ledger_scan(self, registry):
        service, ledger = _service_on(NoScanStore(rules=DEFAULT_RULES), registry)
        await service.submit_collection(make_event(), "org-collector")
        await service.submit_quality_test(make_test(), "org-lab")

        outcome = await service.submit_quality_test(make_test(test_type="potency"), "org-lab")

        assert outcome.transaction is None
        assert outcome.validation.errors[-1] == "Certificate cert-0001 is already recorded"

    @pytest.mark.asyncio
    async def test_certificate_clash_at_commit_rejected(self, registry):
        store = StaleCertificateStore(rules=DEFAULT_RULES)
        service, ledger = _service_on(store, registry)
        await service.submit_collection(make_event(), "org-collector")
        await service.submit_quality_test(make_test(), "org-lab")

        outcome = await service.submit_quality_test(make_test(), "org-lab")

        assert outcome.transaction is None
        assert outcome.validation.errors == ["Certificate cert-0001 is already recorded"]
        assert await ledger.height() == 2

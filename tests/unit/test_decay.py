# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the importance decay job."""

from datetime import timedelta

import pytest

from tutormind.core.config import MemorySettings
from tutormind.core.memory.decay import DecayJob
from tutormind.core.memory.scoring import decayed_importance
from tutormind.models.memory import MemoryKind, MemoryRecordCreate
from tutormind.utils.datetime import utc_now


@pytest.fixture
def job(db_manager, memory_settings) -> DecayJob:
    """Create a DecayJob on the test database."""
    return DecayJob(db_manager, memory_settings)


async def _fact(store, owner_id: str, content: str = "Has a dog named Achilles"):
    return await store.create(
        MemoryRecordCreate(owner_id=owner_id, content=content, category="personal_fact")
    )


@pytest.mark.unit
class TestDecayJob:
    """Tests for DecayJob.run."""

    @pytest.mark.asyncio
    async def test_decays_by_elapsed_time(self, job, store, owner_id) -> None:
        """Test current importance follows the forgetting curve."""
        memory = await _fact(store, owner_id)
        later = utc_now() + timedelta(days=10)

        report = await job.run(now=later)

        decayed = await store.get(owner_id, memory.id)
        assert report.tables[0].table == "user_facts"
        assert report.tables[0].updated == 1
        assert decayed.memory_strength == memory.memory_strength
        assert decayed.current_importance == pytest.approx(
            decayed_importance(memory.memory_strength, 10, 0.1), rel=1e-3
        )
        assert decayed.current_importance < memory.current_importance

    @pytest.mark.asyncio
    async def test_forget_during_run_stays_forgotten(
        self, job, store, owner_id, monkeypatch
    ) -> None:
        """Test a row forgotten between read and write keeps zero scores."""
        memory = await _fact(store, owner_id)
        write_batch = job._write_batch

        async def _forget_then_write(model, updates, now):
            await store.soft_forget(owner_id, memory.id, "asked to forget")
            return await write_batch(model, updates, now)

        monkeypatch.setattr(job, "_write_batch", _forget_then_write)

        report = await job.run(now=utc_now() + timedelta(days=10))

        forgotten = await store.get(owner_id, memory.id)
        assert report.tables[0].scanned == 1
        assert report.tables[0].updated == 0
        assert forgotten.current_importance == 0.0
        assert forgotten.memory_strength == 0.0

    @pytest.mark.asyncio
    async def test_adjusting_importance_keeps_decay(self, job, store, owner_id) -> None:
        """Test an importance change after decay moves from the decayed value."""
        memory = await _fact(store, owner_id)
        await job.run(now=utc_now() + timedelta(days=60))
        decayed = await store.get(owner_id, memory.id)

        lowered = await store.adjust_importance(owner_id, memory.id, -0.3)
        raised = await store.adjust_importance(owner_id, memory.id, 0.1)

        assert decayed.current_importance < memory.current_importance
        assert lowered.current_importance <= decayed.current_importance
        assert lowered.current_importance >= 0.0
        assert raised.current_importance > lowered.current_importance
        assert raised.current_importance < memory.current_importance

    @pytest.mark.asyncio
    async def test_second_run_within_interval_is_skipped(self, job, store, owner_id) -> None:
        """Test rows decayed recently are not decayed again."""
        memory = await _fact(store, owner_id)
        later = utc_now() + timedelta(days=10)

        await job.run(now=later)
        first = (await store.get(owner_id, memory.id)).current_importance
        report = await job.run(now=later + timedelta(minutes=5))

        assert report.tables[0].skipped == 1
        assert report.tables[0].updated == 0
        assert (await store.get(owner_id, memory.id)).current_importance == first

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, job, store, owner_id) -> None:
        """Test a dry run reports without changing rows."""
        memory = await _fact(store, owner_id)

        report = await job.run(dry_run=True, now=utc_now() + timedelta(days=30))

        assert report.dry_run is True
        assert report.total_updated == 1
        assert (await store.get(owner_id, memory.id)).current_importance == memory.current_importance

    @pytest.mark.asyncio
    async def test_forgotten_rows_untouched(self, job, store, owner_id) -> None:
        """Test forgotten memories are not scanned."""
        memory = await _fact(store, owner_id)
        await store.soft_forget(owner_id, memory.id, "outdated")

        report = await job.run(now=utc_now() + timedelta(days=3))

        assert report.tables[0].scanned == 0
        assert (await store.get(owner_id, memory.id)).current_importance == 0.0

    @pytest.mark.asyncio
    async def test_batches_cover_all_rows(self, db_manager, store, owner_id) -> None:
        """Test keyset batching visits every row exactly once."""
        job = DecayJob(db_manager, MemorySettings(decay_batch_size=2))
        for i in range(5):
            await _fact(store, owner_id, f"Fact number {i}")
        await store.create(
            MemoryRecordCreate(
                owner_id=owner_id,
                kind=MemoryKind.RELATIONAL_NOTE,
                content="We joke about pineapple pizza",
                category="inside_joke",
            )
        )

        report = await job.run(now=utc_now() + timedelta(days=1))

        assert [t.scanned for t in report.tables] == [5, 1]
        assert report.total_updated == 6

    @pytest.mark.asyncio
    async def test_below_floor_counted(self, job, store, owner_id) -> None:
        """Test long-idle memories are reported below the floor but kept."""
        memory = await _fact(store, owner_id)

        report = await job.run(now=utc_now() + timedelta(days=3650))

        assert report.tables[0].below_floor == 1
        assert (await store.get(owner_id, memory.id)).id == memory.id

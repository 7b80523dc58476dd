# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduled decay of memory importance.

Walks every active record in id order, with short transactions per batch,
and recomputes current_importance from memory_strength with the
Ebbinghaus curve. The walk is keyed by the last id seen, so an interrupted
run can simply be started again.

Running twice within the minimum interval is harmless: rows decayed
recently are skipped. Forgotten rows are never touched, and nothing is
deleted; rows below the importance floor just stop being ranked.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update

from tutormind.core.config.settings import MemorySettings, get_settings
from tutormind.core.memory.scoring import decayed_importance, memory_strength
from tutormind.infrastructure.database.connection import DatabaseManager
from tutormind.infrastructure.database.models.memory import RelationalNote, UserFact
from tutormind.models.memory import DecayReport, DecayTableStats
from tutormind.utils.datetime import elapsed_days, ensure_utc, hours_ago, latest, utc_now

logger = logging.getLogger(__name__)


class DecayJob:
    """Batch job applying exponential forgetting to stored memories."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        settings: MemorySettings | None = None,
    ) -> None:
        self._db = db_manager
        self._settings = settings or get_settings().memory

    async def _load_batch(
        self,
        model: type[UserFact] | type[RelationalNote],
        cursor: str,
    ) -> list[UserFact] | list[RelationalNote]:
        async with self._db.get_session() as session:
            result = await session.execute(
                select(model)
                .where(model.id > cursor, model.forgotten_at.is_(None))
                .order_by(model.id)
                .limit(self._settings.decay_batch_size)
            )
            return list(result.scalars().all())

    async def _write_batch(
        self,
        model: type[UserFact] | type[RelationalNote],
        updates: list[tuple[str, float, float]],
        now: datetime,
    ) -> int:
        """Persist (id, strength, importance) triples; returns rows written.

        Each UPDATE is guarded on forgotten_at, so a row forgotten after
        the batch was read keeps its zero scores.
        """
        written = 0
        async with self._db.get_session() as session:
            for memory_id, strength, importance in updates:
                result = await session.execute(
                    update(model)
                    .where(model.id == memory_id, model.forgotten_at.is_(None))
                    .values(
                        memory_strength=strength,
                        current_importance=importance,
                        last_decay_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                written += result.rowcount
        return written

    async def _decay_table(
        self,
        model: type[UserFact] | type[RelationalNote],
        now: datetime,
        dry_run: bool,
        refresh_strength: bool,
    ) -> DecayTableStats:
        stats = DecayTableStats(table=model.__tablename__)
        importances: list[float] = []
        recent_cutoff = hours_ago(self._settings.decay_min_interval_hours, now)
        batch_size = self._settings.decay_batch_size
        cursor = ""

        while True:
            rows = await self._load_batch(model, cursor)
            updates: list[tuple[str, float, float]] = []

            for row in rows:
                stats.scanned += 1

                last_decay = ensure_utc(row.last_decay_at)
                if last_decay is not None and last_decay > recent_cutoff:
                    stats.skipped += 1
                    importances.append(row.current_importance)
                    continue

                strength = row.memory_strength
                if refresh_strength:
                    voice = row.hume_arousal if row.hume_arousal is not None else row.emotional_arousal
                    text = row.text_arousal if row.text_arousal is not None else row.emotional_arousal
                    strength = memory_strength(
                        cited_count=row.times_cited,
                        voice_arousal=voice,
                        text_arousal=text,
                        llm_importance=row.llm_importance,
                        retrieved_unused_count=row.times_retrieved_unused,
                    )

                age = elapsed_days(latest(row.created_at, row.last_cited_at), now)
                importance = decayed_importance(strength, age, self._settings.decay_rate)
                importances.append(importance)
                updates.append((row.id, strength, importance))

            if dry_run:
                stats.updated += len(updates)
            elif updates:
                stats.updated += await self._write_batch(model, updates, now)

            if not rows:
                break
            cursor = rows[-1].id
            logger.debug("Decayed %s batch up to id %s", model.__tablename__, cursor)
            if len(rows) < batch_size:
                break

        if importances:
            stats.average_importance = sum(importances) / len(importances)
            stats.min_importance = min(importances)
            stats.max_importance = max(importances)
            stats.below_floor = sum(1 for i in importances if i <= self._settings.importance_floor)

        return stats

    async def run(
        self,
        dry_run: bool = False,
        refresh_strength: bool = False,
        now: datetime | None = None,
    ) -> DecayReport:
        """Run one decay pass over all memory tables.

        Args:
            dry_run: Compute the report without writing anything.
            refresh_strength: Recompute memory_strength from the counters
                before decaying.
            now: Reference time. Defaults to the current time.

        Returns:
            Per-table decay statistics.
        """
        now = ensure_utc(now) or utc_now()
        report = DecayReport(dry_run=dry_run, refreshed_strength=refresh_strength, started_at=now)

        for model in (UserFact, RelationalNote):
            stats = await self._decay_table(model, now, dry_run, refresh_strength)
            report.tables.append(stats)
            logger.info(
                "Decay %s%s: scanned=%d, updated=%d, skipped=%d, below_floor=%d, avg=%s",
                stats.table,
                " (dry run)" if dry_run else "",
                stats.scanned,
                stats.updated,
                stats.skipped,
                stats.below_floor,
                f"{stats.average_importance:.3f}" if stats.average_importance is not None else "n/a",
            )

        report.finished_at = utc_now()
        return report

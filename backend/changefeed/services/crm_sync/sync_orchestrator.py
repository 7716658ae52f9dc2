"""
Incremental Sync Orchestrator.

Drives the fetch -> classify -> emit -> advance-checkpoint loop for one
object type, and loops over object types for a full sync pass.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from changefeed.core.interfaces.crm import SourceAdapter
from changefeed.core.interfaces.storage import CheckpointStore, EventSink
from changefeed.models.sync import (
    CheckpointStatus,
    ExtractedEvent,
    ObjectSyncConfig,
    PageQuery,
    RecordOutcome,
    RunStats,
    SyncAllResult,
    SyncCheckpoint,
    SyncObjectResult,
    SyncStatusSummary,
)
from changefeed.services.crm_sync.error_tracker import ErrorTracker
from changefeed.services.crm_sync.event_classifier import EventClassifier, outcome_of
from changefeed.utils.timestamps import EPOCH

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS_PER_OBJECT = 10000
PAGES_PER_CALL_DEFAULT = 10


class IncrementalSyncOrchestrator:
    """
    Orchestrates incremental CRM sync.

    Responsibilities:
    - Fetch exactly one page per sync_object call, starting after the checkpoint
    - Classify records, containing per-record failures
    - Advance the watermark to the maximum seen, never backwards
    - Deliver events to the sink before persisting the checkpoint
    - Serialize syncs per object type

    Delivery is at-least-once: a page-level failure leaves the watermark
    where it was, so records already handed out are delivered again.
    """

    def __init__(
        self,
        adapter: SourceAdapter,
        classifier: EventClassifier,
        configs: Mapping[str, ObjectSyncConfig],
        organization_id: str,
        checkpoint_store: Optional[CheckpointStore] = None,
        event_sink: Optional[EventSink] = None,
        max_records_per_object: int = DEFAULT_MAX_RECORDS_PER_OBJECT,
    ):
        """
        Initialize orchestrator.

        Args:
            adapter: Paginated query adapter for the source
            classifier: Record classifier for the source
            configs: Sync config per object type
            organization_id: Tenant id stamped into event metadata
            checkpoint_store: Where checkpoints are persisted (None = caller-managed)
            event_sink: Downstream consumer of events (None = caller consumes results)
            max_records_per_object: Default accumulated-event cap of sync_all
        """
        self.adapter = adapter
        self.classifier = classifier
        self.configs: Dict[str, ObjectSyncConfig] = dict(configs)
        self.organization_id = organization_id
        self.checkpoint_store = checkpoint_store
        self.event_sink = event_sink
        self.max_records_per_object = max_records_per_object
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, object_type: str) -> asyncio.Lock:
        lock = self._locks.get(object_type)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[object_type] = lock
        return lock

    # ------------------------------------------------------------------
    # Single object type, single page
    # ------------------------------------------------------------------

    async def sync_object(
        self,
        config: ObjectSyncConfig,
        last_checkpoint: Optional[SyncCheckpoint] = None,
        max_records: Optional[int] = None,
        include_deleted: bool = False,
    ) -> SyncObjectResult:
        """
        Sync one page of an object type.

        Args:
            config: Sync config of the object type
            last_checkpoint: Where to resume (None = from epoch)
            max_records: Cap on records in this call (default batch_size * 10)
            include_deleted: Ask the source for deleted/archived rows too

        Returns:
            SyncObjectResult. Page-level failures come back as a failed
            checkpoint at the unchanged watermark, never as an exception.
        """
        if max_records is None:
            max_records = config.batch_size * PAGES_PER_CALL_DEFAULT
        if max_records <= 0:
            raise ValueError(f"max_records must be positive, got {max_records}")

        async with self._lock_for(config.object_type):
            return await self._sync_page(config, last_checkpoint, max_records, include_deleted)

    async def _sync_page(
        self,
        config: ObjectSyncConfig,
        last_checkpoint: Optional[SyncCheckpoint],
        max_records: int,
        include_deleted: bool,
    ) -> SyncObjectResult:
        object_type = config.object_type
        start_time, cursor = last_checkpoint.resume_point() if last_checkpoint else (EPOCH, None)
        page_size = min(config.batch_size, max_records)
        error_tracker = ErrorTracker()

        events: List[ExtractedEvent] = []
        outcomes: List[RecordOutcome] = []

        logger.debug(
            f"🔄 {object_type}: fetching up to {page_size} records after {start_time.isoformat()}"
            + (f" (cursor {cursor})" if cursor else "")
        )

        try:
            page = await self.adapter.query(
                PageQuery.from_config(config, start_time, page_size, include_deleted, cursor=cursor)
            )

            latest_date = last_checkpoint.last_sync_time if last_checkpoint else EPOCH
            latest_id = last_checkpoint.last_record_id if last_checkpoint else None

            for record in page.records:
                try:
                    event = self.classifier.classify(record, config, self.organization_id)
                except Exception as e:
                    outcomes.append(RecordOutcome.ERROR)
                    record_id = record.get(config.id_field, "unknown") if isinstance(record, dict) else "unknown"
                    error_tracker.track_record_error(object_type, str(record_id), e)
                    continue

                events.append(event)
                outcomes.append(outcome_of(event))

                # Max watermark seen, not the last record of the page
                if event.timestamp > latest_date:
                    latest_date = event.timestamp
                    latest_id = event.target_id

            stats = RunStats.from_outcomes(outcomes)
            has_more = page.has_more(page_size)

            if events and self.event_sink is not None:
                await self.event_sink.emit(events)

            # Offset tokens are relative to the query they came from, so the
            # next page keeps this start_time until the token chain ends
            next_cursor = page.next_cursor if has_more else None

            checkpoint = SyncCheckpoint(
                object_type=object_type,
                last_sync_time=latest_date,
                last_record_id=latest_id,
                record_count=stats.processed,
                status=stats.derive_status(),
                error_message=self._summarize_record_errors(error_tracker),
                cursor=next_cursor,
                cursor_time=start_time if next_cursor else None,
            )

            await self._persist_checkpoint(checkpoint)

        except Exception as e:
            error_tracker.track_page_error(
                object_type, e, context={"start_time": start_time.isoformat()}
            )
            checkpoint = SyncCheckpoint(
                object_type=object_type,
                last_sync_time=last_checkpoint.last_sync_time if last_checkpoint else EPOCH,
                last_record_id=last_checkpoint.last_record_id if last_checkpoint else None,
                record_count=0,
                status=CheckpointStatus.FAILED,
                error_message=str(e) or e.__class__.__name__,
                cursor=cursor,
                cursor_time=start_time if cursor else None,
            )
            return SyncObjectResult(
                events=events,
                checkpoint=checkpoint,
                has_more=False,
                stats=RunStats.from_outcomes(outcomes),
                errors=error_tracker.get_summary().get_error_messages(),
            )

        logger.info(
            f"✅ {object_type}: {stats.processed} processed "
            f"({stats.created} created, {stats.updated} updated, "
            f"{stats.deleted + stats.archived} removed, {stats.errors} errors), "
            f"watermark {checkpoint.last_sync_time.isoformat()}, has_more={has_more}"
        )

        return SyncObjectResult(
            events=events,
            checkpoint=checkpoint,
            has_more=has_more,
            stats=stats,
            errors=error_tracker.get_summary().get_error_messages(),
        )

    @staticmethod
    def _summarize_record_errors(error_tracker: ErrorTracker) -> Optional[str]:
        summary = error_tracker.get_summary()
        if not summary.total_record_errors:
            return None
        first = summary.record_errors[0]
        return f"{summary.total_record_errors} record(s) failed; first: {first.record_id}: {first.error}"

    # ------------------------------------------------------------------
    # Full sync pass
    # ------------------------------------------------------------------

    async def sync_all(
        self,
        object_types: Optional[Iterable[str]] = None,
        checkpoints: Optional[Mapping[str, SyncCheckpoint]] = None,
        max_records_per_object: Optional[int] = None,
        include_deleted: bool = False,
        max_concurrency: int = 1,
    ) -> SyncAllResult:
        """
        Sync several object types, paging each until it is exhausted.

        Args:
            object_types: Types to sync (default: every configured type)
            checkpoints: Starting checkpoints; missing ones are read from the store
            max_records_per_object: Accumulated-event cap per object type
            include_deleted: Ask the source for deleted/archived rows too
            max_concurrency: Object types synced at once (1 = sequential)

        Returns:
            SyncAllResult with events in request order of object types.
            Types whose checkpoint could not be read land in failures.
        """
        cap = max_records_per_object or self.max_records_per_object
        checkpoints = checkpoints or {}

        runnable: List[ObjectSyncConfig] = []
        for object_type in object_types or list(self.configs):
            config = self.configs.get(object_type)
            if config is None:
                logger.warning(f"⚠️ Unknown object type '{object_type}', skipping")
                continue
            if config in runnable:
                continue
            runnable.append(config)

        logger.info(
            f"🔄 Sync pass: {len(runnable)} object types "
            f"({', '.join(c.object_type for c in runnable)}), concurrency={max_concurrency}"
        )

        if max_concurrency <= 1:
            results = []
            for config in runnable:
                results.append(await self._sync_object_type(
                    config, checkpoints.get(config.object_type), cap, include_deleted
                ))
        else:
            semaphore = asyncio.Semaphore(max_concurrency)

            async def run(config: ObjectSyncConfig):
                async with semaphore:
                    return await self._sync_object_type(
                        config, checkpoints.get(config.object_type), cap, include_deleted
                    )

            results = await asyncio.gather(*(run(config) for config in runnable))

        merged = SyncAllResult()
        for config, (events, checkpoint, stats, failure) in zip(runnable, results):
            merged.events.extend(events)
            merged.stats[config.object_type] = stats
            if failure is not None:
                merged.failures[config.object_type] = failure
            else:
                merged.checkpoints[config.object_type] = checkpoint

        failed = [t for t, c in merged.checkpoints.items() if c.status is CheckpointStatus.FAILED]
        failed.extend(merged.failures)
        if failed:
            logger.warning(f"⚠️ Sync pass finished with failures: {', '.join(failed)}")
        logger.info(f"✅ Sync pass complete: {len(merged.events)} events")

        return merged

    async def _sync_object_type(
        self,
        config: ObjectSyncConfig,
        checkpoint: Optional[SyncCheckpoint],
        cap: int,
        include_deleted: bool,
    ) -> Tuple[List[ExtractedEvent], Optional[SyncCheckpoint], RunStats, Optional[str]]:
        object_type = config.object_type
        events: List[ExtractedEvent] = []
        stats = RunStats()

        if checkpoint is None:
            try:
                checkpoint = await self.get_checkpoint(object_type)
            except Exception as e:
                logger.error(f"❌ {object_type}: could not load checkpoint: {e}", exc_info=True)
                return events, None, stats, f"Checkpoint load failed: {e}"

        while True:
            position = checkpoint.resume_point() if checkpoint else (EPOCH, None)
            result = await self.sync_object(
                config,
                last_checkpoint=checkpoint,
                max_records=cap - len(events),
                include_deleted=include_deleted,
            )
            events.extend(result.events)
            stats = stats + result.stats
            checkpoint = result.checkpoint

            if not result.has_more:
                break
            if len(events) >= cap:
                logger.info(f"📊 {object_type}: reached cap of {cap} events, resuming next pass")
                break
            if checkpoint.resume_point() == position:
                # A full page that moved neither watermark nor cursor would be fetched forever
                logger.warning(
                    f"⚠️ {object_type}: watermark stuck at {position[0].isoformat()}, stopping"
                )
                break

        return events, checkpoint, stats, None

    # ------------------------------------------------------------------
    # Convenience queries and checkpoint management
    # ------------------------------------------------------------------

    async def get_recently_modified(
        self,
        object_type: str,
        since: datetime,
        limit: int = 100,
    ) -> List[ExtractedEvent]:
        """
        One page of events modified after `since`. Nothing is persisted or emitted.

        Raises:
            ValueError: If the object type is not configured
        """
        config = self.configs.get(object_type)
        if config is None:
            raise ValueError(f"Unknown object type: {object_type}")

        page = await self.adapter.query(
            PageQuery.from_config(config, since, min(limit, config.batch_size))
        )

        events = []
        for record in page.records:
            try:
                events.append(self.classifier.classify(record, config, self.organization_id))
            except Exception as e:
                logger.warning(f"⚠️ Skipping unclassifiable {object_type} record: {e}")
        return events

    async def _persist_checkpoint(self, checkpoint: SyncCheckpoint, force: bool = False) -> bool:
        if self.checkpoint_store is None:
            return False

        if not force:
            stored = await self.checkpoint_store.get(checkpoint.object_type)
            if stored is not None and checkpoint.last_sync_time < stored.last_sync_time:
                logger.warning(
                    f"⚠️ Refusing to regress {checkpoint.object_type} checkpoint from "
                    f"{stored.last_sync_time.isoformat()} to {checkpoint.last_sync_time.isoformat()} "
                    f"(overlapping sync with a stale checkpoint?)"
                )
                return False

        await self.checkpoint_store.set(checkpoint)
        logger.debug(f"Checkpoint stored: {checkpoint.object_type} @ {checkpoint.last_sync_time.isoformat()}")
        return True

    async def get_checkpoint(self, object_type: str) -> Optional[SyncCheckpoint]:
        if self.checkpoint_store is None:
            return None
        return await self.checkpoint_store.get(object_type)

    async def set_checkpoint(self, checkpoint: SyncCheckpoint, force: bool = False) -> bool:
        """
        Store a checkpoint.

        Args:
            checkpoint: Checkpoint to store
            force: Allow moving the watermark backwards (manual replay)

        Returns:
            True if stored, False if refused or no store is configured
        """
        return await self._persist_checkpoint(checkpoint, force=force)

    async def clear_checkpoints(self) -> None:
        """Forget all checkpoints; the next pass starts from epoch."""
        if self.checkpoint_store is None:
            return
        await self.checkpoint_store.clear()
        logger.info("🔄 Checkpoints cleared, next sync starts from epoch")

    async def get_all_checkpoints(self) -> List[SyncCheckpoint]:
        if self.checkpoint_store is None:
            return []
        return await self.checkpoint_store.get_all()

    async def get_sync_status(self) -> SyncStatusSummary:
        """Roll-up of stored checkpoints: healthy, partial or failed."""
        return SyncStatusSummary.from_checkpoints(await self.get_all_checkpoints())

"""Background upload registry.

``BatchRegistry`` owns every in-flight upload batch. ``enqueue`` records a batch
and returns at once; a small per-batch worker pool then drives each item
through compression, transfer and metadata recording on the application's
event loop, independent of the request that started it. Progress is read back
through snapshots and change notifications.
"""
import asyncio
import logging
import threading
import time
from contextlib import aclosing
from typing import Callable, Dict, List, Optional, Sequence, Set

from sitephotos.core.config import settings
from sitephotos.schemas.upload import UploadBatchSnapshot
from sitephotos.services.compression import CompressionStage
from sitephotos.services.error_handling import MetadataRecordError, error_message, structured_logger
from sitephotos.services.metadata import PhotoMetadataRecorder
from sitephotos.services.observer_bus import Listener, ObserverBus
from sitephotos.services.storage import SupabaseObjectStore, TransferStage, build_object_key
from sitephotos.services.upload_models import SourceFile, UploadBatch, UploadItem, UploadStatus

logger = logging.getLogger(__name__)


class BatchRegistry:
    """Single source of truth for upload progress.

    All shared state (the batch map, item fields, counters and claim cursors)
    is mutated under ``_lock``, and listeners are notified before the lock is
    released so nobody observes a half-applied change.
    """

    def __init__(
        self,
        compressor,
        transfer,
        recorder,
        concurrency: int = None,
        grace_seconds: float = None,
        bus: ObserverBus = None,
        clock: Callable[[], float] = time.monotonic,
        loop: asyncio.AbstractEventLoop = None,
    ):
        self._compressor = compressor
        self._transfer = transfer
        self._recorder = recorder
        self.concurrency = concurrency or settings.UPLOAD_CONCURRENCY
        self.grace_seconds = settings.BATCH_GRACE_SECONDS if grace_seconds is None else grace_seconds
        self._bus = bus or ObserverBus()
        self._clock = clock
        self._loop = loop

        self._batches: Dict[str, UploadBatch] = {}
        self._lock = threading.RLock()
        self._tasks: Set[object] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _is_visible(self, batch: UploadBatch, now: float) -> bool:
        if batch.completed_clock is None:
            return True
        return now - batch.completed_clock <= self.grace_seconds

    def active_batches(self) -> List[UploadBatchSnapshot]:
        """Incomplete batches plus those completed within the grace window."""
        with self._lock:
            now = self._clock()
            return [b.snapshot() for b in self._batches.values() if self._is_visible(b, now)]

    def all_batches(self) -> List[UploadBatchSnapshot]:
        """Every batch not yet evicted."""
        with self._lock:
            return [b.snapshot() for b in self._batches.values()]

    def get_batch(self, batch_id: str) -> Optional[UploadBatchSnapshot]:
        with self._lock:
            batch = self._batches.get(batch_id)
            return batch.snapshot() if batch else None

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return sum(1 for b in self._batches.values() if not b.is_complete)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every mutation; returns the unsubscribe function."""
        return self._bus.subscribe(listener)

    def changes(self, initial: bool = False):
        """Async iterator that wakes on every change (see ``ObserverBus.changes``)."""
        return self._bus.changes(initial=initial)

    async def wait_for_completion(self, batch_id: str, timeout: float = None) -> UploadBatchSnapshot:
        """Wait until ``batch_id`` completes and return its final snapshot."""
        async def _wait() -> UploadBatchSnapshot:
            async with aclosing(self._bus.changes(initial=True)) as changes:
                async for _ in changes:
                    snapshot = self.get_batch(batch_id)
                    if snapshot is None:
                        raise KeyError(batch_id)
                    if snapshot.is_complete:
                        return snapshot

        return await asyncio.wait_for(_wait(), timeout)

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue(
        self,
        files: Sequence[SourceFile],
        site_id: str,
        category: str,
        uploaded_by: Optional[str] = None,
    ) -> str:
        """Register a batch for ``files`` and start uploading it in the background.

        Returns the batch id without waiting for any file to be processed.
        Processing failures are recorded on the items, never raised here.
        """
        files = list(files)
        if not files:
            raise ValueError("At least one file is required")
        if not site_id or not site_id.strip():
            raise ValueError("site_id is required")
        if not category or not category.strip():
            raise ValueError("category is required")

        loop = self._owning_loop()
        batch = UploadBatch.create([f.name for f in files], site_id, category, uploaded_by)

        with self._lock:
            self._batches[batch.id] = batch
            self._bus.notify()

        run = self._run_batch(batch, files)
        try:
            self._spawn(loop, run)
        except RuntimeError:
            run.close()
            with self._lock:
                self._batches.pop(batch.id, None)
                self._bus.notify()
            raise

        structured_logger.info(
            "Upload batch enqueued",
            extra={"batch_id": batch.id, "site_id": site_id, "category": category, "total": batch.total_count}
        )
        return batch.id

    def _owning_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError("BatchRegistry needs a running event loop to enqueue uploads") from None
        if self._loop.is_closed():
            raise RuntimeError("BatchRegistry event loop is closed; cannot enqueue uploads")
        return self._loop

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro):
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            task = loop.create_task(coro)
        else:
            task = asyncio.run_coroutine_threadsafe(coro, loop)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------

    async def _run_batch(self, batch: UploadBatch, files: List[SourceFile]):
        workers = min(self.concurrency, batch.total_count)
        results = await asyncio.gather(
            *(self._worker(batch, files) for _ in range(workers)),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                structured_logger.error(
                    "Upload worker crashed",
                    extra={"batch_id": batch.id},
                    exception=result
                )
        # A worker that died outside the per-item handler leaves its item mid-flight.
        self._fail_unfinished(batch, "Upload worker stopped before this file finished")

        if batch.is_complete:
            structured_logger.info(
                "Upload batch completed",
                extra={
                    "batch_id": batch.id,
                    "site_id": batch.site_id,
                    "done": batch.done_count,
                    "failed": batch.fail_count,
                }
            )
            asyncio.get_running_loop().call_later(self.grace_seconds, self._evict, batch.id)

    async def _worker(self, batch: UploadBatch, files: List[SourceFile]):
        while True:
            with self._lock:
                index = batch.claim_next()
            if index is None:
                return
            await self._process_item(batch, batch.items[index], files[index])

    async def _process_item(self, batch: UploadBatch, item: UploadItem, source: SourceFile):
        try:
            self._advance(item, UploadStatus.COMPRESSING)
            compressed = await self._compressor.compress(source)

            self._advance(item, UploadStatus.UPLOADING)
            key = build_object_key(batch.site_id, batch.category, compressed.name)
            public_url = await self._transfer.transfer(key, compressed.data, compressed.content_type)

            result = await self._recorder.record(batch.site_id, public_url, batch.category, user_id=batch.uploaded_by)
            if not result.success:
                # The object stays in storage without a row; not rolled back.
                structured_logger.warning(
                    "Stored photo could not be indexed",
                    extra={"batch_id": batch.id, "key": key, "url": public_url, "error": result.error}
                )
                raise MetadataRecordError(result.error or "Failed to save photo record")
        except Exception as e:
            structured_logger.error(
                "Upload item failed",
                extra={"batch_id": batch.id, "item_id": item.id, "file_name": item.file_name, "stage": item.status.value},
                exception=e
            )
            self._resolve(batch, item, UploadStatus.FAILED, error_message(e))
        else:
            self._resolve(batch, item, UploadStatus.DONE)

    def _advance(self, item: UploadItem, status: UploadStatus):
        with self._lock:
            item.advance(status)
            self._bus.notify()

    def _resolve(self, batch: UploadBatch, item: UploadItem, status: UploadStatus, error: Optional[str] = None):
        with self._lock:
            batch.resolve(item, status, self._clock(), error)
            self._bus.notify()

    def _fail_unfinished(self, batch: UploadBatch, message: str):
        """Resolve every non-terminal item of a drained batch as failed."""
        with self._lock:
            unfinished = [item for item in batch.items if not item.status.is_terminal]
            if not unfinished:
                return
            batch.next_index = batch.total_count
            now = self._clock()
            for item in unfinished:
                if item.status == UploadStatus.QUEUED:
                    item.advance(UploadStatus.COMPRESSING)
                batch.resolve(item, UploadStatus.FAILED, now, message)
            self._bus.notify()

        structured_logger.warning(
            "Upload items abandoned by their worker",
            extra={"batch_id": batch.id, "items": [item.id for item in unfinished]}
        )

    def _evict(self, batch_id: str):
        with self._lock:
            if self._batches.pop(batch_id, None) is not None:
                logger.debug(f"Evicted upload batch {batch_id}")
                self._bus.notify()


def build_upload_registry() -> BatchRegistry:
    """Registry wired to Supabase Storage and the photos table."""
    return BatchRegistry(
        compressor=CompressionStage(),
        transfer=TransferStage(SupabaseObjectStore()),
        recorder=PhotoMetadataRecorder(),
    )

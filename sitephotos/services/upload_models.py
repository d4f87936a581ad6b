"""State models for upload items and batches.

These objects are mutated only by the worker pool that owns their batch, and
only while the registry lock is held. Everything handed to callers is a
snapshot (see ``sitephotos.schemas.upload``).
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from sitephotos.schemas.upload import UploadBatchSnapshot, UploadItemSnapshot
from sitephotos.services.error_handling import InvalidTransitionError


class UploadStatus(str, Enum):
    """Lifecycle of a single file upload."""
    QUEUED = "queued"
    COMPRESSING = "compressing"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.DONE, UploadStatus.FAILED)


# Forward-only edges. Compression failures leave straight from COMPRESSING.
_TRANSITIONS: Dict[UploadStatus, FrozenSet[UploadStatus]] = {
    UploadStatus.QUEUED: frozenset({UploadStatus.COMPRESSING}),
    UploadStatus.COMPRESSING: frozenset({UploadStatus.UPLOADING, UploadStatus.FAILED}),
    UploadStatus.UPLOADING: frozenset({UploadStatus.DONE, UploadStatus.FAILED}),
    UploadStatus.DONE: frozenset(),
    UploadStatus.FAILED: frozenset(),
}


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SourceFile:
    """A captured image waiting to be uploaded."""
    name: str
    data: bytes = field(repr=False)
    content_type: Optional[str] = None


@dataclass
class CompressedFile:
    """Output of the compression stage."""
    name: str
    data: bytes = field(repr=False)
    content_type: str = "image/jpeg"


@dataclass
class UploadItem:
    file_name: str
    site_id: str
    category: str
    id: str = field(default_factory=_new_id)
    status: UploadStatus = UploadStatus.QUEUED
    error: Optional[str] = None

    def advance(self, status: UploadStatus, error: Optional[str] = None):
        """Move to ``status``, refusing any edge that is not strictly forward."""
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Item {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status == UploadStatus.FAILED:
            self.error = error

    def snapshot(self) -> UploadItemSnapshot:
        return UploadItemSnapshot(
            id=self.id,
            file_name=self.file_name,
            status=self.status.value,
            error=self.error,
            site_id=self.site_id,
            category=self.category,
        )


@dataclass
class UploadBatch:
    """Files enqueued together for one site and category.

    Membership is fixed at creation; ``items`` is a tuple and ``total_count``
    is derived from it.
    """
    site_id: str
    category: str
    items: Tuple[UploadItem, ...]
    uploaded_by: Optional[str] = None
    id: str = field(default_factory=_new_id)
    done_count: int = 0
    fail_count: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    # Monotonic clock reading taken together with completed_at; drives the grace window.
    completed_clock: Optional[float] = field(default=None, repr=False)
    next_index: int = field(default=0, repr=False)

    @classmethod
    def create(
        cls,
        file_names: List[str],
        site_id: str,
        category: str,
        uploaded_by: Optional[str] = None,
    ) -> "UploadBatch":
        items = tuple(
            UploadItem(file_name=name, site_id=site_id, category=category)
            for name in file_names
        )
        return cls(site_id=site_id, category=category, items=items, uploaded_by=uploaded_by)

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def claim_next(self) -> Optional[int]:
        """Hand out the next unclaimed item index, or None when exhausted."""
        if self.next_index >= self.total_count:
            return None
        index = self.next_index
        self.next_index += 1
        return index

    def resolve(self, item: UploadItem, status: UploadStatus, clock_now: float, error: Optional[str] = None) -> bool:
        """Move ``item`` to a terminal status and update the counters.

        Returns True when this resolution completed the batch.
        """
        if not status.is_terminal:
            raise InvalidTransitionError(f"{status.value} is not a terminal status")
        item.advance(status, error)
        if status == UploadStatus.DONE:
            self.done_count += 1
        else:
            self.fail_count += 1

        if self.completed_at is None and self.done_count + self.fail_count == self.total_count:
            self.completed_at = _utcnow()
            self.completed_clock = clock_now
            return True
        return False

    def snapshot(self) -> UploadBatchSnapshot:
        return UploadBatchSnapshot(
            id=self.id,
            site_id=self.site_id,
            category=self.category,
            uploaded_by=self.uploaded_by,
            items=[item.snapshot() for item in self.items],
            total_count=self.total_count,
            done_count=self.done_count,
            fail_count=self.fail_count,
            created_at=self.created_at,
            completed_at=self.completed_at,
            is_complete=self.is_complete,
            has_failures=self.fail_count > 0,
        )

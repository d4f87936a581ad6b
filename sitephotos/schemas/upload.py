"""Upload progress schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class APIResponse(BaseModel):
    """Standard API response envelope."""
    success: bool
    message: str
    data: Optional[dict] = None
    error: Optional[str] = None


class UploadItemSnapshot(BaseModel):
    """Point-in-time view of one file's upload."""
    id: str
    file_name: str
    status: str  # queued, compressing, uploading, done, failed
    error: Optional[str] = None
    site_id: str
    category: str


class UploadBatchSnapshot(BaseModel):
    """Point-in-time view of a batch and all of its items."""
    id: str
    site_id: str
    category: str
    uploaded_by: Optional[str] = None
    items: List[UploadItemSnapshot]
    total_count: int
    done_count: int
    fail_count: int
    created_at: datetime
    completed_at: Optional[datetime] = None
    is_complete: bool
    has_failures: bool


class UploadSummary(BaseModel):
    """Aggregate "N/M uploaded" counts across batches."""
    total: int
    done: int
    failed: int
    in_progress: int
    is_complete: bool

    @classmethod
    def from_batches(cls, batches: List[UploadBatchSnapshot]) -> "UploadSummary":
        total = sum(b.total_count for b in batches)
        done = sum(b.done_count for b in batches)
        failed = sum(b.fail_count for b in batches)
        return cls(
            total=total,
            done=done,
            failed=failed,
            in_progress=total - done - failed,
            is_complete=done + failed >= total,
        )

"""Test upload item state machine and batch counters."""
import pytest

from sitephotos.services.error_handling import InvalidTransitionError
from sitephotos.services.upload_models import UploadBatch, UploadItem, UploadStatus


def _item() -> UploadItem:
    return UploadItem(file_name="photo.jpg", site_id="S1", category="before")


def test_item_moves_forward_to_done():
    item = _item()
    assert item.status == UploadStatus.QUEUED

    item.advance(UploadStatus.COMPRESSING)
    item.advance(UploadStatus.UPLOADING)
    item.advance(UploadStatus.DONE)

    assert item.status == UploadStatus.DONE
    assert item.error is None


def test_compression_failure_leaves_from_compressing():
    item = _item()
    item.advance(UploadStatus.COMPRESSING)

    item.advance(UploadStatus.FAILED, "Unsupported or corrupt image")

    assert item.status == UploadStatus.FAILED
    assert item.error == "Unsupported or corrupt image"


@pytest.mark.parametrize("path", [
    [UploadStatus.UPLOADING],
    [UploadStatus.DONE],
    [UploadStatus.COMPRESSING, UploadStatus.QUEUED],
    [UploadStatus.COMPRESSING, UploadStatus.DONE],
    [UploadStatus.COMPRESSING, UploadStatus.UPLOADING, UploadStatus.COMPRESSING],
])
def test_item_rejects_skips_and_backward_moves(path):
    item = _item()
    with pytest.raises(InvalidTransitionError):
        for status in path:
            item.advance(status)


@pytest.mark.parametrize("terminal", [UploadStatus.DONE, UploadStatus.FAILED])
def test_terminal_states_are_final(terminal):
    item = _item()
    item.advance(UploadStatus.COMPRESSING)
    item.advance(UploadStatus.UPLOADING)
    item.advance(terminal, "x")

    for status in UploadStatus:
        with pytest.raises(InvalidTransitionError):
            item.advance(status)


def test_batch_membership_and_total_are_fixed():
    batch = UploadBatch.create(["a.jpg", "b.jpg", "c.jpg"], "S1", "before", uploaded_by="user-1")

    assert isinstance(batch.items, tuple)
    assert batch.total_count == 3
    assert [i.file_name for i in batch.items] == ["a.jpg", "b.jpg", "c.jpg"]
    assert all(i.site_id == "S1" and i.category == "before" for i in batch.items)
    assert len({i.id for i in batch.items}) == 3


def test_claim_next_hands_out_each_index_once():
    batch = UploadBatch.create(["a.jpg", "b.jpg"], "S1", "before")

    assert [batch.claim_next(), batch.claim_next(), batch.claim_next()] == [0, 1, None]


def test_resolve_stamps_completion_exactly_once():
    batch = UploadBatch.create(["a.jpg", "b.jpg"], "S1", "before")
    first, second = batch.items
    for item in batch.items:
        item.advance(UploadStatus.COMPRESSING)
        item.advance(UploadStatus.UPLOADING)

    assert batch.resolve(first, UploadStatus.DONE, clock_now=5.0) is False
    assert batch.completed_at is None

    assert batch.resolve(second, UploadStatus.FAILED, clock_now=7.0, error="boom") is True
    assert batch.done_count == 1
    assert batch.fail_count == 1
    assert batch.completed_at is not None
    assert batch.completed_clock == 7.0

    with pytest.raises(InvalidTransitionError):
        batch.resolve(second, UploadStatus.FAILED, clock_now=9.0, error="again")
    assert batch.fail_count == 1
    assert batch.completed_clock == 7.0


def test_resolve_requires_terminal_status():
    batch = UploadBatch.create(["a.jpg"], "S1", "before")
    with pytest.raises(InvalidTransitionError):
        batch.resolve(batch.items[0], UploadStatus.COMPRESSING, clock_now=0.0)


def test_snapshot_flags_failures():
    batch = UploadBatch.create(["a.jpg"], "S1", "during")
    item = batch.items[0]
    item.advance(UploadStatus.COMPRESSING)
    batch.resolve(item, UploadStatus.FAILED, clock_now=1.0, error="Upload failed after 3 attempts")

    snapshot = batch.snapshot()

    assert snapshot.is_complete is True
    assert snapshot.has_failures is True
    assert snapshot.items[0].status == "failed"
    assert snapshot.items[0].error == "Upload failed after 3 attempts"

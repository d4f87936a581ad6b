"""Test object-key construction, Supabase storage calls and transfer retries."""
import re

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from sitephotos.core.retry_utils import resilience_manager
from sitephotos.services.error_handling import TransferError
from sitephotos.services.storage import SupabaseObjectStore, TransferStage, build_object_key, default_retry_config
from tests.fakes import FAST_RETRY, FakeObjectStore

KEY_PATTERN = re.compile(r"^S1/before/[0-9a-f-]{36}-(?P<name>.+)$")


def test_object_key_layout():
    key = build_object_key("S1", "before", "photo1.jpg")

    match = KEY_PATTERN.match(key)
    assert match
    assert match.group("name") == "photo1.jpg"


def test_object_key_replaces_spaces_and_is_unique():
    first = build_object_key("S1", "before", "living room.jpg")
    second = build_object_key("S1", "before", "living room.jpg")

    assert first.endswith("-living_room.jpg")
    assert first != second


def test_default_retry_config_has_no_jitter():
    config = default_retry_config()
    assert config.max_attempts == 3
    assert config.jitter is False
    assert [config.delay_for(n) for n in range(2)] == [1.0, 2.0]


def test_supabase_store_uploads_with_upsert_and_content_type():
    mock_client = MagicMock()
    store = SupabaseObjectStore(bucket="site-photos", client=mock_client)

    store.upload("S1/before/abc-photo.jpg", b"jpeg-bytes", "image/jpeg")

    mock_client.storage.from_.assert_called_with("site-photos")
    mock_client.storage.from_.return_value.upload.assert_called_once_with(
        "S1/before/abc-photo.jpg",
        b"jpeg-bytes",
        file_options={"content-type": "image/jpeg", "upsert": "true"},
    )


def test_supabase_store_public_url():
    mock_client = MagicMock()
    mock_client.storage.from_.return_value.get_public_url.return_value = (
        "http://127.0.0.1:54321/storage/v1/object/public/site-photos/S1/before/abc-photo.jpg"
    )
    store = SupabaseObjectStore(bucket="site-photos", client=mock_client)

    url = store.public_url("S1/before/abc-photo.jpg")

    assert url.endswith("/site-photos/S1/before/abc-photo.jpg")
    mock_client.storage.from_.return_value.get_public_url.assert_called_once_with("S1/before/abc-photo.jpg")


@pytest.mark.asyncio
async def test_transfer_returns_public_url():
    store = FakeObjectStore()
    stage = TransferStage(store, FAST_RETRY)

    url = await stage.transfer("S1/before/abc-photo.jpg", b"data", "image/jpeg")

    assert url == "https://storage.test/site-photos/S1/before/abc-photo.jpg"
    assert store.objects == {"S1/before/abc-photo.jpg": b"data"}


@pytest.mark.asyncio
async def test_transfer_retries_with_one_then_two_second_backoff():
    """Fails twice, succeeds on attempt three after sleeping 1s then 2s."""
    store = FakeObjectStore(failures={"photo": 2})
    stage = TransferStage(store, default_retry_config())

    with patch("sitephotos.core.retry_utils.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        await stage.transfer("S1/before/abc-photo.jpg", b"data", "image/jpeg")

    assert len(store.attempts) == 3
    assert "S1/before/abc-photo.jpg" in store.objects
    assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0]
    assert resilience_manager.metrics["storage_upload"] == {"successes": 1, "failures": 0, "retries": 2}


@pytest.mark.asyncio
async def test_transfer_backoff_is_observed_in_real_time():
    store = FakeObjectStore(failures={"photo": 2})
    stage = TransferStage(store, default_retry_config())

    await stage.transfer("S1/before/abc-photo.jpg", b"data", "image/jpeg")

    first_gap = store.attempt_times[1] - store.attempt_times[0]
    second_gap = store.attempt_times[2] - store.attempt_times[1]
    assert 0.9 <= first_gap < 1.5
    assert 1.9 <= second_gap < 2.5


@pytest.mark.asyncio
async def test_transfer_exhaustion_raises_transfer_error():
    store = FakeObjectStore(failures={"photo": None})
    stage = TransferStage(store, FAST_RETRY)

    with pytest.raises(TransferError, match="after 3 attempts: storage unavailable"):
        await stage.transfer("S1/before/abc-photo.jpg", b"data", "image/jpeg")

    assert len(store.attempts) == 3
    assert store.objects == {}

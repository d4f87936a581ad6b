"""Object storage transfer stage."""
import asyncio
import logging
import uuid
from typing import Optional, Protocol

from supabase import Client

from sitephotos.core.config import settings
from sitephotos.core.database import get_supabase
from sitephotos.core.retry_utils import RetryConfig, retry_with_backoff
from sitephotos.services.error_handling import TransferError, error_message

logger = logging.getLogger(__name__)

UPLOAD_OPERATION = "storage_upload"


class ObjectStore(Protocol):
    def upload(self, key: str, data: bytes, content_type: str) -> None:
        ...

    def public_url(self, key: str) -> str:
        ...


class SupabaseObjectStore:
    """Supabase Storage bucket."""

    def __init__(self, bucket: str = None, client: Optional[Client] = None):
        self.bucket = bucket or settings.STORAGE_BUCKET
        self._client = client

    @property
    def client(self) -> Client:
        return self._client or get_supabase()

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        self.client.storage.from_(self.bucket).upload(
            key,
            data,
            file_options={"content-type": content_type, "upsert": "true"},
        )

    def public_url(self, key: str) -> str:
        return self.client.storage.from_(self.bucket).get_public_url(key)


def build_object_key(site_id: str, category: str, file_name: str) -> str:
    """``{site_id}/{category}/{uuid}-{file_name}``; the uuid keeps keys collision free."""
    safe_name = file_name.replace(" ", "_")
    return f"{site_id}/{category}/{uuid.uuid4()}-{safe_name}"


def default_retry_config() -> RetryConfig:
    # Delays of 1s then 2s between three attempts, no jitter.
    return RetryConfig(
        max_attempts=settings.UPLOAD_MAX_ATTEMPTS,
        base_delay=settings.UPLOAD_RETRY_BASE_DELAY,
        max_delay=settings.UPLOAD_RETRY_MAX_DELAY,
        exponential_base=2.0,
        jitter=False,
    )


class TransferStage:
    """Pushes bytes to the object store, retrying transient failures."""

    def __init__(self, store: ObjectStore, retry_config: RetryConfig = None):
        self.store = store
        self.retry_config = retry_config or default_retry_config()

    async def _upload_once(self, key: str, data: bytes, content_type: str):
        await asyncio.to_thread(self.store.upload, key, data, content_type)

    async def transfer(self, key: str, data: bytes, content_type: str) -> str:
        """Upload ``data`` under ``key`` and return its public URL."""
        try:
            await retry_with_backoff(
                self._upload_once,
                key,
                data,
                content_type,
                config=self.retry_config,
                operation=UPLOAD_OPERATION,
            )
        except Exception as e:
            raise TransferError(
                f"Upload failed after {self.retry_config.max_attempts} attempts: {error_message(e)}"
            ) from e

        logger.info(f"Stored {key} ({len(data)} bytes)")
        return self.store.public_url(key)

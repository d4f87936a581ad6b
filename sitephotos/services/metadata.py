"""Photo metadata recording stage."""
import asyncio
import logging
from typing import Optional

from pydantic import BaseModel
from supabase import Client

from sitephotos.crud.photo import create_photo
from sitephotos.services.error_handling import error_message

logger = logging.getLogger(__name__)


class RecordResult(BaseModel):
    """Outcome of a metadata insert."""
    success: bool
    error: Optional[str] = None


class PhotoMetadataRecorder:
    """Writes one ``photos`` row per transferred image."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    async def record(self, site_id: str, url: str, category: str, user_id: Optional[str] = None) -> RecordResult:
        try:
            await asyncio.to_thread(create_photo, site_id, url, category, user_id, self._client)
        except Exception as e:
            logger.error(f"Photo insert failed for site {site_id}: {e}")
            return RecordResult(success=False, error=error_message(e))
        return RecordResult(success=True)

"""Photo metadata CRUD operations."""
from typing import Optional
from supabase import Client

from sitephotos.core.config import settings
from sitephotos.core.database import get_supabase


def create_photo(
    site_id: str,
    url: str,
    category: str,
    user_id: Optional[str] = None,
    client: Optional[Client] = None,
) -> dict:
    """Insert one photo row and return it."""
    supabase = client or get_supabase()
    result = supabase.table(settings.PHOTOS_TABLE).insert({
        "site_id": site_id,
        "url": url,
        "type": category,
        "user_id": user_id,
    }).execute()
    return result.data[0] if result.data else {}

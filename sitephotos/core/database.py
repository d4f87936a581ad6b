"""Supabase client initialization."""
from functools import lru_cache
from supabase import create_client, Client

from .config import settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Return the process-wide Supabase client, created on first use."""
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)


# Export for use in other modules
__all__ = ["get_supabase"]

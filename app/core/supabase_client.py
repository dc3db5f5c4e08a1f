# app/core/supabase_client.py
from functools import lru_cache
from supabase import create_client, Client

from app.core.config import get_settings

settings = get_settings()


@lru_cache
def supabase_public() -> Client:
    """
    Create a Supabase client with the anon/public key.

    Use cases:
      - catalog reads (product title / price / image lookups)

    Note: This client still respects RLS, so the catalog table must be
    readable by the anon role.
    """
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)

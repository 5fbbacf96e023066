import logging
import os
from functools import lru_cache
from supabase import create_client, Client
from app.core.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_service_key:
        raise RuntimeError("Supabase env vars missing")
    return create_client(settings.supabase_url, settings.supabase_service_key)


def use_supabase_stores() -> bool:
    """True when QUIZ_STORE_BACKEND=supabase selects the database-backed stores."""
    return os.getenv("QUIZ_STORE_BACKEND", "memory").lower() == "supabase"

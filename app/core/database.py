"""Supabase client wiring. All tables, auth and storage live in the managed backend."""

import logging
from functools import lru_cache

from postgrest.exceptions import APIError
from supabase import create_client, Client

from app.core.config import settings

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


@lru_cache()
def get_supabase() -> Client:
    # Config already enforces required env vars; cast to str() for the type checker
    logger.info("Creating Supabase client for %s", settings.SUPABASE_URL)
    return create_client(str(settings.SUPABASE_URL), str(settings.SUPABASE_KEY))


def get_db() -> Client:
    """FastAPI dependency returning the shared Supabase client."""
    return get_supabase()


def is_unique_violation(exc: Exception) -> bool:
    return isinstance(exc, APIError) and str(getattr(exc, "code", "")) == UNIQUE_VIOLATION

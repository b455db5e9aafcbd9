"""Supabase client for deployments that keep the hosted backend.

Only the secret (service-role) key is used: provisioning creates auth users and
writes rows on behalf of the master admin, which bypasses row-level security.
The key never leaves the server.

Key names:
- SB_SECRET_KEY (current Supabase dashboard naming)
- SUPABASE_SERVICE_ROLE_KEY (legacy fallback)
"""

import logging
from functools import lru_cache

from supabase import Client, create_client

from app.config import settings

logger = logging.getLogger(__name__)


def get_supabase_url() -> str:
    url = settings.supabase_url
    if not url:
        raise RuntimeError("SUPABASE_URL environment variable not set. Required for the supabase backends.")
    return url


def get_supabase_secret_key() -> str:
    """Return the service-role key, preferring SB_SECRET_KEY.

    Raises:
        RuntimeError: If neither key is set
    """
    key = settings.supabase_secret_key
    if key:
        return key

    key = settings.supabase_service_role_key
    if key:
        logger.info("Using legacy SUPABASE_SERVICE_ROLE_KEY (consider migrating to SB_SECRET_KEY)")
        return key

    raise RuntimeError(
        "Neither SB_SECRET_KEY nor SUPABASE_SERVICE_ROLE_KEY environment variable is set. "
        "Required for the supabase record store and identity backends."
    )


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    url = get_supabase_url()
    secret_key = get_supabase_secret_key()

    logger.info(
        "Initializing Supabase admin client",
        extra={"supabase_url": url, "key_type": "secret"},
    )
    return create_client(url, secret_key)

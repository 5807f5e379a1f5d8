"""
Database client configuration.
Uses Supabase (PostgreSQL) when LOG_BACKEND=supabase.

The client is created lazily so that deployments using the JSON file log do
not need Supabase credentials at all.
"""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()


@lru_cache(maxsize=1)
def get_supabase_admin() -> Optional[Client]:
    """
    Return the service-level Supabase client, or None if not configured.

    Requires SUPABASE_URL and SUPABASE_SERVICE_KEY.
    """
    url = os.getenv("SUPABASE_URL")
    service_key = os.getenv("SUPABASE_SERVICE_KEY")
    if not url or not service_key:
        return None
    return create_client(url, service_key)

# core/supabase_client.py

from typing import Any, Dict, Optional

from supabase import create_client, Client
from core.config import settings
from core.logging_config import logger

# Tables the reconciler and the read endpoints depend on
CHECKED_TABLES = ("users", "submissions")


def get_supabase_client() -> Optional[Client]:
    """
    Service-role client. Webhook writes to `users` run without a user
    session, so the anon key is never enough here.

    Returns None when credentials are missing or the client cannot be built.
    """
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_SERVICE_ROLE_KEY

    if not url or not key:
        logger.error(
            f"Supabase not configured (url={'set' if url else 'missing'}, "
            f"service role key={'set' if key else 'missing'})"
        )
        return None

    try:
        return create_client(url, key)
    except Exception as e:
        logger.error(f"Could not create Supabase client: {e}", exc_info=True)
        return None


def _probe_table(client: Client, table: str) -> Dict[str, Any]:
    try:
        res = client.table(table).select("id").limit(1).execute()
    except Exception as e:
        return {"status": "error", "detail": str(e)}
    return {"status": "ok", "rows_found": len(res.data or [])}


def ping_supabase() -> Dict[str, Any]:
    """One-row read from each table the service writes or counts."""
    client = get_supabase_client()
    if client is None:
        return {"service": "Supabase", "status": "not_configured"}

    return {
        "service": "Supabase",
        "status": "ok",
        "tables": {table: _probe_table(client, table) for table in CHECKED_TABLES},
    }

# core/account_store.py

"""
Account store: the `users` table in Supabase.

Subscription and access columns live on the user row. The reconciler is the
only writer of those columns; every write is a field overwrite keyed by the
owner id.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from supabase import Client

from core.logging_config import logger
from core.supabase_client import get_supabase_client

USERS_TABLE = "users"
SUBMISSIONS_TABLE = "submissions"

PRIMARY_CUSTOMER_FIELD = "stripe_customer_id"
# Rows created before the subscription columns existed
LEGACY_CUSTOMER_FIELD = "billing_customer_id"


class AccountStore:
    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
            if self._client is None:
                raise RuntimeError("Supabase client not configured")
        return self._client

    def get_account(self, owner_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(USERS_TABLE)
            .select("*")
            .eq("id", owner_id)
            .limit(1)
            .execute()
        )
        if result.data:
            return result.data[0]
        return None

    def find_owner_by_customer_id(self, customer_id: str, field: str = PRIMARY_CUSTOMER_FIELD) -> Optional[str]:
        """Owner id of the account whose `field` equals `customer_id`."""
        result = (
            self.client.table(USERS_TABLE)
            .select("id")
            .eq(field, customer_id)
            .limit(1)
            .execute()
        )
        if result.data:
            return result.data[0]["id"]
        return None

    def update_account(self, owner_id: str, fields: Dict[str, Any]) -> None:
        """Overwrite `fields` on the owner's row in a single update."""
        (
            self.client.table(USERS_TABLE)
            .update(fields)
            .eq("id", owner_id)
            .execute()
        )
        logger.debug(f"Updated {USERS_TABLE}/{owner_id}: {sorted(fields)}")

    def count_submissions_since(self, athlete_uid: str, since: datetime) -> int:
        """Video submissions by an athlete at or after `since`."""
        result = (
            self.client.table(SUBMISSIONS_TABLE)
            .select("id", count="exact")
            .eq("athlete_uid", athlete_uid)
            .gte("submitted_at", since.isoformat())
            .execute()
        )
        if result.count is not None:
            return result.count
        return len(result.data or [])

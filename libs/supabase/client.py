"""Async Supabase (PostgREST) client.

Only the calls the bot and its maintenance scripts need: RPC invocation
(vector search), row select, insert and filtered update. Errors are raised
to the caller; the search gateway and query logger decide how to degrade.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog

from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)


class SupabaseClient:
    """Thin PostgREST wrapper over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def rpc(self, function: str, params: Dict[str, Any]) -> Any:
        response = await self._http.post(
            f"{self.base_url}/rpc/{function}",
            headers=self._headers,
            json=params,
        )
        response.raise_for_status()
        return response.json()

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        """Read rows; ``filters`` maps columns to PostgREST operators, e.g. ``{"embedding": "is.null"}``."""
        response = await self._http.get(
            f"{self.base_url}/{table}",
            headers=self._headers,
            params={"select": columns, **(filters or {})},
        )
        response.raise_for_status()
        return response.json()

    async def insert(self, table: str, row: Dict[str, Any], returning: str = "id") -> List[Dict[str, Any]]:
        response = await self._http.post(
            f"{self.base_url}/{table}",
            headers={**self._headers, "Prefer": "return=representation"},
            params={"select": returning},
            json=row,
        )
        response.raise_for_status()
        return response.json()

    async def update(self, table: str, values: Dict[str, Any], match: Dict[str, Any]) -> None:
        response = await self._http.patch(
            f"{self.base_url}/{table}",
            headers={**self._headers, "Prefer": "return=minimal"},
            params={column: f"eq.{value}" for column, value in match.items()},
            json=values,
        )
        response.raise_for_status()

    async def close(self) -> None:
        await self._http.aclose()


def create_supabase_client(settings: Optional[Settings] = None) -> Optional[SupabaseClient]:
    """Build a client from settings, or None when Supabase is not configured."""
    settings = settings or get_settings()
    if not settings.supabase_configured:
        logger.warning(
            "Supabase not configured",
            hint="Set FAQBOT_SUPABASE_URL and FAQBOT_SUPABASE_KEY",
        )
        return None
    return SupabaseClient(
        settings.supabase_url,
        settings.supabase_key,
        timeout=settings.supabase_timeout_seconds,
    )

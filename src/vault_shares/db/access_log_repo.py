"""PostgREST-backed AccessLogRepository (``share_access_logs`` table)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from vault_shares.analytics.access_log import AccessLogEntry

from .postgrest import PostgrestClient
from .share_repo import _parse_ts


def _entry_to_row(entry: AccessLogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "share_id": entry.share_id,
        "accessed_at": entry.accessed_at.isoformat(),
        "device": entry.device,
        "browser": entry.browser,
        "os": entry.os,
        "country": entry.country,
        "city": entry.city,
        "user_agent": entry.user_agent,
        "referer": entry.referer,
    }


def _row_to_entry(row: dict[str, Any]) -> AccessLogEntry:
    return AccessLogEntry(
        id=str(row["id"]),
        share_id=str(row["share_id"]),
        accessed_at=_parse_ts(row["accessed_at"]),
        device=row.get("device") or "desktop",
        browser=row.get("browser") or "Unknown",
        os=row.get("os") or "Unknown",
        country=row.get("country"),
        city=row.get("city"),
        user_agent=row.get("user_agent"),
        referer=row.get("referer"),
    )


class PostgrestAccessLogRepository:
    """AccessLogRepository over PostgREST."""

    TABLE = "share_access_logs"

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def insert(self, entry: AccessLogEntry) -> None:
        await self._client.insert(self.TABLE, _entry_to_row(entry))

    async def list_for_shares(
        self,
        share_ids: Sequence[str],
        since: datetime,
    ) -> list[AccessLogEntry]:
        if not share_ids:
            return []
        rows = await self._client.select(
            self.TABLE,
            {
                "share_id": ("in", list(share_ids)),
                "accessed_at": ("gte", since.isoformat()),
            },
            order="accessed_at.desc",
        )
        return [_row_to_entry(row) for row in rows]

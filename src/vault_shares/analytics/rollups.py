"""On-demand analytics rollups over raw access logs.

Nothing is pre-aggregated: each call reads the entries inside the window
and groups them in memory. Days are UTC calendar dates (``YYYY-MM-DD``).
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Iterable

from .access_log import AccessLogEntry, AccessLogRepository
from .user_agent import UNKNOWN

if TYPE_CHECKING:
    from vault_shares.sharing.model import Share

DEFAULT_DAYS = 30
MAX_DAYS = 365
RECENT_ACCESS_LIMIT = 10
TOP_SHARES_LIMIT = 10


def _day(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).date().isoformat()


def _window_start(days: int, now: datetime | None) -> datetime:
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


def _ranked(values: Iterable[str | None], key: str) -> list[dict]:
    """Group by value (missing -> Unknown), most frequent first."""
    counts = Counter(v or UNKNOWN for v in values)
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [{key: value, 'count': count} for value, count in ranked]


def _by_day(entries: list[AccessLogEntry]) -> list[dict]:
    counts = Counter(_day(e.accessed_at) for e in entries)
    return [{'date': day, 'count': counts[day]} for day in sorted(counts)]


async def share_analytics(
    repository: AccessLogRepository,
    share_id: str,
    days: int = DEFAULT_DAYS,
    *,
    now: datetime | None = None,
) -> dict:
    """Rollup for a single share over the last ``days`` days."""
    entries = await repository.list_for_shares([share_id], _window_start(days, now))
    by_day = _by_day(entries)
    recent = sorted(entries, key=lambda e: e.accessed_at, reverse=True)[:RECENT_ACCESS_LIMIT]

    return {
        'total_views': len(entries),
        'unique_days': len(by_day),
        'by_day': by_day,
        'by_device': _ranked((e.device for e in entries), 'device'),
        'by_browser': _ranked((e.browser for e in entries), 'browser'),
        'by_country': _ranked((e.country for e in entries), 'country'),
        'recent_access': [
            {
                'accessed_at': e.accessed_at.isoformat(),
                'country': e.country,
                'device': e.device,
            }
            for e in recent
        ],
    }


async def owner_analytics(
    repository: AccessLogRepository,
    shares: list[Share],
    days: int = DEFAULT_DAYS,
    *,
    now: datetime | None = None,
) -> dict:
    """Rollup across every share of one owner."""
    if not shares:
        return {
            'total_views': 0,
            'share_count': 0,
            'by_day': [],
            'by_device': [],
            'by_browser': [],
            'by_country': [],
            'top_shares': [],
        }

    by_id = {share.id: share for share in shares}
    entries = await repository.list_for_shares(list(by_id), _window_start(days, now))

    views = Counter(e.share_id for e in entries)
    top = sorted(views.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_SHARES_LIMIT]

    return {
        'total_views': len(entries),
        'share_count': len(shares),
        'by_day': _by_day(entries),
        'by_device': _ranked((e.device for e in entries), 'device'),
        'by_browser': _ranked((e.browser for e in entries), 'browser'),
        'by_country': _ranked((e.country for e in entries), 'country'),
        'top_shares': [
            {
                'token': by_id[share_id].token,
                'name': by_id[share_id].display_name or by_id[share_id].scope_name,
                'scope_path': by_id[share_id].scope_path,
                'views': count,
            }
            for share_id, count in top
        ],
    }

"""Per-access log entries and the best-effort access logger.

``AccessLogger.log_access`` never raises: an analytics failure must not
fail the share operation it is attached to. Failures are logged and
dropped.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Protocol, Sequence

from vault_shares.observability import get_logger

from .user_agent import parse_user_agent

logger = get_logger(__name__)

MAX_HEADER_LENGTH = 512

_COUNTRY_HEADERS = ('x-vercel-ip-country', 'cf-ipcountry')
_CITY_HEADERS = ('x-vercel-ip-city',)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class GeoInfo:
    country: str | None = None
    city: str | None = None


def geo_from_headers(headers: Mapping[str, str]) -> GeoInfo:
    """Read edge-proxy geolocation headers, when the deployment sets them."""

    def first(names: tuple[str, ...]) -> str | None:
        for name in names:
            value = headers.get(name)
            if value:
                return value
        return None

    return GeoInfo(country=first(_COUNTRY_HEADERS), city=first(_CITY_HEADERS))


@dataclass(frozen=True, slots=True)
class AccessLogEntry:
    """One recorded access to a share."""

    share_id: str
    accessed_at: datetime
    device: str
    browser: str
    os: str
    country: str | None = None
    city: str | None = None
    user_agent: str | None = None
    referer: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


class AccessLogRepository(Protocol):
    """Append-only store of access log entries.

    Implementations: InMemoryAccessLogRepository (testing/local),
    PostgrestAccessLogRepository (production).
    """

    async def insert(self, entry: AccessLogEntry) -> None: ...

    async def list_for_shares(
        self,
        share_ids: Sequence[str],
        since: datetime,
    ) -> list[AccessLogEntry]:
        """Entries for any of ``share_ids`` at or after ``since``."""
        ...


class InMemoryAccessLogRepository:
    def __init__(self) -> None:
        self.entries: list[AccessLogEntry] = []

    async def insert(self, entry: AccessLogEntry) -> None:
        self.entries.append(entry)

    async def list_for_shares(
        self,
        share_ids: Sequence[str],
        since: datetime,
    ) -> list[AccessLogEntry]:
        wanted = set(share_ids)
        return [
            e for e in self.entries
            if e.share_id in wanted and e.accessed_at >= since
        ]


def _truncate(value: str | None) -> str | None:
    if value is None:
        return None
    return value[:MAX_HEADER_LENGTH]


class AccessLogger:
    """Writes one ``AccessLogEntry`` per share access."""

    def __init__(self, repository: AccessLogRepository) -> None:
        self._repository = repository

    async def log_access(
        self,
        share_id: str,
        *,
        user_agent: str | None = None,
        geo: GeoInfo | None = None,
        referer: str | None = None,
        at: datetime | None = None,
    ) -> None:
        info = parse_user_agent(user_agent)
        geo = geo or GeoInfo()
        entry = AccessLogEntry(
            share_id=share_id,
            accessed_at=at or _utcnow(),
            device=info.device,
            browser=info.browser,
            os=info.os,
            country=geo.country,
            city=geo.city,
            user_agent=_truncate(user_agent),
            referer=_truncate(referer),
        )
        try:
            await self._repository.insert(entry)
        except Exception:
            logger.warning('access_log_write_failed', share_id=share_id, exc_info=True)

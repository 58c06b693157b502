"""Share access logging and analytics rollups."""

from .access_log import (
    AccessLogEntry,
    AccessLogger,
    AccessLogRepository,
    GeoInfo,
    InMemoryAccessLogRepository,
    geo_from_headers,
)
from .rollups import owner_analytics, share_analytics
from .user_agent import UserAgentInfo, parse_user_agent

__all__ = [
    'AccessLogEntry',
    'AccessLogRepository',
    'AccessLogger',
    'GeoInfo',
    'InMemoryAccessLogRepository',
    'UserAgentInfo',
    'geo_from_headers',
    'owner_analytics',
    'parse_user_agent',
    'share_analytics',
]

"""Deposit upload rate limiting.

Two independent fixed-window counters per accepted unit of work (one
uploaded file):
  - per ``(client_ip, token)``: ``ip_limit`` uploads per 60s
  - per ``token``: ``share_limit`` uploads per 3600s

``check`` is read-only; ``record`` is the only mutator and is called once
per file actually written. A window older than its length is treated as
expired on the next check/record (lazy reset). ``sweep`` only bounds
memory; it never changes window semantics.

State is single-process and in-memory. Restarts lose it, and several
replicas each enforce their own limits.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from threading import Lock

from vault_shares.observability import get_logger, redact_token
from vault_shares.observability.metrics import RATE_LIMIT_TRACKED_KEYS

from .background import PeriodicTask

logger = get_logger(__name__)

REASON_IP_LIMIT = 'ip_limit'
REASON_SHARE_LIMIT = 'share_limit'

DEFAULT_IP_LIMIT_PER_MINUTE = 10
DEFAULT_SHARE_LIMIT_PER_HOUR = 100
DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for a single fixed window."""
    max_requests: int
    window_seconds: float
    description: str = ''


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a read-only limit check."""
    allowed: bool
    remaining: int
    retry_after_seconds: int | None = None
    reason: str | None = None


@dataclass
class _Window:
    count: int
    window_start: float


class FixedWindowCounter:
    """Thread-safe fixed window counter.

    Each key holds ``{count, window_start}``. The lock guards every read and
    write of the map, so handlers running in a threadpool and coroutines on
    the event loop can share one instance.
    """

    def __init__(self, config: RateLimitConfig):
        self.config = config
        self._windows: dict[str, _Window] = {}
        self._lock = Lock()

    def _live(self, key: str, now: float) -> _Window | None:
        window = self._windows.get(key)
        if window is None or now - window.window_start >= self.config.window_seconds:
            return None
        return window

    def current_count(self, key: str, now: float | None = None) -> int:
        now = now if now is not None else time.time()
        with self._lock:
            window = self._live(key, now)
            return window.count if window else 0

    def retry_after(self, key: str, now: float | None = None) -> int:
        """Whole seconds until the key's window resets (0 when none is live)."""
        now = now if now is not None else time.time()
        with self._lock:
            window = self._live(key, now)
            if window is None:
                return 0
            elapsed = now - window.window_start
            return max(1, math.ceil(self.config.window_seconds - elapsed))

    def is_exhausted(self, key: str, now: float | None = None) -> bool:
        return self.current_count(key, now) >= self.config.max_requests

    def increment(self, key: str, now: float | None = None) -> int:
        """Count one unit, starting a fresh window if the old one expired."""
        now = now if now is not None else time.time()
        with self._lock:
            window = self._live(key, now)
            if window is None:
                self._windows[key] = _Window(count=1, window_start=now)
                return 1
            window.count += 1
            return window.count

    def sweep(self, now: float | None = None) -> int:
        """Drop entries whose window expired. Returns the number removed."""
        now = now if now is not None else time.time()
        with self._lock:
            expired = [
                key for key, window in self._windows.items()
                if now - window.window_start > self.config.window_seconds
            ]
            for key in expired:
                del self._windows[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def reset_all(self) -> None:
        with self._lock:
            self._windows.clear()


class DepositRateLimiter:
    """Dual-scope limiter for deposit uploads.

    One instance is owned by the application and injected where needed.
    The IP scope is checked first so the more granular limit fails fast.
    """

    def __init__(
        self,
        ip_limit: int = DEFAULT_IP_LIMIT_PER_MINUTE,
        share_limit: int = DEFAULT_SHARE_LIMIT_PER_HOUR,
        *,
        ip_window_seconds: float = 60,
        share_window_seconds: float = 3600,
    ):
        self.ip_counter = FixedWindowCounter(RateLimitConfig(
            max_requests=ip_limit,
            window_seconds=ip_window_seconds,
            description='Deposit uploads per client IP per share',
        ))
        self.share_counter = FixedWindowCounter(RateLimitConfig(
            max_requests=share_limit,
            window_seconds=share_window_seconds,
            description='Deposit uploads per share',
        ))

    @staticmethod
    def _ip_key(ip: str, token: str) -> str:
        return f'{ip}:{token}'

    def check(self, ip: str, token: str, now: float | None = None) -> RateLimitResult:
        """Inspect both windows without mutating them."""
        now = now if now is not None else time.time()
        ip_key = self._ip_key(ip, token)

        if self.ip_counter.is_exhausted(ip_key, now):
            return RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_seconds=self.ip_counter.retry_after(ip_key, now),
                reason=REASON_IP_LIMIT,
            )

        if self.share_counter.is_exhausted(token, now):
            return RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_seconds=self.share_counter.retry_after(token, now),
                reason=REASON_SHARE_LIMIT,
            )

        ip_remaining = self.ip_counter.config.max_requests - self.ip_counter.current_count(ip_key, now)
        share_remaining = self.share_counter.config.max_requests - self.share_counter.current_count(token, now)
        return RateLimitResult(allowed=True, remaining=max(0, min(ip_remaining, share_remaining)))

    def record(self, ip: str, token: str, now: float | None = None) -> None:
        """Count one accepted upload in both windows."""
        now = now if now is not None else time.time()
        self.ip_counter.increment(self._ip_key(ip, token), now)
        self.share_counter.increment(token, now)

    def status(self, ip: str, token: str, now: float | None = None) -> dict[str, int]:
        now = now if now is not None else time.time()
        return {
            'ip_uploads_this_minute': self.ip_counter.current_count(self._ip_key(ip, token), now),
            'share_uploads_this_hour': self.share_counter.current_count(token, now),
            'ip_limit': self.ip_counter.config.max_requests,
            'share_limit': self.share_counter.config.max_requests,
        }

    def sweep(self, now: float | None = None) -> int:
        removed = self.ip_counter.sweep(now) + self.share_counter.sweep(now)
        RATE_LIMIT_TRACKED_KEYS.set(len(self.ip_counter) + len(self.share_counter))
        return removed

    def reset_all(self) -> None:
        self.ip_counter.reset_all()
        self.share_counter.reset_all()


class RateLimitSweeper(PeriodicTask):
    """Evicts expired limiter windows every ``interval_seconds``.

    Runs independently of request traffic; eviction only bounds memory.
    """

    name = 'rate-limit-sweeper'

    def __init__(
        self,
        limiter: DepositRateLimiter,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ):
        super().__init__(interval_seconds)
        self.limiter = limiter

    async def run_once(self) -> None:
        removed = self.limiter.sweep()
        if removed:
            logger.debug('rate_limit_swept', removed=removed)


def rate_limit_log_fields(ip: str, token: str, result: RateLimitResult) -> dict:
    """Loggable summary of a denial (token redacted)."""
    return {
        'token': redact_token(token),
        'client_ip': ip,
        'reason': result.reason,
        'retry_after': result.retry_after_seconds,
    }

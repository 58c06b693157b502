"""Share service configuration settings.

ShareSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config
without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .security.secrets import SecretValidationError, ShareSecrets, validate_secrets


def _float(env: dict[str, str], name: str, default: float) -> float:
    raw = env.get(name, "")
    return float(raw) if raw.strip() else default


def _int(env: dict[str, str], name: str, default: int) -> int:
    raw = env.get(name, "")
    return int(raw) if raw.strip() else default


@dataclass(frozen=True, slots=True)
class ShareSettings:
    """Configuration for the share service FastAPI application.

    Defaults suit local development and tests, except the two secrets,
    which must always be supplied. Non-local environments also need
    Supabase connection details.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, test, dev, staging, production."""

    # ── Secrets ────────────────────────────────────────────────────
    encryption_key: str = ""
    """Master secret for credential envelope encryption. Never log this."""

    session_secret: str = ""
    """HS256 secret verifying owner session tokens. Never log this."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = ""
    """Supabase service-role key for PostgREST calls. Never log this."""

    # ── Storage backend ────────────────────────────────────────────
    github_api_url: str = "https://api.github.com"

    # ── Limits and timers ──────────────────────────────────────────
    deposit_ip_limit_per_minute: int = 10
    deposit_share_limit_per_hour: int = 100
    rate_limit_sweep_seconds: float = 300.0
    share_purge_interval_seconds: float = 3600.0
    resolve_timeout_seconds: float = 10.0
    store_timeout_seconds: float = 15.0

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = (
        "http://localhost:5173",
        "http://localhost:3000",
    )

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True

    def __repr__(self) -> str:
        return (
            f"ShareSettings(environment={self.environment!r}, "
            f"supabase_url={self.supabase_url!r}, secrets=<redacted>)"
        )

    @property
    def is_local(self) -> bool:
        return self.environment in ("local", "test")

    @property
    def secrets(self) -> ShareSecrets:
        return ShareSecrets(
            encryption_key=self.encryption_key,
            session_secret=self.session_secret,
            supabase_service_role_key=self.supabase_service_role_key,
        )

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        try:
            validate_secrets(self.secrets, require_supabase=not self.is_local)
        except SecretValidationError as exc:
            errors.extend(f"{self.environment}: {name} is required" for name in exc.missing)
            errors.extend(f"{self.environment}: {detail}" for detail in exc.invalid)
        if not self.is_local and not self.supabase_url:
            errors.append(f"{self.environment}: supabase_url is required")
        if self.deposit_ip_limit_per_minute <= 0 or self.deposit_share_limit_per_hour <= 0:
            errors.append("deposit rate limits must be positive")
        if self.resolve_timeout_seconds <= 0 or self.store_timeout_seconds <= 0:
            errors.append("timeouts must be positive")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ShareSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct ShareSettings directly.
        """
        if env is None:
            env = dict(os.environ)
        defaults = cls()

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else defaults.cors_origins

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            encryption_key=env.get("ENCRYPTION_KEY", "").strip(),
            session_secret=env.get("SESSION_SECRET", "").strip(),
            supabase_url=env.get("SUPABASE_URL", "").rstrip("/"),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", "").strip(),
            github_api_url=env.get("GITHUB_API_URL", defaults.github_api_url).rstrip("/"),
            deposit_ip_limit_per_minute=_int(env, "DEPOSIT_IP_LIMIT_PER_MINUTE", defaults.deposit_ip_limit_per_minute),
            deposit_share_limit_per_hour=_int(env, "DEPOSIT_SHARE_LIMIT_PER_HOUR", defaults.deposit_share_limit_per_hour),
            rate_limit_sweep_seconds=_float(env, "RATE_LIMIT_SWEEP_SECONDS", defaults.rate_limit_sweep_seconds),
            share_purge_interval_seconds=_float(env, "SHARE_PURGE_INTERVAL_SECONDS", defaults.share_purge_interval_seconds),
            resolve_timeout_seconds=_float(env, "RESOLVE_TIMEOUT_SECONDS", defaults.resolve_timeout_seconds),
            store_timeout_seconds=_float(env, "STORE_TIMEOUT_SECONDS", defaults.store_timeout_seconds),
            cors_origins=cors,
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
            log_json=env.get("LOG_FORMAT", "json").lower() != "console",
        )

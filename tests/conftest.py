"""Pytest configuration for vault_shares tests."""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from vault_shares.analytics.access_log import AccessLogger, InMemoryAccessLogRepository
from vault_shares.backend.store import InMemoryStoreFactory, VaultConfig
from vault_shares.security.encryption import CredentialCipher
from vault_shares.sharing.context import AccessContextResolver, AccessRecorder
from vault_shares.sharing.model import InMemoryShareRepository, Share
from vault_shares.sharing.rate_limit import DepositRateLimiter
from vault_shares.sharing.registry import CreateShareParams, ShareRegistry
from vault_shares.sharing.service import ShareAccessService

ENCRYPTION_SECRET = 'test-encryption-secret-0123456789abcdef'
SESSION_SECRET = 'test-session-secret-0123456789abcdefgh'
OWNER_CREDENTIAL = 'ghp_owner_credential_do_not_leak'

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for registry and resolver tests."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope='session')
def cipher() -> CredentialCipher:
    # Key derivation is deliberately slow; derive once per session.
    return CredentialCipher.from_secret(ENCRYPTION_SECRET)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vault() -> VaultConfig:
    return VaultConfig(repo_owner='alice', repo_name='notes')


@pytest.fixture
def vault_files() -> dict[str, bytes]:
    return {
        'Projects/_Index.md': b'# Projects\n',
        'Projects/a.md': b'---\ntags: [work]\n---\nSee [[b]] and [[Notes/idea|the idea]].\n',
        'Projects/zeta.md': b'# Zeta\n',
        'Projects/diagram.png': b'\x89PNG\r\n\x1a\nfake',
        'Projects/sub/b.md': b'# B\n',
        'Projects/sub/deep/c.md': b'# C\n',
        'ProjectsExtra/secret.md': b'# not shared\n',
        'Notes/idea.md': b'# Idea\n',
        'Notes/other.md': b'# Other\n',
    }


@pytest.fixture
def store_factory(vault_files) -> InMemoryStoreFactory:
    return InMemoryStoreFactory(vault_files)


class ShareHarness:
    """Registry, resolver and access service wired over in-memory stores."""

    def __init__(self, cipher, clock, store_factory, vault) -> None:
        self.clock = clock
        self.vault = vault
        self.store_factory = store_factory
        self.registry = ShareRegistry(InMemoryShareRepository(), cipher, clock=clock)
        self.recorder = AccessRecorder(self.registry.record_access)
        self.resolver = AccessContextResolver(
            self.registry, cipher, store_factory, self.recorder, timeout_seconds=1.0,
        )
        self.limiter = DepositRateLimiter()
        self.access_logs = InMemoryAccessLogRepository()
        self.service = ShareAccessService(
            self.resolver,
            self.limiter,
            AccessLogger(self.access_logs),
            store_timeout_seconds=1.0,
        )

    @property
    def files(self) -> dict[str, bytes]:
        return self.store_factory.files

    async def create(self, owner_id: str = 'owner-1', **overrides) -> Share:
        params = {'scope_path': 'Projects', 'expires_in': '1d', **overrides}
        return await self.registry.create(
            CreateShareParams(**params),
            owner_id=owner_id,
            owner_display_name='Alice',
            credential=OWNER_CREDENTIAL,
            vault=self.vault,
        )


@pytest.fixture
def harness(cipher, clock, store_factory, vault) -> ShareHarness:
    return ShareHarness(cipher, clock, store_factory, vault)

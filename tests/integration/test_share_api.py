"""Integration tests for the share service HTTP surface.

These tests assemble the full application through ``create_app`` with
in-memory repositories and store, then drive it over ASGI:
  - Owner routes require a session token and hide foreign shares.
  - Public routes are authorized by the share token alone.
  - Errors render with stable codes, request ids and Retry-After.
  - The encrypted credential never appears in any response.
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from conftest import ENCRYPTION_SECRET, OWNER_CREDENTIAL, SESSION_SECRET, FakeClock
from vault_shares import ShareSettings, create_app
from vault_shares.backend.store import VaultConfig
from vault_shares.security.owner_auth import OwnerTokenVerifier
from vault_shares.sharing.owners import InMemoryOwnerVaultDirectory, OwnerVault


def _session(user_id, name='Alice', expires_in=timedelta(hours=1)):
    verifier = OwnerTokenVerifier(SESSION_SECRET)
    token = verifier.issue(user_id, name, expires_at=datetime.now(timezone.utc) + expires_in)
    return {'Authorization': f'Bearer {token}'}


ALICE = _session('owner-1', 'Alice')
MALLORY = _session('owner-2', 'Mallory')


@pytest.fixture
def settings():
    return ShareSettings(
        environment='test',
        encryption_key=ENCRYPTION_SECRET,
        session_secret=SESSION_SECRET,
        deposit_ip_limit_per_minute=2,
    )


@pytest.fixture
def app_clock():
    return FakeClock(datetime.now(timezone.utc))


@pytest.fixture
def app(settings, store_factory, vault, app_clock):
    directory = InMemoryOwnerVaultDirectory({
        'owner-1': OwnerVault(credential=OWNER_CREDENTIAL, vault=vault),
        'owner-2': OwnerVault(
            credential='ghp_other', vault=VaultConfig(repo_owner='mallory', repo_name='vault'),
        ),
    })
    return create_app(
        settings,
        owner_directory=directory,
        store_factory=store_factory,
        clock=app_clock,
        configure_logs=False,
    )


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac


async def _create(client, headers=ALICE, **body):
    payload = {'scope_path': 'Projects', 'expires_in': '1d', **body}
    response = await client.post('/api/shares', json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()['share']


class TestAppFactory:

    def test_routes_registered(self, app):
        paths = [r.path for r in app.routes if hasattr(r, 'path')]
        assert '/health' in paths
        assert '/metrics' in paths
        assert '/api/shares/{token}/deposit' in paths

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValueError, match='ENCRYPTION_KEY'):
            create_app(ShareSettings(environment='test', session_secret=SESSION_SECRET))

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get('/health')
        assert response.status_code == 200
        assert response.json() == {'status': 'ok', 'environment': 'test'}

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        await client.get('/health')
        response = await client.get('/metrics')
        assert response.status_code == 200
        assert 'http_requests_total' in response.text

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        response = await client.get('/health', headers={'X-Request-ID': 'req-12345678'})
        assert response.headers['X-Request-ID'] == 'req-12345678'

    @pytest.mark.asyncio
    async def test_unhandled_error_carries_request_id(self, app):
        @app.get('/explode')
        async def explode():
            raise RuntimeError('boom')

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url='http://test') as ac:
            response = await ac.get('/explode', headers={'X-Request-ID': 'req-87654321'})

        assert response.status_code == 500
        assert response.json() == {
            'error': 'internal_error',
            'detail': 'Internal server error.',
            'request_id': 'req-87654321',
        }
        assert 'boom' not in response.text


# =====================================================================
# Owner routes
# =====================================================================


class TestOwnerAuth:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get('/api/shares')
        assert response.status_code == 401
        assert response.json()['error'] == 'auth_required'

    @pytest.mark.asyncio
    async def test_expired_session(self, client):
        headers = _session('owner-1', expires_in=timedelta(hours=-1))
        response = await client.get('/api/shares', headers=headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_forged_session(self, client):
        forged = OwnerTokenVerifier('x' * 40).issue(
            'owner-1', 'Alice', expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        response = await client.get('/api/shares', headers={'Authorization': f'Bearer {forged}'})
        assert response.status_code == 401


class TestCreateShare:

    @pytest.mark.asyncio
    async def test_create(self, client):
        response = await client.post(
            '/api/shares',
            json={'scope_path': 'Projects', 'expires_in': '1w', 'name': 'Team notes'},
            headers=ALICE,
        )
        assert response.status_code == 201
        share = response.json()['share']
        assert share['name'] == 'Team notes'
        assert share['mode'] == 'reader'
        assert share['access_count'] == 0
        assert 'encrypted_credential' not in share
        assert OWNER_CREDENTIAL not in response.text

    @pytest.mark.asyncio
    async def test_deposit_config(self, client):
        share = await _create(
            client,
            mode='deposit',
            deposit_config={'max_file_size': 1024, 'allowed_types': ['pdf'], 'deposit_folder': 'Inbox'},
        )
        assert share['deposit_config'] == {
            'max_file_size': 1024,
            'allowed_extensions': ['.pdf'],
            'deposit_folder': 'Inbox',
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize('body', [
        {'scope_path': 'Projects', 'expires_in': '2y'},
        {'scope_path': '../etc', 'expires_in': '1d'},
        {'scope_path': 'Projects'},
        {'scope_path': 'Projects', 'expires_in': '1d', 'mode': 'admin'},
    ])
    async def test_invalid_body(self, client, body):
        response = await client.post('/api/shares', json=body, headers=ALICE)
        assert response.status_code == 400
        assert response.json()['error'] == 'validation_error'

    @pytest.mark.asyncio
    async def test_owner_without_vault(self, client):
        response = await client.post(
            '/api/shares',
            json={'scope_path': 'Projects', 'expires_in': '1d'},
            headers=_session('owner-3'),
        )
        assert response.status_code == 400


class TestManageShares:

    @pytest.mark.asyncio
    async def test_list_only_own(self, client):
        mine = await _create(client)
        await _create(client, headers=MALLORY)
        response = await client.get('/api/shares', headers=ALICE)
        assert [s['token'] for s in response.json()['shares']] == [mine['token']]

    @pytest.mark.asyncio
    async def test_rename(self, client):
        share = await _create(client)
        response = await client.patch(
            f"/api/shares/{share['token']}", json={'name': 'Renamed'}, headers=ALICE,
        )
        assert response.status_code == 200
        assert response.json()['share']['name'] == 'Renamed'

    @pytest.mark.asyncio
    async def test_foreign_rename_and_delete_look_missing(self, client):
        share = await _create(client)
        token = share['token']
        assert (await client.patch(
            f'/api/shares/{token}', json={'name': 'x'}, headers=MALLORY,
        )).status_code == 404
        assert (await client.delete(f'/api/shares/{token}', headers=MALLORY)).status_code == 404
        assert (await client.get(f'/api/shares/{token}')).status_code == 200

    @pytest.mark.asyncio
    async def test_delete_revokes(self, client):
        share = await _create(client)
        token = share['token']
        response = await client.delete(f'/api/shares/{token}', headers=ALICE)
        assert response.json() == {'success': True}
        assert (await client.get(f'/api/shares/{token}')).status_code == 404


class TestAnalyticsRoutes:

    @pytest.mark.asyncio
    async def test_share_analytics(self, client):
        share = await _create(client)
        token = share['token']
        await client.get(f'/api/shares/{token}/file', params={'path': 'Projects/a.md'})

        response = await client.get(f'/api/shares/{token}/analytics', headers=ALICE)
        assert response.status_code == 200
        body = response.json()
        assert body['days'] == 30
        assert body['share']['token'] == token
        assert body['total_views'] == 1

    @pytest.mark.asyncio
    async def test_foreign_share_is_forbidden(self, client):
        share = await _create(client)
        response = await client.get(f"/api/shares/{share['token']}/analytics", headers=MALLORY)
        assert response.status_code == 403
        assert response.json()['error'] == 'forbidden'

    @pytest.mark.asyncio
    async def test_missing_share(self, client):
        response = await client.get('/api/shares/nope/analytics', headers=ALICE)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_owner_rollup_not_captured_as_token(self, client):
        await _create(client)
        response = await client.get('/api/shares/analytics', params={'days': 500}, headers=ALICE)
        assert response.status_code == 200
        assert response.json()['share_count'] == 1


# =====================================================================
# Public routes
# =====================================================================


class TestPublicAccess:

    @pytest.mark.asyncio
    async def test_metadata(self, client):
        share = await _create(client)
        response = await client.get(f"/api/shares/{share['token']}")
        assert response.status_code == 200
        body = response.json()
        assert body['scope_path'] == 'Projects'
        assert 'access_count' not in body
        assert OWNER_CREDENTIAL not in response.text

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        response = await client.get('/api/shares/not-a-real-token')
        assert response.status_code == 404
        assert response.json()['error'] == 'share_not_found'
        assert response.json()['request_id']

    @pytest.mark.asyncio
    async def test_expired_token(self, client, app_clock):
        share = await _create(client, expires_in='1h')
        app_clock.advance(hours=2)
        response = await client.get(f"/api/shares/{share['token']}")
        assert response.status_code == 410
        assert response.json()['error'] == 'share_expired'

    @pytest.mark.asyncio
    async def test_read_in_scope_and_out_of_scope(self, client):
        share = await _create(client, include_subfolders=False)
        token = share['token']
        ok = await client.get(f'/api/shares/{token}/file', params={'path': 'Projects/a.md'})
        assert ok.status_code == 200
        assert ok.json()['frontmatter'] == {'tags': ['work']}

        nested = await client.get(f'/api/shares/{token}/file', params={'path': 'Projects/sub/b.md'})
        assert nested.status_code == 403
        assert nested.json()['error'] == 'share_scope_violation'

        sibling = await client.get(f'/api/shares/{token}/file', params={'path': 'ProjectsExtra/secret.md'})
        assert sibling.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_file(self, client):
        share = await _create(client)
        response = await client.get(
            f"/api/shares/{share['token']}/file", params={'path': 'Projects/missing.md'},
        )
        assert response.status_code == 404
        assert response.json()['error'] == 'file_not_found'

    @pytest.mark.asyncio
    async def test_tree(self, client):
        share = await _create(client)
        response = await client.get(f"/api/shares/{share['token']}/tree")
        assert response.status_code == 200
        assert 'ProjectsExtra' not in response.text

    @pytest.mark.asyncio
    async def test_reader_cannot_save(self, client):
        share = await _create(client)
        response = await client.post(
            f"/api/shares/{share['token']}/save",
            json={'path': 'Projects/a.md', 'content': 'x'},
        )
        assert response.status_code == 403
        assert response.json()['error'] == 'share_mode_not_permitted'

    @pytest.mark.asyncio
    async def test_writer_save_and_create(self, client, store_factory):
        share = await _create(client, mode='writer')
        token = share['token']
        saved = await client.post(
            f'/api/shares/{token}/save', json={'path': 'Projects/a.md', 'content': 'edited'},
        )
        assert saved.status_code == 200
        assert store_factory.files['Projects/a.md'] == b'edited'

        created = await client.post(f'/api/shares/{token}/create', json={'path': 'Projects/new.md'})
        assert created.status_code == 201
        folder = await client.post(f'/api/shares/{token}/create-folder', json={'path': 'Projects/Ideas'})
        assert folder.status_code == 201
        assert 'Projects/Ideas/.gitkeep' in store_factory.files

    @pytest.mark.asyncio
    async def test_export(self, client):
        share = await _create(client)
        response = await client.post(
            f"/api/shares/{share['token']}/export", json={'paths': ['Projects/a.md']},
        )
        assert response.status_code == 200
        assert response.json()['files'][0]['path'] == 'a.md'

    @pytest.mark.asyncio
    async def test_export_requires_paths(self, client):
        share = await _create(client)
        response = await client.post(f"/api/shares/{share['token']}/export", json={'paths': []})
        assert response.status_code == 400


class TestDepositRoute:

    @pytest.mark.asyncio
    async def test_multipart_upload(self, client, store_factory):
        share = await _create(client, mode='deposit', deposit_config={'deposit_folder': 'Inbox'})
        response = await client.post(
            f"/api/shares/{share['token']}/deposit",
            files=[('files', ('report.txt', b'hello', 'text/plain'))],
        )
        assert response.status_code == 200
        body = response.json()
        assert body['success'] is True
        path = body['uploaded'][0]['path']
        assert path.startswith('Projects/Inbox/')
        assert store_factory.files[path] == b'hello'

    @pytest.mark.asyncio
    async def test_oversize_part_rejected(self, client, store_factory):
        share = await _create(client, mode='deposit', deposit_config={'max_file_size': 1024})
        response = await client.post(
            f"/api/shares/{share['token']}/deposit",
            files=[('files', ('big.txt', b'x' * 5000, 'text/plain'))],
        )
        assert response.status_code == 200
        body = response.json()
        assert body['uploaded'] == []
        assert body['errors'] == [{'name': 'big.txt', 'error': 'File too large (max 1MB)'}]

    @pytest.mark.asyncio
    async def test_no_files(self, client):
        share = await _create(client, mode='deposit')
        response = await client.post(f"/api/shares/{share['token']}/deposit")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rate_limited_with_retry_after(self, client):
        share = await _create(client, mode='deposit')
        url = f"/api/shares/{share['token']}/deposit"
        headers = {'X-Forwarded-For': '203.0.113.7, 10.0.0.1'}
        for name in ('a.txt', 'b.txt'):
            ok = await client.post(url, files=[('files', (name, b'x', 'text/plain'))], headers=headers)
            assert ok.status_code == 200

        limited = await client.post(url, files=[('files', ('c.txt', b'x', 'text/plain'))], headers=headers)
        assert limited.status_code == 429
        assert int(limited.headers['Retry-After']) >= 1
        assert limited.json()['error'] == 'rate_limited'
        assert limited.json()['retryable'] is True

        other = await client.post(
            url,
            files=[('files', ('d.txt', b'x', 'text/plain'))],
            headers={'X-Forwarded-For': '203.0.113.8'},
        )
        assert other.status_code == 200

    @pytest.mark.asyncio
    async def test_reader_share_rejects_deposit(self, client):
        share = await _create(client)
        response = await client.post(
            f"/api/shares/{share['token']}/deposit",
            files=[('files', ('a.txt', b'x', 'text/plain'))],
        )
        assert response.status_code == 403

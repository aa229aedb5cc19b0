"""HTTP surface of the stashbox app.

Validates:
  - Every resource route requires a valid session token (401 otherwise).
  - Public routes, /health and /metrics need no authentication.
  - Sharing errors render as {success: false, error, detail} with the
    error's status code.
  - save-owned drops client-sent sharing fields.
  - Public links return a generic 404 for unknown, revoked and
    no-longer-public tokens alike.
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from stashbox.app import StashboxSettings, create_app
from stashbox.app.inmemory import InMemoryUserDirectory
from stashbox.app.security import issue_session_token

SECRET = 'routes-test-session-secret-0123456789abcdef'
USERS = {'u_owner': 'owner', 'u_alice': 'alice', 'u_bob': 'bob'}
GENERIC_404 = {'success': False, 'error': 'not_found', 'detail': 'Public link not found.'}


# ── Test helpers ──────────────────────────────────────────────────────


def _make_app():
    return create_app(
        StashboxSettings(session_secret=SECRET),
        user_directory=InMemoryUserDirectory(USERS),
    )


def _client(app, user_id: str | None = None) -> AsyncClient:
    headers = {}
    if user_id is not None:
        token = issue_session_token(user_id, SECRET, username=USERS[user_id])
        headers['Authorization'] = f'Bearer {token}'
    return AsyncClient(
        transport=ASGITransport(app=app), base_url='http://test', headers=headers,
    )


async def _create(client: AsyncClient, name: str = 'R', content: str = '') -> str:
    resp = await client.post('/api/v1/clipboards/save-owned', json={
        'resources': [{'client_key': 'k1', 'name': name, 'payload': {'content': content}}],
    })
    assert resp.status_code == 200
    return resp.json()['data']['resources'][0]['id']


@pytest.fixture
def app():
    return _make_app()


# =====================================================================
# Auth
# =====================================================================


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_token_401(self, app):
        async with _client(app) as client:
            resp = await client.get('/api/v1/clipboards')
        assert resp.status_code == 401
        assert resp.json()['error'] == 'unauthorized'

    @pytest.mark.asyncio
    async def test_bad_signature_401(self, app):
        token = issue_session_token('u_owner', 'some-other-secret-entirely-0000000000')
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url='http://test',
            headers={'Authorization': f'Bearer {token}'},
        ) as client:
            resp = await client.get('/api/v1/clipboards')
        assert resp.status_code == 401
        assert resp.json()['code'] == 'invalid_token'

    @pytest.mark.asyncio
    async def test_expired_token_401(self, app):
        token = issue_session_token('u_owner', SECRET, ttl_seconds=-10)
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url='http://test',
            headers={'Authorization': f'Bearer {token}'},
        ) as client:
            resp = await client.get('/api/v1/clipboards')
        assert resp.status_code == 401
        assert resp.json()['code'] == 'token_expired'

    @pytest.mark.asyncio
    async def test_session_cookie_accepted(self, app):
        token = issue_session_token('u_owner', SECRET)
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url='http://test',
            cookies={'stashbox_session': token},
        ) as client:
            resp = await client.get('/api/v1/clipboards')
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_health_and_metrics_open(self, app):
        async with _client(app) as client:
            health = await client.get('/health')
            metrics = await client.get('/metrics')
        assert health.json() == {'status': 'ok', 'environment': 'local'}
        assert metrics.status_code == 200
        assert 'stashbox_http_requests_total' in metrics.text

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, app):
        async with _client(app) as client:
            resp = await client.get('/health', headers={'X-Request-ID': 'req-12345678'})
            generated = await client.get('/health', headers={'X-Request-ID': 'bad id!'})
        assert resp.headers['X-Request-ID'] == 'req-12345678'
        assert generated.headers['X-Request-ID'] != 'bad id!'


# =====================================================================
# Resource routes
# =====================================================================


class TestResourceRoutes:
    @pytest.mark.asyncio
    async def test_save_owned_then_list(self, app):
        async with _client(app, 'u_owner') as client:
            resp = await client.post('/api/v1/clipboards/save-owned', json={
                'resources': [{'client_key': 'k1', 'name': 'R', 'payload': {'content': 'x'}}],
            })
            listing = await client.get('/api/v1/clipboards')

        saved = resp.json()['data']['resources'][0]
        assert saved['client_key'] == 'k1'
        assert saved['id']
        resources = listing.json()['data']['resources']
        assert [(r['id'], r['is_owner']) for r in resources] == [(saved['id'], True)]

    @pytest.mark.asyncio
    async def test_save_owned_ignores_client_acl_fields(self, app):
        async with _client(app, 'u_owner') as client:
            resp = await client.post('/api/v1/clipboards/save-owned', json={
                'resources': [{
                    'name': 'R',
                    'payload': {'content': 'x'},
                    'shared_with': [{'user_id': 'u_bob', 'username': 'bob'}],
                    'is_public': True,
                    'public_token': 'forged-token',
                }],
            })
        saved = resp.json()['data']['resources'][0]
        assert saved['shared_with'] == []
        assert saved['is_public'] is False
        assert saved['public_token'] is None

    @pytest.mark.asyncio
    async def test_unknown_kind_404(self, app):
        async with _client(app, 'u_owner') as client:
            resp = await client.get('/api/v1/notes')
        assert resp.status_code == 404
        assert resp.json()['error'] == 'not_found'

    @pytest.mark.asyncio
    async def test_invalid_payload_400(self, app):
        async with _client(app, 'u_owner') as client:
            resp = await client.post('/api/v1/commands/save-owned', json={
                'resources': [{'name': 'c', 'payload': {'steps': 'not-a-list'}}],
            })
        assert resp.status_code == 400
        assert resp.json()['error'] == 'invalid_request'

    @pytest.mark.asyncio
    async def test_invalid_draft_rejects_whole_set(self, app):
        async with _client(app, 'u_owner') as client:
            resp = await client.post('/api/v1/clipboards/save-owned', json={
                'resources': [
                    {'name': 'ok', 'payload': {'content': 'fine'}},
                    {'name': 'bad', 'payload': {'content': ['not', 'text']}},
                ],
            })
            listing = await client.get('/api/v1/clipboards')
        assert resp.status_code == 400
        assert resp.json()['error'] == 'invalid_request'
        assert listing.json()['data']['resources'] == []

    @pytest.mark.asyncio
    async def test_shared_item_string_payload_400(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner, content='kept')
            resp = await owner.put('/api/v1/clipboards/shared-item', json={
                'resource_id': rid, 'owner_id': 'u_owner', 'patch': {'payload': 'text'},
            })
            listing = await owner.get('/api/v1/clipboards')
        assert resp.status_code == 400
        assert resp.json()['error'] == 'invalid_request'
        assert listing.json()['data']['resources'][0]['payload']['content'] == 'kept'

    @pytest.mark.asyncio
    async def test_shared_item_forbidden_for_stranger(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner)
        async with _client(app, 'u_bob') as bob:
            resp = await bob.put('/api/v1/clipboards/shared-item', json={
                'resource_id': rid, 'owner_id': 'u_owner', 'patch': {'name': 'x'},
            })
        assert resp.status_code == 403
        assert resp.json() == {
            'success': False, 'error': 'forbidden', 'detail': 'Permission denied.',
        }

    @pytest.mark.asyncio
    async def test_delete_and_trash(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner, 'gone')
            resp = await owner.delete(f'/api/v1/clipboards/{rid}')
            trash = await owner.get('/api/v1/trash')
        assert resp.json() == {'success': True}
        items = trash.json()['data']['items']
        assert [(i['original_id'], i['kind']) for i in items] == [(rid, 'clipboard')]


# =====================================================================
# Share route
# =====================================================================


class TestShareRoute:
    @pytest.mark.asyncio
    async def test_add_then_collaborator_sees_it(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner)
            resp = await owner.post('/api/v1/clipboards/share', json={
                'action': 'add', 'resource_id': rid, 'username': 'alice',
            })
        assert resp.status_code == 200
        assert resp.json()['data']['shared_with'] == [{'user_id': 'u_alice', 'username': 'alice'}]

        async with _client(app, 'u_alice') as alice:
            listing = await alice.get('/api/v1/clipboards')
        entry = listing.json()['data']['resources'][0]
        assert entry['id'] == rid
        assert entry['is_owner'] is False
        assert entry['owner_username'] == 'owner'

    @pytest.mark.asyncio
    async def test_unknown_user_404(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner)
            resp = await owner.post('/api/v1/clipboards/share', json={
                'action': 'add', 'resource_id': rid, 'username': 'mallory',
            })
        assert resp.status_code == 404
        assert resp.json()['error'] == 'user_not_found'

    @pytest.mark.asyncio
    async def test_self_share_400(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner)
            resp = await owner.post('/api/v1/clipboards/share', json={
                'action': 'add', 'resource_id': rid, 'username': 'owner',
            })
        assert resp.status_code == 400
        assert resp.json()['error'] == 'cannot_share_with_self'

    @pytest.mark.asyncio
    async def test_non_owner_403(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner)
        async with _client(app, 'u_bob') as bob:
            resp = await bob.post('/api/v1/clipboards/share', json={
                'action': 'public_toggle', 'resource_id': rid,
            })
        assert resp.status_code == 403
        assert resp.json()['error'] == 'not_owner'

    @pytest.mark.asyncio
    async def test_owner_leave_403(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner)
            resp = await owner.post('/api/v1/clipboards/share', json={
                'action': 'leave', 'resource_id': rid,
            })
        assert resp.status_code == 403
        assert resp.json()['error'] == 'not_collaborator'

    @pytest.mark.asyncio
    async def test_unknown_action_422(self, app):
        async with _client(app, 'u_owner') as owner:
            resp = await owner.post('/api/v1/clipboards/share', json={
                'action': 'transfer', 'resource_id': 'r',
            })
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_collection_grant(self, app):
        async with _client(app, 'u_owner') as owner:
            saved = await owner.post('/api/v1/commands/save-owned', json={'resources': [
                {'name': 'a', 'collection': 'ops', 'payload': {'command': 'ls'}},
                {'name': 'b', 'collection': 'ops', 'payload': {'command': 'pwd'}},
            ]})
            ids = sorted(r['id'] for r in saved.json()['data']['resources'])
            resp = await owner.post('/api/v1/commands/share', json={
                'action': 'add', 'collection_name': 'ops', 'username': 'alice',
            })
        data = resp.json()['data']
        assert sorted(data['granted']) == ids
        assert data['skipped'] == [] and data['failed'] == []


# =====================================================================
# Public routes
# =====================================================================


class TestPublicRoutes:
    @pytest.mark.asyncio
    async def test_public_read_without_auth(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner, 'R', 'secret sauce')
            toggle = await owner.post('/api/v1/clipboards/share', json={
                'action': 'public_toggle', 'resource_id': rid, 'enabled': True,
            })
        token = toggle.json()['data']['public_token']

        async with _client(app) as anon:
            resp = await anon.get(f'/api/v1/public/clipboards/{token}')
        assert resp.status_code == 200
        data = resp.json()['data']
        assert data['payload']['content'] == 'secret sauce'
        for field in ('id', 'owner_id', 'shared_with', 'public_token', 'is_owner'):
            assert field not in data

    @pytest.mark.asyncio
    async def test_generic_404_for_every_failure(self, app):
        async with _client(app, 'u_owner') as owner:
            rid = await _create(owner)
            on = await owner.post('/api/v1/clipboards/share', json={
                'action': 'public_toggle', 'resource_id': rid, 'enabled': True,
            })
            token = on.json()['data']['public_token']
            await owner.post('/api/v1/clipboards/share', json={
                'action': 'public_toggle', 'resource_id': rid, 'enabled': False,
            })

        async with _client(app) as anon:
            revoked = await anon.get(f'/api/v1/public/clipboards/{token}')
            unknown = await anon.get('/api/v1/public/clipboards/never-issued-token')
            bad_kind = await anon.get(f'/api/v1/public/notes/{token}')
        for resp in (revoked, unknown, bad_kind):
            assert resp.status_code == 404
            assert resp.json() == GENERIC_404

    @pytest.mark.asyncio
    async def test_public_collection(self, app):
        async with _client(app, 'u_owner') as owner:
            await owner.post('/api/v1/links/save-owned', json={'resources': [
                {'name': 'docs', 'collection': 'work', 'payload': {'items': []}},
            ]})
            resp = await owner.post('/api/v1/links/share', json={
                'action': 'public_toggle', 'collection_name': 'work', 'enabled': True,
            })
        token = resp.json()['data']['public_token']

        async with _client(app) as anon:
            public = await anon.get(f'/api/v1/public/links/collections/{token}')
        data = public.json()['data']
        assert data['name'] == 'work'
        assert [r['name'] for r in data['resources']] == ['docs']

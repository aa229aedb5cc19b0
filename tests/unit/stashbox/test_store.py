"""Resource store write paths and listing.

Validates:
  - save_owned is a full replace: ids assigned, client keys echoed,
    missing items discarded to the trash with their tokens revoked.
  - save_owned never touches sharing state and never adopts another
    user's resource, and a single invalid draft rejects the whole set
    before anything is written.
  - save_shared_item only accepts name/payload, whatever the patch holds,
    and rejects a payload that is not an object.
  - Access checks on the collaborator path.
  - list_visible annotates each resource with the caller-relative
    is_owner flag.
"""

from __future__ import annotations

import pytest

from stashbox.app.errors import Forbidden, InvalidShareRequest, NotFound, NotOwner
from stashbox.app.sharing import OwnedDraft
from stashbox.app.sharing.model import Resource, ResourceKind, SharedUser

KIND = ResourceKind.CLIPBOARD
OWNER = 'u_owner'
ALICE = 'u_alice'
BOB = 'u_bob'


def _draft(name: str, content: str = '', **kwargs) -> OwnedDraft:
    return OwnedDraft(name=name, payload={'content': content}, **kwargs)


class TestSaveOwned:
    @pytest.mark.asyncio
    async def test_assigns_ids_and_echoes_client_keys(self, domain):
        result = await domain.store.save_owned(KIND, OWNER, [
            _draft('a', client_key='k1'),
            _draft('b', client_key='k2'),
        ])
        assert [s.client_key for s in result.saved] == ['k1', 'k2']
        ids = [s.resource.id for s in result.saved]
        assert all(ids) and len(set(ids)) == 2
        assert result.saved[0].to_dict()['is_owner'] is True

    @pytest.mark.asyncio
    async def test_payload_is_normalized(self, domain):
        result = await domain.store.save_owned(KIND, OWNER, [_draft('a', 'hi')])
        assert result.saved[0].resource.payload == {
            'content': 'hi', 'is_bold': False, 'color': None,
        }

    @pytest.mark.asyncio
    async def test_invalid_payload(self, domain):
        with pytest.raises(InvalidShareRequest):
            await domain.store.save_owned(
                KIND, OWNER, [OwnedDraft(name='a', payload={'content': ['not', 'text']})],
            )

    @pytest.mark.asyncio
    async def test_updates_in_place_and_keeps_acl(self, domain):
        first = await domain.store.save_owned(KIND, OWNER, [_draft('a', 'v1')])
        rid = first.saved[0].resource.id
        await domain.ledger.grant(KIND, rid, OWNER, 'alice')
        token = (await domain.ledger.set_public(KIND, rid, OWNER, True)).public_token

        second = await domain.store.save_owned(KIND, OWNER, [_draft('a', 'v2', id=rid)])

        saved = second.saved[0].resource
        assert saved.id == rid
        assert saved.payload['content'] == 'v2'
        assert [g.user_id for g in saved.shared_with] == [ALICE]
        assert saved.is_public and saved.public_token == token

    @pytest.mark.asyncio
    async def test_full_replace_discards_missing(self, domain):
        first = await domain.store.save_owned(KIND, OWNER, [_draft('keep'), _draft('drop')])
        keep_id, drop_id = (s.resource.id for s in first.saved)
        token = (await domain.ledger.set_public(KIND, drop_id, OWNER, True)).public_token

        second = await domain.store.save_owned(KIND, OWNER, [_draft('keep', id=keep_id)])

        assert second.deleted_ids == [drop_id]
        assert await domain.resources.get(KIND, drop_id) is None
        assert await domain.registry.is_revoked(KIND, token)
        trashed = await domain.trash.list_for_owner(OWNER)
        assert [t.original_id for t in trashed] == [drop_id]

    @pytest.mark.asyncio
    async def test_other_owners_resources_untouched(self, domain):
        theirs = await domain.store.save_owned(KIND, BOB, [_draft('bobs')])
        bob_id = theirs.saved[0].resource.id

        result = await domain.store.save_owned(KIND, OWNER, [_draft('hijack', 'x', id=bob_id)])

        assert result.skipped == [bob_id]
        assert result.saved == []
        stored = await domain.resources.get(KIND, bob_id)
        assert stored.owner_id == BOB
        assert stored.name == 'bobs'

    @pytest.mark.asyncio
    async def test_invalid_draft_persists_nothing(self, domain):
        with pytest.raises(InvalidShareRequest):
            await domain.store.save_owned(KIND, OWNER, [
                _draft('a', 'ok'),
                OwnedDraft(name='b', payload={'content': ['bad']}),
            ])
        assert await domain.resources.list_owned(KIND, OWNER) == []

    @pytest.mark.asyncio
    async def test_invalid_draft_keeps_previous_set(self, domain):
        first = await domain.store.save_owned(KIND, OWNER, [_draft('a', 'v1')])
        rid = first.saved[0].resource.id

        with pytest.raises(InvalidShareRequest):
            await domain.store.save_owned(KIND, OWNER, [
                _draft('a', 'v2', id=rid),
                OwnedDraft(name='b', payload={'content': ['bad']}),
            ])

        [stored] = await domain.resources.list_owned(KIND, OWNER)
        assert stored.id == rid
        assert stored.payload['content'] == 'v1'
        assert domain.trash.records == []

    @pytest.mark.asyncio
    async def test_foreign_owner_draft_skipped(self, domain):
        result = await domain.store.save_owned(
            KIND, OWNER, [_draft('x', client_key='k1', owner_id=BOB)],
        )
        assert result.skipped == ['k1']
        assert await domain.resources.list_owned(KIND, BOB) == []

    @pytest.mark.asyncio
    async def test_stale_id_gets_fresh_id(self, domain):
        result = await domain.store.save_owned(KIND, OWNER, [_draft('a', id='res_gone')])
        assert result.saved[0].resource.id not in (None, 'res_gone')


class TestSaveSharedItem:
    async def _shared(self, domain) -> Resource:
        return await domain.resources.put(Resource(
            id=None,
            kind=KIND,
            owner_id=OWNER,
            name='shared',
            payload={'content': 'v1', 'is_bold': True, 'color': 'red'},
            shared_with=[SharedUser(ALICE, 'alice')],
        ))

    @pytest.mark.asyncio
    async def test_collaborator_patch_applies(self, domain):
        r = await self._shared(domain)
        await domain.store.save_shared_item(
            KIND, r.id, ALICE, {'payload': {'content': 'v2'}}, owner_id=OWNER,
        )
        stored = await domain.resources.get(KIND, r.id)
        # Shallow merge keeps untouched payload keys.
        assert stored.payload == {'content': 'v2', 'is_bold': True, 'color': 'red'}

    @pytest.mark.asyncio
    async def test_acl_fields_in_patch_are_ignored(self, domain):
        r = await self._shared(domain)
        await domain.store.save_shared_item(KIND, r.id, ALICE, {
            'name': 'renamed',
            'shared_with': [{'user_id': BOB, 'username': 'bob'}],
            'owner_id': ALICE,
            'is_public': True,
            'public_token': 'forged',
            'payload': {'content': 'v2'},
        })
        stored = await domain.resources.get(KIND, r.id)
        assert stored.name == 'renamed'
        assert stored.owner_id == OWNER
        assert [g.user_id for g in stored.shared_with] == [ALICE]
        assert stored.is_public is False
        assert stored.public_token is None

    @pytest.mark.asyncio
    async def test_owner_may_use_shared_path(self, domain):
        r = await self._shared(domain)
        await domain.store.save_shared_item(KIND, r.id, OWNER, {'name': 'by owner'})
        assert (await domain.resources.get(KIND, r.id)).name == 'by owner'

    @pytest.mark.asyncio
    async def test_stranger_forbidden(self, domain):
        r = await self._shared(domain)
        with pytest.raises(Forbidden):
            await domain.store.save_shared_item(KIND, r.id, BOB, {'name': 'x'})
        assert (await domain.resources.get(KIND, r.id)).name == 'shared'

    @pytest.mark.asyncio
    async def test_wrong_owner_hint_not_found(self, domain):
        r = await self._shared(domain)
        with pytest.raises(NotFound):
            await domain.store.save_shared_item(KIND, r.id, ALICE, {'name': 'x'}, owner_id=BOB)

    @pytest.mark.asyncio
    async def test_missing_resource(self, domain):
        with pytest.raises(NotFound):
            await domain.store.save_shared_item(KIND, 'res_missing', ALICE, {'name': 'x'})

    @pytest.mark.asyncio
    async def test_non_object_payload_rejected(self, domain):
        r = await self._shared(domain)
        with pytest.raises(InvalidShareRequest):
            await domain.store.save_shared_item(
                KIND, r.id, ALICE, {'name': 'renamed', 'payload': 'text'},
            )
        stored = await domain.resources.get(KIND, r.id)
        assert stored.name == 'shared'
        assert stored.payload['content'] == 'v1'


class TestDelete:
    @pytest.mark.asyncio
    async def test_owner_delete_moves_to_trash(self, domain):
        rid = (await domain.store.save_owned(KIND, OWNER, [_draft('a')])).saved[0].resource.id
        await domain.store.delete(KIND, rid, OWNER)
        assert await domain.resources.get(KIND, rid) is None
        assert [t.original_id for t in domain.trash.records] == [rid]

    @pytest.mark.asyncio
    async def test_collaborator_cannot_delete(self, domain):
        rid = (await domain.store.save_owned(KIND, OWNER, [_draft('a')])).saved[0].resource.id
        await domain.ledger.grant(KIND, rid, OWNER, 'alice')
        with pytest.raises(NotOwner):
            await domain.store.delete(KIND, rid, ALICE)


class TestListVisible:
    @pytest.mark.asyncio
    async def test_owned_then_shared_with_flags(self, domain):
        mine = (await domain.store.save_owned(KIND, ALICE, [_draft('mine')])).saved[0].resource
        theirs = (await domain.store.save_owned(KIND, OWNER, [_draft('theirs')])).saved[0].resource
        await domain.ledger.grant(KIND, theirs.id, OWNER, 'alice')
        await domain.store.save_owned(KIND, BOB, [_draft('hidden from alice')])

        views = await domain.store.list_visible(KIND, ALICE)

        assert [(v.resource.id, v.is_owner) for v in views] == [
            (mine.id, True),
            (theirs.id, False),
        ]
        assert views[1].owner_username == 'owner'
        assert views[1].to_dict()['is_owner'] is False

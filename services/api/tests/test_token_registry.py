"""Tests for the token registry."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from fleetpush.exceptions import RegistryUnavailable, ValidationError
from fleetpush.services.token_registry import (
    DEFAULT_DEVICE_SLOT,
    TOKENS_FIELD,
    RegistrationResult,
    TokenRegistry,
    UserTokenRecord,
    normalize_identity,
    validate_identity,
)
from fleetpush.stores.base import StoreError
from fleetpush.stores.memory import MemoryDocumentStore

TOKEN_A = "tok-aaaaaaaaaaaa"
TOKEN_A2 = "tok-aaaaaaaaaaaa-2"
TOKEN_B = "tok-bbbbbbbbbbbb"


class TestIdentityNormalization:
    def test_trims_lowercases_and_strips_quotes(self):
        assert normalize_identity('  "Driver@Fleet.Example.com" ') == "driver@fleet.example.com"
        assert normalize_identity("'a@b.com'") == "a@b.com"

    def test_rejects_malformed_address(self):
        for bad in ["", "abc", "no-at-sign.com", "a@b", "a b@c.com", None, 42]:
            with pytest.raises(ValidationError):
                validate_identity(bad)

    def test_accepts_address(self):
        assert validate_identity("A@B.com") == "a@b.com"


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_on_empty_store(self, registry):
        result = await registry.register("a@b.com", "tok-1234567890", "default")

        assert result == RegistrationResult.INSERTED
        assert await registry.lookup("a@b.com") == ["tok-1234567890"]

    @pytest.mark.asyncio
    async def test_register_is_idempotent(self, registry, store, identity):
        await registry.register(identity, TOKEN_A, "phone")
        first = await registry.get_record(identity)

        result = await registry.register(identity, TOKEN_A, "phone")
        second = await registry.get_record(identity)

        assert result == RegistrationResult.UNCHANGED
        assert len(second.entries) == len(first.entries) == 1
        assert second.entries[0].updated_at == first.entries[0].updated_at

    @pytest.mark.asyncio
    async def test_same_slot_replaces_and_keeps_created_at(self, registry, identity):
        await registry.register(identity, TOKEN_A, "A")
        created = (await registry.get_record(identity)).find_slot("A").created_at

        assert await registry.register(identity, TOKEN_A2, "A") == RegistrationResult.REPLACED
        assert await registry.register(identity, TOKEN_B, "B") == RegistrationResult.INSERTED

        record = await registry.get_record(identity)
        assert len(record.entries) == 2
        slot_a = record.find_slot("A")
        assert slot_a.token == TOKEN_A2
        assert slot_a.created_at == created
        assert slot_a.updated_at > created
        assert record.find_slot("B").token == TOKEN_B

    @pytest.mark.asyncio
    async def test_missing_slot_defaults(self, registry, identity):
        await registry.register(identity, TOKEN_A)
        await registry.register(identity, TOKEN_B, "   ")

        record = await registry.get_record(identity)
        assert [e.device_slot for e in record.entries] == [DEFAULT_DEVICE_SLOT]
        assert record.entries[0].token == TOKEN_B

    @pytest.mark.asyncio
    async def test_identity_is_normalized_before_keying(self, registry, store):
        await registry.register('  "Driver@Fleet.Example.COM"', TOKEN_A)

        assert store.keys() == ["driver@fleet.example.com"]
        assert await registry.lookup("driver@fleet.example.com") == [TOKEN_A]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "short", "0123456789", 12345678901])
    async def test_invalid_token_rejected_without_store_access(self, token, identity):
        store = AsyncMock()
        registry = TokenRegistry(store)

        with pytest.raises(ValidationError):
            await registry.register(identity, token)
        store.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_identity_rejected(self, registry, store):
        with pytest.raises(ValidationError):
            await registry.register("not-an-email", TOKEN_A)
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_new_slot_uses_array_union(self, identity):
        store = AsyncMock()
        store.get.return_value = None
        registry = TokenRegistry(store)

        await registry.register(identity, TOKEN_A, "phone")

        store.array_union.assert_awaited_once()
        key, field, values = store.array_union.await_args.args
        assert key == identity
        assert field == TOKENS_FIELD
        assert values[0]["fcmToken"] == TOKEN_A
        assert values[0]["deviceId"] == "phone"
        store.update.assert_not_called()
        store.set.assert_not_called()


class TestLegacyRecords:
    def test_bare_strings_are_upgraded(self):
        record = UserTokenRecord.from_document(
            "a@b.com", {TOKENS_FIELD: [TOKEN_A, TOKEN_B, TOKEN_A]}
        )

        assert [(e.device_slot, e.token) for e in record.entries] == [
            ("default", TOKEN_A),
            ("legacy-1", TOKEN_B),
        ]

    def test_structured_default_slot_is_respected(self):
        record = UserTokenRecord.from_document(
            "a@b.com",
            {TOKENS_FIELD: [TOKEN_A, {"deviceId": "default", "fcmToken": TOKEN_B}]},
        )

        assert record.find_slot("default").token == TOKEN_B
        assert record.find_slot("legacy-1").token == TOKEN_A

    def test_token_key_variant_and_malformed_entries(self):
        record = UserTokenRecord.from_document(
            "a@b.com",
            {TOKENS_FIELD: [{"deviceId": "web", "token": TOKEN_A}, {"deviceId": "x"}, 7]},
        )

        assert [(e.device_slot, e.token) for e in record.entries] == [("web", TOKEN_A)]

    @pytest.mark.asyncio
    async def test_next_write_persists_structured_shape(self, clock, identity):
        store = MemoryDocumentStore({identity: {TOKENS_FIELD: [TOKEN_A]}})
        registry = TokenRegistry(store, clock=clock)

        assert await registry.register(identity, TOKEN_B, "tablet") == RegistrationResult.INSERTED

        doc = await store.get(identity)
        assert all(isinstance(item, dict) for item in doc[TOKENS_FIELD])
        assert [item["fcmToken"] for item in doc[TOKENS_FIELD]] == [TOKEN_A, TOKEN_B]

    @pytest.mark.asyncio
    async def test_legacy_lookup(self, identity):
        registry = TokenRegistry(MemoryDocumentStore({identity: {TOKENS_FIELD: [TOKEN_A, TOKEN_B]}}))

        assert await registry.lookup(identity) == [TOKEN_A, TOKEN_B]
        assert await registry.lookup(identity, "default") == [TOKEN_A]


class TestUnregister:
    @pytest.mark.asyncio
    async def test_by_slot_leaves_other_slots(self, registry, identity):
        await registry.register(identity, TOKEN_A, "A")
        await registry.register(identity, TOKEN_B, "B")

        result = await registry.unregister(identity, device_slot="A")

        assert result.removed is True
        assert result.removed_count == 1
        record = await registry.get_record(identity)
        assert [e.device_slot for e in record.entries] == ["B"]

    @pytest.mark.asyncio
    async def test_by_token(self, registry, identity):
        await registry.register(identity, TOKEN_A, "A")
        await registry.register(identity, TOKEN_B, "B")

        result = await registry.unregister(identity, token=TOKEN_B)

        assert result.removed is True
        assert await registry.lookup(identity) == [TOKEN_A]

    @pytest.mark.asyncio
    async def test_no_record(self, registry, identity):
        result = await registry.unregister(identity, device_slot="A")

        assert result.removed is False
        assert result.removed_count == 0

    @pytest.mark.asyncio
    async def test_nothing_matched(self, registry, identity):
        await registry.register(identity, TOKEN_A, "A")

        result = await registry.unregister(identity, token=TOKEN_B)

        assert result.removed is False
        assert await registry.lookup(identity) == [TOKEN_A]

    @pytest.mark.asyncio
    async def test_last_token_deletes_record(self, registry, store, identity):
        await registry.register(identity, TOKEN_A, "A")

        await registry.unregister(identity, device_slot="A")

        assert await store.get(identity) is None
        assert await registry.get_record(identity) is None
        assert await registry.lookup(identity) == []

    @pytest.mark.asyncio
    async def test_selector_required(self, registry, identity):
        with pytest.raises(ValidationError):
            await registry.unregister(identity)

    @pytest.mark.asyncio
    async def test_both_selectors_rejected(self, registry, identity):
        with pytest.raises(ValidationError):
            await registry.unregister(identity, device_slot="A", token=TOKEN_A)


class TestLookup:
    @pytest.mark.asyncio
    async def test_unknown_identity_is_empty(self, registry, identity):
        assert await registry.lookup(identity) == []
        assert await registry.first_token(identity) is None

    @pytest.mark.asyncio
    async def test_by_slot(self, registry, identity):
        await registry.register(identity, TOKEN_A, "A")
        await registry.register(identity, TOKEN_B, "B")

        assert await registry.lookup(identity, "B") == [TOKEN_B]
        assert await registry.lookup(identity, "missing") == []
        assert await registry.first_token(identity) == TOKEN_A
        assert await registry.first_token(identity, "B") == TOKEN_B


class TestPrune:
    @pytest.mark.asyncio
    async def test_removes_only_listed_tokens(self, registry, store, identity):
        await registry.register(identity, TOKEN_A, "A")
        await registry.register(identity, TOKEN_B, "B")
        untouched = (await store.get(identity))[TOKENS_FIELD][0]

        removed = await registry.prune(identity, {TOKEN_B, "tok-not-registered"})

        assert removed == 1
        assert (await store.get(identity))[TOKENS_FIELD] == [untouched]

    @pytest.mark.asyncio
    async def test_prune_all_deletes_record(self, registry, store, identity):
        await registry.register(identity, TOKEN_A, "A")

        assert await registry.prune(identity, [TOKEN_A]) == 1
        assert await store.get(identity) is None

    @pytest.mark.asyncio
    async def test_empty_set_is_noop(self, identity):
        store = AsyncMock()
        registry = TokenRegistry(store)

        assert await registry.prune(identity, set()) == 0
        store.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_prune_keeps_concurrently_registered_entry(self, registry, store, identity):
        await registry.register(identity, TOKEN_A, "A")
        # A registration lands between the read and the removal
        original_get = store.get

        async def get_then_register(key):
            doc = await original_get(key)
            await store.array_union(key, TOKENS_FIELD, [{"deviceId": "B", "fcmToken": TOKEN_B}])
            return doc

        store.get = get_then_register
        await registry.prune(identity, {TOKEN_A})
        store.get = original_get

        assert await registry.lookup(identity) == [TOKEN_B]


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_store_error_becomes_registry_unavailable(self, identity):
        store = AsyncMock()
        store.get.side_effect = StoreError("boom")
        registry = TokenRegistry(store)

        with pytest.raises(RegistryUnavailable):
            await registry.lookup(identity)

    @pytest.mark.asyncio
    async def test_timeout_becomes_registry_unavailable(self, identity):
        async def slow_get(key):
            await asyncio.sleep(1)

        store = AsyncMock()
        store.get.side_effect = slow_get
        registry = TokenRegistry(store, timeout=0.01)

        with pytest.raises(RegistryUnavailable):
            await registry.register(identity, TOKEN_A)
        store.array_union.assert_not_called()

"""Tests for the keystore."""

import pytest

from taskstore import ValidationError


class TestKeystore:
    """Tests for set/get/delete on the keystore."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self, store):
        """A value can be written, overwritten and removed."""
        await store.set_keystore("api-base", "https://a.example")
        await store.set_keystore("api-base", "https://b.example")
        assert await store.get_keystore("api-base") == "https://b.example"

        assert await store.delete_keystore("api-base") is True
        assert await store.get_keystore("api-base") is None

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_not_an_error(self, store):
        """Deleting an absent key reports False."""
        assert await store.delete_keystore("never-set") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value",
        ["123", 123, 1.5, True, False, None, "", "plain text", [1, "two"], {"nested": {"x": [None]}}],
    )
    async def test_value_round_trip(self, store, value):
        """Values come back with their original type."""
        await store.set_keystore("k", value)
        assert await store.get_keystore("k") == value
        assert type(await store.get_keystore("k")) is type(value)

    @pytest.mark.asyncio
    async def test_stored_none_is_distinguishable_from_missing(self, store):
        """The entry API separates a null value from an absent key."""
        await store.set_keystore("nothing", None)
        entry = await store.get_keystore_entry("nothing")
        assert entry is not None
        assert entry.value is None
        assert await store.get_keystore_entry("absent") is None

    @pytest.mark.asyncio
    async def test_overwrite_keeps_created_at(self, store):
        """Replacing a value keeps the original creation time."""
        await store.set_keystore("k", 1)
        first = await store.get_keystore_entry("k")
        await store.set_keystore("k", 2)
        second = await store.get_keystore_entry("k")
        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at
        assert second.value == 2

    @pytest.mark.asyncio
    async def test_legacy_raw_string_value(self, store):
        """Text that is not JSON is returned as-is."""
        conn = store._connection()
        with conn:
            conn.execute(
                "INSERT INTO keystore (key, value, created_at, updated_at) VALUES (?, ?, ?, ?)",
                ("legacy", "not json {", "2024-01-01T00:00:00.000+00:00", "2024-01-01T00:00:00.000+00:00"),
            )
        assert await store.get_keystore("legacy") == "not json {"

    @pytest.mark.asyncio
    async def test_list_keys(self, store):
        """Keys are listed alphabetically."""
        await store.set_keystore("b", 1)
        await store.set_keystore("a", 2)
        assert await store.list_keystore_keys() == ["a", "b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", None, 5])
    async def test_invalid_key(self, store, key):
        """Keys must be non-empty strings."""
        with pytest.raises(ValidationError):
            await store.set_keystore(key, "v")

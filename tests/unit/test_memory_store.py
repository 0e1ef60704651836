"""
Unit tests for the in-memory object store.

Tests cover:
- Put/get/delete and listing order
- max_keys truncation
- Multipart completion rules
- Failure injection and testing helpers
"""

import pytest

from devenv.envsnap.store import (
    InMemoryObjectStore,
    ObjectNotFoundError,
    ObjectStore,
    ObjectStoreError,
    UploadedPart,
)


class TestInMemoryObjectStore:
    """Tests for InMemoryObjectStore."""

    @pytest.fixture
    def store(self):
        """Create a fresh store."""
        return InMemoryObjectStore()

    def test_satisfies_protocol(self, store):
        assert isinstance(store, ObjectStore)

    @pytest.mark.asyncio
    async def test_put_get_roundtrip(self, store):
        await store.put_object("b", "a/key", b"value", "text/plain", {"x": "1"})

        assert await store.get_object("b", "a/key") == b"value"
        stored = store.get_stored("b", "a/key")
        assert stored.content_type == "text/plain"
        assert stored.metadata == {"x": "1"}

    @pytest.mark.asyncio
    async def test_get_missing_raises_not_found(self, store):
        with pytest.raises(ObjectNotFoundError) as exc_info:
            await store.get_object("b", "missing")

        assert exc_info.value.key == "missing"
        assert isinstance(exc_info.value, ObjectStoreError)

    @pytest.mark.asyncio
    async def test_buckets_are_isolated(self, store):
        await store.put_object("one", "k", b"1", "text/plain")

        assert store.keys("one") == ["k"]
        assert store.keys("two") == []

    @pytest.mark.asyncio
    async def test_listing_is_sorted_and_prefixed(self, store):
        for key in ("s/b", "s/a", "other/c", "s/c"):
            await store.put_object("b", key, key.encode(), "text/plain")

        listing = await store.list_objects("b", "s/")

        assert [e.key for e in listing.entries] == ["s/a", "s/b", "s/c"]
        assert listing.count == 3
        assert listing.entries[0].size == 3

    @pytest.mark.asyncio
    async def test_listing_stops_at_max_keys(self, store):
        for i in range(5):
            await store.put_object("b", f"s/{i}", b"x", "text/plain")

        listing = await store.list_objects("b", "s/", max_keys=2)

        assert [e.key for e in listing.entries] == ["s/0", "s/1"]

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, store):
        await store.put_object("b", "k", b"x", "text/plain")

        await store.delete_object("b", "k")
        await store.delete_object("b", "k")

        assert store.keys("b") == []

    @pytest.mark.asyncio
    async def test_multipart_object_visible_only_after_complete(self, store):
        upload_id = await store.create_multipart_upload("b", "big", "application/gzip")
        part1 = await store.upload_part("b", "big", upload_id, 1, b"ab")
        part2 = await store.upload_part("b", "big", upload_id, 2, b"cd")

        assert "big" not in store.keys("b")
        assert store.open_sessions == 1

        await store.complete_multipart_upload("b", "big", upload_id, [part1, part2])

        assert await store.get_object("b", "big") == b"abcd"
        assert store.open_sessions == 0

    @pytest.mark.asyncio
    async def test_complete_rejects_out_of_order_parts(self, store):
        upload_id = await store.create_multipart_upload("b", "big", "application/gzip")
        part1 = await store.upload_part("b", "big", upload_id, 1, b"ab")
        part2 = await store.upload_part("b", "big", upload_id, 2, b"cd")

        with pytest.raises(ObjectStoreError):
            await store.complete_multipart_upload("b", "big", upload_id, [part2, part1])

    @pytest.mark.asyncio
    async def test_complete_rejects_gaps(self, store):
        upload_id = await store.create_multipart_upload("b", "big", "application/gzip")
        part1 = await store.upload_part("b", "big", upload_id, 1, b"ab")

        with pytest.raises(ObjectStoreError):
            await store.complete_multipart_upload(
                "b", "big", upload_id, [part1, UploadedPart(etag='"x"', part_number=3)]
            )

    @pytest.mark.asyncio
    async def test_abort_discards_session(self, store):
        upload_id = await store.create_multipart_upload("b", "big", "application/gzip")
        await store.upload_part("b", "big", upload_id, 1, b"ab")

        await store.abort_multipart_upload("b", "big", upload_id)

        assert store.open_sessions == 0
        assert "big" not in store.keys("b")

    @pytest.mark.asyncio
    async def test_failure_injection(self, store):
        store.fail_puts = {"k"}
        store.fail_gets = {"g"}
        await store.put_object("b", "g", b"x", "text/plain")

        with pytest.raises(ObjectStoreError):
            await store.put_object("b", "k", b"x", "text/plain")
        with pytest.raises(ObjectStoreError):
            await store.get_object("b", "g")

    @pytest.mark.asyncio
    async def test_calls_are_recorded(self, store):
        await store.put_object("b", "k", b"x", "text/plain")
        await store.get_object("b", "k")
        await store.list_objects("b", "")

        assert store.calls == [("put", "k"), ("get", "k"), ("list", "")]
        assert store.operation_count("put") == 1
        assert store.stats() == {"buckets": 1, "objects": 1, "open_sessions": 0}

    def test_uploaded_part_wire_format(self):
        assert UploadedPart(etag='"e"', part_number=2).to_dict() == {"ETag": '"e"', "PartNumber": 2}

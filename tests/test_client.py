"""Tests for InconsistentObjectStore: listing visibility and throttling."""

import random
import threading

import pytest

from flakystore import (
    InconsistencyConfig,
    InconsistentObjectStore,
    InMemoryObjectStore,
)
from flakystore.exceptions import FlakyStoreConfigError, ObjectStoreError, ThrottledError
from flakystore.models import (
    DeleteError,
    DeleteObjectsResult,
    ListObjectsRequest,
    ListObjectsV2Request,
    PartETag,
)

BUCKET = "bucket"


def _keys(listing):
    return [s.key for s in listing.object_summaries]


def _recursive(prefix: str = "") -> ListObjectsRequest:
    return ListObjectsRequest(bucket=BUCKET, prefix=prefix)


def _directory(prefix: str = "") -> ListObjectsRequest:
    return ListObjectsRequest(bucket=BUCKET, prefix=prefix, delimiter="/")


class FailingStore(InMemoryObjectStore):
    """Store whose writes fail with a non-retryable error."""

    def put_object(self, bucket, key, body, metadata=None):
        raise ObjectStoreError("denied", status_code=403, bucket=bucket, key=key)

    def delete_object(self, bucket, key):
        raise ObjectStoreError("denied", status_code=403, bucket=bucket, key=key)


class TestDelayedPut:
    def test_hidden_then_visible(self, make_store, clock):
        store = make_store(delay_window_ms=2000)
        store.put_object(BUCKET, "dir/file", b"x")

        assert _keys(store.list_objects(_recursive("dir/"))) == []
        clock.advance_ms(1999)
        assert _keys(store.list_objects(_recursive("dir/"))) == []
        clock.advance_ms(1)
        assert _keys(store.list_objects(_recursive("dir/"))) == ["dir/file"]

    def test_only_matching_keys_delayed(self, make_store):
        store = make_store(delay_key_substring="DELAY_LISTING_ME")
        store.put_object(BUCKET, "dir/DELAY_LISTING_ME/a", b"x")
        store.put_object(BUCKET, "dir/plain", b"x")
        assert _keys(store.list_objects(_recursive("dir/"))) == ["dir/plain"]

    def test_zero_delay_probability(self, make_store):
        store = make_store(delay_probability=0.0)
        store.put_object(BUCKET, "dir/file", b"x")
        assert _keys(store.list_objects(_recursive("dir/"))) == ["dir/file"]

    def test_get_object_unaffected(self, make_store):
        store = make_store()
        store.put_object(BUCKET, "dir/file", b"payload")
        assert store.get_object(BUCKET, "dir/file").body == b"payload"

    def test_hidden_in_v2_listing(self, make_store, clock):
        store = make_store()
        store.put_object(BUCKET, "dir/file", b"x")
        result = store.list_objects_v2(ListObjectsV2Request(bucket=BUCKET, prefix="dir/"))
        assert _keys(result) == []
        clock.advance_ms(5000)
        result = store.list_objects_v2(ListObjectsV2Request(bucket=BUCKET, prefix="dir/"))
        assert _keys(result) == ["dir/file"]


class TestDelayedDelete:
    def test_still_listed_with_last_attributes(self, make_store, backing_store, clock):
        store = make_store(delay_window_ms=1000)
        backing_store.put_object(BUCKET, "dir/file", b"12345")
        store.delete_object(BUCKET, "dir/file")

        listing = store.list_objects(_recursive("dir/"))
        assert _keys(listing) == ["dir/file"]
        assert listing.object_summaries[0].size == 5

        clock.advance_ms(1000)
        assert _keys(store.list_objects(_recursive("dir/"))) == []

    def test_object_really_gone(self, make_store, backing_store):
        store = make_store()
        backing_store.put_object(BUCKET, "dir/file", b"x")
        store.delete_object(BUCKET, "dir/file")
        with pytest.raises(ObjectStoreError):
            store.get_object(BUCKET, "dir/file")

    def test_directory_view_rolls_up(self, make_store, backing_store, clock):
        store = make_store()
        backing_store.put_object(BUCKET, "a/b/c/d/e/file", b"x")
        store.delete_object(BUCKET, "a/b/c/d/e/file")

        directory = store.list_objects(_directory("a/b/c"))
        assert _keys(directory) == []
        assert directory.common_prefixes == ["a/b/c/d"]

        recursive = store.list_objects(_recursive("a/b/c"))
        assert _keys(recursive) == ["a/b/c/d/e/file"]

        clock.advance_ms(5000)
        assert store.list_objects(_directory("a/b/c")).common_prefixes == []
        assert _keys(store.list_objects(_recursive("a/b/c"))) == []

    def test_v2_listing_restores_deleted_object(self, make_store, backing_store, clock):
        store = make_store(delay_window_ms=1000)
        backing_store.put_object(BUCKET, "dir/file", b"12345")
        store.delete_object(BUCKET, "dir/file")

        result = store.list_objects_v2(ListObjectsV2Request(bucket=BUCKET, prefix="dir/"))
        assert _keys(result) == ["dir/file"]
        assert result.object_summaries[0].size == 5

        clock.advance_ms(1000)
        result = store.list_objects_v2(ListObjectsV2Request(bucket=BUCKET, prefix="dir/"))
        assert _keys(result) == []

    def test_v2_directory_view_rolls_up(self, make_store, backing_store, clock):
        store = make_store()
        backing_store.put_object(BUCKET, "a/b/c/d/e/file", b"x")
        store.delete_object(BUCKET, "a/b/c/d/e/file")

        directory = store.list_objects_v2(
            ListObjectsV2Request(bucket=BUCKET, prefix="a/b/c", delimiter="/")
        )
        assert _keys(directory) == []
        assert directory.common_prefixes == ["a/b/c/d"]

        clock.advance_ms(5000)
        directory = store.list_objects_v2(
            ListObjectsV2Request(bucket=BUCKET, prefix="a/b/c", delimiter="/")
        )
        assert directory.common_prefixes == []

    def test_prefix_delete_rolls_up_without_summary(self, make_store):
        store = make_store()
        # Nothing stored at this key: a directory-path delete.
        store.delete_object(BUCKET, "a/b/c/d/e/file")

        directory = store.list_objects(_directory("a/b/c"))
        assert _keys(directory) == []
        assert directory.common_prefixes == ["a/b/c/d"]
        assert _keys(store.list_objects(_recursive("a/b/c"))) == []

    def test_batch_delete(self, make_store, backing_store, clock):
        store = make_store()
        for key in ("dir/1", "dir/2", "dir/3"):
            backing_store.put_object(BUCKET, key, b"x")

        result = store.delete_objects(BUCKET, ["dir/1", "dir/2"])
        assert result.deleted == ["dir/1", "dir/2"]
        assert backing_store.keys(BUCKET) == ["dir/3"]
        assert _keys(store.list_objects(_recursive("dir/"))) == ["dir/3", "dir/1", "dir/2"]

        clock.advance_ms(5000)
        assert _keys(store.list_objects(_recursive("dir/"))) == ["dir/3"]

    def test_batch_delete_skips_failed_keys(self):
        class PartialStore(InMemoryObjectStore):
            def delete_objects(self, bucket, keys):
                return DeleteObjectsResult(
                    deleted=[keys[0]],
                    errors=[DeleteError(key=k, code="AccessDenied") for k in keys[1:]],
                )

        store = InconsistentObjectStore(
            PartialStore(),
            InconsistencyConfig(delay_key_substring="*"),
            seed=1,
        )
        store.delete_objects(BUCKET, ["dir/1", "dir/2"])
        assert store.stats().pending_deletes == 1

    def test_capture_uses_exact_key(self, make_store, backing_store):
        store = make_store()
        backing_store.put_object(BUCKET, "dir/file", b"x")
        backing_store.put_object(BUCKET, "dir/file.bak", b"xyz")
        store.delete_object(BUCKET, "dir/file")
        listing = store.list_objects(_recursive("dir/"))
        by_key = {s.key: s.size for s in listing.object_summaries}
        assert by_key == {"dir/file": 1, "dir/file.bak": 3}


class TestListingMetadata:
    def test_other_fields_preserved(self, make_store, backing_store):
        store = make_store()
        for i in range(3):
            backing_store.put_object(BUCKET, f"dir/{i}", b"x")
        listing = store.list_objects(
            ListObjectsRequest(bucket=BUCKET, prefix="dir/", max_keys=2, marker="dir/")
        )
        assert listing.truncated
        assert listing.next_marker == "dir/1"
        assert listing.marker == "dir/"
        assert listing.max_keys == 2
        assert listing.bucket == BUCKET

    def test_v2_token_preserved(self, make_store, backing_store):
        store = make_store()
        for i in range(3):
            backing_store.put_object(BUCKET, f"dir/{i}", b"x")
        raw = backing_store.list_objects_v2(
            ListObjectsV2Request(bucket=BUCKET, prefix="dir/", max_keys=1)
        )
        result = store.list_objects_v2(
            ListObjectsV2Request(bucket=BUCKET, prefix="dir/", max_keys=1)
        )
        assert result.next_continuation_token == raw.next_continuation_token
        assert result.key_count == raw.key_count


class TestClearInconsistency:
    def test_listing_matches_pass_through(self, make_store, backing_store):
        store = make_store()
        backing_store.put_object(BUCKET, "dir/old", b"x")
        store.put_object(BUCKET, "dir/new", b"x")
        store.delete_object(BUCKET, "dir/old")

        store.clear_inconsistency()

        for request in (_recursive("dir/"), _directory("dir/"), _directory("")):
            assert (
                store.list_objects(request).model_dump()
                == backing_store.list_objects(request).model_dump()
            )

    def test_idempotent(self, make_store):
        store = make_store()
        store.put_object(BUCKET, "dir/new", b"x")
        store.clear_inconsistency()
        once = store.stats()
        store.clear_inconsistency()
        assert store.stats() == once
        assert once.pending_puts == 0 and once.pending_deletes == 0


class TestThrottling:
    def test_exactly_budget_failures(self, make_store):
        store = make_store(throttle_probability=1.0, failure_limit=3)
        failures = 0
        for _ in range(3):
            with pytest.raises(ThrottledError):
                store.list_objects(_recursive())
            failures += 1
        for _ in range(5):
            store.list_objects(_recursive())
        assert failures == 3
        assert store.failure_count == 3

    def test_every_operation_is_throttled(self, make_store):
        store = make_store(throttle_probability=1.0)
        calls = [
            lambda: store.put_object(BUCKET, "k", b"x"),
            lambda: store.delete_object(BUCKET, "k"),
            lambda: store.delete_objects(BUCKET, ["k"]),
            lambda: store.list_objects(_recursive()),
            lambda: store.list_objects_v2(ListObjectsV2Request(bucket=BUCKET)),
            lambda: store.initiate_multipart_upload(BUCKET, "k"),
            lambda: store.upload_part(BUCKET, "k", "id", 1, b"x"),
            lambda: store.complete_multipart_upload(BUCKET, "k", "id", []),
            lambda: store.list_multipart_uploads(BUCKET),
        ]
        for call in calls:
            with pytest.raises(ThrottledError):
                call()
        assert store.failure_count == len(calls)

    def test_injected_failure_never_reaches_store(self, make_store, backing_store):
        store = make_store(throttle_probability=1.0)
        with pytest.raises(ThrottledError):
            store.put_object(BUCKET, "dir/file", b"x")
        with pytest.raises(ThrottledError):
            store.delete_object(BUCKET, "dir/other")
        assert backing_store.calls == []
        assert store.stats().pending_puts == 0
        assert store.stats().pending_deletes == 0

    def test_set_failure_limit_resets(self, make_store):
        store = make_store(throttle_probability=1.0, failure_limit=1)
        with pytest.raises(ThrottledError):
            store.list_multipart_uploads(BUCKET)
        store.list_multipart_uploads(BUCKET)

        store.set_failure_limit(2)
        assert store.failure_count == 0
        for _ in range(2):
            with pytest.raises(ThrottledError):
                store.list_multipart_uploads(BUCKET)
        store.list_multipart_uploads(BUCKET)

    def test_admin_calls_never_throttled(self, make_store):
        store = make_store(throttle_probability=1.0)
        store.clear_inconsistency()
        store.set_failure_limit(0)
        store.set_throttle_probability(0.5)
        assert store.throttle_probability == 0.5
        assert store.stats().failure_count == 0

    def test_invalid_throttle_probability(self, make_store):
        store = make_store()
        with pytest.raises(FlakyStoreConfigError):
            store.set_throttle_probability(1.5)

    def test_concurrent_callers_share_budget(self, make_store):
        store = make_store(throttle_probability=1.0, failure_limit=10)
        throttled = []
        lock = threading.Lock()

        def worker(n):
            for i in range(20):
                try:
                    store.put_object(BUCKET, f"w{n}/k{i}", b"x")
                except ThrottledError:
                    with lock:
                        throttled.append((n, i))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(throttled) == 10
        assert store.stats().pending_puts == 6 * 20 - 10


class TestStoreFailures:
    def test_failed_put_leaves_no_state(self, clock):
        store = InconsistentObjectStore(
            FailingStore(), InconsistencyConfig(delay_key_substring="*"), clock=clock
        )
        with pytest.raises(ObjectStoreError) as info:
            store.put_object(BUCKET, "dir/file", b"x")
        assert info.value.status_code == 403
        assert not isinstance(info.value, ThrottledError)
        assert store.stats().pending_puts == 0

    def test_failed_delete_leaves_no_state(self, clock):
        backing = FailingStore()
        backing._store(BUCKET, "dir/file", b"x", "etag")
        store = InconsistentObjectStore(
            backing, InconsistencyConfig(delay_key_substring="*"), clock=clock
        )
        with pytest.raises(ObjectStoreError):
            store.delete_object(BUCKET, "dir/file")
        assert store.stats().pending_deletes == 0


class TestMultipartPassThrough:
    def test_lifecycle_is_consistent(self, make_store):
        store = make_store()
        upload = store.initiate_multipart_upload(BUCKET, "dir/big")
        part = store.upload_part(BUCKET, "dir/big", upload.upload_id, 1, b"abc")
        store.complete_multipart_upload(
            BUCKET, "dir/big", upload.upload_id, [PartETag(part_number=1, etag=part.etag)]
        )
        assert _keys(store.list_objects(_recursive("dir/"))) == ["dir/big"]
        assert store.list_multipart_uploads(BUCKET).uploads == []


class TestAdministration:
    def test_getters(self, make_store):
        store = make_store(
            delay_key_substring="SLOW",
            delay_probability=0.25,
            delay_window_ms=750,
            throttle_probability=0.1,
            failure_limit=4,
        )
        assert store.delay_key_substring == "SLOW"
        assert store.delay_probability == 0.25
        assert store.delay_window_ms == 750
        assert store.throttle_probability == 0.1
        assert store.failure_limit == 4
        assert store.config.failure_limit == 4

    def test_describe(self, make_store):
        text = repr(make_store(delay_window_ms=750))
        assert "750 msec delay" in text
        assert "failure count 0" in text

    def test_cast_from(self, make_store, backing_store):
        store = make_store()
        assert InconsistentObjectStore.cast_from(store) is store
        with pytest.raises(FlakyStoreConfigError):
            InconsistentObjectStore.cast_from(backing_store)

    def test_config_from_environment(self, monkeypatch, backing_store):
        monkeypatch.setenv("FLAKYSTORE_DELAY_KEY_SUBSTRING", "*")
        monkeypatch.setenv("FLAKYSTORE_DELAY_MSEC", "123")
        store = InconsistentObjectStore(backing_store, seed=5)
        assert store.delay_key_substring == ""
        assert store.delay_window_ms == 123

    def test_seeded_runs_are_reproducible(self):
        def run(seed):
            store = InconsistentObjectStore(
                InMemoryObjectStore(),
                InconsistencyConfig(throttle_probability=0.5, delay_key_substring="*"),
                rng=random.Random(seed),
            )
            outcome = []
            for i in range(30):
                try:
                    store.put_object(BUCKET, f"k{i}", b"x")
                    outcome.append("ok")
                except ThrottledError:
                    outcome.append("throttled")
            return outcome

        assert run(11) == run(11)

"""
Object store wrapper that injects listing inconsistency and throttling.

Wraps any ObjectStore. Every operation first passes through the failure
injector; puts and deletes of matching keys are then delayed from (or
kept in) listing results for a configurable window.

Usage:
    from flakystore import InconsistentObjectStore, InconsistencyConfig
    from flakystore.memory import InMemoryObjectStore

    store = InconsistentObjectStore(
        InMemoryObjectStore(),
        InconsistencyConfig(delay_key_substring="*", delay_window_ms=2000),
        seed=7,
    )
    store.put_object("bucket", "dir/file", b"data")
    store.list_objects(ListObjectsRequest(bucket="bucket", prefix="dir/"))
    # -> "dir/file" missing for two seconds
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from flakystore import faults, telemetry
from flakystore.config import InconsistencyConfig, get_config
from flakystore.consistency import ConsistencyState, monotonic_ms
from flakystore.exceptions import FlakyStoreConfigError
from flakystore.failures import FailureInjector
from flakystore.listing import ListingTransformer
from flakystore.models import (
    CompleteMultipartUploadResult,
    DeleteObjectsResult,
    ListObjectsRequest,
    ListObjectsV2Request,
    ListObjectsV2Result,
    MultipartUpload,
    MultipartUploadListing,
    ObjectListing,
    ObjectSummary,
    PartETag,
    PutObjectResult,
    StoredObject,
    UploadPartResult,
)
from flakystore.store import ObjectStore

logger = logging.getLogger(__name__)

# Recursive listings have no delimiter; directory listings use this one.
DIRECTORY_DELIMITER = "/"


@dataclass
class InconsistencyStats:
    """Snapshot of simulation state."""

    failure_count: int
    failure_limit: int
    throttle_probability: float
    pending_puts: int
    pending_deletes: int


class InconsistentObjectStore:
    """
    Decorates an ObjectStore with simulated eventual consistency and throttling.

    Stateless request-response on the caller's thread; all temporal state
    lives in a ConsistencyState shared by every caller.
    """

    def __init__(
        self,
        store: ObjectStore,
        config: Optional[InconsistencyConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        clock: Callable[[], int] = monotonic_ms,
        exc_factory: Callable[[int], Exception] = faults.throttled_503,
    ) -> None:
        self._store = store
        self._config = config if config is not None else get_config()
        rng = rng if rng is not None else random.Random(seed)
        self._injector = FailureInjector(
            throttle_probability=self._config.throttle_probability,
            failure_limit=self._config.failure_limit,
            rng=rng,
            exc_factory=exc_factory,
        )
        self._state = ConsistencyState(
            delay_key_substring=self._config.delay_key_substring,
            delay_probability=self._config.delay_probability,
            delay_window_ms=self._config.delay_window_ms,
            rng=rng,
            clock=clock,
        )
        self._transformer = ListingTransformer(self._state)
        logger.info("%s", self.describe())

    @classmethod
    def cast_from(cls, store: object) -> "InconsistentObjectStore":
        """
        Return `store` typed as an InconsistentObjectStore.

        Raises:
            FlakyStoreConfigError: if it is some other store.
        """
        if not isinstance(store, cls):
            raise FlakyStoreConfigError(
                f"Not an instance of {cls.__name__}: {type(store).__name__}",
                code="not_inconsistent_store",
            )
        return store

    @property
    def delegate(self) -> ObjectStore:
        return self._store

    def _maybe_fail(self, operation: str) -> None:
        try:
            self._injector.maybe_fail()
        except Exception as exc:
            telemetry.log(
                "warn",
                "flakystore.injected_failure",
                operation=operation,
                failure_count=getattr(exc, "failure_count", None),
                error=str(exc),
            )
            raise

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PutObjectResult:
        logger.debug("key %s", key)
        self._maybe_fail("put_object")
        result = self._store.put_object(bucket, key, body, metadata)
        self._state.register_put(key)
        return result

    def delete_object(self, bucket: str, key: str) -> None:
        logger.debug("key %s", key)
        self._maybe_fail("delete_object")
        delay = self._state.should_delay(key)
        summary = self._capture_summary(bucket, key) if delay else None
        self._store.delete_object(bucket, key)
        if delay:
            self._state.record_delete(key, summary)

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> DeleteObjectsResult:
        self._maybe_fail("delete_objects")
        captured: Dict[str, Optional[ObjectSummary]] = {}
        for key in keys:
            if self._state.should_delay(key):
                captured[key] = self._capture_summary(bucket, key)
        result = self._store.delete_objects(bucket, keys)
        for key in result.deleted:
            if key in captured:
                self._state.record_delete(key, captured[key])
        return result

    def _capture_summary(self, bucket: str, key: str) -> Optional[ObjectSummary]:
        """Last known summary of `key`, from a listing that never fails."""
        listing = self._inner_list_objects(ListObjectsRequest(bucket=bucket, prefix=key))
        for summary in listing.object_summaries:
            if summary.key == key:
                return summary
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_object(self, bucket: str, key: str) -> StoredObject:
        # Only listing visibility is simulated; GET is unaffected.
        return self._store.get_object(bucket, key)

    def list_objects(self, request: ListObjectsRequest) -> ObjectListing:
        self._maybe_fail("list_objects")
        return self._inner_list_objects(request)

    def _inner_list_objects(self, request: ListObjectsRequest) -> ObjectListing:
        logger.debug("prefix %s", request.prefix)
        with telemetry.span("flakystore.list_objects", prefix=request.prefix):
            raw = self._store.list_objects(request)
            summaries, prefixes = self._transform(
                raw.object_summaries, raw.common_prefixes, request.prefix, request.delimiter
            )
        return raw.model_copy(
            update={"object_summaries": summaries, "common_prefixes": prefixes}
        )

    def list_objects_v2(self, request: ListObjectsV2Request) -> ListObjectsV2Result:
        self._maybe_fail("list_objects_v2")
        logger.debug("prefix %s", request.prefix)
        with telemetry.span("flakystore.list_objects_v2", prefix=request.prefix):
            raw = self._store.list_objects_v2(request)
            summaries, prefixes = self._transform(
                raw.object_summaries, raw.common_prefixes, request.prefix, request.delimiter
            )
        return raw.model_copy(
            update={"object_summaries": summaries, "common_prefixes": prefixes}
        )

    def _transform(
        self,
        summaries: Sequence[ObjectSummary],
        prefixes: Sequence[str],
        prefix: str,
        delimiter: Optional[str],
    ) -> Tuple[List[ObjectSummary], List[str]]:
        recursive = delimiter != DIRECTORY_DELIMITER
        return self._transformer.transform(summaries, prefixes, prefix, recursive)

    # ------------------------------------------------------------------
    # Multipart uploads: throttled, but always consistent.
    # ------------------------------------------------------------------

    def initiate_multipart_upload(self, bucket: str, key: str) -> MultipartUpload:
        self._maybe_fail("initiate_multipart_upload")
        return self._store.initiate_multipart_upload(bucket, key)

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> UploadPartResult:
        self._maybe_fail("upload_part")
        return self._store.upload_part(bucket, key, upload_id, part_number, body)

    def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[PartETag],
    ) -> CompleteMultipartUploadResult:
        self._maybe_fail("complete_multipart_upload")
        return self._store.complete_multipart_upload(bucket, key, upload_id, parts)

    def list_multipart_uploads(
        self, bucket: str, prefix: str = ""
    ) -> MultipartUploadListing:
        self._maybe_fail("list_multipart_uploads")
        return self._store.list_multipart_uploads(bucket, prefix)

    # ------------------------------------------------------------------
    # Administration (never throttled)
    # ------------------------------------------------------------------

    def clear_inconsistency(self) -> None:
        """
        Clear all outstanding inconsistent keys.

        Listings behave normally afterwards until new keys are delayed by
        put_object() or delete_object().
        """
        logger.info("clearing all delayed puts / deletes")
        self._state.clear()

    def set_failure_limit(self, limit: int) -> None:
        """
        Set the limit on failures before all operations pass through.

        This resets the failure count. 0 means "no limit".
        """
        self._injector.set_failure_limit(limit)

    def set_throttle_probability(self, p: float) -> None:
        self._injector.set_throttle_probability(p)

    @property
    def config(self) -> InconsistencyConfig:
        """Configuration the wrapper was built with."""
        return self._config

    @property
    def delay_key_substring(self) -> str:
        return self._state.delay_key_substring

    @property
    def delay_probability(self) -> float:
        return self._state.delay_probability

    @property
    def delay_window_ms(self) -> int:
        return self._state.delay_window_ms

    @property
    def throttle_probability(self) -> float:
        return self._injector.throttle_probability

    @property
    def failure_limit(self) -> int:
        return self._injector.failure_limit

    @property
    def failure_count(self) -> int:
        return self._injector.failure_count

    def stats(self) -> InconsistencyStats:
        return InconsistencyStats(
            failure_count=self._injector.failure_count,
            failure_limit=self._injector.failure_limit,
            throttle_probability=self._injector.throttle_probability,
            pending_puts=self._state.pending_puts,
            pending_deletes=self._state.pending_deletes,
        )

    def describe(self) -> str:
        return (
            "Inconsistent object store with"
            f" {self.delay_window_ms} msec delay,"
            f" substring {self.delay_key_substring!r},"
            f" delay probability {self.delay_probability};"
            f" throttle probability {self.throttle_probability};"
            f" failure limit {self.failure_limit},"
            f" failure count {self.failure_count}"
        )

    def __repr__(self) -> str:
        return f"<{self.describe()}>"

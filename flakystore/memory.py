"""
In-memory object store with S3-style listing semantics.

Strongly consistent and thread-safe. Useful as the store underneath
InconsistentObjectStore in tests, or anywhere a real bucket is overkill.
Nothing is persisted.
"""

from __future__ import annotations

import base64
import hashlib
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from flakystore.exceptions import ObjectStoreError
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
    utc_now,
)


def _etag(body: bytes) -> str:
    return hashlib.md5(body).hexdigest()


def _encode_token(key: str) -> str:
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")


def _decode_token(token: str) -> str:
    try:
        return base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8")
    except (ValueError, UnicodeDecodeError) as exc:
        raise ObjectStoreError(
            "The continuation token provided is incorrect",
            status_code=400,
            code="InvalidArgument",
        ) from exc


@dataclass
class _Upload:
    info: MultipartUpload
    parts: Dict[int, Tuple[str, bytes]] = field(default_factory=dict)


class InMemoryObjectStore:
    """
    Dict-backed ObjectStore.

    Attributes:
        calls: Names of the operations invoked, in order. Lets tests check
            which requests actually reached the store.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._buckets: Dict[str, Dict[str, StoredObject]] = defaultdict(dict)
        self._uploads: Dict[str, _Upload] = {}
        self.calls: List[str] = []

    def _record(self, operation: str) -> None:
        with self._lock:
            self.calls.append(operation)

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PutObjectResult:
        self._record("put_object")
        etag = _etag(body)
        self._store(bucket, key, body, etag, metadata)
        return PutObjectResult(etag=etag)

    def _store(
        self,
        bucket: str,
        key: str,
        body: bytes,
        etag: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        summary = ObjectSummary(
            bucket=bucket,
            key=key,
            size=len(body),
            etag=etag,
            last_modified=utc_now(),
        )
        with self._lock:
            self._buckets[bucket][key] = StoredObject(
                summary=summary, body=body, metadata=dict(metadata or {})
            )

    def get_object(self, bucket: str, key: str) -> StoredObject:
        self._record("get_object")
        with self._lock:
            stored = self._buckets.get(bucket, {}).get(key)
        if stored is None:
            raise ObjectStoreError(
                "The specified key does not exist.",
                status_code=404,
                bucket=bucket,
                key=key,
                code="NoSuchKey",
            )
        return stored

    def delete_object(self, bucket: str, key: str) -> None:
        # Deleting a missing key succeeds, as on real object stores.
        self._record("delete_object")
        with self._lock:
            self._buckets.get(bucket, {}).pop(key, None)

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> DeleteObjectsResult:
        self._record("delete_objects")
        with self._lock:
            objects = self._buckets.get(bucket, {})
            for key in keys:
                objects.pop(key, None)
        return DeleteObjectsResult(deleted=list(keys))

    def keys(self, bucket: str) -> List[str]:
        with self._lock:
            return sorted(self._buckets.get(bucket, {}))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _walk(
        self,
        bucket: str,
        prefix: str,
        delimiter: Optional[str],
        after: Optional[str],
        max_keys: int,
    ) -> Tuple[List[ObjectSummary], List[str], bool, Optional[str]]:
        """
        Core listing: summaries, common prefixes, truncated flag, last entry.

        Entries are returned in key order. With a delimiter, every key that
        has the delimiter after the prefix collapses into one common prefix.
        """
        with self._lock:
            objects = self._buckets.get(bucket, {})
            keys = sorted(k for k in objects if k.startswith(prefix))
            summaries: List[ObjectSummary] = []
            prefixes: List[str] = []
            last: Optional[str] = None
            for key in keys:
                entry = key
                is_prefix = False
                if delimiter:
                    idx = key.find(delimiter, len(prefix))
                    if idx >= 0:
                        entry = key[: idx + len(delimiter)]
                        is_prefix = True
                if after is not None and entry <= after:
                    continue
                if is_prefix and prefixes and prefixes[-1] == entry:
                    continue
                if len(summaries) + len(prefixes) >= max_keys:
                    return summaries, prefixes, True, last
                if is_prefix:
                    prefixes.append(entry)
                else:
                    summaries.append(objects[key].summary)
                last = entry
        return summaries, prefixes, False, last

    def list_objects(self, request: ListObjectsRequest) -> ObjectListing:
        self._record("list_objects")
        summaries, prefixes, truncated, last = self._walk(
            request.bucket,
            request.prefix,
            request.delimiter,
            request.marker,
            request.max_keys,
        )
        return ObjectListing(
            bucket=request.bucket,
            prefix=request.prefix,
            delimiter=request.delimiter,
            marker=request.marker,
            next_marker=last if truncated else None,
            max_keys=request.max_keys,
            encoding_type=request.encoding_type,
            truncated=truncated,
            object_summaries=summaries,
            common_prefixes=prefixes,
        )

    def list_objects_v2(self, request: ListObjectsV2Request) -> ListObjectsV2Result:
        self._record("list_objects_v2")
        after = request.start_after
        if request.continuation_token is not None:
            after = _decode_token(request.continuation_token)
        summaries, prefixes, truncated, last = self._walk(
            request.bucket,
            request.prefix,
            request.delimiter,
            after,
            request.max_keys,
        )
        return ListObjectsV2Result(
            bucket=request.bucket,
            prefix=request.prefix,
            delimiter=request.delimiter,
            continuation_token=request.continuation_token,
            next_continuation_token=_encode_token(last) if truncated and last else None,
            start_after=request.start_after,
            max_keys=request.max_keys,
            key_count=len(summaries) + len(prefixes),
            encoding_type=request.encoding_type,
            truncated=truncated,
            object_summaries=summaries,
            common_prefixes=prefixes,
        )

    # ------------------------------------------------------------------
    # Multipart uploads
    # ------------------------------------------------------------------

    def initiate_multipart_upload(self, bucket: str, key: str) -> MultipartUpload:
        self._record("initiate_multipart_upload")
        info = MultipartUpload(bucket=bucket, key=key, upload_id=uuid.uuid4().hex)
        with self._lock:
            self._uploads[info.upload_id] = _Upload(info=info)
        return info

    def _get_upload(self, bucket: str, key: str, upload_id: str) -> _Upload:
        upload = self._uploads.get(upload_id)
        if upload is None or upload.info.bucket != bucket or upload.info.key != key:
            raise ObjectStoreError(
                "The specified multipart upload does not exist.",
                status_code=404,
                bucket=bucket,
                key=key,
                code="NoSuchUpload",
                details={"upload_id": upload_id},
            )
        return upload

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> UploadPartResult:
        self._record("upload_part")
        etag = _etag(body)
        with self._lock:
            upload = self._get_upload(bucket, key, upload_id)
            upload.parts[part_number] = (etag, body)
        return UploadPartResult(part_number=part_number, etag=etag)

    def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[PartETag],
    ) -> CompleteMultipartUploadResult:
        self._record("complete_multipart_upload")
        with self._lock:
            upload = self._get_upload(bucket, key, upload_id)
            chunks: List[bytes] = []
            digests = hashlib.md5()
            for part in sorted(parts, key=lambda p: p.part_number):
                uploaded = upload.parts.get(part.part_number)
                if uploaded is None or uploaded[0] != part.etag:
                    raise ObjectStoreError(
                        "One or more of the specified parts could not be found.",
                        status_code=400,
                        bucket=bucket,
                        key=key,
                        code="InvalidPart",
                        details={"part_number": part.part_number},
                    )
                chunks.append(uploaded[1])
                digests.update(bytes.fromhex(uploaded[0]))
            etag = f"{digests.hexdigest()}-{len(chunks)}"
            self._store(bucket, key, b"".join(chunks), etag)
            del self._uploads[upload_id]
        return CompleteMultipartUploadResult(bucket=bucket, key=key, etag=etag)

    def list_multipart_uploads(
        self, bucket: str, prefix: str = ""
    ) -> MultipartUploadListing:
        self._record("list_multipart_uploads")
        with self._lock:
            uploads = [
                u.info
                for u in self._uploads.values()
                if u.info.bucket == bucket and u.info.key.startswith(prefix)
            ]
        uploads.sort(key=lambda u: (u.key, u.initiated))
        return MultipartUploadListing(bucket=bucket, prefix=prefix, uploads=uploads)

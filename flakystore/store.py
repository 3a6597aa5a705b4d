from __future__ import annotations

from typing import Dict, Optional, Protocol, Sequence, runtime_checkable

from flakystore.models import (
    CompleteMultipartUploadResult,
    DeleteObjectsResult,
    ListObjectsRequest,
    ListObjectsV2Request,
    ListObjectsV2Result,
    MultipartUpload,
    MultipartUploadListing,
    ObjectListing,
    PartETag,
    PutObjectResult,
    StoredObject,
    UploadPartResult,
)


@runtime_checkable
class ObjectStore(Protocol):
    """
    Capability set of an object store client.

    Implementations raise ObjectStoreError (or their own errors) on failure;
    wrappers must let those propagate unchanged.
    """

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PutObjectResult: ...

    def get_object(self, bucket: str, key: str) -> StoredObject: ...

    def delete_object(self, bucket: str, key: str) -> None: ...

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> DeleteObjectsResult: ...

    def list_objects(self, request: ListObjectsRequest) -> ObjectListing: ...

    def list_objects_v2(self, request: ListObjectsV2Request) -> ListObjectsV2Result: ...

    def initiate_multipart_upload(self, bucket: str, key: str) -> MultipartUpload: ...

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> UploadPartResult: ...

    def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[PartETag],
    ) -> CompleteMultipartUploadResult: ...

    def list_multipart_uploads(
        self, bucket: str, prefix: str = ""
    ) -> MultipartUploadListing: ...

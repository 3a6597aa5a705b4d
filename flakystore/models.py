from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MAX_KEYS = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ObjectSummary(BaseModel):
    """One object as reported by a listing."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str
    size: int = Field(default=0, ge=0)
    etag: str = ""
    last_modified: datetime = Field(default_factory=utc_now)
    storage_class: str = "STANDARD"


class PutObjectResult(BaseModel):
    etag: str
    version_id: Optional[str] = None


class StoredObject(BaseModel):
    """Object body plus attributes, as returned by get_object()."""

    summary: ObjectSummary
    body: bytes
    metadata: Dict[str, str] = Field(default_factory=dict)


class DeleteError(BaseModel):
    key: str
    code: str
    message: str = ""


class DeleteObjectsResult(BaseModel):
    """
    Outcome of a batch delete.

    Keys listed in `errors` were not deleted.
    """

    deleted: List[str] = Field(default_factory=list)
    errors: List[DeleteError] = Field(default_factory=list)


class ListObjectsRequest(BaseModel):
    """
    Marker-paginated listing request.

    A delimiter of "/" asks for a directory-style listing where deeper
    keys are rolled up into common prefixes; no delimiter lists recursively.
    """

    model_config = ConfigDict(extra="forbid")

    bucket: str
    prefix: str = ""
    delimiter: Optional[str] = None
    marker: Optional[str] = None
    max_keys: int = Field(default=DEFAULT_MAX_KEYS, ge=1)
    encoding_type: Optional[str] = None


class ObjectListing(BaseModel):
    bucket: str
    prefix: str = ""
    delimiter: Optional[str] = None
    marker: Optional[str] = None
    next_marker: Optional[str] = None
    max_keys: int = DEFAULT_MAX_KEYS
    encoding_type: Optional[str] = None
    truncated: bool = False
    object_summaries: List[ObjectSummary] = Field(default_factory=list)
    common_prefixes: List[str] = Field(default_factory=list)


class ListObjectsV2Request(BaseModel):
    """Token-paginated listing request."""

    model_config = ConfigDict(extra="forbid")

    bucket: str
    prefix: str = ""
    delimiter: Optional[str] = None
    continuation_token: Optional[str] = None
    start_after: Optional[str] = None
    max_keys: int = Field(default=DEFAULT_MAX_KEYS, ge=1)
    encoding_type: Optional[str] = None


class ListObjectsV2Result(BaseModel):
    bucket: str
    prefix: str = ""
    delimiter: Optional[str] = None
    continuation_token: Optional[str] = None
    next_continuation_token: Optional[str] = None
    start_after: Optional[str] = None
    max_keys: int = DEFAULT_MAX_KEYS
    key_count: int = 0
    encoding_type: Optional[str] = None
    truncated: bool = False
    object_summaries: List[ObjectSummary] = Field(default_factory=list)
    common_prefixes: List[str] = Field(default_factory=list)


class MultipartUpload(BaseModel):
    """An initiated, not yet completed, multipart upload."""

    bucket: str
    key: str
    upload_id: str
    initiated: datetime = Field(default_factory=utc_now)


class PartETag(BaseModel):
    part_number: int = Field(ge=1)
    etag: str


class UploadPartResult(BaseModel):
    part_number: int
    etag: str


class CompleteMultipartUploadResult(BaseModel):
    bucket: str
    key: str
    etag: str


class MultipartUploadListing(BaseModel):
    bucket: str
    prefix: str = ""
    uploads: List[MultipartUpload] = Field(default_factory=list)

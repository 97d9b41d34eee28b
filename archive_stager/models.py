"""Models used by the upload workflow."""

import time
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from archive_stager.exceptions import UploadError


class UploadState(str, Enum):
    """Lifecycle states for a single upload.

    State transitions:
    - IDLE -> SESSION_OPENING -> AUTHORIZING -> TRANSFERRING -> FINALIZING
      -> COMPLETED
    - AUTHORIZING | TRANSFERRING | FINALIZING -> ABORTING -> ABORTED
    - SESSION_OPENING -> FAILED (no session exists, nothing to abort)
    - IDLE -> FAILED (nothing to upload, or cancelled before starting)
    """

    IDLE = "idle"
    SESSION_OPENING = "session_opening"
    AUTHORIZING = "authorizing"
    TRANSFERRING = "transferring"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABORTING = "aborting"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether the upload can make no further progress from this state."""
        return self in {UploadState.COMPLETED, UploadState.ABORTED, UploadState.FAILED}


@dataclass(frozen=True)
class UploadSession:
    """Backend session binding a set of parts to one eventual object."""

    object_key: str
    session_id: str
    total_parts: int


@dataclass(frozen=True)
class PartDescriptor:
    """A contiguous byte range of the source, end exclusive."""

    part_number: int
    start: int
    end: int

    @property
    def size(self) -> int:
        """Number of bytes in the part."""
        return self.end - self.start


@dataclass(frozen=True)
class PartAuthorization:
    """Time-boxed capability permitting one upload of a part.

    ``expires_at`` is a ``time.monotonic()`` deadline.
    """

    part_number: int
    url: str
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        """Return True once the validity window has elapsed."""
        if now is None:
            now = time.monotonic()
        return now >= self.expires_at


@dataclass(frozen=True)
class PartReceipt:
    """Proof of a successful part upload, required to finalize."""

    part_number: int
    integrity_tag: str


@dataclass(frozen=True)
class Completed:
    """Upload finished and the object is durably stored."""

    object_key: str

    @property
    def message(self) -> str:
        """Human readable terminal message."""
        return f"Upload complete: {self.object_key}"


@dataclass(frozen=True)
class Aborted:
    """Upload session was discarded after ``reason``."""

    reason: UploadError

    @property
    def message(self) -> str:
        """Human readable terminal message."""
        return f"Upload aborted: {self.reason}"


@dataclass(frozen=True)
class Failed:
    """Upload never produced a backend session."""

    error: UploadError

    @property
    def message(self) -> str:
        """Human readable terminal message."""
        return f"Upload failed: {self.error}"


UploadOutcome = Completed | Aborted | Failed


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BeginUploadRequest(_WireModel):
    """Body of the begin-upload request."""

    file_name: str = Field(alias="fileName")
    content_type: str = Field(alias="contentType")


class BeginUploadResponse(_WireModel):
    """Body returned by begin-upload."""

    upload_id: str = Field(alias="uploadId", min_length=1)
    object_key: str = Field(alias="objectKey", min_length=1)


class PresignedUrlsRequest(_WireModel):
    """Body of the presigned URL request.

    ``numParts`` is kept for backends that only sign ``1..numParts``.
    """

    object_key: str = Field(alias="objectKey")
    upload_id: str = Field(alias="uploadId")
    num_parts: int = Field(alias="numParts")
    part_numbers: list[int] = Field(alias="partNumbers")


class PresignedUrl(_WireModel):
    """A single signed part URL."""

    part_number: int = Field(alias="partNumber")
    signed_url: str = Field(alias="signedUrl")


class PresignedUrlsResponse(_WireModel):
    """Body returned by get-presigned-urls."""

    presigned_urls: list[PresignedUrl] = Field(alias="presignedUrls")
    expires_in: int | None = Field(default=None, alias="expiresIn")


class UploadedPart(_WireModel):
    """A completed part as the storage provider expects it."""

    part_number: int = Field(alias="PartNumber")
    etag: str = Field(alias="ETag")


class CompleteUploadRequest(_WireModel):
    """Body of the complete-upload request."""

    object_key: str = Field(alias="objectKey")
    upload_id: str = Field(alias="uploadId")
    uploaded_parts: list[UploadedPart] = Field(alias="uploadedParts")


class CompleteUploadResponse(_WireModel):
    """Body returned by complete-upload."""

    object_key: str | None = Field(default=None, alias="objectKey")


class AbortUploadRequest(_WireModel):
    """Body of the abort-upload request."""

    object_key: str = Field(alias="objectKey")
    upload_id: str = Field(alias="uploadId")

"""Pydantic model for uploader configuration."""

from pydantic import BaseModel, Field

from archive_stager.const import (
    ACCEPTED_EXTENSIONS,
    API_URL,
    BACKEND_API_MAX_ATTEMPTS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_PART_MAX_RETRIES,
    MAX_SIZE_BYTES,
)


class UploaderConfig(BaseModel):
    """Configuration options for a multipart upload.

    Attributes:
        api_url: base URL of the multipart upload routes.
        chunk_size: size of every part but the last, in bytes.
        max_concurrency: maximum number of simultaneous part transfers.
        part_max_retries: retries allowed per part after its first attempt.
        backend_max_attempts: attempts allowed for authorize/finalize/abort
            calls that fail transiently.
        retry_backoff_seconds: base delay of the exponential backoff.
        max_backoff_seconds: cap on any single backoff delay.
        request_timeout_seconds: timeout of a backend API call.
        part_timeout_seconds: timeout of a single part transfer.
        content_type: MIME type recorded for the stored object.
        max_file_size: largest accepted archive, in bytes.
        accepted_extensions: file suffixes accepted for upload.
    """

    api_url: str = API_URL
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    max_concurrency: int = Field(default=DEFAULT_MAX_CONCURRENCY, ge=1)
    part_max_retries: int = Field(default=DEFAULT_PART_MAX_RETRIES, ge=0)
    backend_max_attempts: int = Field(default=BACKEND_API_MAX_ATTEMPTS, ge=1)
    retry_backoff_seconds: float = Field(default=1.0, ge=0)
    max_backoff_seconds: float = Field(default=30.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    part_timeout_seconds: float = Field(default=300.0, gt=0)
    content_type: str = DEFAULT_CONTENT_TYPE
    max_file_size: int = Field(default=MAX_SIZE_BYTES, gt=0)
    accepted_extensions: list[str] = Field(
        default_factory=lambda: list(ACCEPTED_EXTENSIONS)
    )

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff delay for a zero-based attempt index."""
        return min(self.retry_backoff_seconds * 2**attempt, self.max_backoff_seconds)

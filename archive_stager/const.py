"""Constants for archive uploads."""

import os

API_URL = os.getenv("ARCHIVE_STAGER_API_URL", "http://localhost:3000/api")

BYTES_PER_MIB = 1024 * 1024
BYTES_PER_GIB = 1024 * BYTES_PER_MIB

DEFAULT_CHUNK_SIZE = 10 * BYTES_PER_MIB
MAX_SIZE_BYTES = 500 * BYTES_PER_GIB  # massive media archives
ACCEPTED_EXTENSIONS = (".zip",)
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# S3-compatible backends refuse part numbers above this
MAX_PARTS = 10_000

SIGNED_URL_EXPIRY_SECONDS = 60 * 30

DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_PART_MAX_RETRIES = 2
BACKEND_API_MAX_ATTEMPTS = 3
BACKEND_API_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

BEGIN_UPLOAD_ROUTE = "/multi-part-upload/begin-upload"
PRESIGNED_URLS_ROUTE = "/multi-part-upload/get-presigned-urls"
COMPLETE_UPLOAD_ROUTE = "/multi-part-upload/complete-upload"
ABORT_UPLOAD_ROUTE = "/multi-part-upload/abort-upload"

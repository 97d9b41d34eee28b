"""Exception classes for the multipart upload workflow."""


class UploadError(Exception):
    """Base error for the upload workflow."""


class FileValidationError(UploadError):
    """Raised when a file cannot be staged (wrong type, too large, missing)."""


class EmptySourceError(UploadError):
    """Raised when the source holds no bytes, so there is nothing to upload."""


class SessionOpenError(UploadError):
    """Raised when the backend refuses or cannot create an upload session."""


class AuthorizationError(UploadError):
    """Raised when part authorizations cannot be obtained."""


class TransferError(UploadError):
    """Raised when a single part transfer fails."""

    def __init__(self, part_number: int, cause: object):
        """Initialize TransferError.

        Args:
            part_number: Part whose transfer failed.
            cause: Underlying exception or a description of the bad response.
        """
        super().__init__(f"Part {part_number} failed to upload: {cause}")
        self.part_number = part_number
        self.cause = cause


class FinalizeError(UploadError):
    """Raised when the backend rejects the completion request."""


class AbortError(UploadError):
    """Raised internally when the backend abort call fails. Logged, never surfaced."""


class UploadCancelledError(UploadError):
    """Raised when the caller signals cancellation."""


class ReceiptContractError(UploadError):
    """Raised when the receipt set is incomplete, unordered or holds duplicates.

    This is a programming-contract violation and is never retried.
    """


class InvalidStateTransition(RuntimeError):
    """Raised when the coordinator is asked to make an illegal state change."""

"""Event emitter for upload lifecycle notifications."""

import logging

from pyee.asyncio import AsyncIOEventEmitter

logger = logging.getLogger(__name__)


class UploadEmitter(AsyncIOEventEmitter):
    """Per-upload event emitter.

    Listeners never influence the upload; they observe it.
    """

    # Coordinator -> observers
    STATE_CHANGED = "STATE_CHANGED"
    # (previous_state: UploadState, new_state: UploadState)

    # Coordinator -> observers
    SESSION_OPENED = "SESSION_OPENED"
    # (session: UploadSession)

    # Coordinator -> observers
    PART_UPLOADED = "PART_UPLOADED"
    # (receipt: PartReceipt, completed_parts: int, total_parts: int)

    # Coordinator -> observers
    PART_RETRY = "PART_RETRY"
    # (part_number: int, attempt: int, error: TransferError)

    # Coordinator -> observers
    PROGRESS = "PROGRESS"
    # (percent: int)

    # Coordinator -> observers, terminal events
    UPLOAD_COMPLETE = "UPLOAD_COMPLETE"
    # (outcome: Completed)
    UPLOAD_ABORTED = "UPLOAD_ABORTED"
    # (outcome: Aborted)
    UPLOAD_FAILED = "UPLOAD_FAILED"
    # (outcome: Failed)

    def __init__(self) -> None:
        """Create an emitter bound lazily to the running loop."""
        super().__init__()
        self.on("error", self._log_listener_error)

    @staticmethod
    def _log_listener_error(error: Exception) -> None:
        logger.error(f"Upload event listener raised: {error}", exc_info=error)

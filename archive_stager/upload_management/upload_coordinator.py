"""Upload coordinator for multipart archive uploads.

This module provides the UploadCoordinator class that plans the parts of a
source, opens and authorizes a backend session, transfers parts through a
bounded pool of workers, and finalizes the object or aborts the session.
"""

import asyncio
import logging
import math
from collections.abc import Callable
from typing import BinaryIO

from archive_stager.chunker import chunk, read_part, source_size
from archive_stager.config_manager.upload_config import UploaderConfig
from archive_stager.const import MAX_PARTS
from archive_stager.event_emitter import UploadEmitter
from archive_stager.exceptions import (
    EmptySourceError,
    FileValidationError,
    InvalidStateTransition,
    SessionOpenError,
    TransferError,
    UploadCancelledError,
    UploadError,
)
from archive_stager.models import (
    Aborted,
    Completed,
    Failed,
    PartAuthorization,
    PartDescriptor,
    PartReceipt,
    UploadOutcome,
    UploadSession,
    UploadState,
)

from .part_transmitter import PartTransmitter
from .receipt_ledger import ReceiptLedger
from .upload_authorizer import UploadAuthorizer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

_ALLOWED_TRANSITIONS: dict[UploadState, set[UploadState]] = {
    UploadState.IDLE: {UploadState.SESSION_OPENING, UploadState.FAILED},
    UploadState.SESSION_OPENING: {UploadState.AUTHORIZING, UploadState.FAILED},
    UploadState.AUTHORIZING: {UploadState.TRANSFERRING, UploadState.ABORTING},
    UploadState.TRANSFERRING: {UploadState.FINALIZING, UploadState.ABORTING},
    UploadState.FINALIZING: {UploadState.COMPLETED, UploadState.ABORTING},
    UploadState.ABORTING: {UploadState.ABORTED},
    UploadState.COMPLETED: set(),
    UploadState.ABORTED: set(),
    UploadState.FAILED: set(),
}


def progress_percent(completed: int, total: int) -> int:
    """Completed share of ``total`` as an integer percentage, halves rounded up."""
    return math.floor(completed * 100 / total + 0.5)


class UploadCoordinator:
    """Drive one multipart upload at a time from plan to terminal outcome.

    The upload is all-or-nothing: once a session exists, any unrecoverable
    error or a cancellation leads to a backend abort and an ``Aborted``
    outcome. ``start_upload`` never raises for upload failures.
    """

    def __init__(
        self,
        authorizer: UploadAuthorizer,
        transmitter: PartTransmitter,
        config: UploaderConfig,
        emitter: UploadEmitter | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            authorizer: Client for the session routes.
            transmitter: Single-attempt part uploader.
            config: Concurrency, retry, and chunking settings.
            emitter: Receives lifecycle events; a private one is created if
                omitted.
        """
        self._authorizer = authorizer
        self._transmitter = transmitter
        self._config = config
        self._emitter = emitter or UploadEmitter()
        self._state = UploadState.IDLE

    @property
    def state(self) -> UploadState:
        """Current lifecycle state."""
        return self._state

    @property
    def emitter(self) -> UploadEmitter:
        """Emitter carrying this coordinator's lifecycle events."""
        return self._emitter

    def _transition(self, new_state: UploadState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            raise InvalidStateTransition(
                f"Cannot move from {self._state.value} to {new_state.value}"
            )
        previous, self._state = self._state, new_state
        logger.debug(f"Upload state {previous.value} -> {new_state.value}")
        self._emitter.emit(UploadEmitter.STATE_CHANGED, previous, new_state)

    async def start_upload(
        self,
        source: BinaryIO,
        file_name: str,
        chunk_size: int | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        content_type: str | None = None,
    ) -> UploadOutcome:
        """Upload ``source`` as one object and report how it ended.

        Args:
            source: Seekable binary source holding the archive.
            file_name: Name the backend derives the object key from.
            chunk_size: Part size in bytes; the configured size if omitted.
            on_progress: Called with an integer percentage after every part
                that uploads successfully.
            cancel_event: Set by the caller to cancel the upload.
            content_type: MIME type of the object; the configured one if
                omitted.

        Returns:
            ``Completed`` with the object key, ``Aborted`` with the error that
            ended an opened session, or ``Failed`` when no session was opened.

        Raises:
            RuntimeError: If an upload is already running on this coordinator.
        """
        if self._state is not UploadState.IDLE and not self._state.is_terminal:
            raise RuntimeError(
                f"Upload already in progress (state={self._state.value})"
            )
        self._state = UploadState.IDLE
        cancel_event = cancel_event or asyncio.Event()
        chunk_size = chunk_size or self._config.chunk_size
        content_type = content_type or self._config.content_type

        try:
            parts = chunk(source_size(source), chunk_size)
        except (OSError, ValueError) as e:
            return self._fail(FileValidationError(f"Cannot plan parts: {e}"))

        if not parts:
            return self._fail(EmptySourceError(f"{file_name} is empty, nothing to upload"))
        if len(parts) > MAX_PARTS:
            return self._fail(
                FileValidationError(
                    f"{file_name} would need {len(parts)} parts, the limit is "
                    f"{MAX_PARTS}; use a larger chunk size"
                )
            )
        if cancel_event.is_set():
            return self._fail(UploadCancelledError("Upload cancelled before it started"))

        logger.info(
            f"Starting upload of {file_name}: {len(parts)} parts of "
            f"up to {chunk_size} bytes"
        )
        self._transition(UploadState.SESSION_OPENING)
        try:
            session = await self._authorizer.open_session(
                file_name, content_type, len(parts)
            )
        except SessionOpenError as e:
            return self._fail(e)
        except asyncio.CancelledError:
            # No session id yet, so there is nothing to abort.
            self._fail(UploadCancelledError("Upload task was cancelled"))
            raise
        self._emitter.emit(UploadEmitter.SESSION_OPENED, session)

        try:
            object_key = await self._run_session(
                session, source, parts, on_progress, cancel_event
            )
        except UploadError as e:
            return await asyncio.shield(self._abort(session, e))
        except asyncio.CancelledError:
            await asyncio.shield(
                self._abort(session, UploadCancelledError("Upload task was cancelled"))
            )
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error during upload of {file_name}: {e}", exc_info=True
            )
            return await asyncio.shield(
                self._abort(session, UploadError(f"Unexpected error: {e}"))
            )

        return self._complete(object_key)

    async def _run_session(
        self,
        session: UploadSession,
        source: BinaryIO,
        parts: list[PartDescriptor],
        on_progress: ProgressCallback | None,
        cancel_event: asyncio.Event,
    ) -> str:
        """Authorize, transfer, and finalize within an opened session."""
        self._transition(UploadState.AUTHORIZING)
        self._raise_if_cancelled(cancel_event, 0, session.total_parts)
        authorizations = await self._authorizer.authorize_parts(
            session, [part.part_number for part in parts]
        )
        self._raise_if_cancelled(cancel_event, 0, session.total_parts)

        self._transition(UploadState.TRANSFERRING)
        receipts = await self._transfer_parts(
            session, source, parts, authorizations, on_progress, cancel_event
        )

        self._transition(UploadState.FINALIZING)
        return await self._authorizer.finalize(session, receipts)

    @staticmethod
    def _raise_if_cancelled(
        cancel_event: asyncio.Event, completed: int, total: int
    ) -> None:
        if cancel_event.is_set():
            raise UploadCancelledError(
                f"Upload cancelled with {completed}/{total} parts transferred"
            )

    async def _transfer_parts(
        self,
        session: UploadSession,
        source: BinaryIO,
        parts: list[PartDescriptor],
        authorizations: dict[int, PartAuthorization],
        on_progress: ProgressCallback | None,
        cancel_event: asyncio.Event,
    ) -> list[PartReceipt]:
        """Transfer every part through a bounded pool of worker tasks.

        Workers pull parts from a shared queue, so each part is dispatched
        exactly once. The first fatal error or a cancellation stops dispatch,
        cancels in-flight transfers, and waits for them to settle before the
        error is raised.

        Returns:
            One receipt per part, ascending by part number.
        """
        ledger = ReceiptLedger(session.total_parts)
        queue: asyncio.Queue[PartDescriptor] = asyncio.Queue()
        for part in parts:
            queue.put_nowait(part)

        async def worker() -> None:
            while not cancel_event.is_set():
                try:
                    part = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                receipt = await self._transmit_part(
                    session, source, part, authorizations
                )
                completed = await ledger.record(receipt)
                self._report_progress(
                    receipt, completed, session.total_parts, on_progress
                )

        pool_size = min(self._config.max_concurrency, len(parts))
        workers = [
            asyncio.create_task(worker(), name=f"part-worker-{index}")
            for index in range(pool_size)
        ]
        cancel_waiter = asyncio.create_task(cancel_event.wait())

        try:
            pending: set[asyncio.Task] = set(workers)
            while pending:
                done, _ = await asyncio.wait(
                    pending | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                if cancel_waiter in done:
                    self._raise_if_cancelled(
                        cancel_event, len(ledger), session.total_parts
                    )
                for task in done:
                    pending.discard(task)
                    error = task.exception()
                    if error is not None:
                        raise error
        finally:
            cancel_waiter.cancel()
            for task in workers:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*workers, cancel_waiter, return_exceptions=True)

        # Workers stop quietly when they see the event before the waiter fires.
        self._raise_if_cancelled(cancel_event, len(ledger), session.total_parts)
        return ledger.sorted_receipts()

    async def _transmit_part(
        self,
        session: UploadSession,
        source: BinaryIO,
        part: PartDescriptor,
        authorizations: dict[int, PartAuthorization],
    ) -> PartReceipt:
        """Transfer one part, retrying up to ``part_max_retries`` times.

        The same authorization is reused while it is valid; an expired one is
        replaced with a freshly signed URL before the next attempt.

        Raises:
            TransferError: The last failure once the retry budget is spent.
            AuthorizationError: If an expired authorization cannot be renewed.
            FileValidationError: If the part cannot be read from the source.
        """
        part_number = part.part_number
        try:
            data = read_part(source, part)
        except (OSError, ValueError) as e:
            raise FileValidationError(f"Cannot read part {part_number}: {e}") from e

        attempts = self._config.part_max_retries + 1
        attempt = 0
        while True:
            authorization = authorizations[part_number]
            if authorization.is_expired():
                logger.info(f"Signed URL for part {part_number} expired, renewing")
                renewed = await self._authorizer.authorize_parts(session, [part_number])
                authorization = authorizations[part_number] = renewed[part_number]

            try:
                return await self._transmitter.transmit(authorization, data)
            except TransferError as e:
                attempt += 1
                if attempt >= attempts:
                    logger.error(f"Part {part_number} failed after {attempts} attempts")
                    raise
                logger.warning(
                    f"Part {part_number} failed "
                    f"(attempt {attempt}/{attempts}), retrying: {e.cause}"
                )
                self._emitter.emit(UploadEmitter.PART_RETRY, part_number, attempt, e)
                await asyncio.sleep(self._config.backoff_delay(attempt - 1))

    def _report_progress(
        self,
        receipt: PartReceipt,
        completed: int,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        percent = progress_percent(completed, total)
        logger.info(f"Part {receipt.part_number} uploaded ({completed}/{total})")
        self._emitter.emit(UploadEmitter.PART_UPLOADED, receipt, completed, total)
        self._emitter.emit(UploadEmitter.PROGRESS, percent)
        if on_progress is not None:
            try:
                on_progress(percent)
            except Exception:
                logger.exception("Progress callback raised, ignoring")

    async def _abort(self, session: UploadSession, reason: UploadError) -> Aborted:
        """Abort the backend session and report ``reason`` as the outcome.

        The coordinator reaches ``ABORTED`` even if the abort call itself is
        cancelled.
        """
        self._transition(UploadState.ABORTING)
        logger.warning(f"Aborting upload session {session.session_id}: {reason}")
        outcome = Aborted(reason=reason)
        try:
            await self._authorizer.abort(session)
        except Exception as e:
            logger.error(
                f"Abort of session {session.session_id} raised, ignoring: {e}"
            )
        finally:
            self._transition(UploadState.ABORTED)
            self._emitter.emit(UploadEmitter.UPLOAD_ABORTED, outcome)
        return outcome

    def _fail(self, error: UploadError) -> Failed:
        self._transition(UploadState.FAILED)
        logger.error(f"Upload failed: {error}")
        outcome = Failed(error=error)
        self._emitter.emit(UploadEmitter.UPLOAD_FAILED, outcome)
        return outcome

    def _complete(self, object_key: str) -> Completed:
        self._transition(UploadState.COMPLETED)
        logger.info(f"Upload complete: {object_key}")
        outcome = Completed(object_key=object_key)
        self._emitter.emit(UploadEmitter.UPLOAD_COMPLETE, outcome)
        return outcome

"""High level entry point for uploading an archive from disk."""

import asyncio
import logging
from pathlib import Path

import aiohttp

from archive_stager.config_manager.helpers import format_size
from archive_stager.config_manager.upload_config import UploaderConfig
from archive_stager.event_emitter import UploadEmitter
from archive_stager.exceptions import FileValidationError
from archive_stager.models import Failed, UploadOutcome
from archive_stager.upload_management.part_transmitter import PartTransmitter
from archive_stager.upload_management.upload_authorizer import UploadAuthorizer
from archive_stager.upload_management.upload_coordinator import (
    ProgressCallback,
    UploadCoordinator,
)
from archive_stager.validation import validate_archive

logger = logging.getLogger(__name__)


async def upload_archive(
    path: str | Path,
    config: UploaderConfig | None = None,
    on_progress: ProgressCallback | None = None,
    cancel_event: asyncio.Event | None = None,
    emitter: UploadEmitter | None = None,
) -> UploadOutcome:
    """Validate and upload a local archive as one multipart object.

    Args:
        path: Archive to upload.
        config: Uploader configuration; defaults are used if omitted.
        on_progress: Called with an integer percentage after each part.
        cancel_event: Set to cancel the upload; the session is aborted.
        emitter: Receives lifecycle events of the upload.

    Returns:
        The terminal outcome of the upload. Validation problems are reported
        as ``Failed`` without contacting the backend.
    """
    config = config or UploaderConfig()
    path = Path(path)

    try:
        size = validate_archive(path, config)
    except FileValidationError as e:
        logger.error(f"Rejected {path}: {e}")
        outcome = Failed(error=e)
        if emitter is not None:
            emitter.emit(UploadEmitter.UPLOAD_FAILED, outcome)
        return outcome
    logger.info(f"Uploading {path.name} ({format_size(size)})")

    async with aiohttp.ClientSession() as client_session:
        coordinator = UploadCoordinator(
            authorizer=UploadAuthorizer(client_session, config),
            transmitter=PartTransmitter(client_session, config),
            config=config,
            emitter=emitter,
        )
        with open(path, "rb") as source:
            return await coordinator.start_upload(
                source,
                path.name,
                on_progress=on_progress,
                cancel_event=cancel_event,
            )

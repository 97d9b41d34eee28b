"""Checks applied to an archive before it is staged."""

from pathlib import Path

from archive_stager.config_manager.helpers import format_size
from archive_stager.config_manager.upload_config import UploaderConfig
from archive_stager.exceptions import FileValidationError


def validate_archive(path: Path, config: UploaderConfig) -> int:
    """Ensure ``path`` is an archive the backend will accept.

    Args:
        path: Local archive to upload.
        config: Active uploader configuration.

    Returns:
        The archive size in bytes.

    Raises:
        FileValidationError: If the file is missing, has an unsupported
            extension, or exceeds the configured size limit.
    """
    if not path.exists():
        raise FileValidationError(f"File not found: {path}")
    if not path.is_file():
        raise FileValidationError(f"Path is not a file: {path}")

    accepted = [ext.lower() for ext in config.accepted_extensions]
    if accepted and not path.name.lower().endswith(tuple(accepted)):
        raise FileValidationError(f"Only {', '.join(accepted)} files are supported.")

    size = path.stat().st_size
    if size > config.max_file_size:
        raise FileValidationError(
            f"File exceeds {format_size(config.max_file_size)} limit."
        )
    return size

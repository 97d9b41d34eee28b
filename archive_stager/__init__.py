"""Multipart archive uploads to presigned cloud storage."""

from .api import upload_archive
from .models import Aborted, Completed, Failed, UploadOutcome

__version__ = "0.3.0"

__all__ = ["upload_archive", "Completed", "Aborted", "Failed", "UploadOutcome"]

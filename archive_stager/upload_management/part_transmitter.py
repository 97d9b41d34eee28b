"""Single-attempt transfer of one authorized part."""

import asyncio
import logging

import aiohttp

from archive_stager.config_manager.upload_config import UploaderConfig
from archive_stager.exceptions import TransferError
from archive_stager.models import PartAuthorization, PartReceipt

logger = logging.getLogger(__name__)


class PartTransmitter:
    """PUT part bytes to a signed URL and capture the returned ETag.

    Retrying is left to the caller; every call makes exactly one request.
    """

    def __init__(
        self, client_session: aiohttp.ClientSession, config: UploaderConfig
    ) -> None:
        """Initialize the transmitter.

        Args:
            client_session: aiohttp ClientSession for HTTP requests
            config: Uploader configuration (part timeout)
        """
        self._session = client_session
        self._config = config

    async def transmit(
        self, authorization: PartAuthorization, data: bytes
    ) -> PartReceipt:
        """Upload ``data`` as the part ``authorization`` permits.

        Args:
            authorization: Signed URL for the part.
            data: Exact bytes of the part.

        Returns:
            Receipt carrying the ETag exactly as the storage provider sent it.

        Raises:
            TransferError: On a non-2xx status, a missing ETag, a network
                error, or a timeout.
        """
        part_number = authorization.part_number
        timeout = aiohttp.ClientTimeout(total=self._config.part_timeout_seconds)
        try:
            async with self._session.put(
                authorization.url,
                data=data,
                headers={"Content-Type": "application/octet-stream"},
                timeout=timeout,
            ) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    raise TransferError(
                        part_number, f"HTTP {response.status}: {body[:200]}"
                    )
                etag = response.headers.get("ETag")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransferError(part_number, f"{type(e).__name__}: {e}") from e

        if not etag:
            raise TransferError(part_number, "response carried no ETag header")

        logger.debug(f"Part {part_number} finished uploading ({len(data)} bytes)")
        return PartReceipt(part_number=part_number, integrity_tag=etag)

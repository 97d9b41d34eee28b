"""Client for the multipart upload session routes.

The backend creates sessions, signs one URL per part, assembles the parts
into the final object, and discards sessions on abort.
"""

import asyncio
import json
import logging
import time
from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from archive_stager.config_manager.upload_config import UploaderConfig
from archive_stager.const import (
    ABORT_UPLOAD_ROUTE,
    BACKEND_API_RETRYABLE_STATUS_CODES,
    BEGIN_UPLOAD_ROUTE,
    COMPLETE_UPLOAD_ROUTE,
    PRESIGNED_URLS_ROUTE,
    SIGNED_URL_EXPIRY_SECONDS,
)
from archive_stager.exceptions import (
    AbortError,
    AuthorizationError,
    FinalizeError,
    ReceiptContractError,
    SessionOpenError,
    UploadError,
)
from archive_stager.models import (
    AbortUploadRequest,
    BeginUploadRequest,
    BeginUploadResponse,
    CompleteUploadRequest,
    CompleteUploadResponse,
    PartAuthorization,
    PartReceipt,
    PresignedUrlsRequest,
    PresignedUrlsResponse,
    UploadedPart,
    UploadSession,
)

from .http_errors import extract_error_detail

logger = logging.getLogger(__name__)

_ResponseModel = TypeVar("_ResponseModel", bound=BaseModel)


class UploadAuthorizer:
    """Open, sign, finalize, and abort multipart upload sessions."""

    def __init__(
        self, client_session: aiohttp.ClientSession, config: UploaderConfig
    ) -> None:
        """Initialize the authorizer.

        Args:
            client_session: aiohttp ClientSession for HTTP requests
            config: Uploader configuration (API URL, timeouts, retry policy)
        """
        self._session = client_session
        self._config = config

    def _url(self, route: str) -> str:
        return f"{self._config.api_url.rstrip('/')}{route}"

    async def _call_backend(
        self,
        method: str,
        route: str,
        payload: BaseModel,
        error_cls: type[UploadError],
        max_attempts: int,
    ) -> Any:
        """Send a JSON request, retrying transient failures.

        Network errors, timeouts, and the statuses in
        ``BACKEND_API_RETRYABLE_STATUS_CODES`` are retried with exponential
        backoff. Any other error status is raised immediately.

        Returns:
            The decoded JSON body, or an empty dict for an empty body.

        Raises:
            error_cls: If the call fails permanently or attempts run out.
        """
        url = self._url(route)
        body = payload.model_dump(by_alias=True)
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_seconds)
        last_error = "no attempt made"

        for attempt in range(max_attempts):
            try:
                async with self._session.request(
                    method, url, json=body, timeout=timeout
                ) as response:
                    status = response.status
                    text = await response.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(
                    f"{method} {route} failed "
                    f"(attempt {attempt + 1}/{max_attempts}): {last_error}"
                )
            else:
                if status < 400:
                    try:
                        return json.loads(text) if text else {}
                    except ValueError as e:
                        raise error_cls(f"Malformed response from {route}: {e}") from e

                last_error = f"HTTP {status}: {extract_error_detail(text)}"
                if status not in BACKEND_API_RETRYABLE_STATUS_CODES:
                    raise error_cls(last_error)
                logger.warning(
                    f"{method} {route} failed "
                    f"(attempt {attempt + 1}/{max_attempts}): {last_error}"
                )

            if attempt < max_attempts - 1:
                await asyncio.sleep(self._config.backoff_delay(attempt))

        raise error_cls(f"{last_error} (gave up after {max_attempts} attempts)")

    @staticmethod
    def _parse(
        model: type[_ResponseModel], data: Any, error_cls: type[UploadError]
    ) -> _ResponseModel:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise error_cls(f"Unexpected response body: {e}") from e

    async def open_session(
        self, file_name: str, content_type: str, total_parts: int
    ) -> UploadSession:
        """Create a new multipart upload session.

        Only one attempt is made: the backend creates a session per call, so a
        blind retry could leave an orphaned session behind.

        Args:
            file_name: Name of the archive, used to derive the object key.
            content_type: MIME type recorded for the object.
            total_parts: Number of parts planned for the object.

        Returns:
            The new session.

        Raises:
            SessionOpenError: If the backend rejects the request or is
                unreachable.
        """
        if total_parts < 1:
            raise SessionOpenError(f"total_parts must be at least 1, got {total_parts}")

        request = BeginUploadRequest(file_name=file_name, content_type=content_type)
        data = await self._call_backend(
            "POST", BEGIN_UPLOAD_ROUTE, request, SessionOpenError, max_attempts=1
        )
        response = self._parse(BeginUploadResponse, data, SessionOpenError)
        logger.info(
            f"Opened upload session {response.upload_id} for {response.object_key}"
        )
        return UploadSession(
            object_key=response.object_key,
            session_id=response.upload_id,
            total_parts=total_parts,
        )

    async def authorize_parts(
        self, session: UploadSession, part_numbers: Iterable[int]
    ) -> dict[int, PartAuthorization]:
        """Obtain one signed URL per requested part number.

        Requesting parts again before finalization yields fresh URLs.

        Raises:
            AuthorizationError: On an empty or out-of-range request, a backend
                failure, or a response that does not cover every requested part
                exactly once.
        """
        requested = sorted(set(part_numbers))
        if not requested:
            raise AuthorizationError("No part numbers requested")
        if requested[0] < 1 or requested[-1] > session.total_parts:
            raise AuthorizationError(
                f"Part numbers must lie in 1..{session.total_parts}, got "
                f"{requested[0]}..{requested[-1]}"
            )

        request = PresignedUrlsRequest(
            object_key=session.object_key,
            upload_id=session.session_id,
            num_parts=session.total_parts,
            part_numbers=requested,
        )
        issued_at = time.monotonic()
        data = await self._call_backend(
            "POST",
            PRESIGNED_URLS_ROUTE,
            request,
            AuthorizationError,
            max_attempts=self._config.backend_max_attempts,
        )
        response = self._parse(PresignedUrlsResponse, data, AuthorizationError)
        expires_at = issued_at + (response.expires_in or SIGNED_URL_EXPIRY_SECONDS)

        wanted = set(requested)
        authorizations: dict[int, PartAuthorization] = {}
        for signed in response.presigned_urls:
            if signed.part_number not in wanted:
                # Backends that only understand numParts sign every part.
                continue
            if signed.part_number in authorizations:
                raise AuthorizationError(
                    f"Backend returned part {signed.part_number} more than once"
                )
            authorizations[signed.part_number] = PartAuthorization(
                part_number=signed.part_number,
                url=signed.signed_url,
                expires_at=expires_at,
            )

        missing = wanted - authorizations.keys()
        if missing:
            raise AuthorizationError(
                f"Backend did not authorize parts {sorted(missing)}"
            )

        logger.debug(
            f"Authorized {len(authorizations)} parts for session {session.session_id}"
        )
        return authorizations

    async def finalize(
        self, session: UploadSession, receipts: Sequence[PartReceipt]
    ) -> str:
        """Assemble the uploaded parts into the final object.

        Args:
            session: Session the parts belong to.
            receipts: One receipt per part, sorted ascending by part number.

        Returns:
            The key of the stored object.

        Raises:
            ReceiptContractError: If the receipts are not exactly parts
                ``1..total_parts`` in ascending order.
            FinalizeError: If the backend rejects the completion.
        """
        part_numbers = [receipt.part_number for receipt in receipts]
        if part_numbers != list(range(1, session.total_parts + 1)):
            raise ReceiptContractError(
                f"Finalize requires receipts for parts 1..{session.total_parts} "
                f"in order, got {part_numbers}"
            )

        request = CompleteUploadRequest(
            object_key=session.object_key,
            upload_id=session.session_id,
            uploaded_parts=[
                UploadedPart(part_number=r.part_number, etag=r.integrity_tag)
                for r in receipts
            ],
        )
        data = await self._call_backend(
            "POST",
            COMPLETE_UPLOAD_ROUTE,
            request,
            FinalizeError,
            max_attempts=self._config.backend_max_attempts,
        )
        response = self._parse(CompleteUploadResponse, data, FinalizeError)
        object_key = response.object_key or session.object_key
        logger.info(f"Finalized upload session {session.session_id} as {object_key}")
        return object_key

    async def abort(self, session: UploadSession) -> None:
        """Discard the session and any parts already stored.

        Best-effort: failures are logged and never raised, so they cannot hide
        the error that made the abort necessary.
        """
        request = AbortUploadRequest(
            object_key=session.object_key, upload_id=session.session_id
        )
        try:
            await self._call_backend(
                "DELETE",
                ABORT_UPLOAD_ROUTE,
                request,
                AbortError,
                max_attempts=self._config.backend_max_attempts,
            )
        except AbortError as e:
            logger.error(f"Failed to abort upload session {session.session_id}: {e}")
            return
        logger.info(f"Aborted upload session {session.session_id}")

"""Shared fixtures: an in-process multipart backend served over HTTP."""

from __future__ import annotations

import asyncio
import hashlib
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from archive_stager.config_manager.upload_config import UploaderConfig

API_PREFIX = "/api/multi-part-upload"


@dataclass
class FakeUploadSession:
    object_key: str
    content_type: str
    parts: dict[int, bytes] = field(default_factory=dict)
    completed: bool = False
    aborted: bool = False


class FakeMultipartBackend:
    """Mimics the begin/sign/complete/abort routes and a presigned PUT target.

    Failure knobs:
        begin_status: status returned by begin-upload.
        presign_status: status returned by get-presigned-urls.
        presign_failures: number of 503 answers before presigning succeeds.
        part_failures: part number -> failures still to serve (-1 = always).
        part_delays: part number -> seconds to wait before answering a PUT.
        complete_status / abort_status: status returned by those routes.
    """

    def __init__(self) -> None:
        self.base_url = ""
        self.sessions: dict[str, FakeUploadSession] = {}
        self.objects: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.put_attempts: dict[int, int] = defaultdict(int)
        self.presign_requests: list[dict[str, Any]] = []
        self.complete_requests: list[dict[str, Any]] = []
        self.abort_requests: list[dict[str, Any]] = []

        self.begin_status = 200
        self.presign_status = 200
        self.presign_failures = 0
        self.expires_in: int | None = None
        self.part_failures: dict[int, int] = {}
        self.part_delays: dict[int, float] = {}
        self.complete_status = 200
        self.abort_status = 200

    def build_app(self) -> web.Application:
        app = web.Application(client_max_size=64 * 1024 * 1024)
        app.router.add_post(f"{API_PREFIX}/begin-upload", self._begin_upload)
        app.router.add_post(f"{API_PREFIX}/get-presigned-urls", self._presigned_urls)
        app.router.add_post(f"{API_PREFIX}/complete-upload", self._complete_upload)
        app.router.add_delete(f"{API_PREFIX}/abort-upload", self._abort_upload)
        app.router.add_put("/storage/{upload_id}/{part_number}", self._put_part)
        return app

    async def _begin_upload(self, request: web.Request) -> web.Response:
        self.calls.append("begin")
        body = await request.json()
        if self.begin_status != 200:
            return web.json_response(
                {"error": "Could not create upload"}, status=self.begin_status
            )
        upload_id = f"upload-{len(self.sessions) + 1}"
        object_key = f"{body['fileName']}-{len(self.sessions) + 1}"
        self.sessions[upload_id] = FakeUploadSession(
            object_key=object_key, content_type=body["contentType"]
        )
        return web.json_response({"uploadId": upload_id, "objectKey": object_key})

    async def _presigned_urls(self, request: web.Request) -> web.Response:
        self.calls.append("presign")
        body = await request.json()
        self.presign_requests.append(body)
        if not body.get("objectKey") or not body.get("uploadId") or not body.get(
            "numParts"
        ):
            return web.json_response(
                {"error": "Didn't have objectKey, uploadId, or numParts"}, status=500
            )
        if self.presign_failures > 0:
            self.presign_failures -= 1
            return web.json_response({"error": "SlowDown"}, status=503)
        if self.presign_status != 200:
            return web.json_response(
                {"error": "Server error, couldn't get urls."},
                status=self.presign_status,
            )

        upload_id = body["uploadId"]
        numbers = body.get("partNumbers") or range(1, body["numParts"] + 1)
        payload: dict[str, Any] = {
            "uploadId": upload_id,
            "objectKey": body["objectKey"],
            "presignedUrls": [
                {
                    "partNumber": n,
                    "signedUrl": (
                        f"{self.base_url}/storage/{upload_id}/{n}"
                        f"?token={uuid.uuid4().hex}"
                    ),
                }
                for n in numbers
            ],
        }
        if self.expires_in is not None:
            payload["expiresIn"] = self.expires_in
        return web.json_response(payload)

    async def _put_part(self, request: web.Request) -> web.Response:
        upload_id = request.match_info["upload_id"]
        part_number = int(request.match_info["part_number"])
        self.calls.append(f"put:{part_number}")
        self.put_attempts[part_number] += 1
        data = await request.read()

        delay = self.part_delays.get(part_number)
        if delay:
            await asyncio.sleep(delay)

        remaining = self.part_failures.get(part_number, 0)
        if remaining != 0:
            if remaining > 0:
                self.part_failures[part_number] = remaining - 1
            return web.Response(status=500, text="InternalError")

        session = self.sessions.get(upload_id)
        if session is None or session.aborted:
            return web.Response(status=404, text="NoSuchUpload")
        session.parts[part_number] = data
        etag = f'"{hashlib.md5(data).hexdigest()}"'
        return web.Response(status=200, headers={"ETag": etag})

    async def _complete_upload(self, request: web.Request) -> web.Response:
        self.calls.append("complete")
        body = await request.json()
        self.complete_requests.append(body)
        if self.complete_status != 200:
            return web.json_response(
                {"error": "InternalError"}, status=self.complete_status
            )

        session = self.sessions[body["uploadId"]]
        parts = body["uploadedParts"]
        numbers = [part["PartNumber"] for part in parts]
        if numbers != list(range(1, len(session.parts) + 1)):
            return web.json_response({"error": "InvalidPartOrder"}, status=400)
        for part in parts:
            stored = session.parts[part["PartNumber"]]
            if part["ETag"] != f'"{hashlib.md5(stored).hexdigest()}"':
                return web.json_response({"error": "InvalidPart"}, status=400)

        session.completed = True
        self.objects[session.object_key] = b"".join(
            session.parts[n] for n in numbers
        )
        return web.json_response({"objectKey": session.object_key})

    async def _abort_upload(self, request: web.Request) -> web.Response:
        self.calls.append("abort")
        body = await request.json()
        self.abort_requests.append(body)
        if self.abort_status != 200:
            return web.json_response({"status": self.abort_status}, status=500)
        session = self.sessions.get(body["uploadId"])
        if session is not None:
            session.aborted = True
            session.parts.clear()
        return web.json_response({"success": "Multipart upload successfully aborted."})


@pytest_asyncio.fixture
async def backend():
    """Start a fake multipart backend on a local port."""
    fake = FakeMultipartBackend()
    server = TestServer(fake.build_app())
    await server.start_server()
    fake.base_url = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def client_session():
    """Create an aiohttp session for testing."""
    session = aiohttp.ClientSession()
    yield session
    await session.close()


@pytest.fixture
def make_config():
    """Build an UploaderConfig with fast retries for a running backend."""

    def _make(backend: FakeMultipartBackend | None = None, **overrides: Any):
        values: dict[str, Any] = {
            "retry_backoff_seconds": 0.0,
            "request_timeout_seconds": 5.0,
            "part_timeout_seconds": 5.0,
        }
        if backend is not None:
            values["api_url"] = f"{backend.base_url}/api"
        values.update(overrides)
        return UploaderConfig(**values)

    return _make

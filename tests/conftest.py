"""
Test fixtures for the canvas uploader, including an in-process fake Canvas.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from canvas_uploader.types import UploadContext

TOKEN = "test-token"
COURSE_ID = 10
ASSIGNMENT_ID = 25
ASSIGNMENT_PATH = f"/api/v1/courses/{COURSE_ID}/assignments/{ASSIGNMENT_ID}"


@dataclass
class StorageUpload:
    """What the fake storage backend received for one bucket."""
    fields: list[str]
    params: dict[str, str]
    filename: str
    content: bytes
    authorization: str | None


@dataclass
class FakeCanvas:
    """A minimal Canvas implementing the file upload and submission endpoints.

    Behaviour can be tuned per file name before serving.
    """
    file_ids: dict[str, int] = field(default_factory=dict)
    missing_location: set[str] = field(default_factory=set)
    storage_delays: dict[str, float] = field(default_factory=dict)
    storage_status: int | None = None
    storage_location: str | None = None
    bucket_override: Any = None
    bucket_status: int = 200
    confirm_override: Any = None
    submit_status: int = 201
    courses: list[dict] = field(default_factory=lambda: [{"id": COURSE_ID, "name": "Compilers"}])
    courses_per_page: int = 2

    bucket_requests: list[dict[str, str]] = field(default_factory=list)
    storage_uploads: list[StorageUpload] = field(default_factory=list)
    confirm_requests: list[dict[str, str | None]] = field(default_factory=list)
    submissions: list[dict[str, Any]] = field(default_factory=list)
    submission_raw_paths: list[str] = field(default_factory=list)
    course_pages_served: int = 0

    def __post_init__(self):
        self._buckets: dict[int, str] = {}
        self._next_id = 500

    def _authorized(self, request: web.Request) -> bool:
        return request.headers.get("Authorization") == f"Bearer {TOKEN}"

    async def handle_bucket(self, request: web.Request) -> web.StreamResponse:
        if not self._authorized(request):
            return web.json_response({"errors": "unauthorized"}, status=401)
        form = await request.post()
        self.bucket_requests.append({key: str(value) for key, value in form.items()})
        if self.bucket_status != 200:
            return web.json_response({"errors": "nope"}, status=self.bucket_status)
        if self.bucket_override is not None:
            return web.json_response(self.bucket_override)

        bucket_number = len(self._buckets) + 1
        self._buckets[bucket_number] = str(form["name"])
        return web.json_response({
            "upload_url": str(request.url.with_path("/storage").with_query(None)),
            "upload_params": {
                "key": f"uploads/{bucket_number}/{form['name']}",
                "bucket": bucket_number,
            },
            "file_param": "file",
        })

    async def handle_storage(self, request: web.Request) -> web.StreamResponse:
        form = await request.post()
        upload = form["file"]
        name = upload.filename
        await asyncio.sleep(self.storage_delays.get(name, 0))
        self.storage_uploads.append(StorageUpload(
            fields=list(form.keys()),
            params={key: value for key, value in form.items() if key != "file"},
            filename=name,
            content=upload.file.read(),
            authorization=request.headers.get("Authorization"),
        ))
        if self.storage_status is not None:
            return web.Response(status=self.storage_status, text="AccessDenied")
        if name in self.missing_location:
            return web.Response(status=201)
        if self.storage_location is not None:
            return web.Response(status=302, headers={"Location": self.storage_location})
        return web.Response(status=302, headers={"Location": f"/confirm/{form['bucket']}"})

    async def handle_confirm(self, request: web.Request) -> web.StreamResponse:
        if not self._authorized(request):
            return web.json_response({"errors": "unauthorized"}, status=401)
        bucket_number = int(request.match_info["bucket"])
        self.confirm_requests.append({
            "bucket": str(bucket_number),
            "content_length": request.headers.get("Content-Length"),
        })
        if self.confirm_override is not None:
            return web.json_response(self.confirm_override)
        name = self._buckets[bucket_number]
        file_id = self.file_ids.get(name)
        if file_id is None:
            file_id = self._next_id
            self._next_id += 1
        upload = next(u for u in self.storage_uploads if u.params.get("bucket") == str(bucket_number))
        return web.json_response({
            "id": file_id,
            "url": str(request.url.with_path(f"/files/{file_id}/download").with_query(None)),
            "display_name": name,
            "size": len(upload.content),
            "content_type": "text/plain",
        })

    async def handle_submit(self, request: web.Request) -> web.StreamResponse:
        if not self._authorized(request):
            return web.json_response({"errors": "unauthorized"}, status=401)
        self.submissions.append({
            "submission_type": request.query.get("submission[submission_type]"),
            "file_ids": request.query.getall("submission[file_ids][]", []),
        })
        self.submission_raw_paths.append(request.raw_path)
        if self.submit_status >= 400:
            return web.json_response({"errors": "locked"}, status=self.submit_status)
        return web.json_response(
            {"id": 7, "submission_type": "online_upload", "workflow_state": "submitted"},
            status=self.submit_status,
        )

    async def handle_courses(self, request: web.Request) -> web.StreamResponse:
        if not self._authorized(request):
            return web.json_response({"errors": "unauthorized"}, status=401)
        self.course_pages_served += 1
        page = int(request.query.get("page", "1"))
        start = (page - 1) * self.courses_per_page
        chunk = self.courses[start:start + self.courses_per_page]
        headers = {}
        if start + self.courses_per_page < len(self.courses):
            next_url = request.url.with_query({"page": str(page + 1), "per_page": str(self.courses_per_page)})
            headers["Link"] = f'<{next_url}>; rel="next"'
        return web.json_response(chunk, headers=headers)

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(f"{ASSIGNMENT_PATH}/submissions/self/files", self.handle_bucket)
        app.router.add_post("/storage", self.handle_storage)
        app.router.add_post("/confirm/{bucket}", self.handle_confirm)
        app.router.add_post(f"{ASSIGNMENT_PATH}/submissions", self.handle_submit)
        app.router.add_get("/api/v1/courses", self.handle_courses)
        return app

    @asynccontextmanager
    async def serve(self):
        """Start the fake Canvas and yield an (UploadContext, ClientSession) pair."""
        server = TestServer(self.make_app())
        await server.start_server()
        try:
            async with aiohttp.ClientSession() as session:
                ctx = UploadContext(
                    token=TOKEN,
                    base_url=str(server.make_url("/")),
                    course_id=COURSE_ID,
                    assignment_id=ASSIGNMENT_ID,
                )
                yield ctx, session
        finally:
            await server.close()

    @asynccontextmanager
    async def serve_url(self):
        """Start the fake Canvas and yield its root URL."""
        server = TestServer(self.make_app())
        await server.start_server()
        try:
            yield str(server.make_url("/")).rstrip("/")
        finally:
            await server.close()


@pytest.fixture
def fake_canvas():
    """Create a fake Canvas with ids 101/102 for a.txt/b.txt."""
    return FakeCanvas(file_ids={"a.txt": 101, "b.txt": 102})


@pytest.fixture
def ctx():
    """Create a test upload context."""
    return UploadContext(
        token=TOKEN,
        base_url="https://canvas.example.edu",
        course_id=COURSE_ID,
        assignment_id=ASSIGNMENT_ID,
    )


@pytest.fixture
def upload_dir(tmp_path):
    """Create a directory with a.txt (12 bytes) and b.txt (empty)."""
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir()
    (upload_dir / "a.txt").write_bytes(b"hello world\n")
    (upload_dir / "b.txt").write_bytes(b"")
    return upload_dir


@pytest.fixture
def two_files(upload_dir) -> list[Path]:
    """Return [a.txt, b.txt] in that order."""
    return [upload_dir / "a.txt", upload_dir / "b.txt"]

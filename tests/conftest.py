"""
Pytest configuration and fixtures for InviteFlow Backend tests.
"""

import base64
import json
import os
import shutil
import tempfile
from collections import Counter
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="inviteflow_test_uploads_")
os.environ["BASE_URL"] = "http://testserver"
os.environ["FOXIT_BASE_URL"] = "https://foxit.test"
os.environ["FOXIT_CLIENT_ID"] = "test-client-id"
os.environ["FOXIT_CLIENT_SECRET"] = "test-client-secret"

from inviteflow_backend import main
from inviteflow_backend.access_code import AccessCodeAttacher
from inviteflow_backend.archive import ArchiveStreamer
from inviteflow_backend.batch_manager import BatchManager
from inviteflow_backend.configuration import AccessCodeSettings, FoxitSettings, GenerationSettings, PollingSettings
from inviteflow_backend.foxit_client import FoxitClient
from inviteflow_backend.registry import InMemoryRegistry


class FakeFoxit:
    """
    In-process stand-in for the Foxit platform, served through httpx.MockTransport.

    Tasks report PENDING ``pending_polls`` times before COMPLETED. Any task
    whose kind is in ``fail_kinds`` reports FAILED instead.
    """

    def __init__(self) -> None:
        self.tags = "name, date,  venue"
        self.pending_polls = 1
        self.fail_kinds: set[str] = set()
        self.fail_generation_at: int | None = None
        self.async_generation = False
        self.missing_documents: set[str] = set()
        self.fail_paths: dict[str, tuple[int, str]] = {}
        self.raw_paths: dict[str, tuple[int, str]] = {}
        self.omit_result_ids = False
        self.requests: list[httpx.Request] = []
        self.uploads: list[str] = []
        self.generated_values: list[dict] = []
        self.combines: list[dict] = []
        self.tasks: dict[str, dict] = {}
        self.polls: Counter[str] = Counter()
        self._counter = 0

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def _task(self, kind: str, result: str) -> httpx.Response:
        task_id = self._next(f"task-{kind}")
        self.tasks[task_id] = {"kind": kind, "result": result, "pending": self.pending_polls}
        return httpx.Response(202, json={"taskId": task_id})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for suffix, (status_code, message) in self.fail_paths.items():
            if path.endswith(suffix):
                return httpx.Response(status_code, json={"message": message})
        for suffix, (status_code, text) in self.raw_paths.items():
            if path.endswith(suffix):
                return httpx.Response(status_code, text=text, headers={"content-type": "text/html"})

        if path == "/pdf-services/api/documents/upload":
            body = request.read()
            filename = "qr.png" if b'.png"' in body else "original.pdf"
            self.uploads.append(filename)
            return httpx.Response(200, json={"documentId": self._next("upload")})

        if path == "/document-generation/api/AnalyzeDocumentBase64":
            return httpx.Response(200, json={"singleTagsString": self.tags})

        if path == "/document-generation/api/GenerateDocumentBase64":
            payload = json.loads(request.content)
            self.generated_values.append(payload["documentValues"])
            if self.fail_generation_at == len(self.generated_values):
                return httpx.Response(422, json={"message": "Template rendering failed"})
            if self.async_generation:
                return self._task("generate", self._next("generated"))
            pdf = f"%PDF-generated-{len(self.generated_values)}".encode()
            return httpx.Response(200, json={"base64FileString": base64.b64encode(pdf).decode()})

        if path == "/pdf-services/api/documents/create/pdf-from-image":
            return self._task("image", self._next("qrpdf"))

        if path == "/pdf-services/api/documents/enhance/pdf-combine":
            payload = json.loads(request.content)
            self.combines.append(payload)
            kind = "merge" if payload["config"]["addToc"] else "attach"
            return self._task(kind, self._next(kind))

        if path.startswith("/pdf-services/api/tasks/"):
            task_id = path.rsplit("/", 1)[-1]
            task = self.tasks.get(task_id)
            if task is None:
                return httpx.Response(404, json={"message": "Task not found"})
            self.polls[task_id] += 1
            if task["kind"] in self.fail_kinds:
                return httpx.Response(200, json={"taskId": task_id, "status": "FAILED"})
            if task["pending"] > 0:
                task["pending"] -= 1
                return httpx.Response(200, json={"taskId": task_id, "status": "PENDING", "progress": 50})
            body = {"taskId": task_id, "status": "COMPLETED", "resultDocumentId": task["result"]}
            if self.omit_result_ids:
                del body["resultDocumentId"]
            return httpx.Response(200, json=body)

        if path.startswith("/pdf-services/api/documents/") and path.endswith("/download"):
            document_id = path.split("/")[-2]
            if document_id in self.missing_documents:
                return httpx.Response(404, json={"message": "Document not found"})
            return httpx.Response(200, content=f"PDF:{document_id}".encode(), headers={"content-type": "application/pdf"})

        return httpx.Response(404, json={"message": f"Unexpected path {path}"})


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup the upload directory after all tests."""
    upload_dir = os.environ["UPLOAD_DIR"]
    yield {"upload": upload_dir}
    shutil.rmtree(upload_dir, ignore_errors=True)


@pytest.fixture
def fake_foxit():
    return FakeFoxit()


@pytest.fixture
def foxit_client(fake_foxit):
    return FoxitClient(
        FoxitSettings(base_url="https://foxit.test", client_id="test-client-id", client_secret="test-client-secret"),
        PollingSettings(max_attempts=5, interval_s=0),
        transport=httpx.MockTransport(fake_foxit.handle),
    )


@pytest.fixture
def work_dir(tmp_path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def registry():
    return InMemoryRegistry()


@pytest.fixture
def attacher(foxit_client, work_dir):
    return AccessCodeAttacher(foxit_client, AccessCodeSettings(), work_dir)


@pytest.fixture
def batch_manager(foxit_client, attacher, registry):
    return BatchManager(
        client=foxit_client,
        attacher=attacher,
        registry=registry,
        settings=GenerationSettings(),
        public_base_url="http://testserver",
    )


@pytest.fixture
def archive_streamer(foxit_client, registry):
    return ArchiveStreamer(foxit_client, registry)


@pytest.fixture
def client(foxit_client, registry, batch_manager, archive_streamer):
    """Create a test client wired to the fake platform."""
    main.app.dependency_overrides[main.get_foxit_client] = lambda: foxit_client
    main.app.dependency_overrides[main.get_registry] = lambda: registry
    main.app.dependency_overrides[main.get_batch_manager] = lambda: batch_manager
    main.app.dependency_overrides[main.get_archive_streamer] = lambda: archive_streamer
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def sample_template():
    """Stand-in DOCX bytes; the fake platform never parses them."""
    return b"PK\x03\x04 fake docx template"


@pytest.fixture
def sample_csv():
    return b"name,date,venue\nAda,2026-11-01,Hall A\nGrace,2026-11-02,Hall B\nLinus,2026-11-03,Hall C\n"

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from starlette.background import BackgroundTask

from .access_code import AccessCodeAttacher
from .archive import ArchiveStreamer
from .batch_manager import BatchManager
from .configuration import Settings, configure_logging, load_settings
from .errors import InviteFlowError, ValidationError
from .foxit_client import FoxitClient
from .models import BatchDetail, BatchResult, HealthStatus, TemplateAnalysis
from .registry import InMemoryRegistry, Registry
from .utils import ensure_directory, parse_csv_rows, sanitize_filename

logger = logging.getLogger(__name__)

settings = load_settings()
configure_logging(settings.logging.level)

upload_root = ensure_directory(Path(settings.server.upload_dir))
registry = InMemoryRegistry(ttl_seconds=settings.registry.ttl_seconds)
foxit_client = FoxitClient(settings.foxit, settings.polling)
batch_manager = BatchManager(
    client=foxit_client,
    attacher=AccessCodeAttacher(foxit_client, settings.access_code, upload_root),
    registry=registry,
    settings=settings.generation,
    public_base_url=settings.server.base_url,
)
archive_streamer = ArchiveStreamer(foxit_client, registry)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logger.info(f"Server is running on port {settings.server.port}")
    logger.info(f"Health check: {settings.server.base_url}/health")
    yield
    await foxit_client.aclose()


app = FastAPI(title="InviteFlow API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(InviteFlowError)
async def handle_inviteflow_error(_: Request, exc: InviteFlowError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"Request failed: {exc!r}")
    return JSONResponse(status_code=exc.http_status, content={"error": exc.message})


@app.exception_handler(Exception)
async def handle_unexpected_error(_: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error: {exc!r}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def get_settings() -> Settings:
    return settings


def get_registry() -> Registry:
    return registry


def get_foxit_client() -> FoxitClient:
    return foxit_client


def get_batch_manager() -> BatchManager:
    return batch_manager


def get_archive_streamer() -> ArchiveStreamer:
    return archive_streamer


class PayloadTooLarge(ValidationError):
    def __init__(self, filename: str, limit: int) -> None:
        super().__init__(f"{filename} exceeds the {limit} byte upload limit", {"filename": filename, "limit": limit})

    @property
    def http_status(self) -> int:
        return 413


async def _read_upload(file: UploadFile, limit: int) -> bytes:
    data = await file.read(limit + 1)
    await file.close()
    if len(data) > limit:
        raise PayloadTooLarge(file.filename or "upload", limit)
    return data


@app.get("/health", response_model=HealthStatus)
def healthcheck(config: Settings = Depends(get_settings)) -> HealthStatus:
    return HealthStatus(
        status="OK",
        message="InviteFlow – Event Invitation Automation API is running",
        base_url=config.server.base_url,
    )


@app.post("/analyze-template", response_model=TemplateAnalysis, response_model_by_alias=True)
async def analyze_template(
    template: Optional[UploadFile] = File(None),
    manager: BatchManager = Depends(get_batch_manager),
    config: Settings = Depends(get_settings),
) -> TemplateAnalysis:
    if template is None:
        raise ValidationError("No template file uploaded")
    data = await _read_upload(template, config.server.max_upload_bytes)
    return await manager.analyze_template(data)


@app.post("/generate-documents", response_model=BatchResult, response_model_by_alias=True)
async def generate_documents(
    template: Optional[UploadFile] = File(None),
    csv_file: Optional[UploadFile] = File(None, alias="csvFile"),
    manager: BatchManager = Depends(get_batch_manager),
    config: Settings = Depends(get_settings),
) -> BatchResult:
    if template is None or csv_file is None:
        raise ValidationError("Both template and CSV files are required")

    limit = config.server.max_upload_bytes
    template_bytes = await _read_upload(template, limit)
    csv_bytes = await _read_upload(csv_file, limit)
    try:
        rows = parse_csv_rows(csv_bytes)
    except UnicodeDecodeError as exc:
        raise ValidationError("CSV file must be UTF-8 encoded") from exc

    return await manager.generate_batch(template_bytes, rows)


@app.get("/download/{document_id}")
async def download_document(
    document_id: str,
    filename: str = "document",
    client: FoxitClient = Depends(get_foxit_client),
) -> StreamingResponse:
    safe_name = sanitize_filename(filename)
    response = await client.download_stream(document_id, filename=safe_name)
    return StreamingResponse(
        response.aiter_bytes(),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{safe_name}.pdf"'},
        background=BackgroundTask(response.aclose),
    )


@app.get("/batches/{batch_id}", response_model=BatchDetail, response_model_by_alias=True)
async def get_batch(batch_id: str, manager: BatchManager = Depends(get_batch_manager)) -> BatchDetail:
    return manager.describe_batch(batch_id)


@app.get("/batches/{batch_id}/zip")
async def download_batch_zip(
    batch_id: str,
    streamer: ArchiveStreamer = Depends(get_archive_streamer),
) -> StreamingResponse:
    document_ids = streamer.documents_for_archive(batch_id)

    async def body() -> AsyncIterator[bytes]:
        try:
            async for chunk in streamer.stream(document_ids):
                yield chunk
        except Exception:
            # Headers are already sent; the client sees a truncated archive.
            logger.exception(f"Zip batch error for {batch_id}")
            raise

    return StreamingResponse(
        body(),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="batch_{batch_id}.zip"'},
    )


_VIEWER_HTML = """<!DOCTYPE html><html><head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1"><title>Invitation</title>
<style>html,body{{height:100%;margin:0}}iframe{{border:0;width:100%;height:100%}}</style></head>
<body>
  <iframe src="{file_url}" title="Invitation PDF"></iframe>
</body></html>"""


@app.get("/view/{token}", response_model=None)
async def view_invitation(
    token: str,
    registry: Registry = Depends(get_registry),
    config: Settings = Depends(get_settings),
) -> HTMLResponse | PlainTextResponse:
    record = registry.resolve_token(token)
    if record is None:
        return PlainTextResponse("Not found", status_code=404)
    file_url = f"{config.server.base_url}/view/{record.token}/file"
    return HTMLResponse(_VIEWER_HTML.format(file_url=file_url))


@app.get("/view/{token}/file", response_model=None)
async def view_invitation_file(
    token: str,
    registry: Registry = Depends(get_registry),
    client: FoxitClient = Depends(get_foxit_client),
) -> StreamingResponse | PlainTextResponse:
    record = registry.resolve_token(token)
    if record is None:
        return PlainTextResponse("Not found", status_code=404)
    try:
        response = await client.download_stream(record.document_id, filename="invitation")
    except InviteFlowError as exc:
        logger.error(f"Stream token file error: {exc!r}")
        return PlainTextResponse("Error", status_code=500)
    return StreamingResponse(
        response.aiter_bytes(),
        media_type="application/pdf",
        headers={"Content-Disposition": 'inline; filename="invitation.pdf"'},
        background=BackgroundTask(response.aclose),
    )


def mount_static(target: FastAPI, directory: Path) -> bool:
    """Serve ``directory`` at the site root when it exists. API routes registered earlier take precedence."""
    if not directory.is_dir():
        return False
    target.mount("/", StaticFiles(directory=directory, html=True), name="public")
    return True


mount_static(app, Path(settings.server.static_dir))

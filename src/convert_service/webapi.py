import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import quote

from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from convert_service.config import Settings
from convert_service.conversion import CancellationToken, ConversionService, JobTracker, UploadStore
from convert_service.conversion.adapters import CloudConvertGateway, InMemoryStore, LocalStorage
from convert_service.conversion.errors import FileNotFound, InvalidType, JobNotFound, TooLarge
from convert_service.conversion.interfaces import ProviderGateway
from convert_service.conversion.models import ConversionJob

logger = logging.getLogger(__name__)

SETTINGS = Settings.from_env()

SERVICE: ConversionService | None = None

DISCONNECT_CHECK_SEC = 0.5


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    global SERVICE
    if SERVICE is None:
        if not SETTINGS.api_key:
            logger.warning("CLOUDCONVERT_API_KEY is not set; conversions will fail")
        SERVICE = build_service(SETTINGS)
    service = SERVICE
    await service.start()
    try:
        yield
    finally:
        await service.stop()


app = FastAPI(
    lifespan=lifespan,
    title="File Conversion Service",
    version=os.getenv("CONVERT_SERVICE_VERSION", "0.1.0"),
    description=(
        "Upload a file, request a target format and poll until the hosted "
        "conversion provider returns a download link."
    ),
)


class ConvertRequest(BaseModel):
    fileId: str | None = None
    targetFormat: str | None = None
    options: dict[str, Any] | None = None


class BatchRequest(BaseModel):
    fileIds: list[str] | None = None
    conversionType: str | None = None


def build_service(settings: Settings, provider: ProviderGateway | None = None) -> ConversionService:
    """Wire stores and the provider gateway from settings.

    Without DATA_DIR everything lives in process memory.
    """
    if settings.data_dir:
        upload_kv = LocalStorage(settings.data_dir, "uploads")
        job_kv = LocalStorage(settings.data_dir, "jobs")
    else:
        upload_kv = job_kv = InMemoryStore()
    if provider is None:
        provider = CloudConvertGateway(
            settings.api_key,
            base_url=settings.provider_base_url,
            timeout=settings.provider_timeout_sec,
        )
    return ConversionService(
        UploadStore(upload_kv, ttl=settings.upload_ttl_sec),
        JobTracker(job_kv, ttl=settings.job_ttl_sec),
        provider,
        allowed_mime=settings.allowed_mime,
        max_upload_bytes=settings.max_upload_bytes,
        poll_interval=settings.poll_interval,
        batch_poll_interval=settings.batch_poll_interval,
        max_poll_attempts=settings.max_poll_attempts,
        sweep_interval=settings.sweep_interval_sec,
        public_base_url=settings.public_base_url,
    )


def _service() -> ConversionService:
    if SERVICE is None:
        raise HTTPException(status_code=503, detail={"code": "not_ready", "message": "service not started"})
    return SERVICE


async def watch_disconnect(request: Request, token: CancellationToken, interval: float = DISCONNECT_CHECK_SEC) -> None:
    """Cancel ``token`` once the client behind ``request`` goes away."""
    while not token.cancelled:
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling batch")
            token.cancel()
            return
        await token.sleep(interval)


def _status_body(job: ConversionJob) -> dict[str, object]:
    body: dict[str, object] = {"jobId": job.job_id, "status": job.status}
    if job.result_url:
        body["resultUrl"] = job.result_url
        body["filename"] = job.result_filename
    if job.error_message:
        body["error"] = job.error_message
    return body


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload(file: UploadFile | None = File(None)) -> JSONResponse:
    """Store an uploaded file after checking its type and size.

    Accepts multipart/form-data with a single part named "file".
    """
    if file is None:
        raise HTTPException(status_code=400, detail={"code": "bad_request", "message": "no file provided"})
    service = _service()

    async def read_chunk(n: int) -> bytes:
        return await file.read(n)

    try:
        stored = await service.receive_upload(
            filename=file.filename or "upload",
            content_type=file.content_type or "application/octet-stream",
            reader=read_chunk,
            declared_size=getattr(file, "size", None),
        )
    except InvalidType as e:
        raise HTTPException(status_code=415, detail={"code": e.code, "message": e.message})
    except TooLarge as e:
        raise HTTPException(status_code=413, detail={"code": e.code, "message": e.message})

    body = {
        "id": stored.id,
        "name": stored.name,
        "size": stored.size_bytes,
        "type": stored.mime_type,
        "url": f"/files/{stored.id}",
    }
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=body)


@app.get("/files/{file_id}")
async def get_file(file_id: str) -> Response:
    try:
        stored = _service().uploads.get(file_id)
    except FileNotFound as e:
        raise HTTPException(status_code=404, detail={"code": e.code, "message": e.message})
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(stored.name)}"}
    return Response(content=stored.content, media_type=stored.mime_type, headers=headers)


@app.post("/convert", status_code=status.HTTP_202_ACCEPTED)
async def create_conversion(req: ConvertRequest) -> JSONResponse:
    """Start converting a stored file; poll GET /convert?jobId=... for the outcome."""
    if not req.fileId or not req.targetFormat:
        raise HTTPException(status_code=400, detail={"code": "bad_request", "message": "fileId and targetFormat are required"})
    try:
        job = await _service().create_job(req.fileId, req.targetFormat, req.options)
    except FileNotFound as e:
        raise HTTPException(status_code=404, detail={"code": e.code, "message": e.message})
    headers = {"Location": f"/convert?jobId={job.job_id}"}
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"jobId": job.job_id, "data": job.to_dict()},
        headers=headers,
    )


@app.get("/convert")
async def conversion_status(jobId: str | None = Query(None)) -> JSONResponse:
    # A failed job is still a well-formed answer: 200 with status "error".
    if not jobId:
        raise HTTPException(status_code=400, detail={"code": "bad_request", "message": "missing jobId parameter"})
    try:
        job = await _service().poll_status(jobId)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail={"code": e.code, "message": e.message})
    return JSONResponse(content=_status_body(job))


@app.post("/convert/batch")
async def convert_batch(req: BatchRequest, request: Request) -> JSONResponse:
    """Convert several stored files one after another and report each outcome.

    Files not yet started when the client disconnects are reported as cancelled.
    """
    if not req.fileIds or not req.conversionType:
        raise HTTPException(status_code=400, detail={"code": "bad_request", "message": "fileIds and conversionType are required"})
    service = _service()
    token = CancellationToken()
    watcher = asyncio.create_task(watch_disconnect(request, token))
    try:
        results = await service.convert_batch(req.fileIds, req.conversionType, cancel=token)
    finally:
        watcher.cancel()
    return JSONResponse(content={"results": [r.to_dict() for r in results]})


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    logging.basicConfig(
        level=SETTINGS.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    reload = os.getenv("RELOAD", "false").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("convert_service.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()

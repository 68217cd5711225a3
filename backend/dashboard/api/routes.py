import logging
from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from dashboard.core.capabilities import Capabilities, get_capabilities
from dashboard.core.config import get_settings
from dashboard.core.errors import DashboardError, ErrorCodes, LoadError, get_error_response
from dashboard.core.sanitization import sanitize_filename, sanitize_for_logging
from dashboard.core.schemas import (
    ChartType,
    ColumnSummary,
    DatasetMetadata,
    DatasetSchema,
    DataSource,
    LoadRequest,
    LoadResult,
    PreviewPage,
    Selection,
    SelectionUpdate,
)
from dashboard.core.sessions import get_session_store
from dashboard.services.session import DashboardSession

logger = logging.getLogger(__name__)

# Get centralized configuration
settings = get_settings()

router = APIRouter()

UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1MB


def _correlation_id(request: Request) -> str:
    return getattr(request.state, 'correlation_id', 'unknown')


def _to_http(error: DashboardError, request: Request) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_response(_correlation_id(request)))


def _get_session(session_id: str, request: Request) -> DashboardSession:
    try:
        return get_session_store().get(session_id)
    except DashboardError as e:
        raise _to_http(e, request)


_rate_limit_gates = {}


async def _check_rate_limit(request: Request, name: str) -> None:
    """
    Apply the per-IP load limit configured on the app.

    Raises RateLimitExceeded (answered with 429 by the app's handler).
    """
    gate = _rate_limit_gates.get(name)
    if gate is None:
        async def gate(request: Request):
            return None
        gate.__name__ = f"{name}_rate_limit"
        limiter = request.app.state.limiter
        app_settings = request.app.state.settings
        gate = limiter.limit(f"{app_settings.rate_limit_per_minute}/minute")(gate)
        _rate_limit_gates[name] = gate
    await gate(request)


def _load_result(session: DashboardSession, schema: DatasetSchema) -> LoadResult:
    selection = session.selection
    return LoadResult(
        session_id=session.session_id,
        source=selection.data_source,
        row_count=schema.row_count,
        col_count=len(schema.all_columns),
        dataset_schema=schema,
        selection=selection,
    )


async def _read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload in chunks, stopping as soon as it exceeds ``max_bytes``."""
    chunks = []
    size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise LoadError(
                LoadError.PARSE,
                f"Maximum size is {max_bytes / 1024 / 1024:.0f}MB.",
                ErrorCodes.FILE_TOO_LARGE
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.get("/health")
async def health_check():
    return {"status": "ok"}


@router.get("/capabilities", response_model=Capabilities)
async def capabilities():
    return get_capabilities()


@router.post("/sessions", status_code=201)
async def create_session():
    session = get_session_store().create(lambda session_id: DashboardSession(session_id))
    return {"session_id": session.session_id, "selection": session.selection}


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, request: Request):
    if not get_session_store().delete(session_id):
        raise HTTPException(
            status_code=404,
            detail=get_error_response(ErrorCodes.SESSION_NOT_FOUND) | {"correlation_id": _correlation_id(request)}
        )


@router.post("/sessions/{session_id}/load", response_model=LoadResult)
async def load_data(session_id: str, payload: LoadRequest, request: Request):
    """
    Load data from a URL or the built-in sample.

    Rate limited per client IP (RATE_LIMIT_PER_MINUTE).
    """
    session = _get_session(session_id, request)
    if payload.source == DataSource.UPLOAD:
        raise HTTPException(
            status_code=400,
            detail=get_error_response(
                ErrorCodes.MISSING_FIELD, "Uploads go to the /upload endpoint as multipart form data."
            ) | {"kind": "missing_required_field"}
        )

    await _check_rate_limit(request, "load")
    try:
        schema = await run_in_threadpool(session.load, payload.source, payload.url)
    except DashboardError as e:
        logger.info(f"Load failed for session {session_id[:8]}: {sanitize_for_logging(e.message)}")
        raise _to_http(e, request)
    except Exception as e:
        logger.error(f"Unexpected error loading data: {e}", exc_info=True)
        error_info = get_error_response(ErrorCodes.UNKNOWN_ERROR)
        error_info['correlation_id'] = _correlation_id(request)
        raise HTTPException(status_code=500, detail=error_info)

    return _load_result(session, schema)


@router.post("/sessions/{session_id}/upload", response_model=LoadResult)
async def upload_data(session_id: str, request: Request, file: UploadFile = File(...)):
    """Load an uploaded CSV file. Rate limited like /load."""
    session = _get_session(session_id, request)
    safe_filename = sanitize_filename(file.filename) if file.filename else None

    await _check_rate_limit(request, "upload")
    try:
        contents = await _read_upload(file, settings.max_file_size_bytes)
        logger.info(f"Received upload {sanitize_for_logging(safe_filename or 'unknown')}, size: {len(contents) / 1024:.2f}KB")
        schema = await run_in_threadpool(session.load, DataSource.UPLOAD, contents, safe_filename)
    except DashboardError as e:
        logger.info(f"Upload failed for session {session_id[:8]}: {sanitize_for_logging(e.message)}")
        raise _to_http(e, request)
    except Exception as e:
        logger.error(f"Unexpected error processing upload: {e}", exc_info=True)
        error_info = get_error_response(ErrorCodes.UNKNOWN_ERROR)
        error_info['correlation_id'] = _correlation_id(request)
        raise HTTPException(status_code=500, detail=error_info)

    return _load_result(session, schema)


@router.get("/sessions/{session_id}/schema", response_model=DatasetSchema)
async def get_schema(session_id: str, request: Request):
    session = _get_session(session_id, request)
    try:
        return session.snapshot().schema
    except DashboardError as e:
        raise _to_http(e, request)


@router.get("/sessions/{session_id}/preview", response_model=PreviewPage)
async def preview(
    session_id: str,
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1),
):
    session = _get_session(session_id, request)
    try:
        return await run_in_threadpool(session.preview, page, page_size)
    except DashboardError as e:
        raise _to_http(e, request)


@router.get("/sessions/{session_id}/summary", response_model=List[ColumnSummary])
async def summary(session_id: str, request: Request):
    session = _get_session(session_id, request)
    try:
        return await run_in_threadpool(session.summary)
    except DashboardError as e:
        raise _to_http(e, request)


@router.get("/sessions/{session_id}/metadata", response_model=DatasetMetadata)
async def metadata(session_id: str, request: Request):
    session = _get_session(session_id, request)
    try:
        return await run_in_threadpool(session.metadata)
    except DashboardError as e:
        raise _to_http(e, request)


@router.get("/sessions/{session_id}/metadata/report", response_class=PlainTextResponse)
async def metadata_report(session_id: str, request: Request):
    session = _get_session(session_id, request)
    try:
        return await run_in_threadpool(session.metadata_report)
    except DashboardError as e:
        raise _to_http(e, request)


@router.get("/sessions/{session_id}/selection", response_model=Selection)
async def get_selection(session_id: str, request: Request):
    return _get_session(session_id, request).selection


@router.patch("/sessions/{session_id}/selection", response_model=Selection)
async def update_selection(session_id: str, update: SelectionUpdate, request: Request):
    session = _get_session(session_id, request)
    return session.update_selection(update)


@router.get("/sessions/{session_id}/chart")
async def get_chart(session_id: str, request: Request, chart_type: Optional[str] = None):
    """
    Render the chart for the session's current selection.

    ``chart_type`` renders another chart type for this request only; the stored
    selection changes only through PATCH. Chart problems come back with status
    200 as an ErrorChart; only a missing session or dataset is an HTTP error.
    """
    session = _get_session(session_id, request)
    requested_type = None
    if chart_type is not None:
        try:
            requested_type = ChartType(chart_type)
        except ValueError:
            raise HTTPException(
                status_code=422,
                detail=get_error_response(ErrorCodes.UNSUPPORTED_TYPE, f"Unknown chart type '{chart_type}'.")
            )
    try:
        return await run_in_threadpool(session.render, requested_type)
    except DashboardError as e:
        raise _to_http(e, request)

"""
Data Operations API - FastAPI Backend

HTTP front end for the data operations engine. It plays the role of the
engine's caller: it loads datasets, issues commands by operation name and
returns whatever state the engine reports back.

ARCHITECTURE OVERVIEW:
─────────────────────
1. Client uploads a CSV/JSON file (or posts rows) → new session with its
   own DataOperationsEngine
2. Client applies operations by name → dispatch table → engine
3. Client undoes / redoes / resets → engine replays its history
4. Client asks for issues, a scan report or suggestions → read-only
5. Client exports the current data as CSV or JSON

SESSION STORAGE:
────────────────
Sessions live in a SessionStore held on app.state and injected into the
routes with Depends. Nothing is persisted; a restart drops every session.

ERRORS:
───────
400  unknown operation, unreadable upload, bad export format
404  unknown session or suggestion
413  upload too large
422  operation parameters rejected by the handler
"""

import re
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from dataops.config import Settings, get_settings
from dataops.logger import get_logger, setup_logging
from dataops.models.schemas import (
    ApplySuggestionResponse,
    CreateSessionRequest,
    DataIssueReport,
    HistoryResponse,
    OperationRequest,
    ScanReport,
    SessionResponse,
    SuggestionsResponse,
    SuggestionStatus,
)
from dataops.services.file_io import DataImportError, parse_file, rows_to_csv, rows_to_json
from dataops.services.operations import (
    UnknownOperationError,
    apply_named_operation,
    list_operations,
)
from dataops.services.scanner import scan_dataset
from dataops.services.sessions import (
    Session,
    SessionNotFoundError,
    SessionStore,
    SuggestionNotFoundError,
    SuggestionNotPendingError,
)
from dataops.services.suggestion_engine import generate_suggestions_async

logger = get_logger(__name__)

router = APIRouter()

# Errors a handler raises for bad parameters; anything else is a server error
PARAMETER_ERRORS = (ValueError, TypeError, KeyError, re.error)

UPLOAD_CHUNK_SIZE = 1024 * 1024


# ============================================
# Dependencies & Helpers
# ============================================

def get_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session(session_id: str, store: SessionStore = Depends(get_store)) -> Session:
    """Resolve a session id, raising 404 if it does not exist."""
    try:
        return store.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")


async def read_upload(file: UploadFile, max_bytes: int) -> Optional[bytes]:
    """Read an upload chunk by chunk; None as soon as it grows past ``max_bytes``."""
    contents = bytearray()
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            return bytes(contents)
        contents.extend(chunk)
        if len(contents) > max_bytes:
            return None


def build_session_response(session: Session, limit: Optional[int] = None) -> SessionResponse:
    engine = session.engine
    state = engine.get_state()
    rows = state.data if limit is None else state.data[:limit]
    return SessionResponse(
        session_id=session.id,
        row_count=len(state.data),
        columns=state.columns,
        column_types=state.column_types,
        data=rows,
        operation_history=state.operation_history,
        current_operation_index=state.current_operation_index,
        can_undo=engine.can_undo,
        can_redo=engine.can_redo,
        quality=engine.quality,
    )


# ============================================
# Core API Routes
# ============================================

@router.get("/")
async def root():
    """Health check endpoint. Returns 200 if the server is running."""
    return {"status": "ok", "message": "Data Operations API is running"}


@router.get("/operations")
def get_operations():
    """List every operation name the dispatch table accepts."""
    return {"operations": list_operations()}


@router.post("/sessions/upload", response_model=SessionResponse)
async def upload_file(
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """
    Upload a CSV or JSON file and open a session for it.

    Raises:
        400: unsupported format, malformed or empty file
        413: file larger than MAX_UPLOAD_MB
    """
    contents = await read_upload(file, settings.api.max_upload_bytes)
    if contents is None:
        raise HTTPException(status_code=413, detail=f"File exceeds {settings.api.max_upload_mb} MB")

    try:
        rows = await run_in_threadpool(parse_file, file.filename, contents)
    except DataImportError as e:
        logger.warning("Rejected upload %s: %s", file.filename, e)
        raise HTTPException(status_code=400, detail=str(e))

    session = store.create(rows, filename=file.filename)
    logger.info("Opened session %s from %s (%d rows)", session.id, file.filename, len(rows))
    return build_session_response(session, settings.api.preview_rows)


@router.post("/sessions", response_model=SessionResponse)
def create_session(
    request: CreateSessionRequest,
    store: SessionStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """Open a session from rows posted as JSON."""
    if not request.rows:
        raise HTTPException(status_code=400, detail="Dataset contains no rows")
    session = store.create(request.rows)
    logger.info("Opened session %s from request body (%d rows)", session.id, len(request.rows))
    return build_session_response(session, settings.api.preview_rows)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session_state(
    limit: Optional[int] = Query(None, ge=0, description="Maximum rows to return"),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Current engine state. Rows default to the configured preview size."""
    return build_session_response(session, settings.api.preview_rows if limit is None else limit)


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str, store: SessionStore = Depends(get_store)):
    try:
        store.delete(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"message": "Session deleted", "session_id": session_id}


# ============================================
# Operations & History
# ============================================

@router.post("/sessions/{session_id}/operations", response_model=SessionResponse)
def apply_operation(
    request: OperationRequest,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """
    Apply a named operation to the session's data.

    The engine only commits when the operation succeeds; on any error the
    session is left exactly as it was.
    """
    try:
        apply_named_operation(session.engine, request.name, request.params)
    except UnknownOperationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PARAMETER_ERRORS as e:
        raise HTTPException(status_code=422, detail=f"Invalid parameters for {request.name}: {e}")
    return build_session_response(session, settings.api.preview_rows)


@router.post("/sessions/{session_id}/undo", response_model=HistoryResponse)
def undo(session: Session = Depends(get_session), settings: Settings = Depends(get_app_settings)):
    changed = session.engine.undo()
    return HistoryResponse(changed=changed, session=build_session_response(session, settings.api.preview_rows))


@router.post("/sessions/{session_id}/redo", response_model=HistoryResponse)
def redo(session: Session = Depends(get_session), settings: Settings = Depends(get_app_settings)):
    changed = session.engine.redo()
    return HistoryResponse(changed=changed, session=build_session_response(session, settings.api.preview_rows))


@router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
def reset(session: Session = Depends(get_session), settings: Settings = Depends(get_app_settings)):
    session.engine.reset()
    return build_session_response(session, settings.api.preview_rows)


# ============================================
# Read-only Analysis
# ============================================

@router.get("/sessions/{session_id}/issues", response_model=DataIssueReport)
def get_issues(session: Session = Depends(get_session)):
    return session.engine.detect_issues()


@router.get("/sessions/{session_id}/scan", response_model=ScanReport)
def scan(session: Session = Depends(get_session)):
    """Full scan report: issues with severity, column statistics and a summary."""
    return scan_dataset(session.engine.data)


# ============================================
# Suggestions
# ============================================

@router.post("/sessions/{session_id}/suggestions", response_model=SuggestionsResponse)
async def create_suggestions(session: Session = Depends(get_session)):
    """Generate a fresh batch of suggestions for the current data."""
    suggestions = await generate_suggestions_async(session.engine.data)
    session.store_suggestions(suggestions)
    return SuggestionsResponse(session_id=session.id, suggestions=suggestions)


@router.get("/sessions/{session_id}/suggestions", response_model=SuggestionsResponse)
def get_suggestions(
    status: Optional[SuggestionStatus] = Query(None),
    session: Session = Depends(get_session),
):
    return SuggestionsResponse(session_id=session.id, suggestions=session.list_suggestions(status))


@router.post("/sessions/{session_id}/suggestions/{suggestion_id}/apply", response_model=ApplySuggestionResponse)
def apply_suggestion_route(
    suggestion_id: str,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Apply a pending suggestion through the dispatch table."""
    try:
        applied = session.apply_suggestion(suggestion_id)
    except SuggestionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Suggestion not found: {suggestion_id}")
    except SuggestionNotPendingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownOperationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PARAMETER_ERRORS as e:
        raise HTTPException(status_code=422, detail=f"Could not apply suggestion: {e}")

    return ApplySuggestionResponse(suggestion=applied, session=build_session_response(session, settings.api.preview_rows))


@router.post("/sessions/{session_id}/suggestions/{suggestion_id}/dismiss")
def dismiss_suggestion_route(suggestion_id: str, session: Session = Depends(get_session)):
    try:
        return session.dismiss_suggestion(suggestion_id)
    except SuggestionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Suggestion not found: {suggestion_id}")
    except SuggestionNotPendingError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ============================================
# Export
# ============================================

@router.get("/sessions/{session_id}/export")
def export_data(
    format: str = Query("csv", description="csv or json"),
    session: Session = Depends(get_session),
):
    """Download the current data as CSV or pretty-printed JSON."""
    rows = session.engine.data
    stem = (session.filename or "data").rsplit(".", 1)[0]

    if format == "csv":
        content, media_type = rows_to_csv(rows), "text/csv"
    elif format == "json":
        content, media_type = rows_to_json(rows), "application/json"
    else:
        raise HTTPException(status_code=400, detail="Export format must be 'csv' or 'json'")

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{stem}_cleaned.{format}"'},
    )


# ============================================
# Application Factory
# ============================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI app with its own session store."""
    settings = settings or get_settings()
    setup_logging(settings.logging.level)

    app = FastAPI(
        title="Data Operations API",
        description="Undo/redo-capable cleaning and transformation of tabular data",
        version="0.1.0",
        debug=settings.api.debug,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    app.state.settings = settings
    app.state.sessions = SessionStore(
        max_history_length=settings.engine.max_history_length,
        type_sample_size=settings.engine.type_sample_size,
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

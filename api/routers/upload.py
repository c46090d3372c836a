"""Inventory report upload endpoint."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from models.inventory_rows import ExtractionConstraints
from services.extraction_errors import ExtractionError, InputError
from services.extraction_orchestrator import ExtractionOrchestrator
from services.row_store import RowStore
from services.upload_audit_service import UploadAuditService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Upload"])

SESSION_COOKIE = "mpl_session"
BASE_HEADERS = {"cache-control": "no-store"}


def get_orchestrator(request: Request) -> ExtractionOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if not orchestrator:
        raise HTTPException(status_code=503, detail="Extraction service is not available.")
    return orchestrator


def get_row_store(request: Request) -> RowStore:
    store = getattr(request.app.state, "row_store", None)
    if store is None:
        store = RowStore()
        request.app.state.row_store = store
    return store


def get_audit_service(request: Request) -> Optional[UploadAuditService]:
    return getattr(request.app.state, "audit_service", None)


def get_settings(request: Request):
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        from config.settings import settings as default_settings

        settings = default_settings
    return settings


def session_id_for(request: Request) -> Optional[str]:
    value = request.cookies.get(SESSION_COOKIE)
    return value.strip() if value and value.strip() else None


def client_ip_for(request: Request) -> Optional[str]:
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    return (
        request.headers.get("cf-connecting-ip")
        or forwarded
        or (request.client.host if request.client else None)
    )


def _parse_limit_pages(raw: Optional[str], default: int) -> int:
    if raw is None or not str(raw).strip():
        return max(0, int(default or 0))
    try:
        value = int(str(raw).strip())
    except ValueError as exc:
        raise InputError(f"limit_pages must be a whole number, got {raw!r}") from exc
    return max(0, value)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _error_response(exc: ExtractionError, background: Optional[BackgroundTasks] = None) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc)},
        headers=BASE_HEADERS,
        background=background,
    )


@router.post("/upload")
async def upload_report(
    request: Request,
    file: Optional[UploadFile] = File(None),
    limit_pages: Optional[str] = Form(None),
    store_number: Optional[str] = Form(None),
    store_name: Optional[str] = Form(None),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
    row_store: RowStore = Depends(get_row_store),
    audit_service: Optional[UploadAuditService] = Depends(get_audit_service),
    settings=Depends(get_settings),
):
    """Extract rows with SOH <= MPL from an uploaded inventory report."""

    if file is None:
        return _error_response(InputError('No file provided (expected form field "file")'))

    filename = Path(file.filename or "report.pdf").name
    background = BackgroundTasks()
    meta: Dict[str, Any] = {"provider": getattr(orchestrator.provider, "name", None)}
    rows_returned: Optional[int] = None
    pages: Optional[int] = None

    def _audit() -> None:
        if audit_service is None:
            return
        background.add_task(
            audit_service.log_upload,
            filename=filename,
            meta=meta,
            rows_returned=rows_returned,
            limit_pages=pages,
            client_ip=client_ip_for(request),
            store_number=_clean(store_number),
            store_name=_clean(store_name),
        )

    try:
        pages = _parse_limit_pages(limit_pages, getattr(settings, "default_limit_pages", 0))
        try:
            data = await file.read()
        except Exception as exc:
            raise InputError(f"Unable to read uploaded file: {exc}") from exc

        constraints = ExtractionConstraints(
            max_bytes=int(settings.max_upload_bytes),
            limit_pages=pages,
            timeout_seconds=float(settings.extraction_timeout_seconds),
            filename=filename,
            content_type=file.content_type or "application/pdf",
        )
        outcome = await run_in_threadpool(orchestrator.run, data, constraints)
    except ExtractionError as exc:
        logger.warning("Upload of %s failed with %s: %s", filename, exc.status_code, exc)
        _audit()
        return _error_response(exc, background)
    except Exception as exc:
        logger.exception("Unexpected failure while processing %s", filename)
        _audit()
        return JSONResponse(
            status_code=500,
            content={"error": str(exc) or exc.__class__.__name__},
            headers=BASE_HEADERS,
            background=background,
        )

    meta.update(outcome.meta)
    rows_returned = len(outcome.rows)

    session_id = session_id_for(request) or uuid.uuid4().hex
    row_store.put(session_id, outcome.rows)
    _audit()

    response = JSONResponse(
        content={"rows": [row.to_dict() for row in outcome.rows]},
        headers={**BASE_HEADERS, "x-extraction-provider": str(meta.get("provider") or "")},
        background=background,
    )
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return response


@router.get("/upload/stats")
def upload_stats(audit_service: Optional[UploadAuditService] = Depends(get_audit_service)):
    if audit_service is None:
        return {"ok": False, "totals": {"uploads": 0, "rows_returned": 0}}
    return {"ok": True, "totals": audit_service.summary()}


@router.get("/rows")
def stored_rows(request: Request, row_store: RowStore = Depends(get_row_store)):
    """Rows from the caller's latest upload; empty when there is none yet."""

    rows = row_store.get(session_id_for(request))
    return JSONResponse(
        content={"rows": [row.to_dict() for row in rows]},
        headers=BASE_HEADERS,
    )


__all__ = ["router"]

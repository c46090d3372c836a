from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, Response

from api.routers.upload import get_row_store, get_settings, session_id_for
from services.label_layout import clamp_columns
from services.label_sheet import render_labels_html, render_labels_pdf
from services.row_store import RowStore

router = APIRouter(tags=["Labels"])


@router.get("/labels", response_class=HTMLResponse, summary="Printable barcode label sheet")
def labels_page(
    request: Request,
    columns: Optional[int] = Query(None),
    page_width: Optional[float] = Query(None, gt=0),
    row_store: RowStore = Depends(get_row_store),
    settings=Depends(get_settings),
):
    rows = row_store.get(session_id_for(request))
    html = render_labels_html(
        rows,
        columns=clamp_columns(columns if columns is not None else settings.label_default_columns),
        page_width=page_width or settings.label_page_width,
        settings=settings,
    )
    return HTMLResponse(content=html, headers={"cache-control": "no-store"})


@router.get("/labels.pdf", summary="Barcode label sheet as PDF")
def labels_pdf(
    request: Request,
    columns: Optional[int] = Query(None),
    row_store: RowStore = Depends(get_row_store),
    settings=Depends(get_settings),
):
    rows = row_store.get(session_id_for(request))
    pdf = render_labels_pdf(
        rows,
        columns=clamp_columns(columns if columns is not None else settings.label_default_columns),
        settings=settings,
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"content-disposition": 'inline; filename="mpl-labels.pdf"', "cache-control": "no-store"},
    )

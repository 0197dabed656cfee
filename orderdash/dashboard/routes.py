"""Dashboard API routes: JSON views over the record store."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from orderdash.dashboard import views
from orderdash.errors import StoreError
from orderdash.models import Order
from orderdash.store.base import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["dashboard"])

_STORE_UNAVAILABLE = "Record store unavailable"


async def _load_orders(request: Request) -> list[Order]:
    store: RecordStore = request.app.state.store
    try:
        return await run_in_threadpool(store.list_orders)
    except StoreError as e:
        logger.exception("Failed to list orders for dashboard")
        raise HTTPException(status_code=503, detail=_STORE_UNAVAILABLE) from e


@router.get("")
async def list_orders(
    request: Request,
    sort: str = Query("date"),
    desc: bool = Query(True),
    status: str | None = Query(None),
    q: str | None = Query(None),
):
    """Orders table: sorted, filtered, searchable."""
    if sort not in views.TABLE_COLUMNS:
        return JSONResponse({"error": f"Cannot sort by {sort}"}, status_code=400)
    orders = await _load_orders(request)
    rows = views.table_rows(orders, sort=sort, descending=desc, status=status, query=q)
    return {"orders": [o.to_dict() for o in rows], "count": len(rows)}


@router.get("/export.csv")
async def export_orders(
    request: Request,
    sort: str = Query("date"),
    desc: bool = Query(True),
    status: str | None = Query(None),
    q: str | None = Query(None),
):
    """The orders table as a CSV download."""
    if sort not in views.TABLE_COLUMNS:
        return JSONResponse({"error": f"Cannot sort by {sort}"}, status_code=400)
    orders = await _load_orders(request)
    rows = views.table_rows(orders, sort=sort, descending=desc, status=status, query=q)
    return Response(
        views.export_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{views.export_filename()}"'},
    )


@router.get("/feed")
async def live_feed(
    request: Request,
    limit: int = Query(views.FEED_DEFAULT_LIMIT, ge=1, le=views.FEED_MAX_LIMIT),
):
    """Live order feed: newest first."""
    orders = await _load_orders(request)
    return {"orders": views.live_feed(orders, limit=limit), "total": len(orders)}


@router.get("/sales")
async def sales(request: Request, view: Literal["hourly", "daily"] = Query("hourly")):
    """Sales chart series plus summary totals."""
    orders = await _load_orders(request)
    points = views.sales_series(orders, view=view)
    return {
        "view": view,
        "points": [p.to_dict() for p in points],
        **views.sales_summary(points),
    }

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import sessionmaker

from app.db.session import get_session_factory

from services.manufacturing.logs import LogFilters
from services.manufacturing.schemas import ManufactureIn, availability_out, log_out
from services.manufacturing.service import ManufacturingService

router = APIRouter(prefix="/manufacturing", tags=["manufacturing"])


def get_manufacturing_service(session_factory: sessionmaker = Depends(get_session_factory)) -> ManufacturingService:
    return ManufacturingService(session_factory)


@router.post("", status_code=201)
def manufacture(payload: ManufactureIn, svc: ManufacturingService = Depends(get_manufacturing_service)):
    entry = svc.manufacture(
        payload.product_id,
        payload.quantity_produced,
        width=payload.width,
        height=payload.height,
        manufactured_by=payload.manufactured_by,
        notes=payload.notes,
    )
    return {"success": True, "data": log_out(entry), "message": "Manufacturing completed successfully"}


@router.get("/check")
def check_availability(
    product_id: str,
    quantity: int = Query(1, ge=1),
    width: Decimal | None = Query(None, ge=0),
    height: Decimal | None = Query(None, ge=0),
    svc: ManufacturingService = Depends(get_manufacturing_service),
):
    report = svc.check_availability(product_id, quantity, width=width, height=height)
    return {"success": True, "data": availability_out(report)}


@router.get("/logs")
def list_logs(
    product_id: str | None = None,
    inventory_item_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(100, ge=1, le=500),
    svc: ManufacturingService = Depends(get_manufacturing_service),
):
    logs = svc.query_logs(LogFilters(
        product_id=product_id,
        inventory_item_id=inventory_item_id,
        start=start_date,
        end=end_date,
        limit=limit,
    ))
    return {"success": True, "data": [log_out(e) for e in logs], "count": len(logs)}

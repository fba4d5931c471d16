# backend/routes/alerts.py
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from models.alert import AlertSeverity, AlertType
from models.users import User
from schemas.alert import (
    AlertPage, AlertResponse, AlertStats, BulkResolveRequest, BulkResolveResult, ResolveAlertRequest,
)
from schemas.filters import AlertFilter, build_filter
from services.alerts import UNRESOLVED_LIMIT, AlertService, get_alert_service
from utils.audit import client_ip, write_log
from utils.tokenJWT import get_current_user, require_manager

router = APIRouter(prefix="/alerts", tags=["Alerts"])


@router.get("", response_model=AlertPage)
def list_alerts(
    warehouse_id: Optional[UUID] = Query(None),
    product_id: Optional[UUID] = Query(None),
    severity: Optional[AlertSeverity] = Query(None),
    type: Optional[AlertType] = Query(None),
    is_resolved: Optional[bool] = Query(None),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    filters = build_filter(
        AlertFilter,
        warehouse_id=warehouse_id, product_id=product_id, severity=severity, type=type,
        is_resolved=is_resolved, date_from=date_from, date_to=date_to,
    )
    items, total = AlertService.list_alerts(db, filters, page, page_size)
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# Most severe first, newest first within a severity
@router.get("/unresolved", response_model=List[AlertResponse])
def list_unresolved(
    limit: int = Query(UNRESOLVED_LIMIT, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return AlertService.unresolved(db, limit=limit)


@router.get("/stats", response_model=AlertStats)
def alert_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return AlertService.stats(db)


@router.post("/bulk-resolve", response_model=BulkResolveResult)
def bulk_resolve_alerts(
    payload: BulkResolveRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
    alerts: AlertService = Depends(get_alert_service),
):
    count = alerts.bulk_resolve(payload.alert_ids, current_user.id)

    write_log(
        db, user_id=current_user.id, action="ALERT_BULK_RESOLVE", resource="alerts",
        status="SUCCESS", ip=client_ip(request), meta={"count": count},
    )
    return {"resolved": count, "message": f"{count} alerts resolved"}


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
def resolve_alert(
    alert_id: UUID,
    request: Request,
    payload: Optional[ResolveAlertRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
    alerts: AlertService = Depends(get_alert_service),
):
    alert = alerts.resolve(alert_id, current_user.id)

    notes = payload.resolution_notes if payload else None
    write_log(
        db, user_id=current_user.id, action="ALERT_RESOLVE", resource="alerts",
        status="SUCCESS", ip=client_ip(request),
        meta={"alert_id": str(alert.id), "notes": notes},
    )
    return alert

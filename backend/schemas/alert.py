# backend/schemas/alert.py
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from models.alert import AlertSeverity, AlertType
from schemas.common import ORMBase
from schemas.user import UserRef


class AlertResponse(ORMBase):
    id: UUID
    type: AlertType
    severity: AlertSeverity
    message: str
    inventory_id: Optional[UUID] = None
    warehouse_id: Optional[UUID] = None
    is_resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    resolver: Optional[UserRef] = None


class AlertPage(BaseModel):
    items: List[AlertResponse]
    total: int
    page: int
    page_size: int


class ResolveAlertRequest(BaseModel):
    resolution_notes: Optional[str] = None


class BulkResolveRequest(BaseModel):
    alert_ids: List[UUID] = Field(min_length=1)


class BulkResolveResult(BaseModel):
    resolved: int
    message: str


class AlertStats(BaseModel):
    total: int
    unresolved: int
    by_severity: Dict[str, int]
    by_type: Dict[str, int]
    recent: int

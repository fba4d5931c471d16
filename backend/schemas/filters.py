# backend/schemas/filters.py
"""
Closed filter objects for list endpoints.

Each filter names exactly the predicates it supports. Routes build one from
query parameters with build_filter(), which turns pydantic validation errors
into ValidationFailed, and the services call .apply(query) to translate it
into SQLAlchemy criteria.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from sqlalchemy.orm import Query

from models.alert import Alert, AlertSeverity, AlertType
from models.inventory import InventoryItem
from models.log import Log
from models.stock import MovementType, StockMovement
from utils.errors import ValidationFailed

F = TypeVar("F", bound="BaseFilter")


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _next_day_start(d: date) -> datetime:
    # date_to is inclusive: everything before midnight of the following day
    return datetime.combine(d + timedelta(days=1), time.min)


class BaseFilter(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def apply(self, query: Query) -> Query:
        raise NotImplementedError


class DateRangeFilter(BaseFilter):
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @model_validator(mode="after")
    def _check_range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self

    def _apply_dates(self, query: Query, column) -> Query:
        if self.date_from:
            query = query.filter(column >= _day_start(self.date_from))
        if self.date_to:
            query = query.filter(column < _next_day_start(self.date_to))
        return query


class InventoryFilter(BaseFilter):
    warehouse_id: Optional[UUID] = None
    product_id: Optional[UUID] = None

    def apply(self, query: Query) -> Query:
        if self.warehouse_id:
            query = query.filter(InventoryItem.warehouse_id == self.warehouse_id)
        if self.product_id:
            query = query.filter(InventoryItem.product_id == self.product_id)
        return query


class MovementFilter(DateRangeFilter):
    warehouse_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    movement_type: Optional[MovementType] = None

    def apply(self, query: Query) -> Query:
        if self.warehouse_id or self.product_id:
            query = query.join(InventoryItem, StockMovement.inventory_id == InventoryItem.id)
        if self.warehouse_id:
            query = query.filter(InventoryItem.warehouse_id == self.warehouse_id)
        if self.product_id:
            query = query.filter(InventoryItem.product_id == self.product_id)
        if self.movement_type:
            query = query.filter(StockMovement.movement_type == self.movement_type)
        return self._apply_dates(query, StockMovement.created_at)


class AlertFilter(DateRangeFilter):
    warehouse_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    severity: Optional[AlertSeverity] = None
    type: Optional[AlertType] = None
    is_resolved: Optional[bool] = None

    def apply(self, query: Query) -> Query:
        if self.warehouse_id:
            query = query.filter(Alert.warehouse_id == self.warehouse_id)
        if self.product_id:
            query = query.join(InventoryItem, Alert.inventory_id == InventoryItem.id).filter(
                InventoryItem.product_id == self.product_id
            )
        if self.severity:
            query = query.filter(Alert.severity == self.severity)
        if self.type:
            query = query.filter(Alert.type == self.type)
        if self.is_resolved is not None:
            query = query.filter(Alert.is_resolved == self.is_resolved)
        return self._apply_dates(query, Alert.created_at)


class LogFilter(DateRangeFilter):
    action: Optional[str] = None
    user_id: Optional[UUID] = None
    resource: Optional[str] = None
    status: Optional[str] = None

    def apply(self, query: Query) -> Query:
        if self.action:
            query = query.filter(Log.action.ilike(f"%{self.action}%"))
        if self.user_id is not None:
            query = query.filter(Log.user_id == self.user_id)
        if self.resource:
            query = query.filter(Log.resource.ilike(f"%{self.resource}%"))
        if self.status:
            query = query.filter(Log.status == self.status)
        return self._apply_dates(query, Log.ts)


def build_filter(cls: Type[F], **values) -> F:
    # Unset query parameters arrive as None; drop them so defaults apply
    try:
        return cls(**{k: v for k, v in values.items() if v is not None})
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "filter"
        raise ValidationFailed(f"Invalid filter {field}: {first.get('msg')}", field=field)

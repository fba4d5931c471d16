# backend/services/alerts.py
"""
Alert resolution and alert queries.

resolve() and bulk_resolve() are the only code paths that set
Alert.is_resolved. bulk_resolve() is all-or-nothing: one unknown or already
resolved id rejects the whole batch.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple, Union
from uuid import UUID

from fastapi import Request
from sqlalchemy import case, func
from sqlalchemy.orm import Session, lazyload

from database import Database
from models.alert import SEVERITY_RANK, Alert
from schemas.filters import AlertFilter
from services.events import ALERT_RESOLVED, EventBus
from utils.errors import AlreadyResolved, NotFound, PartiallyInvalid, ValidationFailed
from utils.ids import as_uuid

logger = logging.getLogger(__name__)

UNRESOLVED_LIMIT = 50
RECENT_DAYS = 7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertService:
    def __init__(self, database: Database, events: Optional[EventBus] = None):
        self.database = database
        self.events = events

    # ==========================
    # RESOLUTION
    # ==========================
    def resolve(self, alert_id: Union[UUID, str], resolving_user_id: Union[UUID, str]) -> Alert:
        alert_id = as_uuid(alert_id, "alert_id")
        resolving_user_id = as_uuid(resolving_user_id, "resolving_user_id")

        db = self.database.session()
        try:
            alert = (
                db.query(Alert)
                .options(lazyload("*"))
                .filter(Alert.id == alert_id)
                .with_for_update()
                .first()
            )
            if alert is None:
                raise NotFound("Alert not found", alert_id=str(alert_id))
            if alert.is_resolved:
                raise AlreadyResolved(alert_id=str(alert_id))

            alert.is_resolved = True
            alert.resolved_at = _utcnow()
            alert.resolved_by = resolving_user_id
            db.commit()
            # Load the resolver for the response before detaching
            db.refresh(alert, attribute_names=["resolver"])
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info("alert.resolved", extra={"alert_id": str(alert_id), "resolved_by": str(resolving_user_id)})
        self._publish_resolved([alert_id], resolving_user_id)
        return alert

    def bulk_resolve(self, alert_ids: Iterable[Union[UUID, str]], resolving_user_id: Union[UUID, str]) -> int:
        # Duplicates collapse; order is kept for error reporting
        ids: List[UUID] = []
        for raw in alert_ids or []:
            value = as_uuid(raw, "alert_ids")
            if value not in ids:
                ids.append(value)
        if not ids:
            raise ValidationFailed("alert_ids must be a non-empty list", field="alert_ids")
        resolving_user_id = as_uuid(resolving_user_id, "resolving_user_id")

        db = self.database.session()
        try:
            valid = (
                db.query(Alert)
                .options(lazyload("*"))
                .filter(Alert.id.in_(ids), Alert.is_resolved.is_(False))
                .with_for_update()
                .all()
            )
            valid_ids = {a.id for a in valid}
            invalid = [str(i) for i in ids if i not in valid_ids]
            if invalid:
                raise PartiallyInvalid(invalid_ids=invalid)

            now = _utcnow()
            for alert in valid:
                alert.is_resolved = True
                alert.resolved_at = now
                alert.resolved_by = resolving_user_id
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info("alert.bulk_resolved", extra={"count": len(ids), "resolved_by": str(resolving_user_id)})
        self._publish_resolved(ids, resolving_user_id)
        return len(ids)

    def _publish_resolved(self, alert_ids: List[UUID], resolving_user_id: UUID) -> None:
        if self.events is None:
            return
        for alert_id in alert_ids:
            self.events.publish(ALERT_RESOLVED, {
                "alert_id": str(alert_id),
                "resolved_by": str(resolving_user_id),
            })

    # ==========================
    # QUERIES
    # ==========================
    @staticmethod
    def list_alerts(db: Session, filters: AlertFilter, page: int = 1, page_size: int = 20) -> Tuple[List[Alert], int]:
        query = filters.apply(db.query(Alert))
        total = query.count()
        items = (
            query.order_by(Alert.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    @staticmethod
    def unresolved(db: Session, limit: int = UNRESOLVED_LIMIT) -> List[Alert]:
        rank = case(
            *[(Alert.severity == severity, weight) for severity, weight in SEVERITY_RANK.items()],
            else_=0,
        )
        return (
            db.query(Alert)
            .filter(Alert.is_resolved.is_(False))
            .order_by(rank.desc(), Alert.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def stats(db: Session) -> Dict[str, object]:
        total = db.query(func.count(Alert.id)).scalar() or 0
        unresolved = db.query(func.count(Alert.id)).filter(Alert.is_resolved.is_(False)).scalar() or 0

        by_severity = {
            severity.value: count
            for severity, count in db.query(Alert.severity, func.count(Alert.id))
            .filter(Alert.is_resolved.is_(False))
            .group_by(Alert.severity)
            .all()
        }
        by_type = {
            alert_type.value: count
            for alert_type, count in db.query(Alert.type, func.count(Alert.id))
            .filter(Alert.is_resolved.is_(False))
            .group_by(Alert.type)
            .all()
        }

        since = _utcnow() - timedelta(days=RECENT_DAYS)
        recent = db.query(func.count(Alert.id)).filter(Alert.created_at >= since).scalar() or 0

        return {
            "total": total,
            "unresolved": unresolved,
            "by_severity": by_severity,
            "by_type": by_type,
            "recent": recent,
        }


def get_alert_service(request: Request) -> AlertService:
    return request.app.state.alert_service

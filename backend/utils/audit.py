# backend/utils/audit.py
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from models.log import Log

logger = logging.getLogger(__name__)


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None or request.client is None:
        return None
    return request.client.host


# Persist one audit entry; the caller's pending changes are committed with it
def write_log(
    db: Session,
    *,
    user_id,
    action: str,
    resource: str,
    status: str = "SUCCESS",
    ip: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> Log:
    entry = Log(user_id=user_id, action=action, resource=resource, status=status, ip=ip, meta=meta or {})
    db.add(entry)
    db.commit()
    logger.debug("audit %s %s %s", action, resource, status)
    return entry

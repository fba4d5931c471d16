# backend/models/log.py
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Uuid, func
from sqlalchemy.orm import relationship
from database import Base


# Audit trail of user actions (see utils/audit.py)
class Log(Base):
    __tablename__ = "logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    ts = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    action = Column(String(50), index=True)
    resource = Column(String(50), index=True)
    status = Column(String(20), index=True)
    ip = Column(String(64), nullable=True)

    # Free-form context, e.g. {"inventory_id": "...", "new_quantity": 5}
    meta = Column(JSON, nullable=True)

    user = relationship("User", lazy="joined", uselist=False)

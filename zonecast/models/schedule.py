import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from zonecast.db import Base
from zonecast.timeutil import utcnow


class Schedule(Base):
    __tablename__ = "schedule"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content_id = Column(String(36), ForeignKey("content.id"), nullable=False, index=True)
    zone = Column(String(64), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    priority = Column(Integer, nullable=False, default=1)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

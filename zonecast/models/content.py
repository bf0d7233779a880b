import uuid
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from zonecast.db import Base
from zonecast.timeutil import utcnow


class Content(Base):
    __tablename__ = "content"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(16), nullable=False)
    title = Column(String, nullable=False)
    media_url = Column(String, nullable=False)
    mime_type = Column(String, nullable=True)
    zone = Column(String(64), nullable=False, default="all", index=True)
    duration_sec = Column(Integer, nullable=False, default=10)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

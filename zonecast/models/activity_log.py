import uuid
from sqlalchemy import Column, DateTime, String, Text
from zonecast.db import Base
from zonecast.timeutil import utcnow


class ActivityLog(Base):
    __tablename__ = "activity_log"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(String(16), nullable=False)
    message = Column(String, nullable=False)
    data = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

from sqlalchemy import Boolean, Column, Integer, String
from zonecast.db import Base


class Zone(Base):
    __tablename__ = "zone"
    id = Column(String(64), primary_key=True)
    display_name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

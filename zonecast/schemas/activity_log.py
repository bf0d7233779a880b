from datetime import datetime
from pydantic import BaseModel


class ActivityLogOut(BaseModel):
    id: str
    kind: str
    message: str
    data: str | None = None
    timestamp: datetime

    class Config:
        from_attributes = True

from pydantic import BaseModel


class ZoneOut(BaseModel):
    id: str
    display_name: str
    description: str | None = None
    display_order: int

    class Config:
        from_attributes = True

from fastapi import APIRouter, Depends

from zonecast.schemas.activity_log import ActivityLogOut
from zonecast.schemas.zone import ZoneOut
from zonecast.services.context import AppContext, get_context

router = APIRouter(tags=["zones"])


@router.get("/zones", response_model=list[ZoneOut])
def list_zones(ctx: AppContext = Depends(get_context)):
    return ctx.zones.all()


@router.get("/logs", response_model=list[ActivityLogOut])
def list_logs(limit: int = 50, ctx: AppContext = Depends(get_context)):
    return ctx.activity.recent(limit=limit)

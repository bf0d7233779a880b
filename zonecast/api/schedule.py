from fastapi import APIRouter, Depends, HTTPException

from zonecast.schemas.schedule import ActiveSetOut, ScheduleCreatedOut, ScheduleIn, ScheduleOut
from zonecast.services.context import AppContext, get_context
from zonecast.services.events import ScheduleChanged

router = APIRouter(tags=["schedules"])


@router.post("/schedules", response_model=ScheduleCreatedOut)
async def create_schedule(body: ScheduleIn, ctx: AppContext = Depends(get_context)):
    schedule = ctx.schedules.add(body)
    # Overlaps never block the write; they are handed back to the operator.
    warnings = ctx.advisor.find_higher_priority_overlaps(
        schedule.zone,
        schedule.start_time,
        schedule.end_time,
        schedule.priority,
        exclude_id=schedule.id,
    )
    await ctx.hub.handle(ScheduleChanged(kind="added", schedule=schedule))
    return ScheduleCreatedOut(schedule=schedule, warnings=warnings)


@router.get("/schedules", response_model=list[ScheduleOut])
def list_schedules(zone: str | None = None, ctx: AppContext = Depends(get_context)):
    return ctx.schedules.find(zone=zone)


@router.get("/schedules/stats")
def schedule_stats(ctx: AppContext = Depends(get_context)):
    return ctx.schedules.stats()


@router.get("/schedules/{zone}/upcoming", response_model=list[ScheduleOut])
def upcoming_schedules(zone: str, limit: int = 10, ctx: AppContext = Depends(get_context)):
    return ctx.schedules.upcoming(zone, limit=limit)


@router.delete("/schedules/{schedule_id}")
async def delete_schedule(schedule_id: str, ctx: AppContext = Depends(get_context)):
    schedule = ctx.schedules.delete(schedule_id)
    await ctx.hub.handle(ScheduleChanged(kind="deleted", schedule=schedule))
    return {"ok": True}


@router.get("/schedule/{zone}", response_model=ActiveSetOut)
def active_schedule(zone: str, ctx: AppContext = Depends(get_context)):
    if not ctx.zones.exists(zone):
        raise HTTPException(status_code=404, detail="Zone not found")
    return ctx.resolver.resolve_set(zone)

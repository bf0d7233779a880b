from fastapi import APIRouter, Depends, HTTPException

from zonecast.schemas.content import ContentIn, ContentOut, ContentUpdateIn
from zonecast.services.context import AppContext, get_context
from zonecast.services.events import ContentChanged

router = APIRouter(prefix="/content", tags=["content"])


@router.post("", response_model=ContentOut)
async def create_content(body: ContentIn, ctx: AppContext = Depends(get_context)):
    content = ctx.contents.add(body)
    await ctx.hub.handle(ContentChanged(kind="added", content=content))
    return content


@router.get("", response_model=list[ContentOut])
def list_content(zone: str | None = None, type: str | None = None, ctx: AppContext = Depends(get_context)):
    return ctx.contents.find(zone=zone, type=type)


@router.get("/stats")
def content_stats(ctx: AppContext = Depends(get_context)):
    return ctx.contents.stats()


@router.get("/{content_id}", response_model=ContentOut)
def get_content(content_id: str, ctx: AppContext = Depends(get_context)):
    content = ctx.contents.get(content_id)
    if not content:
        raise HTTPException(status_code=404, detail="Content not found")
    return content


@router.put("/{content_id}", response_model=ContentOut)
async def update_content(content_id: str, body: ContentUpdateIn, ctx: AppContext = Depends(get_context)):
    before = ctx.contents.get(content_id)
    if not before:
        raise HTTPException(status_code=404, detail="Content not found")
    content = ctx.contents.update(content_id, body)
    previous_zone = before.zone if before.zone != content.zone else None
    await ctx.hub.handle(ContentChanged(kind="updated", content=content, previous_zone=previous_zone))
    return content


@router.delete("/{content_id}")
async def delete_content(content_id: str, ctx: AppContext = Depends(get_context)):
    content = ctx.contents.deactivate(content_id)
    await ctx.hub.handle(ContentChanged(kind="deleted", content=content))
    return {"ok": True}

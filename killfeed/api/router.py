from fastapi import APIRouter, Depends
from .schemas import KillmailListResponse, FocusResponse, FeedStatusResponse
from ..services.monitor import KillmailMonitor, monitor

router = APIRouter(prefix="/v1")


def get_monitor() -> KillmailMonitor:
    return monitor


@router.get("/killmails", response_model=KillmailListResponse)
async def list_killmails(m: KillmailMonitor = Depends(get_monitor)):
    snapshot = m.store.snapshot()
    killmails = sorted(snapshot.killmails.values(), key=lambda k: k.received_at, reverse=True)
    return KillmailListResponse(
        total=len(killmails),
        focused_id=snapshot.focused.id if snapshot.focused else None,
        killmails=killmails,
    )


@router.get("/killmails/focused", response_model=FocusResponse)
async def get_focused(m: KillmailMonitor = Depends(get_monitor)):
    return FocusResponse(focused=m.store.focused())


@router.put("/killmails/{killmail_id}/focus", response_model=FocusResponse)
async def focus_killmail(killmail_id: int, m: KillmailMonitor = Depends(get_monitor)):
    # Unknown ids clear focus rather than 404; the killmail may have just expired
    return FocusResponse(focused=m.store.focus(killmail_id))


@router.delete("/killmails/{killmail_id}/focus", response_model=FocusResponse)
async def unfocus_killmail(killmail_id: int, m: KillmailMonitor = Depends(get_monitor)):
    m.store.unfocus(killmail_id)
    return FocusResponse(focused=m.store.focused())


@router.get("/feed/status", response_model=FeedStatusResponse)
async def feed_status(m: KillmailMonitor = Depends(get_monitor)):
    return FeedStatusResponse(**m.status())

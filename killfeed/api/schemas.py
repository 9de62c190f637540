from pydantic import BaseModel
from typing import List
from ..event_models import Killmail

class KillmailListResponse(BaseModel):
    total: int
    focused_id: int | None = None
    killmails: List[Killmail]

class FocusResponse(BaseModel):
    focused: Killmail | None = None

class FeedStatusResponse(BaseModel):
    running: bool
    loop_id: str | None = None
    queue_id: str | None = None
    last_ping: str | None = None
    pings: int
    killmails: int
    sweeper_running: bool

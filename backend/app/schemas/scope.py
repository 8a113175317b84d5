from datetime import datetime

from pydantic import BaseModel


class ScopeTimerOut(BaseModel):
    scope_id: str
    timer_total_hours: int | None
    is_timer_running: bool
    remaining_seconds: int
    is_counting_down: bool
    server_time: datetime

"""Run event model.

Events are progress notices only.  They are published fire-and-forget and
carry no data the run depends on.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from agentloop.agent_runtime.models.enums import EventType


class RunEvent(BaseModel):
    event_type: EventType
    message: str
    input_index: int | None = None
    label: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)

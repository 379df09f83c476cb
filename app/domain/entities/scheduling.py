from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.entities.status import BookingKind


@dataclass(frozen=True)
class GateDecision:
    kind: BookingKind
    next_step: str  # "payment", "scheduling", "done"
    scheduling_enabled: bool = False
    scheduling_link: str | None = None
    prefill: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ScheduledEvent:
    trigger: str
    uid: str
    start_time: datetime
    calendar_booking_id: int | None = None
    meeting_url: str | None = None
    reference_number: str | None = None
    attendee_email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

from __future__ import annotations

from dataclasses import dataclass

from app.domain.entities.status import BookingKind


@dataclass(frozen=True)
class Offering:
    offering_id: str
    display_name: str
    kind: BookingKind
    fee: int
    currency: str = "PKR"
    is_active: bool = True
    notes: str | None = None

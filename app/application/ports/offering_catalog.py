from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.offering import Offering
from app.domain.entities.status import BookingKind


class OfferingCatalogPort(ABC):
    @abstractmethod
    def get_offering(self, offering_id: str) -> Offering | None:
        """Get catalog entry by id, active or not."""
        raise NotImplementedError

    @abstractmethod
    def default_offering(self, kind: BookingKind) -> Offering | None:
        """Offering used when the intake does not name one (consultations)."""
        raise NotImplementedError

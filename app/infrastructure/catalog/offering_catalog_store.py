from __future__ import annotations

from app.application.ports.offering_catalog import OfferingCatalogPort
from app.domain.entities.offering import Offering
from app.domain.entities.status import BookingKind
from app.infrastructure.catalog.catalog_data import CONSULTATION_OFFERING_ID, build_catalog


class OfferingCatalogStore(OfferingCatalogPort):
    def __init__(self, catalog: dict[str, Offering] | None = None) -> None:
        self._catalog = catalog if catalog is not None else build_catalog()

    def get_offering(self, offering_id: str) -> Offering | None:
        normalized_key = offering_id.lower().strip()
        return self._catalog.get(normalized_key)

    def default_offering(self, kind: BookingKind) -> Offering | None:
        if kind == BookingKind.CONSULTATION:
            return self.get_offering(CONSULTATION_OFFERING_ID)
        return None

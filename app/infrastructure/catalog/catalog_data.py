from __future__ import annotations

from app.domain.entities.offering import Offering
from app.domain.entities.status import BookingKind

CONSULTATION_OFFERING_ID = "consultation"


def build_catalog(consultation_fee: int = 50000, currency: str = "PKR") -> dict[str, Offering]:
    offerings = [
        Offering(
            offering_id=CONSULTATION_OFFERING_ID,
            display_name="Legal Consultation",
            kind=BookingKind.CONSULTATION,
            fee=consultation_fee,
            currency=currency,
            notes="30 minute session, scheduled after payment",
        ),
        Offering(
            offering_id="ntn-registration",
            display_name="NTN Registration",
            kind=BookingKind.REGISTRATION,
            fee=15000,
            currency=currency,
        ),
        Offering(
            offering_id="secp-company-incorporation",
            display_name="SECP Company Incorporation",
            kind=BookingKind.REGISTRATION,
            fee=75000,
            currency=currency,
        ),
        Offering(
            offering_id="trademark-filing",
            display_name="Trademark Filing",
            kind=BookingKind.REGISTRATION,
            fee=40000,
            currency=currency,
        ),
        Offering(
            offering_id="sales-tax-registration",
            display_name="Sales Tax Registration",
            kind=BookingKind.REGISTRATION,
            fee=20000,
            currency=currency,
            is_active=False,
            notes="Paused while FBR portal changes roll out",
        ),
    ]
    return {offering.offering_id: offering for offering in offerings}

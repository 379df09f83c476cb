from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Urgency(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class _IntakeBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    full_name: str = Field(alias="fullName", min_length=2, max_length=255)
    email: EmailStr
    phone_number: str = Field(alias="phoneNumber", min_length=7, max_length=20)


class RegistrationIntake(_IntakeBase):
    kind: Literal["registration"] = "registration"
    offering_id: str = Field(alias="serviceId", min_length=1)
    cnic: str | None = Field(default=None, max_length=15)
    address: str | None = Field(default=None, max_length=500)
    description_of_need: str | None = Field(default=None, alias="descriptionOfNeed", max_length=2000)


class ConsultationIntake(_IntakeBase):
    kind: Literal["consultation"] = "consultation"
    practice_area: str = Field(alias="practiceArea", min_length=1, max_length=255)
    urgency: Urgency = Urgency.medium
    issue_summary: str = Field(alias="issueSummary", min_length=20, max_length=5000)
    relevant_dates: str | None = Field(default=None, alias="relevantDates", max_length=500)
    opposing_party: str | None = Field(default=None, alias="opposingParty", max_length=255)
    additional_notes: str | None = Field(default=None, alias="additionalNotes", max_length=2000)


Intake = Annotated[Union[RegistrationIntake, ConsultationIntake], Field(discriminator="kind")]


def intake_details(intake: RegistrationIntake | ConsultationIntake) -> dict[str, str | None]:
    """Kind-specific fields that are stored on the booking as-is."""
    shared = {"kind", "full_name", "email", "phone_number", "offering_id"}
    return {
        key: (value.value if isinstance(value, Enum) else value)
        for key, value in intake.model_dump().items()
        if key not in shared
    }

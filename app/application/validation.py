from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.domain.entities.intake import ConsultationIntake, Intake, RegistrationIntake

_INTAKE_ADAPTER: TypeAdapter[RegistrationIntake | ConsultationIntake] = TypeAdapter(Intake)


@dataclass(frozen=True)
class IntakeValidation:
    data: RegistrationIntake | ConsultationIntake | None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.data is not None and not self.errors


def validate_intake(fields: dict[str, Any]) -> IntakeValidation:
    """
    Validate raw intake fields into the typed intake for their booking kind.
    Pure: never raises for bad input, returns field errors keyed by the
    request field name instead.
    """
    try:
        return IntakeValidation(data=_INTAKE_ADAPTER.validate_python(fields))
    except PydanticValidationError as e:
        return IntakeValidation(data=None, errors=field_errors(e))


def field_errors(error: PydanticValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for item in error.errors():
        if item.get("type") in ("union_tag_not_found", "union_tag_invalid"):
            errors.setdefault("kind", "Unknown booking kind")
            continue
        loc = [str(part) for part in item.get("loc", ()) if part not in ("registration", "consultation")]
        key = ".".join(loc) or "__root__"
        errors.setdefault(key, item.get("msg", "Invalid value"))
    return errors

"""Reading Validator: raw device payload -> ReadingIn, or ValidationError."""

from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from alerting_service.errors import ValidationError
from alerting_service.models.schemas import ReadingIn


def _field_errors(exc: PydanticValidationError) -> List[Dict[str, str]]:
    details = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "body"
        details.append({"field": field, "message": err["msg"]})
    return details


def validate_reading(payload: Any) -> ReadingIn:
    """
    Check a posted reading against the physiological bounds.

    Partial readings (e.g. temperature only) are valid; only `deviceId` is
    required. Each violated field is reported separately.
    """
    if not isinstance(payload, dict):
        raise ValidationError(
            "Validation failed", [{"field": "body", "message": "Expected a JSON object"}]
        )
    try:
        return ReadingIn.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError("Validation failed", _field_errors(e)) from e

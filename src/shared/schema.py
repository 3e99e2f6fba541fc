"""JSON Schema utilities for tool parameter shapes."""

from typing import Any, Optional

from jsonschema import Draft7Validator

from shared.models import ParameterSchema


def normalize_parameters(parameters: Optional[dict[str, Any]]) -> ParameterSchema:
    """
    Normalize a declared parameter shape into the canonical object schema.

    Missing shapes become an empty object schema; missing ``type``,
    ``properties`` or ``required`` keys are filled in individually.

    Args:
        parameters: The ``parameters`` entry of a catalog operation, if any

    Returns:
        Canonical ParameterSchema
    """
    if not parameters:
        return ParameterSchema()

    return ParameterSchema(
        type=parameters.get("type") or "object",
        properties=parameters.get("properties") or {},
        required=tuple(parameters.get("required") or ()),
    )


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def missing_required(data: Any, schema: ParameterSchema) -> list[str]:
    """
    Return the required argument names absent from ``data``.

    Only presence is checked. Value types are left to the handlers, which
    accept both comma-separated strings and arrays for list arguments.
    """
    if not schema.required:
        return []

    # Nulls, empty strings and empty lists count as missing
    payload = {
        key: value for key, value in (data or {}).items() if not _blank(value)
    } if isinstance(data, dict) else {}

    validator = Draft7Validator({"type": "object", "required": list(schema.required)})
    if validator.is_valid(payload):
        return []

    return [name for name in schema.required if name not in payload]

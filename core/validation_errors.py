from __future__ import annotations

from typing import Any, Iterable

_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def _split_location(raw_loc: Any) -> tuple[str, str]:
    if raw_loc is None:
        parts: list[str] = []
    elif isinstance(raw_loc, (list, tuple)):
        parts = [str(part) for part in raw_loc]
    else:
        parts = [str(raw_loc)]

    location = "body"
    if parts and parts[0] in _REQUEST_LOCATIONS:
        location, parts = parts[0], parts[1:]
    return location, ".".join(parts) or "(root)"


def _summary(missing_fields: list[str], error_count: int) -> str:
    if missing_fields:
        noun = "field" if len(missing_fields) == 1 else "fields"
        return f"Validation failed: missing required {noun}: {', '.join(missing_fields)}."
    noun = "field" if error_count == 1 else "fields"
    return f"Validation failed for {error_count} {noun}."


def format_validation_error_details(errors: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """
    Flatten pydantic errors into ``{summary, missingFields, fieldErrors}``.

    Submitted input values are not echoed back since request bodies carry
    phone numbers and national ids.
    """
    field_errors: list[dict[str, str]] = []
    missing_fields: list[str] = []

    for error in errors:
        location, path = _split_location(error.get("loc"))
        error_type = str(error.get("type", "validation_error"))
        field_errors.append(
            {
                "path": path,
                "location": location,
                "message": str(error.get("msg", "Invalid value")),
                "errorType": error_type,
            }
        )
        if error_type == "missing" and path not in missing_fields:
            missing_fields.append(path)

    return {
        "summary": _summary(missing_fields, len(field_errors)),
        "missingFields": missing_fields,
        "fieldErrors": field_errors,
    }

"""Settings and value contracts for each column type.

Every write to a column value goes through `validate_value`, which returns the
canonical JSON-compatible shape stored in `ColumnValue.value`:

- scalars stay scalars (text, number, bool)
- dates are ISO-8601 strings
- TIMELINE is ``{"start": iso, "end": iso}`` with ``start <= end``
- set-valued types are lists with duplicates removed, first occurrence kept
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from workboard.core.errors import (
    InvalidSettingsError,
    ValueOutOfRangeError,
    ValueTypeMismatchError,
)
from workboard.core.time import as_naive_utc
from workboard.services.column_types import DEFAULT_RATING_MAX, ColumnType, lookup
from workboard.services.formulas import FormulaError, compile_formula

if TYPE_CHECKING:
    from workboard.models.columns import BoardColumn

STATUS_PALETTE = ("#94A3B8", "#3B82F6", "#10B981", "#EF4444", "#F59E0B", "#8B5CF6")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9 ().\-]{3,32}$")
_URL_SCHEMES = frozenset({"http", "https", "mailto"})

ItemExists = Callable[[str], bool]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def validate_settings(
    column_type: ColumnType,
    settings: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """Validate and normalize type-specific column settings."""
    definition = lookup(column_type)
    if settings is None:
        if definition.requires_settings:
            raise InvalidSettingsError(
                f"{definition.label} columns require settings.",
                column_type=column_type.value,
            )
        return None
    if not isinstance(settings, dict):
        raise InvalidSettingsError("Column settings must be an object.")

    match column_type:
        case ColumnType.STATUS:
            return {**settings, "labels": _normalize_status_labels(settings.get("labels"))}
        case ColumnType.DROPDOWN:
            return {**settings, "options": _unique_strings(settings.get("options"), "options")}
        case ColumnType.FORMULA:
            expression = settings.get("expression")
            if not isinstance(expression, str):
                raise InvalidSettingsError("Formula columns require an `expression` string.")
            try:
                compile_formula(expression)
            except FormulaError as err:
                raise InvalidSettingsError(str(err), expression=expression) from err
            return dict(settings)
        case ColumnType.LABELS:
            if "labels" in settings:
                return {**settings, "labels": _unique_strings(settings["labels"], "labels")}
            return dict(settings)
        case ColumnType.RATING:
            maximum = settings.get("max", DEFAULT_RATING_MAX)
            if isinstance(maximum, bool) or not isinstance(maximum, int) or not 1 <= maximum <= 10:
                raise InvalidSettingsError("Rating `max` must be an integer between 1 and 10.")
            return {**settings, "max": maximum}
    return dict(settings)


def _normalize_status_labels(raw: Any) -> list[dict[str, str]]:
    if not isinstance(raw, list) or not raw:
        raise InvalidSettingsError("Status columns require a non-empty `labels` list.")
    labels: list[dict[str, str]] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw):
        if isinstance(entry, str):
            label, color = entry, STATUS_PALETTE[index % len(STATUS_PALETTE)]
        elif isinstance(entry, dict) and isinstance(entry.get("label"), str):
            label = entry["label"]
            color = entry.get("color") or STATUS_PALETTE[index % len(STATUS_PALETTE)]
            if not isinstance(color, str):
                raise InvalidSettingsError("Status label colors must be strings.")
        else:
            raise InvalidSettingsError(
                "Status labels must be strings or objects with a `label` string.",
            )
        label = label.strip()
        if not label:
            raise InvalidSettingsError("Status labels must not be blank.")
        if label in seen:
            raise InvalidSettingsError(f"Duplicate status label: {label}", label=label)
        seen.add(label)
        labels.append({"label": label, "color": color})
    return labels


def _unique_strings(raw: Any, field: str) -> list[str]:
    if not isinstance(raw, list) or not raw:
        raise InvalidSettingsError(f"`{field}` must be a non-empty list of strings.")
    values: list[str] = []
    for entry in raw:
        if not isinstance(entry, str) or not entry.strip():
            raise InvalidSettingsError(f"`{field}` entries must be non-blank strings.")
        if entry in values:
            raise InvalidSettingsError(f"Duplicate entry in `{field}`: {entry}")
        values.append(entry)
    return values


def status_labels(column: BoardColumn) -> list[str]:
    """Return the configured status label names of a STATUS column."""
    labels = (column.settings or {}).get("labels") or []
    return [entry["label"] for entry in labels if isinstance(entry, dict) and "label" in entry]


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


def parse_temporal(value: Any) -> datetime:
    """Parse an ISO date/datetime string (or date object) to naive UTC."""
    if isinstance(value, datetime):
        return as_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return as_naive_utc(datetime.fromisoformat(value.strip()))
    raise TypeError(f"Not a date value: {value!r}")


def validate_value(
    column: BoardColumn,
    raw: Any,
    *,
    item_id: str | None = None,
    item_exists: ItemExists | None = None,
) -> Any:
    """Check `raw` against the column type contract and return its canonical form.

    `None` is accepted for every writable type and stores an explicit null.
    """
    kind = column.column_type
    definition = lookup(kind)
    if definition.computed:
        raise ValueTypeMismatchError(
            f"{definition.label} columns are computed and cannot be written.",
            column_id=column.id,
        )
    if raw is None:
        return None

    match kind:
        case ColumnType.TEXT | ColumnType.LONG_TEXT:
            return _require_str(column, raw)
        case ColumnType.NUMBER:
            return _require_number(column, raw)
        case ColumnType.CHECKBOX:
            if not isinstance(raw, bool):
                raise _mismatch(column, raw, "a boolean")
            return raw
        case ColumnType.STATUS:
            label = _require_str(column, raw)
            if label not in status_labels(column):
                raise ValueOutOfRangeError(
                    f"'{label}' is not a configured status label.",
                    column_id=column.id,
                    value=label,
                )
            return label
        case ColumnType.DROPDOWN:
            option = _require_str(column, raw)
            if option not in (column.settings or {}).get("options", []):
                raise ValueOutOfRangeError(
                    f"'{option}' is not a configured dropdown option.",
                    column_id=column.id,
                    value=option,
                )
            return option
        case ColumnType.LABELS:
            labels = _require_str_list(column, raw)
            allowed = (column.settings or {}).get("labels")
            if allowed is not None:
                unknown = [label for label in labels if label not in allowed]
                if unknown:
                    raise ValueOutOfRangeError(
                        "Labels are not configured for this column.",
                        column_id=column.id,
                        value=unknown,
                    )
            return labels
        case ColumnType.PEOPLE:
            return _require_str_list(column, raw)
        case ColumnType.DATE | ColumnType.DUE_DATE:
            return _require_date(column, raw)
        case ColumnType.TIMELINE:
            return _require_timeline(column, raw)
        case ColumnType.FILES:
            return _require_files(column, raw)
        case ColumnType.LINK:
            link = _require_str(column, raw)
            parsed = urlparse(link)
            if parsed.scheme not in _URL_SCHEMES or not (parsed.netloc or parsed.path):
                raise _mismatch(column, raw, "an http(s) or mailto URL")
            return link
        case ColumnType.EMAIL:
            email = _require_str(column, raw)
            if not _EMAIL_RE.match(email):
                raise _mismatch(column, raw, "an email address")
            return email
        case ColumnType.PHONE:
            phone = _require_str(column, raw)
            if not _PHONE_RE.match(phone):
                raise _mismatch(column, raw, "a phone number")
            return phone
        case ColumnType.LOCATION:
            return _require_location(column, raw)
        case ColumnType.RATING:
            maximum = (column.settings or {}).get("max", DEFAULT_RATING_MAX)
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise _mismatch(column, raw, "an integer rating")
            if not 1 <= raw <= maximum:
                raise ValueOutOfRangeError(
                    f"Rating must be between 1 and {maximum}.",
                    column_id=column.id,
                    value=raw,
                )
            return raw
        case ColumnType.PROGRESS:
            progress = _require_number(column, raw)
            if not 0 <= progress <= 100:
                raise ValueOutOfRangeError(
                    "Progress must be between 0 and 100.",
                    column_id=column.id,
                    value=progress,
                )
            return progress
        case ColumnType.DEPENDENCY:
            targets = _require_str_list(column, raw)
            if item_id is not None and item_id in targets:
                raise ValueOutOfRangeError(
                    "An item cannot depend on itself.",
                    column_id=column.id,
                    value=item_id,
                )
            if item_exists is not None:
                missing = [target for target in targets if not item_exists(target)]
                if missing:
                    raise ValueOutOfRangeError(
                        "Dependencies reference unknown items.",
                        column_id=column.id,
                        value=missing,
                    )
            return targets
        case ColumnType.CONNECT_BOARDS:
            return _require_str_list(column, raw)
    raise _mismatch(column, raw, f"a {definition.label} value")


def _mismatch(column: BoardColumn, raw: Any, expected: str) -> ValueTypeMismatchError:
    return ValueTypeMismatchError(
        f"{column.title} expects {expected}, got {type(raw).__name__}.",
        column_id=column.id,
        column_type=column.column_type.value,
    )


def _require_str(column: BoardColumn, raw: Any) -> str:
    if not isinstance(raw, str):
        raise _mismatch(column, raw, "a string")
    return raw


def _require_number(column: BoardColumn, raw: Any) -> int | float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise _mismatch(column, raw, "a number")
    if isinstance(raw, float) and not math.isfinite(raw):
        raise ValueOutOfRangeError("Numbers must be finite.", column_id=column.id, value=raw)
    return raw


def _require_str_list(column: BoardColumn, raw: Any) -> list[str]:
    if not isinstance(raw, (list, tuple)):
        raise _mismatch(column, raw, "a list of strings")
    values: list[str] = []
    for entry in raw:
        if not isinstance(entry, str) or not entry:
            raise _mismatch(column, entry, "non-empty string entries")
        if entry in values:
            raise _mismatch(column, entry, "distinct entries")
        values.append(entry)
    return values


def _require_date(column: BoardColumn, raw: Any) -> str:
    if isinstance(raw, (date, datetime)):
        return raw.isoformat()
    if not isinstance(raw, str):
        raise _mismatch(column, raw, "an ISO date string")
    try:
        parse_temporal(raw)
    except ValueError as err:
        raise _mismatch(column, raw, "an ISO date string") from err
    return raw


def _require_timeline(column: BoardColumn, raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict) or "start" not in raw or "end" not in raw:
        raise _mismatch(column, raw, "an object with `start` and `end`")
    start = _require_date(column, raw["start"])
    end = _require_date(column, raw["end"])
    if parse_temporal(start) > parse_temporal(end):
        raise ValueOutOfRangeError(
            "Timeline start must not be after its end.",
            column_id=column.id,
            start=start,
            end=end,
        )
    return {"start": start, "end": end}


def _require_files(column: BoardColumn, raw: Any) -> list[Any]:
    if not isinstance(raw, (list, tuple)):
        raise _mismatch(column, raw, "a list of file references")
    files: list[Any] = []
    seen: set[str] = set()
    for entry in raw:
        if isinstance(entry, str) and entry:
            key = entry
        elif isinstance(entry, dict) and isinstance(entry.get("id"), str) and entry["id"]:
            key = entry["id"]
        else:
            raise _mismatch(column, entry, "file ids or objects with an `id`")
        if key in seen:
            raise _mismatch(column, entry, "distinct file ids")
        seen.add(key)
        files.append(entry)
    return files


def file_ids(value: Any) -> list[str]:
    """Return the ids of a canonical FILES value."""
    if not isinstance(value, list):
        return []
    return [entry["id"] if isinstance(entry, dict) else entry for entry in value]


def _require_location(column: BoardColumn, raw: Any) -> str | dict[str, Any]:
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, dict) or not isinstance(raw.get("address", ""), str):
        raise _mismatch(column, raw, "an address string or location object")
    for key, bound in (("lat", 90), ("lng", 180)):
        if key not in raw:
            continue
        coordinate = raw[key]
        if isinstance(coordinate, bool) or not isinstance(coordinate, (int, float)):
            raise _mismatch(column, coordinate, f"a numeric `{key}`")
        if not -bound <= coordinate <= bound:
            raise ValueOutOfRangeError(
                f"`{key}` must be between -{bound} and {bound}.",
                column_id=column.id,
                value=coordinate,
            )
    return dict(raw)

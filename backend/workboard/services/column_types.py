"""Static catalog of supported column types and total display formatting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Final


class ColumnType(str, Enum):
    """Closed set of column types a board column can carry."""

    TEXT = "TEXT"
    LONG_TEXT = "LONG_TEXT"
    NUMBER = "NUMBER"
    CHECKBOX = "CHECKBOX"
    STATUS = "STATUS"
    DROPDOWN = "DROPDOWN"
    LABELS = "LABELS"
    PEOPLE = "PEOPLE"
    DATE = "DATE"
    TIMELINE = "TIMELINE"
    DUE_DATE = "DUE_DATE"
    FILES = "FILES"
    LINK = "LINK"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    LOCATION = "LOCATION"
    RATING = "RATING"
    PROGRESS = "PROGRESS"
    FORMULA = "FORMULA"
    DEPENDENCY = "DEPENDENCY"
    CONNECT_BOARDS = "CONNECT_BOARDS"
    CREATED_DATE = "CREATED_DATE"
    LAST_UPDATED = "LAST_UPDATED"
    CREATOR = "CREATOR"


class _Unset:
    """Sentinel for an (item, column) pair that has never been written."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


@dataclass(frozen=True)
class ColumnTypeDefinition:
    """Immutable description of one column type."""

    type: ColumnType
    label: str
    description: str
    default_width: int
    supports_multiple: bool = False
    requires_settings: bool = False
    # Values are derived from the item or other columns and cannot be written.
    computed: bool = False


COLUMN_TYPES: Final[tuple[ColumnTypeDefinition, ...]] = (
    ColumnTypeDefinition(ColumnType.TEXT, "Text", "Single line of text", 150),
    ColumnTypeDefinition(
        ColumnType.LONG_TEXT, "Long Text", "Multiple lines of text with formatting", 250
    ),
    ColumnTypeDefinition(ColumnType.NUMBER, "Number", "Numeric values", 100),
    ColumnTypeDefinition(ColumnType.CHECKBOX, "Checkbox", "Yes/No toggle", 80),
    ColumnTypeDefinition(
        ColumnType.STATUS,
        "Status",
        "Predefined status labels with colors",
        130,
        requires_settings=True,
    ),
    ColumnTypeDefinition(
        ColumnType.DROPDOWN,
        "Dropdown",
        "Select from predefined options",
        130,
        requires_settings=True,
    ),
    ColumnTypeDefinition(
        ColumnType.LABELS, "Labels", "Multiple tags/labels", 150, supports_multiple=True
    ),
    ColumnTypeDefinition(
        ColumnType.PEOPLE, "People", "Assign team members", 120, supports_multiple=True
    ),
    ColumnTypeDefinition(ColumnType.DATE, "Date", "Single date picker", 120),
    ColumnTypeDefinition(ColumnType.TIMELINE, "Timeline", "Date range (start and end)", 200),
    ColumnTypeDefinition(
        ColumnType.DUE_DATE, "Due Date", "Deadline with status indicators", 120
    ),
    ColumnTypeDefinition(
        ColumnType.FILES, "Files", "File attachments", 100, supports_multiple=True
    ),
    ColumnTypeDefinition(ColumnType.LINK, "Link", "URL with preview", 150),
    ColumnTypeDefinition(ColumnType.EMAIL, "Email", "Email address", 150),
    ColumnTypeDefinition(ColumnType.PHONE, "Phone", "Phone number", 130),
    ColumnTypeDefinition(ColumnType.LOCATION, "Location", "Address or location", 150),
    ColumnTypeDefinition(ColumnType.RATING, "Rating", "Star rating (1-5)", 120),
    ColumnTypeDefinition(ColumnType.PROGRESS, "Progress", "Progress percentage (0-100%)", 120),
    ColumnTypeDefinition(
        ColumnType.FORMULA,
        "Formula",
        "Calculate based on other columns",
        120,
        requires_settings=True,
        computed=True,
    ),
    ColumnTypeDefinition(
        ColumnType.DEPENDENCY,
        "Dependency",
        "Link to dependent items",
        150,
        supports_multiple=True,
    ),
    ColumnTypeDefinition(
        ColumnType.CONNECT_BOARDS,
        "Connect Boards",
        "Link to items in other boards",
        150,
        supports_multiple=True,
    ),
    ColumnTypeDefinition(
        ColumnType.CREATED_DATE,
        "Created Date",
        "Automatically set creation date",
        130,
        computed=True,
    ),
    ColumnTypeDefinition(
        ColumnType.LAST_UPDATED,
        "Last Updated",
        "Automatically track last update time",
        150,
        computed=True,
    ),
    ColumnTypeDefinition(
        ColumnType.CREATOR, "Creator", "Person who created the item", 120, computed=True
    ),
)

_DEFINITIONS: Final[dict[ColumnType, ColumnTypeDefinition]] = {
    definition.type: definition for definition in COLUMN_TYPES
}

DEFAULT_RATING_MAX = 5


def lookup(column_type: ColumnType | str) -> ColumnTypeDefinition:
    """Return the definition for a column type.

    An unknown type is a programming error and raises `ValueError`.
    """
    return _DEFINITIONS[ColumnType(column_type)]


def list_column_types() -> list[ColumnTypeDefinition]:
    """Return every registered definition in catalog order."""
    return list(COLUMN_TYPES)


def is_empty(value: Any) -> bool:
    """True for unset, null, empty strings and empty collections."""
    if value is UNSET or value is None:
        return True
    if isinstance(value, (str, list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def format_value(column_type: ColumnType | str, value: Any) -> str:
    """Render a value for display; never raises for any value shape."""
    kind = ColumnType(column_type)
    if is_empty(value):
        return ""
    try:
        return _format(kind, value)
    except (TypeError, ValueError, AttributeError, OverflowError):
        return str(value)


def _format(kind: ColumnType, value: Any) -> str:
    match kind:
        case (
            ColumnType.TEXT
            | ColumnType.LONG_TEXT
            | ColumnType.LINK
            | ColumnType.EMAIL
            | ColumnType.PHONE
            | ColumnType.CREATOR
        ):
            return str(value)
        case ColumnType.NUMBER | ColumnType.FORMULA:
            return _format_number(value)
        case ColumnType.CHECKBOX:
            return "✓" if value is True else ""
        case (
            ColumnType.DATE
            | ColumnType.DUE_DATE
            | ColumnType.CREATED_DATE
            | ColumnType.LAST_UPDATED
        ):
            return _format_date(value)
        case ColumnType.TIMELINE:
            start = _format_date(value.get("start")) if value.get("start") else ""
            end = _format_date(value.get("end")) if value.get("end") else ""
            return f"{start} - {end}".strip(" -")
        case ColumnType.PEOPLE:
            return ", ".join(_person_name(person) for person in _as_list(value))
        case ColumnType.STATUS | ColumnType.DROPDOWN:
            if isinstance(value, dict):
                return str(value.get("label") or value.get("value") or "")
            return str(value)
        case ColumnType.LABELS | ColumnType.DEPENDENCY | ColumnType.CONNECT_BOARDS:
            return ", ".join(str(entry) for entry in _as_list(value))
        case ColumnType.FILES:
            return ", ".join(_file_name(entry) for entry in _as_list(value))
        case ColumnType.LOCATION:
            if isinstance(value, dict):
                return str(value.get("address") or "")
            return str(value)
        case ColumnType.RATING:
            stars = int(value)
            return "★" * stars + "☆" * max(0, DEFAULT_RATING_MAX - stars)
        case ColumnType.PROGRESS:
            return f"{_format_number(value)}%"
    return str(value)


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _format_number(value: Any) -> str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return format(value, "g")
    return str(value)


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return datetime.fromisoformat(value).date().isoformat()
    return str(value)


def _person_name(person: Any) -> str:
    if isinstance(person, dict):
        return str(person.get("name") or person.get("email") or person.get("id") or "")
    return str(person)


def _file_name(entry: Any) -> str:
    if isinstance(entry, dict):
        return str(entry.get("name") or entry.get("id") or "")
    return str(entry)

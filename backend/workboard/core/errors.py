"""Domain exception taxonomy for columns, values, items and automations."""

from __future__ import annotations

from typing import Any


class WorkboardError(Exception):
    """Base class for errors raised by the board core."""

    code = "workboard_error"
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.context:
            detail["context"] = {key: _jsonable(value) for key, value in self.context.items()}
        return detail


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(entry) for entry in value]
    return str(value)


class InvalidSettingsError(WorkboardError):
    """Column settings are missing or malformed for the column type."""

    code = "invalid_settings"
    status_code = 422


class ValueTypeMismatchError(WorkboardError):
    """A raw value does not have the shape its column type requires."""

    code = "value_type_mismatch"
    status_code = 422


class ValueOutOfRangeError(WorkboardError):
    """A raw value has the right shape but violates the column's bounds."""

    code = "value_out_of_range"
    status_code = 422


class InvalidAutomationError(WorkboardError):
    """An automation definition is missing its trigger, actions, or valid config."""

    code = "invalid_automation"
    status_code = 422


class InvalidItemHierarchyError(WorkboardError):
    """Subitems may only be nested one level below a top-level item."""

    code = "invalid_item_hierarchy"
    status_code = 422


class ItemHasSubitemsError(WorkboardError):
    """An item with subitems cannot be deleted without cascading."""

    code = "item_has_subitems"
    status_code = 409


class NotFoundError(WorkboardError):
    """An id did not resolve to a column, item, group, board or automation."""

    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} not found: {identifier}", kind=kind, id=identifier)
        self.kind = kind
        self.identifier = identifier


class AutomationCycleDetectedError(WorkboardError):
    """Automation-triggered-by-automation chain exceeded the configured depth."""

    code = "automation_cycle_detected"
    status_code = 409

    def __init__(self, depth: int, max_depth: int) -> None:
        super().__init__(
            f"Automation chain depth {depth} exceeds the limit of {max_depth}",
            depth=depth,
            max_depth=max_depth,
        )
        self.depth = depth
        self.max_depth = max_depth


class ActionFailedError(WorkboardError):
    """One action of an automation run failed."""

    code = "action_failed"
    status_code = 500

    def __init__(self, index: int, cause: BaseException | str) -> None:
        reason = cause if isinstance(cause, str) else _describe(cause)
        super().__init__(f"Action {index} failed: {reason}", index=index, cause=reason)
        self.index = index
        self.cause = cause


class CollaboratorTimeoutError(WorkboardError):
    """An awaited external collaborator did not answer within its bound."""

    code = "collaborator_timeout"
    status_code = 504


def _describe(exc: BaseException) -> str:
    if isinstance(exc, WorkboardError):
        return f"{exc.code}: {exc.message}"
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__

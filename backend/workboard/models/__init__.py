"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from workboard.models.activity import ActivityEntry
from workboard.models.automations import Automation, AutomationRun, RunStatus
from workboard.models.boards import Board, Group
from workboard.models.columns import BoardColumn, ColumnValue
from workboard.models.items import Item, ItemUpdate, Priority

__all__ = [
    "ActivityEntry",
    "Automation",
    "AutomationRun",
    "Board",
    "BoardColumn",
    "ColumnValue",
    "Group",
    "Item",
    "ItemUpdate",
    "Priority",
    "RunStatus",
]

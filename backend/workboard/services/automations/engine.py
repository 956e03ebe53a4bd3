"""Automation engine: definition CRUD and the trigger -> conditions -> actions pipeline.

Top-level events for a board are processed one at a time. Actions may cause
further events; those are dispatched one level deeper before the next
automation for the current event runs. A chain deeper than
`AUTOMATION_MAX_CHAIN_DEPTH` is cut with `AutomationCycleDetectedError`, and
every run on the offending chain is marked `cycle_detected`.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlmodel import SQLModel

from workboard.core.config import settings
from workboard.core.errors import (
    AutomationCycleDetectedError,
    InvalidAutomationError,
    NotFoundError,
    WorkboardError,
)
from workboard.core.logging import get_logger
from workboard.core.time import as_naive_utc, utcnow
from workboard.models.automations import Automation, AutomationRun, RunStatus
from workboard.services.automations.actions import ActionExecutor
from workboard.services.automations.conditions import evaluate_conditions
from workboard.services.automations.rules import (
    ChangeColumnAction,
    ChangeStatusAction,
    CreateItemAction,
    ItemCreatedTrigger,
    ItemMovedTrigger,
    MoveToGroupAction,
    dump_rule,
    parse_actions,
    parse_conditions,
    parse_trigger,
)
from workboard.services.automations.scheduler import collect_time_events
from workboard.services.automations.triggers import matches
from workboard.services.column_types import ColumnType
from workboard.services.column_values import validate_value
from workboard.services.notifications.queue import AutomationNotification
from workboard.services.persistence import BoardPersistence, NullPersistence, bounded, revise

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime
    from uuid import UUID

    from workboard.services.activity import ActivityLog
    from workboard.services.automations.events import BoardEvent
    from workboard.services.automations.rules import Action, Condition, Trigger
    from workboard.services.board_store import BoardStore
    from workboard.services.notifications.queue import Notifier

logger = get_logger(__name__)

_DATE_TYPES = (ColumnType.DATE, ColumnType.DUE_DATE)
# Column types a rule may point at through its `column_id`.
_RULE_COLUMN_TYPES: dict[str, tuple[ColumnType, ...]] = {
    "status_change": (ColumnType.STATUS,),
    "status_is": (ColumnType.STATUS,),
    "change_status": (ColumnType.STATUS,),
    "assignment_added": (ColumnType.PEOPLE,),
    "assignee_is": (ColumnType.PEOPLE,),
    "assign_person": (ColumnType.PEOPLE,),
    "has_label": (ColumnType.LABELS,),
    "add_label": (ColumnType.LABELS,),
    "file_uploaded": (ColumnType.FILES,),
    "date_arrives": _DATE_TYPES,
    "due_date_approaching": (ColumnType.DUE_DATE,),
    "date_is": _DATE_TYPES,
    "is_overdue": _DATE_TYPES,
    "set_date": _DATE_TYPES,
}


@dataclass(frozen=True)
class _Definition:
    trigger: Trigger
    conditions: list[Condition]
    actions: list[Action]


class AutomationEngine:
    """Owns the automations of one board and runs them against its store."""

    def __init__(
        self,
        store: BoardStore,
        activity: ActivityLog,
        *,
        notifier: Notifier | None = None,
        persistence: BoardPersistence | None = None,
        max_chain_depth: int | None = None,
        action_timeout: float | None = None,
        run_history_limit: int | None = None,
        notify_on_failure: bool | None = None,
        timeout: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._persistence: BoardPersistence = persistence or NullPersistence()
        self._max_chain_depth = max_chain_depth or settings.automation_max_chain_depth
        self._action_timeout = action_timeout or settings.automation_action_timeout_seconds
        self._history_limit = run_history_limit or settings.automation_run_history_limit
        self._notify_on_failure = (
            settings.automation_notify_on_failure if notify_on_failure is None else notify_on_failure
        )
        self._timeout = timeout or settings.collaborator_timeout_seconds
        self._clock = clock
        self._paused = False
        self._board_lock = asyncio.Lock()
        self._automations: dict[UUID, Automation] = {}
        self._definitions: dict[UUID, _Definition] = {}
        self._runs: dict[UUID, deque[AutomationRun]] = {}
        # (automation_id, item_id, fired_key) of time-driven runs already recorded.
        self._fired: set[tuple[UUID, UUID | None, str]] = set()
        self._executor = ActionExecutor(
            store,
            activity,
            notifier=notifier,
            timeout=self._action_timeout,
            is_paused=lambda: self._paused,
        )

    @property
    def board_id(self) -> UUID:
        return self._store.board_id

    @property
    def is_paused(self) -> bool:
        return self._paused

    async def _save(self, *records: SQLModel) -> None:
        for record in records:
            await bounded(
                self._persistence.save(record),
                timeout=self._timeout,
                operation=f"save {type(record).__name__}",
            )

    def load(self, automations: Iterable[Automation], runs: Iterable[AutomationRun] = ()) -> None:
        """Register stored automations and their run history."""
        for automation in automations:
            try:
                definition = self._parse(automation.trigger, automation.conditions, automation.actions)
            except WorkboardError:
                logger.warning(
                    "automation.definition.unloadable",
                    extra={"automation_id": str(automation.id)},
                    exc_info=True,
                )
                continue
            self._automations[automation.id] = automation
            self._definitions[automation.id] = definition
            self._runs[automation.id] = deque(maxlen=self._history_limit)
        for run in sorted(runs, key=lambda entry: entry.started_at):
            history = self._runs.get(run.automation_id)
            if history is None:
                continue
            history.append(run)
            if run.fired_key is not None:
                self._fired.add((run.automation_id, run.item_id, run.fired_key))

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def _parse(self, trigger: Any, conditions: Any, actions: Any) -> _Definition:
        return _Definition(
            trigger=parse_trigger(trigger),
            conditions=parse_conditions(conditions),
            actions=parse_actions(actions),
        )

    def _check_column(self, rule_type: str, column_id: UUID | None) -> None:
        if column_id is None:
            return
        try:
            column = self._store.get_column(column_id)
        except NotFoundError as exc:
            raise InvalidAutomationError(
                f"{rule_type} references an unknown column.",
                column_id=column_id,
            ) from exc
        allowed = _RULE_COLUMN_TYPES.get(rule_type)
        if allowed is not None and column.column_type not in allowed:
            raise InvalidAutomationError(
                f"{rule_type} cannot use a {column.column_type.value} column.",
                column_id=column_id,
            )

    def _check_group(self, rule_type: str, group_id: UUID | None) -> None:
        if group_id is None:
            return
        try:
            self._store.get_group(group_id)
        except NotFoundError as exc:
            raise InvalidAutomationError(
                f"{rule_type} references an unknown group.",
                group_id=group_id,
            ) from exc

    def _check_references(self, definition: _Definition) -> None:
        rules = [definition.trigger, *definition.conditions, *definition.actions]
        for rule in rules:
            self._check_column(rule.type, getattr(rule, "column_id", None))
        trigger = definition.trigger
        if isinstance(trigger, ItemCreatedTrigger):
            self._check_group(trigger.type, trigger.group_id)
        if isinstance(trigger, ItemMovedTrigger):
            self._check_group(trigger.type, trigger.from_group_id)
            self._check_group(trigger.type, trigger.to_group_id)
        for action in definition.actions:
            if isinstance(action, (CreateItemAction, MoveToGroupAction)):
                self._check_group(action.type, action.group_id)
            if isinstance(action, (ChangeStatusAction, ChangeColumnAction)) and action.column_id:
                column = self._store.get_column(action.column_id)
                try:
                    validate_value(column, action.value)
                except WorkboardError as exc:
                    raise InvalidAutomationError(
                        f"{action.type} value is not valid for its column: {exc.message}",
                        column_id=column.id,
                    ) from exc

    def _validated(
        self,
        name: str,
        trigger: Any,
        conditions: Any,
        actions: Any,
    ) -> _Definition:
        if not name or not name.strip():
            raise InvalidAutomationError("Automations require a name.")
        definition = self._parse(trigger, conditions, actions)
        self._check_references(definition)
        return definition

    async def create(
        self,
        name: str,
        trigger: Any,
        conditions: Any = None,
        actions: Any = None,
        *,
        description: str | None = None,
        is_active: bool = True,
        created_by: str | None = None,
    ) -> Automation:
        """Validate and register an automation.

        Raises `InvalidAutomationError` without a trigger or actions, or when
        any rule is malformed or points at an unknown column or group.
        """
        definition = self._validated(name, trigger, conditions, actions)
        now = utcnow()
        automation = Automation(
            board_id=self.board_id,
            name=name.strip(),
            description=description,
            is_active=is_active,
            trigger=dump_rule(definition.trigger),
            conditions=[dump_rule(condition) for condition in definition.conditions],
            actions=[dump_rule(action) for action in definition.actions],
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        await self._save(automation)
        self._automations[automation.id] = automation
        self._definitions[automation.id] = definition
        self._runs[automation.id] = deque(maxlen=self._history_limit)
        logger.info(
            "automation.created",
            extra={
                "board_id": str(self.board_id),
                "automation_id": str(automation.id),
                "trigger": definition.trigger.type,
                "actions": len(definition.actions),
            },
        )
        return automation

    async def update(
        self,
        automation_id: UUID,
        *,
        name: str | None = None,
        description: str | None = None,
        trigger: Any = None,
        conditions: Any = None,
        actions: Any = None,
        is_active: bool | None = None,
    ) -> Automation:
        """Edit an automation; omitted fields keep their current value."""
        current = self.get(automation_id)
        new_name = current.name if name is None else name
        definition = self._validated(
            new_name,
            current.trigger if trigger is None else trigger,
            current.conditions if conditions is None else conditions,
            current.actions if actions is None else actions,
        )
        revised = revise(
            current,
            name=new_name.strip(),
            description=current.description if description is None else description,
            is_active=current.is_active if is_active is None else is_active,
            trigger=dump_rule(definition.trigger),
            conditions=[dump_rule(condition) for condition in definition.conditions],
            actions=[dump_rule(action) for action in definition.actions],
            updated_at=utcnow(),
        )
        await self._save(revised)
        self._automations[automation_id] = revised
        self._definitions[automation_id] = definition
        return revised

    async def delete(self, automation_id: UUID) -> None:
        automation = self.get(automation_id)
        for run in self._runs.get(automation_id, ()):
            await bounded(
                self._persistence.delete(run),
                timeout=self._timeout,
                operation="delete AutomationRun",
            )
        await bounded(
            self._persistence.delete(automation),
            timeout=self._timeout,
            operation="delete Automation",
        )
        self._automations.pop(automation_id, None)
        self._definitions.pop(automation_id, None)
        self._runs.pop(automation_id, None)
        self._fired = {key for key in self._fired if key[0] != automation_id}
        logger.info("automation.deleted", extra={"automation_id": str(automation_id)})

    def get(self, automation_id: UUID) -> Automation:
        automation = self._automations.get(automation_id)
        if automation is None:
            raise NotFoundError("automation", automation_id)
        return automation

    def list_automations(self, *, active_only: bool = False) -> list[Automation]:
        return [
            automation
            for automation in self._automations.values()
            if automation.is_active or not active_only
        ]

    async def toggle(self, automation_id: UUID, is_active: bool) -> Automation:
        current = self.get(automation_id)
        if current.is_active == is_active:
            return current
        revised = revise(current, is_active=is_active, updated_at=utcnow())
        await self._save(revised)
        self._automations[automation_id] = revised
        logger.info(
            "automation.toggled",
            extra={"automation_id": str(automation_id), "is_active": is_active},
        )
        return revised

    def pause_all(self) -> None:
        """Stop dispatching new events; running sequences stop before their next action."""
        self._paused = True
        logger.info("automation.board.paused", extra={"board_id": str(self.board_id)})

    def resume_all(self) -> None:
        self._paused = False
        logger.info("automation.board.resumed", extra={"board_id": str(self.board_id)})

    def list_runs(self, automation_id: UUID, limit: int | None = None) -> list[AutomationRun]:
        """Recent runs of an automation, newest first."""
        self.get(automation_id)
        runs = list(reversed(self._runs.get(automation_id, ())))
        return runs if limit is None else runs[:limit]

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def handle_event(self, event: BoardEvent) -> list[AutomationRun]:
        """Run every matching active automation for a top-level event.

        Cycle errors are recorded on the affected runs and not raised.
        """
        if self._paused:
            logger.info(
                "automation.event.ignored",
                extra={"board_id": str(self.board_id), "event_type": event.trigger_type},
            )
            return []
        runs: list[AutomationRun] = []
        async with self._board_lock:
            await self.dispatch(event, runs=runs)
        return runs

    async def tick(self, now: datetime | None = None) -> list[AutomationRun]:
        """Synthesize and dispatch time-driven events as of `now`.

        Each (automation, item, column, date) combination runs at most once, also
        across reloads: the key is stored on the run and rebuilt by `load`.
        """
        moment = as_naive_utc(now) if now is not None else self._clock()
        if self._paused:
            return []
        triggers = [
            self._definitions[automation.id].trigger
            for automation in self.list_automations(active_only=True)
        ]
        runs: list[AutomationRun] = []
        async with self._board_lock:
            self._prune_fired()
            for time_event in collect_time_events(self._store, triggers, now=moment):
                await self.dispatch(
                    time_event.event,
                    runs=runs,
                    now=moment,
                    fired_key=time_event.token,
                )
        return runs

    def _prune_fired(self) -> None:
        """Forget fired keys whose automation or item no longer exists."""
        self._fired = {
            key
            for key in self._fired
            if key[0] in self._automations and (key[1] is None or self._store.has_item(key[1]))
        }

    async def dispatch(
        self,
        event: BoardEvent,
        *,
        depth: int = 0,
        runs: list[AutomationRun] | None = None,
        now: datetime | None = None,
        fired_key: str | None = None,
    ) -> list[AutomationRun]:
        """Run the pipeline for one event at a given chain depth.

        Raises `AutomationCycleDetectedError` when `depth` exceeds the bound.
        At depth 0 the error ends only the chain of the automation that
        started it; the remaining automations for the event still run.
        """
        if depth > self._max_chain_depth:
            raise AutomationCycleDetectedError(depth, self._max_chain_depth)
        collected = runs if runs is not None else []
        moment = now or self._clock()
        for automation_id in list(self._automations):
            if self._paused:
                break
            automation = self._automations.get(automation_id)
            definition = self._definitions.get(automation_id)
            if automation is None or definition is None or not automation.is_active:
                continue
            if not matches(definition.trigger, event, now=moment):
                continue
            if fired_key is not None and (automation_id, event.item_id, fired_key) in self._fired:
                continue
            if definition.conditions:
                snapshot = (
                    await self._store.read_snapshot(event.item_id)
                    if event.item_id is not None
                    else None
                )
                if snapshot is None or not evaluate_conditions(
                    definition.conditions,
                    snapshot,
                    now=moment,
                ):
                    continue
            run, follow_ups = await self._run(
                automation_id,
                definition,
                event,
                depth,
                moment,
                fired_key=fired_key,
            )
            collected.append(run)
            if fired_key is not None:
                self._fired.add((automation_id, event.item_id, fired_key))
            for follow_up in follow_ups:
                try:
                    await self.dispatch(follow_up, depth=depth + 1, runs=collected)
                except AutomationCycleDetectedError as exc:
                    marked = await self._mark_cycle(run, exc)
                    collected[:] = [marked if entry.id == run.id else entry for entry in collected]
                    if depth > 0:
                        raise
                    logger.warning(
                        "automation.chain.cycle_detected",
                        extra={
                            "board_id": str(self.board_id),
                            "automation_id": str(automation_id),
                            "event_type": event.trigger_type,
                            "depth": exc.depth,
                            "max_depth": exc.max_depth,
                        },
                    )
                    break
        return collected

    async def _run(
        self,
        automation_id: UUID,
        definition: _Definition,
        event: BoardEvent,
        depth: int,
        now: datetime,
        *,
        fired_key: str | None = None,
    ) -> tuple[AutomationRun, list[BoardEvent]]:
        automation = self.get(automation_id)
        started_at = utcnow()
        started = time.perf_counter()
        result = await self._executor.execute(
            automation,
            definition.actions,
            item_id=event.item_id,
            now=now,
        )
        finished_at = utcnow()
        run = AutomationRun(
            automation_id=automation_id,
            board_id=self.board_id,
            event_type=event.trigger_type,
            item_id=event.item_id,
            depth=depth,
            fired_key=fired_key,
            status=result.status,
            failed_action_index=result.failed_action_index,
            error=result.error,
            action_results=[outcome.to_dict() for outcome in result.outcomes],
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        # The automation may have been edited by its own actions' follow-ups.
        latest = self._automations.get(automation_id, automation)
        counted = revise(latest, run_count=latest.run_count + 1, last_run=finished_at)
        await self._save(run, counted)
        if automation_id in self._automations:
            self._automations[automation_id] = counted
        self._runs.setdefault(automation_id, deque(maxlen=self._history_limit)).append(run)
        logger.info(
            "automation.run.completed",
            extra={
                "automation_id": str(automation_id),
                "event_type": event.trigger_type,
                "status": run.status.value,
                "depth": depth,
                "duration_ms": run.duration_ms,
            },
        )
        if run.status == RunStatus.PARTIAL_FAILURE:
            await self._notify_failure(counted, run)
        return run, result.events

    async def _mark_cycle(
        self,
        run: AutomationRun,
        exc: AutomationCycleDetectedError,
    ) -> AutomationRun:
        marked = revise(run, status=RunStatus.CYCLE_DETECTED, error=exc.message)
        await self._save(marked)
        history = self._runs.get(run.automation_id)
        if history is not None:
            for index, entry in enumerate(history):
                if entry.id == run.id:
                    history[index] = marked
                    break
        automation = self._automations.get(run.automation_id)
        if automation is not None:
            await self._notify_failure(automation, marked)
        return marked

    async def _notify_failure(self, automation: Automation, run: AutomationRun) -> None:
        if not self._notify_on_failure or self._notifier is None:
            return
        notification = AutomationNotification(
            event_type="run_failed",
            board_id=self.board_id,
            automation_id=automation.id,
            item_id=run.item_id,
            message=f"Automation '{automation.name}' finished with {run.status.value}.",
            recipient_ids=[automation.created_by] if automation.created_by else [],
            payload={
                "run_id": str(run.id),
                "status": run.status.value,
                "failed_action_index": run.failed_action_index,
                "error": run.error,
            },
        )
        try:
            await asyncio.wait_for(self._notifier.send(notification), timeout=self._action_timeout)
        except TimeoutError:
            logger.warning(
                "automation.notification.timeout",
                extra={"automation_id": str(automation.id), "run_id": str(run.id)},
            )

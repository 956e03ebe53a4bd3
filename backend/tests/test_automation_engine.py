# ruff: noqa: INP001
"""Automation engine tests: definitions, pipeline, cycles, pause and ticks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest

from workboard.core.errors import InvalidAutomationError, NotFoundError
from workboard.models import Automation, Board, BoardColumn, Group, Item, RunStatus
from workboard.services.activity import ActivityLog
from workboard.services.automations.engine import AutomationEngine
from workboard.services.automations.events import ItemCreated, events_for_change
from workboard.services.board_store import BoardStore
from workboard.services.column_types import ColumnType
from workboard.services.notifications.queue import AutomationNotification

NOW = datetime(2024, 5, 1, 12, 0)


@dataclass
class _FakeNotifier:
    sent: list[AutomationNotification] = field(default_factory=list)

    async def send(self, notification: AutomationNotification) -> bool:
        self.sent.append(notification)
        return True


@dataclass
class _Board:
    store: BoardStore
    activity: ActivityLog
    engine: AutomationEngine
    notifier: _FakeNotifier
    backlog: Group
    done: Group
    status: BoardColumn
    notes: BoardColumn
    item: Item


async def _board(**engine_kwargs: Any) -> _Board:
    store = BoardStore(Board(name="Ops"))
    activity = ActivityLog(store.board_id)
    notifier = _FakeNotifier()
    engine = AutomationEngine(store, activity, notifier=notifier, **engine_kwargs)
    backlog = await store.create_group("Backlog")
    done = await store.create_group("Done")
    status = await store.define_column(
        "Status",
        ColumnType.STATUS,
        {"labels": ["Todo", "Working", "Done", "Stuck"]},
    )
    notes = await store.define_column("Notes", ColumnType.TEXT)
    item = await store.create_item(backlog.id, "Task")
    return _Board(store, activity, engine, notifier, backlog, done, status, notes, item)


async def _write(board: _Board, column: BoardColumn, value: Any) -> list[Any]:
    change = await board.store.apply_value(board.item.id, column.id, value)
    runs: list[Any] = []
    for event in events_for_change(change):
        runs.extend(await board.engine.handle_event(event))
    return runs


async def _status_automation(
    board: _Board,
    to_value: str,
    actions: list[dict[str, Any]],
    **kwargs: Any,
) -> Automation:
    return await board.engine.create(
        f"When {to_value}",
        {"type": "status_change", "column_id": str(board.status.id), "to_value": to_value},
        kwargs.pop("conditions", []),
        actions,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_create_normalizes_and_stores_definition() -> None:
    board = await _board()

    automation = await board.engine.create(
        "  Move finished work ",
        {"type": "status_change", "config": {"to_value": "Done"}},
        [{"type": "priority_is", "value": "high"}],
        [{"type": "move_to_group", "group_id": str(board.done.id)}],
        created_by="u1",
    )

    assert automation.name == "Move finished work"
    assert automation.trigger == {"type": "status_change", "to_value": "Done"}
    assert automation.conditions == [{"type": "priority_is", "value": "high"}]
    assert automation.actions == [{"type": "move_to_group", "group_id": str(board.done.id)}]
    assert automation.created_by == "u1"
    assert board.engine.list_automations() == [automation]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("name", "trigger", "actions"),
    [
        ("", {"type": "item_created"}, [{"type": "archive_item"}]),
        ("No trigger", None, [{"type": "archive_item"}]),
        ("No actions", {"type": "item_created"}, []),
        ("Bad action", {"type": "item_created"}, [{"type": "launch_rocket"}]),
        (
            "Unknown column",
            {"type": "column_changed", "column_id": str(uuid4())},
            [{"type": "archive_item"}],
        ),
        (
            "Unknown group",
            {"type": "item_created", "group_id": str(uuid4())},
            [{"type": "archive_item"}],
        ),
    ],
)
async def test_create_rejects_invalid_definitions(
    name: str,
    trigger: Any,
    actions: list[dict[str, Any]],
) -> None:
    board = await _board()

    with pytest.raises(InvalidAutomationError):
        await board.engine.create(name, trigger, [], actions)
    assert board.engine.list_automations() == []


@pytest.mark.asyncio
async def test_create_rejects_wrong_column_types_and_values() -> None:
    board = await _board()

    with pytest.raises(InvalidAutomationError):
        await board.engine.create(
            "Status on text",
            {"type": "status_change", "column_id": str(board.notes.id)},
            [],
            [{"type": "archive_item"}],
        )
    with pytest.raises(InvalidAutomationError):
        await board.engine.create(
            "Unknown label",
            {"type": "item_created"},
            [],
            [{"type": "change_status", "column_id": str(board.status.id), "value": "Shipped"}],
        )
    with pytest.raises(InvalidAutomationError):
        await board.engine.create(
            "Move nowhere",
            {"type": "item_created"},
            [],
            [{"type": "move_to_group", "group_id": str(uuid4())}],
        )


@pytest.mark.asyncio
async def test_status_change_runs_matching_automation() -> None:
    board = await _board()
    automation = await _status_automation(
        board,
        "Done",
        [
            {"type": "move_to_group", "group_id": str(board.done.id)},
            {"type": "add_update", "body": "Finished"},
        ],
    )

    assert await _write(board, board.status, "Working") == []
    runs = await _write(board, board.status, "Done")

    assert [run.status for run in runs] == [RunStatus.SUCCESS]
    assert runs[0].depth == 0
    assert runs[0].event_type == "status_change"
    assert board.store.get_item(board.item.id).group_id == board.done.id
    assert board.store.updates(board.item.id)[0].body == "Finished"
    refreshed = board.engine.get(automation.id)
    assert refreshed.run_count == 1
    assert refreshed.last_run is not None


@pytest.mark.asyncio
async def test_unchanged_write_produces_no_event() -> None:
    board = await _board()
    await _status_automation(board, "Done", [{"type": "add_update", "body": "again"}])

    await _write(board, board.status, "Done")
    assert await _write(board, board.status, "Done") == []
    assert len(board.store.updates(board.item.id)) == 1


@pytest.mark.asyncio
async def test_conditions_gate_the_run() -> None:
    board = await _board()
    automation = await _status_automation(
        board,
        "Done",
        [{"type": "add_update", "body": "High priority done"}],
        conditions=[{"type": "priority_is", "value": "high"}],
    )

    assert await _write(board, board.status, "Working") == []
    after_mismatch = board.engine.get(automation.id)
    assert (after_mismatch.run_count, after_mismatch.last_run) == (0, None)

    assert await _write(board, board.status, "Done") == []
    after_false_condition = board.engine.get(automation.id)
    assert (after_false_condition.run_count, after_false_condition.last_run) == (0, None)
    assert board.engine.list_runs(automation.id) == []
    assert board.store.updates(board.item.id) == []

    await board.store.update_item(board.item.id, priority="high")
    await _write(board, board.status, "Working")
    runs = await _write(board, board.status, "Done")

    assert len(runs) == 1
    assert board.engine.get(automation.id).run_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("is_active", "archived", "run_count"),
    [(True, True, 1), (False, False, 0)],
)
async def test_status_done_condition_archives_item(
    is_active: bool,
    archived: bool,
    run_count: int,
) -> None:
    board = await _board()
    automation = await board.engine.create(
        "Archive finished work",
        {"type": "status_change", "column_id": str(board.status.id)},
        [{"type": "status_is", "value": "Done", "column_id": str(board.status.id)}],
        [{"type": "archive_item"}],
        is_active=is_active,
    )

    await _write(board, board.status, "Working")
    await _write(board, board.status, "Done")

    refreshed = board.engine.get(automation.id)
    assert board.store.get_item(board.item.id).is_archived is archived
    assert refreshed.run_count == run_count
    assert (refreshed.last_run is not None) is is_active


@pytest.mark.asyncio
async def test_inactive_automations_do_not_run_until_toggled() -> None:
    board = await _board()
    automation = await _status_automation(
        board,
        "Done",
        [{"type": "add_update", "body": "x"}],
        is_active=False,
    )

    assert await _write(board, board.status, "Done") == []
    assert board.engine.list_automations(active_only=True) == []
    assert board.engine.get(automation.id).run_count == 0
    assert board.engine.get(automation.id).last_run is None
    assert board.store.updates(board.item.id) == []

    toggled = await board.engine.toggle(automation.id, True)
    await _write(board, board.status, "Todo")
    runs = await _write(board, board.status, "Done")

    assert toggled.is_active
    assert len(runs) == 1
    assert board.engine.get(automation.id).run_count == 1


@pytest.mark.asyncio
async def test_follow_up_events_run_one_level_deeper() -> None:
    board = await _board()
    await _status_automation(board, "Done", [{"type": "create_item", "name": "Retro"}])
    await board.engine.create(
        "Tag new items",
        {"type": "item_created", "group_id": str(board.backlog.id)},
        [],
        [{"type": "add_update", "body": "Auto-created"}],
    )

    runs = await _write(board, board.status, "Done")

    assert [(run.event_type, run.depth) for run in runs] == [
        ("status_change", 0),
        ("item_created", 1),
    ]
    retro = next(item for item in board.store.list_items() if item.name == "Retro")
    assert board.store.updates(retro.id)[0].body == "Auto-created"


@pytest.mark.asyncio
async def test_ping_pong_automations_are_cut_as_cycles() -> None:
    board = await _board(max_chain_depth=3)
    forward = await _status_automation(board, "Todo", [{"type": "change_status", "value": "Working"}])
    backward = await _status_automation(board, "Working", [{"type": "change_status", "value": "Todo"}])

    runs = await _write(board, board.status, "Todo")

    assert [run.depth for run in runs] == [0, 1, 2, 3]
    assert {run.status for run in runs} == {RunStatus.CYCLE_DETECTED}
    assert all("depth" in (run.error or "") for run in runs)
    assert board.engine.list_runs(forward.id)[0].status == RunStatus.CYCLE_DETECTED
    assert board.engine.list_runs(backward.id)[0].status == RunStatus.CYCLE_DETECTED
    assert any(note.event_type == "run_failed" for note in board.notifier.sent)


@pytest.mark.asyncio
async def test_cycle_does_not_stop_other_automations_on_the_event() -> None:
    board = await _board(max_chain_depth=3)
    await _status_automation(board, "Todo", [{"type": "change_status", "value": "Working"}])
    await _status_automation(board, "Working", [{"type": "change_status", "value": "Todo"}])
    audit = await _status_automation(board, "Todo", [{"type": "add_update", "body": "Reopened"}])

    runs = await _write(board, board.status, "Todo")

    audited = board.engine.get(audit.id)
    assert [(run.depth, run.status) for run in runs if run.automation_id == audit.id] == [
        (0, RunStatus.SUCCESS),
    ]
    assert audited.run_count == 1
    assert audited.last_run is not None
    assert [update.body for update in board.store.updates(board.item.id)] == ["Reopened"]
    assert [run.status for run in runs if run.automation_id != audit.id] == [
        RunStatus.CYCLE_DETECTED,
    ] * 4


@pytest.mark.asyncio
async def test_partial_failure_is_recorded_and_notified() -> None:
    board = await _board()
    automation = await _status_automation(
        board,
        "Stuck",
        [
            {"type": "add_update", "body": "Flagged"},
            {"type": "delete_item"},
            {"type": "add_update", "body": "unreachable"},
        ],
        created_by="owner-1",
    )

    runs = await _write(board, board.status, "Stuck")

    run = runs[0]
    assert run.status == RunStatus.PARTIAL_FAILURE
    assert run.failed_action_index == 2
    assert [result["ok"] for result in run.action_results] == [True, True, False]
    failure = board.notifier.sent[-1]
    assert failure.event_type == "run_failed"
    assert failure.automation_id == automation.id
    assert failure.recipient_ids == ["owner-1"]
    assert failure.payload["status"] == "partial_failure"


@pytest.mark.asyncio
async def test_failure_notifications_can_be_disabled() -> None:
    board = await _board(notify_on_failure=False)
    await _status_automation(board, "Stuck", [{"type": "move_to_group", "group_id": str(board.done.id)}])
    await board.store.create_item(None, "Child", parent_item_id=board.item.id)
    await _status_automation(board, "Stuck", [{"type": "delete_item"}])

    runs = await _write(board, board.status, "Stuck")

    assert [run.status for run in runs] == [RunStatus.SUCCESS, RunStatus.PARTIAL_FAILURE]
    assert board.notifier.sent == []


@pytest.mark.asyncio
async def test_paused_board_ignores_events_until_resumed() -> None:
    board = await _board()
    await _status_automation(board, "Done", [{"type": "add_update", "body": "x"}])

    board.engine.pause_all()
    assert board.engine.is_paused
    assert await _write(board, board.status, "Done") == []

    board.engine.resume_all()
    await _write(board, board.status, "Todo")
    assert len(await _write(board, board.status, "Done")) == 1


@pytest.mark.asyncio
async def test_tick_fires_date_automations_once() -> None:
    board = await _board()
    deadline = await board.store.define_column("Deadline", ColumnType.DUE_DATE)
    await board.store.apply_value(board.item.id, deadline.id, "2024-05-01T08:00:00")
    automation = await board.engine.create(
        "Escalate overdue",
        {"type": "date_arrives", "column_id": str(deadline.id)},
        [{"type": "is_overdue", "column_id": str(deadline.id)}],
        [{"type": "change_status", "value": "Stuck"}],
    )

    first = await board.engine.tick(NOW)
    second = await board.engine.tick(NOW + timedelta(minutes=5))

    assert [run.automation_id for run in first] == [automation.id]
    assert second == []
    assert await board.store.get_value(board.item.id, board.status.id) == "Stuck"


@pytest.mark.asyncio
async def test_tick_due_date_approaching_with_lead_hours() -> None:
    board = await _board()
    await board.store.update_item(board.item.id, due_date=NOW + timedelta(hours=2))
    await board.engine.create(
        "Remind",
        {"type": "due_date_approaching", "lead_hours": 3},
        [],
        [{"type": "add_update", "body": "Due soon"}],
    )

    assert len(await board.engine.tick(NOW - timedelta(hours=2))) == 0
    assert len(await board.engine.tick(NOW)) == 1


@pytest.mark.asyncio
async def test_fired_time_triggers_stay_fired_after_reload() -> None:
    board = await _board()
    kickoff = await board.store.define_column("Kickoff", ColumnType.DATE)
    await board.store.apply_value(board.item.id, kickoff.id, "2024-05-01")
    automation = await board.engine.create(
        "Kickoff reached",
        {"type": "date_arrives", "column_id": str(kickoff.id)},
        [],
        [{"type": "add_update", "body": "arrived"}],
    )

    first = await board.engine.tick(NOW)
    reloaded = AutomationEngine(board.store, board.activity)
    reloaded.load([board.engine.get(automation.id)], board.engine.list_runs(automation.id))
    second = await reloaded.tick(NOW + timedelta(hours=1))

    assert first[0].fired_key is not None
    assert second == []
    assert [update.body for update in board.store.updates(board.item.id)] == ["arrived"]


@pytest.mark.asyncio
async def test_fired_keys_are_dropped_with_their_item_or_automation() -> None:
    board = await _board()
    kickoff = await board.store.define_column("Kickoff", ColumnType.DATE)
    other = await board.store.create_item(board.backlog.id, "Other")
    for item_id in (board.item.id, other.id):
        await board.store.apply_value(item_id, kickoff.id, "2024-05-01")
    automation = await board.engine.create(
        "Kickoff reached",
        {"type": "date_arrives", "column_id": str(kickoff.id)},
        [],
        [{"type": "send_notification", "message": "Kickoff"}],
    )

    assert len(await board.engine.tick(NOW)) == 2
    assert len(board.engine._fired) == 2  # noqa: SLF001

    await board.store.delete_item(other.id)
    assert await board.engine.tick(NOW) == []
    assert len(board.engine._fired) == 1  # noqa: SLF001

    await board.engine.delete(automation.id)
    assert board.engine._fired == set()  # noqa: SLF001


@pytest.mark.asyncio
async def test_event_for_unknown_item_skips_conditional_automations() -> None:
    board = await _board()
    await board.engine.create(
        "Conditional",
        {"type": "item_created"},
        [{"type": "priority_is", "value": "medium"}],
        [{"type": "send_notification", "message": "hi"}],
    )

    runs = await board.engine.handle_event(ItemCreated(uuid4()))

    assert runs == []


@pytest.mark.asyncio
async def test_update_delete_and_run_history() -> None:
    board = await _board(run_history_limit=2)
    automation = await _status_automation(board, "Done", [{"type": "add_update", "body": "x"}])

    for _ in range(3):
        await _write(board, board.status, "Todo")
        await _write(board, board.status, "Done")

    runs = board.engine.list_runs(automation.id)
    assert len(runs) == 2
    assert runs[0].started_at >= runs[1].started_at
    assert len(board.engine.list_runs(automation.id, limit=1)) == 1

    updated = await board.engine.update(automation.id, name="Renamed", is_active=False)
    assert updated.name == "Renamed"
    assert updated.trigger == automation.trigger
    assert not updated.is_active
    with pytest.raises(InvalidAutomationError):
        await board.engine.update(automation.id, actions=[])

    await board.engine.delete(automation.id)
    with pytest.raises(NotFoundError):
        board.engine.get(automation.id)
    with pytest.raises(NotFoundError):
        board.engine.list_runs(automation.id)


@pytest.mark.asyncio
async def test_load_skips_unparseable_definitions() -> None:
    board = await _board()
    good = Automation(
        board_id=board.store.board_id,
        name="Good",
        trigger={"type": "item_created"},
        actions=[{"type": "archive_item"}],
    )
    broken = Automation(
        board_id=board.store.board_id,
        name="Broken",
        trigger={"type": "teleport"},
        actions=[{"type": "archive_item"}],
    )

    board.engine.load([good, broken])

    assert [automation.name for automation in board.engine.list_automations()] == ["Good"]

# ruff: noqa: INP001
"""Integration tests for board, group and item endpoints."""

from __future__ import annotations

from typing import Any
from uuid import uuid4

import pytest
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient

from workboard.api.boards import router as boards_router
from workboard.core.error_handling import install_error_handling
from workboard.services.board_registry import BoardRegistry

ACTOR = {"X-Actor-Id": "u1"}


def _build_test_app(registry: BoardRegistry) -> FastAPI:
    app = FastAPI()
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(boards_router)
    app.include_router(api_v1)
    install_error_handling(app)
    app.state.registry = registry
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


async def _create_board(client: AsyncClient) -> tuple[str, str]:
    board = (await client.post("/api/v1/boards", json={"name": " Launch "})).json()
    group = (
        await client.post(f"/api/v1/boards/{board['id']}/groups", json={"title": "Backlog"})
    ).json()
    return board["id"], group["id"]


async def _create_item(client: AsyncClient, board_id: str, **body: Any) -> dict[str, Any]:
    response = await client.post(f"/api/v1/boards/{board_id}/items", json=body, headers=ACTOR)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_board_and_read_detail() -> None:
    registry = BoardRegistry()
    async with _client(_build_test_app(registry)) as client:
        created = await client.post("/api/v1/boards", json={"name": " Launch "})
        board_id = created.json()["id"]
        await client.post(f"/api/v1/boards/{board_id}/groups", json={"title": "Backlog"})
        detail = await client.get(f"/api/v1/boards/{board_id}")

    assert created.status_code == 201
    assert created.json()["name"] == "Launch"
    assert detail.status_code == 200
    body = detail.json()
    assert [group["title"] for group in body["groups"]] == ["Backlog"]
    assert body["columns"] == [] and body["items"] == []
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_blank_board_name_is_rejected() -> None:
    async with _client(_build_test_app(BoardRegistry())) as client:
        response = await client.post("/api/v1/boards", json={"name": "  "})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_board_is_404_with_domain_detail() -> None:
    async with _client(_build_test_app(BoardRegistry())) as client:
        response = await client.get(f"/api/v1/boards/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"
    assert response.json()["detail"]["context"]["kind"] == "board"


@pytest.mark.asyncio
async def test_item_lifecycle_endpoints() -> None:
    async with _client(_build_test_app(BoardRegistry())) as client:
        board_id, group_id = await _create_board(client)
        done = (
            await client.post(f"/api/v1/boards/{board_id}/groups", json={"title": "Done"})
        ).json()
        item = await _create_item(client, board_id, name="Task", group_id=group_id)
        base = f"/api/v1/boards/{board_id}/items/{item['id']}"

        patched = await client.patch(base, json={"priority": "high"})
        moved = await client.post(f"{base}/move", json={"group_id": done["id"]})
        copy = await client.post(f"{base}/duplicate", headers=ACTOR)
        archived = await client.post(f"{base}/archive")
        listed = await client.get(f"/api/v1/boards/{board_id}")
        restored = await client.post(f"{base}/restore")
        update = await client.post(f"{base}/updates", json={"body": "Shipped"}, headers=ACTOR)
        updates = await client.get(f"{base}/updates")

    assert item["creator_id"] == "u1"
    assert patched.json()["priority"] == "high"
    assert moved.json()["group_id"] == done["id"]
    assert copy.status_code == 201
    assert copy.json()["name"] == "Task (Copy)"
    assert archived.json()["is_archived"] is True
    assert [entry["id"] for entry in listed.json()["items"]] == [copy.json()["id"]]
    assert restored.json()["is_archived"] is False
    assert update.status_code == 201
    assert [entry["body"] for entry in updates.json()] == ["Shipped"]
    assert updates.json()[0]["author_id"] == "u1"


@pytest.mark.asyncio
async def test_subitems_and_delete_cascade() -> None:
    async with _client(_build_test_app(BoardRegistry())) as client:
        board_id, group_id = await _create_board(client)
        parent = await _create_item(client, board_id, name="Parent", group_id=group_id)
        child = await _create_item(client, board_id, name="Child", parent_item_id=parent["id"])
        nested = await client.post(
            f"/api/v1/boards/{board_id}/items",
            json={"name": "Grandchild", "parent_item_id": child["id"]},
        )
        subitems = await client.get(f"/api/v1/boards/{board_id}/items/{parent['id']}/subitems")
        blocked = await client.delete(f"/api/v1/boards/{board_id}/items/{parent['id']}")
        deleted = await client.delete(
            f"/api/v1/boards/{board_id}/items/{parent['id']}",
            params={"cascade_subitems": True},
        )
        missing = await client.get(f"/api/v1/boards/{board_id}/items/{child['id']}")

    assert child["group_id"] == group_id
    assert nested.status_code == 422
    assert nested.json()["code"] == "invalid_item_hierarchy"
    assert [entry["id"] for entry in subitems.json()] == [child["id"]]
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "item_has_subitems"
    assert set(deleted.json()["deleted_item_ids"]) == {parent["id"], child["id"]}
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_dependencies_endpoints() -> None:
    async with _client(_build_test_app(BoardRegistry())) as client:
        board_id, group_id = await _create_board(client)
        first = await _create_item(client, board_id, name="First", group_id=group_id)
        second = await _create_item(client, board_id, name="Second", group_id=group_id)
        base = f"/api/v1/boards/{board_id}/items/{second['id']}/dependencies"

        linked = await client.post(base, json={"depends_on_id": first["id"]})
        self_link = await client.post(base, json={"depends_on_id": second["id"]})
        unlinked = await client.delete(f"{base}/{first['id']}")

    assert linked.json()["dependency_ids"] == [first["id"]]
    assert self_link.status_code == 422
    assert unlinked.json()["dependency_ids"] == []


@pytest.mark.asyncio
async def test_activity_feed_filters_by_item() -> None:
    async with _client(_build_test_app(BoardRegistry())) as client:
        board_id, group_id = await _create_board(client)
        item = await _create_item(client, board_id, name="Task", group_id=group_id)
        await client.patch(
            f"/api/v1/boards/{board_id}/items/{item['id']}",
            json={"name": "Renamed"},
            headers=ACTOR,
        )
        feed = await client.get(f"/api/v1/boards/{board_id}/activity")
        item_feed = await client.get(
            f"/api/v1/boards/{board_id}/activity",
            params={"item_id": item["id"], "action_prefix": "item."},
        )

    assert [entry["action"] for entry in feed.json()] == [
        "group.created",
        "item.created",
        "item.updated",
    ]
    assert [entry["action"] for entry in item_feed.json()] == ["item.created", "item.updated"]
    assert {entry["actor_id"] for entry in item_feed.json()} == {"u1"}

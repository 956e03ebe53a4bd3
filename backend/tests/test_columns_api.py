# ruff: noqa: INP001
"""Integration tests for column definition and value endpoints."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient

from workboard.api.automations import router as automations_router
from workboard.api.boards import router as boards_router
from workboard.api.columns import column_types_router
from workboard.api.columns import router as columns_router
from workboard.core.error_handling import install_error_handling
from workboard.services.board_registry import BoardRegistry
from workboard.services.column_types import list_column_types


def _build_test_app() -> FastAPI:
    app = FastAPI()
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(boards_router)
    api_v1.include_router(columns_router)
    api_v1.include_router(column_types_router)
    api_v1.include_router(automations_router)
    app.include_router(api_v1)
    install_error_handling(app)
    app.state.registry = BoardRegistry()
    return app


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=_build_test_app()), base_url="http://testserver")


async def _seed(client: AsyncClient) -> dict[str, Any]:
    board = (await client.post("/api/v1/boards", json={"name": "Launch"})).json()
    base = f"/api/v1/boards/{board['id']}"
    group = (await client.post(f"{base}/groups", json={"title": "Backlog"})).json()
    item = (await client.post(f"{base}/items", json={"name": "Task", "group_id": group["id"]})).json()
    status = await client.post(
        f"{base}/columns",
        json={
            "title": "Status",
            "column_type": "STATUS",
            "settings": {"labels": ["Todo", "Done"]},
        },
    )
    assert status.status_code == 201, status.text
    return {"base": base, "item": item, "group": group, "status": status.json()}


@pytest.mark.asyncio
async def test_column_type_catalog() -> None:
    async with _client() as client:
        response = await client.get("/api/v1/column-types")

    assert response.status_code == 200
    types = {entry["type"]: entry for entry in response.json()}
    assert len(types) == len(list_column_types())
    assert types["FORMULA"]["computed"] is True
    assert types["PEOPLE"]["supports_multiple"] is True


@pytest.mark.asyncio
async def test_define_column_rejects_invalid_settings() -> None:
    async with _client() as client:
        seeded = await _seed(client)
        response = await client.post(
            f"{seeded['base']}/columns",
            json={"title": "Rating", "column_type": "RATING", "settings": {"max": "ten"}},
        )

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_settings"


@pytest.mark.asyncio
async def test_value_write_validates_and_reports_errors() -> None:
    async with _client() as client:
        seeded = await _seed(client)
        values_url = f"{seeded['base']}/items/{seeded['item']['id']}/values"
        column_id = seeded["status"]["id"]

        written = await client.post(values_url, json={"column_id": column_id, "value": "Done"})
        repeated = await client.post(values_url, json={"column_id": column_id, "value": "Done"})
        mismatch = await client.post(values_url, json={"column_id": column_id, "value": 5})
        out_of_range = await client.post(values_url, json={"column_id": column_id, "value": "Nope"})
        stored = await client.get(values_url)

    assert written.status_code == 200
    assert written.json()["value"] == "Done"
    assert written.json()["changed"] is True
    assert repeated.json()["changed"] is False
    assert mismatch.status_code == 422
    assert mismatch.json()["code"] == "value_type_mismatch"
    assert out_of_range.status_code == 422
    assert out_of_range.json()["code"] == "value_out_of_range"
    assert stored.json() == {"item_id": seeded["item"]["id"], "values": {column_id: "Done"}}


@pytest.mark.asyncio
async def test_value_write_returns_triggered_runs() -> None:
    async with _client() as client:
        seeded = await _seed(client)
        base = seeded["base"]
        column_id = seeded["status"]["id"]
        automation = await client.post(
            f"{base}/automations",
            json={
                "name": "Archive finished work",
                "trigger": {"type": "status_change", "column_id": column_id, "to_value": "Done"},
                "actions": [{"type": "archive_item"}],
            },
        )
        written = await client.post(
            f"{base}/items/{seeded['item']['id']}/values",
            json={"column_id": column_id, "value": "Done"},
        )
        item = await client.get(f"{base}/items/{seeded['item']['id']}")

    assert automation.status_code == 201
    runs = written.json()["automation_runs"]
    assert [run["status"] for run in runs] == ["success"]
    assert runs[0]["automation_id"] == automation.json()["id"]
    assert item.json()["is_archived"] is True


@pytest.mark.asyncio
async def test_unknown_column_is_404() -> None:
    async with _client() as client:
        seeded = await _seed(client)
        response = await client.post(
            f"{seeded['base']}/items/{seeded['item']['id']}/values",
            json={"column_id": seeded["group"]["id"], "value": "Done"},
        )

    assert response.status_code == 404
    assert response.json()["detail"]["context"]["kind"] == "column"


@pytest.mark.asyncio
async def test_retype_reorder_visibility_and_remove() -> None:
    async with _client() as client:
        seeded = await _seed(client)
        base = seeded["base"]
        status_id = seeded["status"]["id"]
        notes = (
            await client.post(f"{base}/columns", json={"title": "Notes", "column_type": "TEXT"})
        ).json()
        await client.post(
            f"{base}/items/{seeded['item']['id']}/values",
            json={"column_id": notes["id"], "value": "free text"},
        )

        retyped = await client.patch(
            f"{base}/columns/{notes['id']}",
            json={"column_type": "NUMBER", "title": "Estimate"},
        )
        reordered = await client.put(f"{base}/columns/order", json={"column_ids": [notes["id"]]})
        hidden = await client.put(f"{base}/columns/{status_id}/visibility", json={"is_visible": False})
        visible_only = await client.get(f"{base}/columns", params={"include_hidden": False})
        removed = await client.delete(f"{base}/columns/{notes['id']}")

    assert retyped.status_code == 200
    assert retyped.json()["column_type"] == "NUMBER"
    assert retyped.json()["title"] == "Estimate"
    assert retyped.json()["dropped_values"] == 1
    assert [column["id"] for column in reordered.json()] == [notes["id"], status_id]
    assert hidden.json()["is_visible"] is False
    assert [column["id"] for column in visible_only.json()] == [notes["id"]]
    assert removed.json() == {"ok": True, "hard_deleted": True}

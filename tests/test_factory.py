from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import update

from geosource.adapters import DataAdapter, SpreadsheetAdapter, TableApiAdapter
from geosource.core.db import AsyncSessionLocal, utcnow
from geosource.core.errors import DecryptionError, NotFoundError, ProviderError, RefreshError
from geosource.models import SourceConfig


async def _connect(client, fake_google, tenant_id: str = "tenant-a") -> None:
    fake_google.queue({"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600})
    start = await client.get(
        "/api/v1/oauth/google/start",
        params={"tenantId": tenant_id, "adminEmail": "admin@example.com"},
    )
    state = parse_qs(urlparse(start.json()["authUrl"]).query)["state"][0]
    callback = await client.get(
        "/api/v1/oauth/google/callback", params={"code": "auth-code", "state": state}
    )
    assert callback.status_code == 302


async def _expire_token(tenant_id: str = "tenant-a") -> None:
    async with AsyncSessionLocal() as session:
        await session.execute(
            update(SourceConfig)
            .where(SourceConfig.tenant_id == tenant_id)
            .values(token_expires_at=utcnow() - timedelta(minutes=1))
        )
        await session.commit()


@pytest.mark.anyio("asyncio")
async def test_connect_select_sheet_and_read_records(client, fake_google, factory, sheets):
    await _connect(client, fake_google)

    async with AsyncSessionLocal() as session:
        adapter = await factory.get_adapter(session, "tenant-a")
        assert isinstance(adapter, SpreadsheetAdapter)
        assert isinstance(adapter, DataAdapter)
        assert await adapter.list_tables() == []

    spreadsheets = await client.get("/api/v1/sheets/tenant-a/spreadsheets")
    assert spreadsheets.status_code == 200
    assert spreadsheets.json()["spreadsheets"][0]["id"] == "sheet-123"

    tabs = await client.get("/api/v1/sheets/tenant-a/sheets", params={"spreadsheetId": "sheet-123"})
    assert tabs.json()["spreadsheetName"] == "Parcels"
    assert [sheet["title"] for sheet in tabs.json()["sheets"]] == ["Sites"]

    preview = await client.get(
        "/api/v1/sheets/tenant-a/preview",
        params={"spreadsheetId": "sheet-123", "sheetName": "Sites"},
    )
    assert preview.json()["headers"] == ["site_id", "site_name", "latitude", "longitude"]
    assert preview.json()["totalRows"] == 2
    assert ("get_values", "'Sites'!A1:Z10") in sheets.calls

    detected = await client.post(
        "/api/v1/sheets/tenant-a/detect-fields",
        json={"spreadsheetId": "sheet-123", "sheetName": "Sites"},
    )
    mappings = detected.json()["mappings"]
    assert mappings["identity"] == "site_id"
    assert mappings["name"] == "site_name"
    assert mappings["latitude"] == "latitude"
    assert mappings["longitude"] == "longitude"
    assert mappings["geometry"] is None

    saved = await client.post(
        "/api/v1/sheets/tenant-a/save-config",
        json={
            "spreadsheetId": "sheet-123",
            "sheetName": "Sites",
            "fieldMappings": {
                "identity": "site_id",
                "name": "site_name",
                "latitude": "latitude",
                "longitude": "longitude",
            },
        },
    )
    assert saved.status_code == 200
    assert saved.json() == {"success": True}

    status_response = await client.get("/api/v1/sources/tenant-a/status")
    assert status_response.json()["data"]["state"] == "active_configured"

    async with AsyncSessionLocal() as session:
        adapter = await factory.get_adapter(session, "tenant-a")
        tables = await adapter.list_tables()
        page = await adapter.list_records()

    assert [table.name for table in tables] == ["Sites"]
    assert [record.id for record in page.records] == ["S1", "S2"]
    assert page.records[0].geometry == {"type": "Point", "coordinates": [4.3, 52.1]}
    assert set(sheets.tokens) == {"access-1"}
    assert fake_google.requests[-1]["grant_type"] == "authorization_code"


@pytest.mark.anyio("asyncio")
async def test_detect_fields_needs_a_data_row(client, fake_google, sheets):
    await _connect(client, fake_google)
    sheets.sheets["Empty"] = [["id", "name"]]

    response = await client.post(
        "/api/v1/sheets/tenant-a/detect-fields",
        json={"spreadsheetId": "sheet-123", "sheetName": "Empty"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.anyio("asyncio")
async def test_save_config_without_connection_is_not_found(client):
    response = await client.post(
        "/api/v1/sheets/tenant-b/save-config",
        json={"spreadsheetId": "sheet-123", "sheetName": "Sites", "fieldMappings": {}},
    )

    assert response.status_code == 404


@pytest.mark.anyio("asyncio")
async def test_expired_token_is_refreshed_before_use(client, fake_google, factory, sheets):
    await _connect(client, fake_google)
    await _expire_token()
    fake_google.queue({"access_token": "access-2", "expires_in": 3600})

    async with AsyncSessionLocal() as session:
        await factory.get_adapter(session, "tenant-a")

    assert sheets.tokens[-1] == "access-2"
    assert fake_google.requests[-1]["grant_type"] == "refresh_token"
    assert factory._refresh_locks == {}


@pytest.mark.anyio("asyncio")
async def test_concurrent_callers_share_one_refresh(client, fake_google, factory, sheets):
    await _connect(client, fake_google)
    await _expire_token()
    fake_google.queue({"access_token": "access-2", "expires_in": 3600})

    async def resolve() -> None:
        async with AsyncSessionLocal() as session:
            await factory.get_adapter(session, "tenant-a")

    await asyncio.gather(resolve(), resolve())

    refreshes = [request for request in fake_google.requests if request["grant_type"] == "refresh_token"]
    assert len(refreshes) == 1
    assert sheets.tokens[-2:] == ["access-2", "access-2"]
    assert factory._refresh_locks == {}
    assert factory._refresh_waiters == {}


@pytest.mark.anyio("asyncio")
async def test_rejected_refresh_surfaces_refresh_error(client, fake_google, factory):
    await _connect(client, fake_google)
    await _expire_token()
    fake_google.queue(ProviderError("invalid_grant", status_code=400))

    async with AsyncSessionLocal() as session:
        with pytest.raises(RefreshError):
            await factory.get_adapter(session, "tenant-a")


@pytest.mark.anyio("asyncio")
async def test_unknown_tenant_has_no_adapter(database, factory):
    async with AsyncSessionLocal() as session:
        with pytest.raises(NotFoundError):
            await factory.get_adapter(session, "nobody")


TABLE_API_PAYLOAD = {
    "tenantId": "tenant-a",
    "baseUrl": "https://tables.example.com/",
    "baseId": "bse123",
    "accessToken": "teable-token",
}


@pytest.fixture()
def reachable_table_api(monkeypatch) -> list[str]:
    checked: list[str] = []

    async def test_connection(self: TableApiAdapter) -> None:
        checked.append(self.base_id)

    monkeypatch.setattr(TableApiAdapter, "test_connection", test_connection)
    return checked


@pytest.mark.anyio("asyncio")
async def test_table_api_source_replaces_spreadsheet(client, fake_google, factory, reachable_table_api):
    await _connect(client, fake_google)

    response = await client.post("/api/v1/sources/table-api", json=TABLE_API_PAYLOAD)

    assert response.status_code == 201
    assert reachable_table_api == ["bse123"]
    assert response.json()["data"]["sourceKind"] == "table_api"

    async with AsyncSessionLocal() as session:
        adapter = await factory.get_adapter(session, "tenant-a")
    assert isinstance(adapter, TableApiAdapter)
    assert adapter.base_url == "https://tables.example.com"
    assert adapter._access_token == "teable-token"

    status_response = await client.get("/api/v1/sources/tenant-a/status")
    assert status_response.json()["data"]["source_kind"] == "table_api"
    assert status_response.json()["data"]["state"] == "active_configured"


@pytest.mark.anyio("asyncio")
async def test_unreachable_table_api_is_not_stored(client, monkeypatch):
    async def test_connection(self: TableApiAdapter) -> None:
        raise ProviderError("Could not reach the table API base", status_code=401)

    monkeypatch.setattr(TableApiAdapter, "test_connection", test_connection)

    response = await client.post("/api/v1/sources/table-api", json=TABLE_API_PAYLOAD)

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "PROVIDER_ERROR"
    status_response = await client.get("/api/v1/sources/tenant-a/status")
    assert status_response.json()["data"]["state"] == "no_config"


@pytest.mark.anyio("asyncio")
async def test_detect_fields_for_table_api_source(client, monkeypatch, reachable_table_api):
    responses = {
        "/api/table/tbl1/field": {
            "fields": [
                {"name": "Code", "type": "singleLineText"},
                {"name": "Label", "type": "singleLineText"},
                {"name": "Where", "type": "longText"},
            ]
        },
        "/api/table/tbl1/record": {
            "records": [
                {"id": "rec1", "fields": {"Code": "A", "Label": "First", "Where": "POINT (4.3 52.1)"}},
            ]
        },
    }
    seen: list[tuple[str, Any]] = []

    async def request(self: TableApiAdapter, method: str, endpoint: str, **kwargs: Any) -> Any:
        seen.append((endpoint, kwargs.get("params")))
        return responses[endpoint]

    monkeypatch.setattr(TableApiAdapter, "_request", request)
    await client.post("/api/v1/sources/table-api", json=TABLE_API_PAYLOAD)

    response = await client.post("/api/v1/sources/tenant-a/detect-fields", json={"tableId": "tbl1"})

    assert response.status_code == 200
    mappings = response.json()["mappings"]
    assert mappings["identity"] == "Code"
    assert mappings["name"] == "Label"
    assert mappings["all_columns"] == ["Code", "Label", "Where"]
    assert ("/api/table/tbl1/record", {"limit": 10, "offset": 0}) in seen


@pytest.mark.anyio("asyncio")
async def test_detect_fields_for_configured_spreadsheet(client, fake_google):
    await _connect(client, fake_google)
    await client.post(
        "/api/v1/sheets/tenant-a/save-config",
        json={"spreadsheetId": "sheet-123", "sheetName": "Sites", "fieldMappings": {"identity": "site_id"}},
    )

    response = await client.post("/api/v1/sources/tenant-a/detect-fields", json={})

    assert response.status_code == 200
    mappings = response.json()["mappings"]
    assert mappings["latitude"] == "latitude"
    assert mappings["longitude"] == "longitude"


@pytest.mark.anyio("asyncio")
async def test_undecryptable_access_token_is_logged_with_tenant(client, fake_google, factory, caplog):
    await _connect(client, fake_google)
    async with AsyncSessionLocal() as session:
        await session.execute(
            update(SourceConfig)
            .where(SourceConfig.tenant_id == "tenant-a")
            .values(access_token_encrypted="bm90IGEgdmFsaWQgYmxvYg==")
        )
        await session.commit()

    with caplog.at_level(logging.ERROR, logger="geosource.adapters.factory"):
        async with AsyncSessionLocal() as session:
            with pytest.raises(DecryptionError):
                await factory.get_adapter(session, "tenant-a")

    [record] = [entry for entry in caplog.records if entry.name == "geosource.adapters.factory"]
    assert record.tenant_id == "tenant-a"
    assert record.operation == "get_adapter"
    assert record.error_class == "DecryptionError"

from __future__ import annotations

import os
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from geosource.core.config import get_settings  # noqa: E402

TEST_DB_PATH = ROOT / "test.db"
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["ENCRYPTION_KEY"] = "test-master-key-for-credential-encryption"
os.environ["GOOGLE_CLIENT_ID"] = "client-id.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "client-secret"
os.environ["GOOGLE_REDIRECT_URI"] = "http://testserver/api/v1/oauth/google/callback"
os.environ["OAUTH_CONTINUATION_URL"] = "/admin/sources"
get_settings.cache_clear()


class FakeSheetsClient:
    """In-memory stand-in for the Sheets and Drive APIs."""

    def __init__(self) -> None:
        self.spreadsheet_id = "sheet-123"
        self.title = "Parcels"
        self.sheets: dict[str, list[list[Any]]] = {
            "Sites": [
                ["site_id", "site_name", "latitude", "longitude"],
                ["S1", "North Gate", "52.1", "4.3"],
                ["S2", "South Gate", "52.0", "4.4"],
            ]
        }
        self.calls: list[tuple[Any, ...]] = []
        self.tokens: list[str] = []

    def __call__(self, access_token: str) -> "FakeSheetsClient":
        self.tokens.append(access_token)
        return self

    async def list_spreadsheets(self, *, page_size: int = 100) -> list[dict[str, Any]]:
        self.calls.append(("list_spreadsheets", page_size))
        return [{"id": self.spreadsheet_id, "name": self.title}]

    async def get_spreadsheet(self, spreadsheet_id: str) -> dict[str, Any]:
        self.calls.append(("get_spreadsheet", spreadsheet_id))
        return {
            "properties": {"title": self.title},
            "sheets": [
                {
                    "properties": {
                        "sheetId": index,
                        "title": title,
                        "index": index,
                        "gridProperties": {"rowCount": len(rows), "columnCount": len(rows[0])},
                    }
                }
                for index, (title, rows) in enumerate(self.sheets.items())
            ],
        }

    async def get_values(self, spreadsheet_id: str, range_: str) -> list[list[Any]]:
        self.calls.append(("get_values", range_))
        title = range_.split("!")[0].strip("'")
        return [list(row) for row in self.sheets.get(title, [])]

    async def append_row(self, spreadsheet_id: str, range_: str, row: list[Any]) -> dict[str, Any]:
        self.calls.append(("append_row", range_, row))
        title = range_.split("!")[0].strip("'")
        self.sheets[title].append(list(row))
        return {}

    async def update_row(self, spreadsheet_id: str, range_: str, row: list[Any]) -> dict[str, Any]:
        self.calls.append(("update_row", range_, row))
        title, cells = range_.split("!")
        row_number = int("".join(ch for ch in cells.split(":")[0] if ch.isdigit()))
        self.sheets[title.strip("'")][row_number - 1] = list(row)
        return {}

    async def delete_row(self, spreadsheet_id: str, sheet_id: int, row_index: int) -> None:
        self.calls.append(("delete_row", sheet_id, row_index))
        title = list(self.sheets)[sheet_id]
        del self.sheets[title][row_index]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class FakeGoogle:
    """Scripted responses for the Google token and userinfo endpoints."""

    def __init__(self) -> None:
        self.token_responses: list[dict[str, Any] | Exception] = []
        self.email: str | None = "owner@example.com"
        self.requests: list[dict[str, str]] = []

    def queue(self, response: dict[str, Any] | Exception) -> None:
        self.token_responses.append(response)

    async def request_token(self, payload: dict[str, str]) -> dict[str, Any]:
        self.requests.append(payload)
        response = self.token_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def fetch_user_email(self, access_token: str) -> str | None:
        return self.email


@pytest.fixture()
async def database() -> AsyncIterator[None]:
    from geosource.core.db import engine
    from geosource.models import Base

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    yield


@pytest.fixture()
async def session(database: None) -> AsyncIterator[Any]:
    from geosource.core.db import AsyncSessionLocal

    async with AsyncSessionLocal() as db_session:
        yield db_session


@pytest.fixture()
def fake_google(monkeypatch: pytest.MonkeyPatch) -> FakeGoogle:
    from geosource.core.oauth_google import GoogleOAuthClient

    fake = FakeGoogle()

    async def request_token(self: GoogleOAuthClient, payload: dict[str, str]) -> dict[str, Any]:
        return await fake.request_token(payload)

    async def fetch_user_email(self: GoogleOAuthClient, access_token: str) -> str | None:
        return await fake.fetch_user_email(access_token)

    monkeypatch.setattr(GoogleOAuthClient, "_request_token", request_token)
    monkeypatch.setattr(GoogleOAuthClient, "fetch_user_email", fetch_user_email)
    return fake


@pytest.fixture()
def sheets() -> FakeSheetsClient:
    return FakeSheetsClient()


@pytest.fixture()
def factory(sheets: FakeSheetsClient) -> Any:
    from geosource.adapters import AdapterFactory

    return AdapterFactory(get_settings(), sheets_client_factory=sheets)


@pytest.fixture()
async def client(database: None, factory: Any) -> AsyncIterator[AsyncClient]:
    from geosource.adapters import get_adapter_factory
    from geosource.main import app

    app.dependency_overrides[get_adapter_factory] = lambda: factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Any:
    yield
    get_settings.cache_clear()

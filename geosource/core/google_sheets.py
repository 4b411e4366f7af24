"""Google Sheets and Drive REST helpers used by the spreadsheet backend."""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from geosource.core.config import Settings, get_settings
from geosource.core.errors import ProviderError

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
SHEETS_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
VALUE_INPUT_OPTION = "USER_ENTERED"

logger = logging.getLogger(__name__)


def a1_range(sheet_name: str, cells: str | None = None) -> str:
    """Return an A1 range with the sheet title quoted."""

    quoted = "'" + sheet_name.replace("'", "''") + "'"
    return f"{quoted}!{cells}" if cells else quoted


def column_letter(column: int) -> str:
    """Convert a 1-based column number into its A1 letters."""

    letters = ""
    while column > 0:
        column, remainder = divmod(column - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


class GoogleSheetsClient:
    """Authorised calls against the Sheets v4 and Drive v3 APIs."""

    def __init__(
        self,
        access_token: str,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._access_token = access_token
        self._settings = settings or get_settings()
        self._transport = transport

    async def list_spreadsheets(self, *, page_size: int = 100) -> list[dict[str, Any]]:
        params = {
            "q": f"mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false",
            "fields": "files(id, name, webViewLink, modifiedTime)",
            "orderBy": "modifiedTime desc",
            "pageSize": str(page_size),
        }
        data = await self._authorized_request("GET", DRIVE_FILES_URL, params=params)
        return list((data or {}).get("files", []))

    async def get_spreadsheet(self, spreadsheet_id: str) -> dict[str, Any]:
        data = await self._authorized_request(
            "GET",
            f"{SHEETS_BASE_URL}/{quote(spreadsheet_id, safe='')}",
            params={"fields": "properties.title,sheets.properties"},
        )
        return data or {}

    async def get_values(self, spreadsheet_id: str, range_: str) -> list[list[Any]]:
        data = await self._authorized_request("GET", self._values_url(spreadsheet_id, range_))
        return list((data or {}).get("values", []))

    async def append_row(self, spreadsheet_id: str, range_: str, row: list[Any]) -> dict[str, Any]:
        data = await self._authorized_request(
            "POST",
            f"{self._values_url(spreadsheet_id, range_)}:append",
            params={"valueInputOption": VALUE_INPUT_OPTION, "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )
        return data or {}

    async def update_row(self, spreadsheet_id: str, range_: str, row: list[Any]) -> dict[str, Any]:
        data = await self._authorized_request(
            "PUT",
            self._values_url(spreadsheet_id, range_),
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"values": [row]},
        )
        return data or {}

    async def delete_row(self, spreadsheet_id: str, sheet_id: int, row_index: int) -> None:
        """Delete the zero-based grid row ``row_index`` from ``sheet_id``."""

        body = {
            "requests": [
                {
                    "deleteDimension": {
                        "range": {
                            "sheetId": sheet_id,
                            "dimension": "ROWS",
                            "startIndex": row_index,
                            "endIndex": row_index + 1,
                        }
                    }
                }
            ]
        }
        await self._authorized_request(
            "POST",
            f"{SHEETS_BASE_URL}/{quote(spreadsheet_id, safe='')}:batchUpdate",
            json=body,
        )

    @staticmethod
    def _values_url(spreadsheet_id: str, range_: str) -> str:
        return f"{SHEETS_BASE_URL}/{quote(spreadsheet_id, safe='')}/values/{quote(range_, safe='')}"

    async def _authorized_request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.provider_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.request(method, url, headers=headers, params=params, json=json)
        except httpx.TimeoutException as exc:
            logger.error("Google Sheets request timed out", extra={"method": method})
            raise ProviderError("Google Sheets request timed out") from exc
        except httpx.HTTPError as exc:  # pragma: no cover - network failure
            logger.error("Google Sheets request failed", exc_info=exc)
            raise ProviderError("Failed to communicate with Google Sheets") from exc

        if response.status_code >= 400:
            logger.error(
                "Google Sheets API error",
                extra={"status_code": response.status_code, "method": method},
            )
            raise ProviderError(
                "Google Sheets API error",
                status_code=response.status_code,
                body=response.text,
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

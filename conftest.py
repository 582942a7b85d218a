"""
Shared fixtures: an in-memory stand-in for the Google Sheets/Drive helper
functions so the store can be exercised without network access.
"""
import itertools
import re
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import pytest

from tradezen.config import SHEET_NAME, StoreConfig
from tradezen.credentials.session import Credential
from tradezen.exceptions import AuthorizationError, TransportError
from tradezen.google_workspace.helpers import google_drive_helpers as drive_api
from tradezen.google_workspace.helpers import google_sheets_helpers as sheets_api
from tradezen.state_store import LocalStateStore

RANGE_RE = re.compile(r"^(?P<tab>[^!]+)!(?P<c1>[A-Z]+)(?P<r1>\d*):(?P<c2>[A-Z]+)(?P<r2>\d*)$")
MUTATING_CALLS = {"create_spreadsheet", "batch_update", "append_values", "update_values"}


def _column_number(letters: str) -> int:
    number = 0
    for ch in letters:
        number = number * 26 + (ord(ch) - ord("A") + 1)
    return number


def _trim(cells: List[Any]) -> List[Any]:
    cells = list(cells)
    while cells and cells[-1] in ("", None):
        cells.pop()
    return cells


class FakeSpreadsheet:

    def __init__(self, spreadsheet_id: str, tabs: List[str]):
        self.id = spreadsheet_id
        self.tabs: Dict[str, Dict[str, Any]] = {
            title: {"sheetId": 100 + index, "rows": []} for index, title in enumerate(tabs)
        }

    def rows(self, tab: str) -> List[List[Any]]:
        return self.tabs[tab]["rows"]

    def metadata(self) -> Dict[str, Any]:
        return {
            "spreadsheetId": self.id,
            "sheets": [
                {"properties": {"sheetId": tab["sheetId"], "title": title}}
                for title, tab in self.tabs.items()
            ],
        }


class FakeGoogle:
    """Records every call; ``valid_tokens`` decides which credentials are accepted."""

    def __init__(self):
        self.spreadsheets: Dict[str, FakeSpreadsheet] = {}
        self.drive_files: List[Dict[str, Any]] = []
        self.valid_tokens = {"token-1"}
        self.broken_ids = set()
        self.failures: Dict[str, Exception] = {}
        self.calls: List[str] = []
        self._ids = itertools.count(1)

    # -- helpers for tests ------------------------------------------------
    def add_spreadsheet(
        self,
        name: str = SHEET_NAME,
        tabs=("Trades", "Tags", "Settings"),
        modified: str = "2024-01-01T00:00:00Z",
        headers: Optional[Dict[str, List[str]]] = None,
    ) -> FakeSpreadsheet:
        sheet = FakeSpreadsheet(f"sheet-{next(self._ids)}", list(tabs))
        for tab, header in (headers or {}).items():
            sheet.rows(tab).append(list(header))
        self.spreadsheets[sheet.id] = sheet
        self.drive_files.append({
            "id": sheet.id,
            "name": name,
            "mimeType": drive_api.SPREADSHEET_MIME_TYPE,
            "modifiedTime": modified,
        })
        return sheet

    def mutation_calls(self) -> List[str]:
        return [name for name in self.calls if name in MUTATING_CALLS]

    def _check(self, name: str, token: str) -> None:
        self.calls.append(name)
        if token not in self.valid_tokens:
            raise AuthorizationError("401 Request had invalid authentication credentials", status=401)
        if name in self.failures:
            raise self.failures[name]

    def _sheet(self, spreadsheet_id: str) -> FakeSpreadsheet:
        if spreadsheet_id in self.broken_ids:
            raise TransportError("500 backend error", status=500)
        if spreadsheet_id not in self.spreadsheets:
            raise TransportError("404 Requested entity was not found", status=404)
        return self.spreadsheets[spreadsheet_id]

    def _tab_by_sheet_id(self, sheet: FakeSpreadsheet, sheet_id: int) -> List[List[Any]]:
        for tab in sheet.tabs.values():
            if tab["sheetId"] == sheet_id:
                return tab["rows"]
        raise TransportError(f"400 No grid with id {sheet_id}", status=400)

    # -- Sheets API ---------------------------------------------------------
    async def get_spreadsheet(self, access_token, spreadsheet_id):
        self._check("get_spreadsheet", access_token)
        return self._sheet(spreadsheet_id).metadata()

    async def create_spreadsheet(self, access_token, title, tabs, row_count=1000):
        self._check("create_spreadsheet", access_token)
        sheet = self.add_spreadsheet(name=title, tabs=[tab for tab, _ in tabs], modified="2030-01-01T00:00:00Z")
        return sheet.metadata()

    async def batch_update(self, access_token, spreadsheet_id, requests):
        self._check("batch_update", access_token)
        sheet = self._sheet(spreadsheet_id)
        for request in requests:
            if "updateCells" in request:
                body = request["updateCells"]
                rows = self._tab_by_sheet_id(sheet, body["range"]["sheetId"])
                header = [cell["userEnteredValue"]["stringValue"] for cell in body["rows"][0]["values"]]
                if rows:
                    rows[0] = header
                else:
                    rows.append(header)
            elif "deleteDimension" in request:
                body = request["deleteDimension"]["range"]
                rows = self._tab_by_sheet_id(sheet, body["sheetId"])
                del rows[body["startIndex"]:body["endIndex"]]
        return {}

    async def get_values(self, access_token, spreadsheet_id, range_):
        self._check("get_values", access_token)
        match = RANGE_RE.match(range_)
        rows = self._sheet(spreadsheet_id).rows(match["tab"])
        start = int(match["r1"]) - 1 if match["r1"] else 0
        end = int(match["r2"]) if match["r2"] else len(rows)
        first, last = _column_number(match["c1"]), _column_number(match["c2"])
        values = [_trim(row[first - 1:last]) for row in rows[start:end]]
        while values and not values[-1]:
            values.pop()
        return values

    async def append_values(self, access_token, spreadsheet_id, range_, rows):
        self._check("append_values", access_token)
        match = RANGE_RE.match(range_)
        target = self._sheet(spreadsheet_id).rows(match["tab"])
        target.extend(list(row) for row in rows)
        return {"updates": {"updatedRows": len(rows)}}

    async def update_values(self, access_token, spreadsheet_id, range_, rows):
        self._check("update_values", access_token)
        match = RANGE_RE.match(range_)
        target = self._sheet(spreadsheet_id).rows(match["tab"])
        index = int(match["r1"]) - 1
        while len(target) <= index:
            target.append([])
        target[index] = list(rows[0])
        return {"updatedRows": 1}

    # -- Drive API ----------------------------------------------------------
    async def find_spreadsheets_by_name(self, access_token, name):
        self._check("find_spreadsheets_by_name", access_token)
        files = [
            f for f in self.drive_files
            if f["name"] == name and f["mimeType"] == drive_api.SPREADSHEET_MIME_TYPE
        ]
        return sorted(files, key=lambda f: f["modifiedTime"], reverse=True)


class StubSession:
    """Stands in for SessionManager where only ``get_credential`` is needed."""

    def __init__(self, token: Optional[str] = "token-1"):
        self.token = token

    async def get_credential(self) -> Credential:
        if self.token is None:
            raise AuthorizationError("Not signed in")
        return Credential(token=self.token)


@pytest.fixture
def fake_google():
    fake = FakeGoogle()
    with patch.multiple(
        sheets_api,
        get_spreadsheet=fake.get_spreadsheet,
        create_spreadsheet=fake.create_spreadsheet,
        batch_update=fake.batch_update,
        get_values=fake.get_values,
        append_values=fake.append_values,
        update_values=fake.update_values,
    ), patch.multiple(drive_api, find_spreadsheets_by_name=fake.find_spreadsheets_by_name):
        yield fake


@pytest.fixture
def state(tmp_path):
    return LocalStateStore(tmp_path / "state.json")


@pytest.fixture
def stub_session():
    return StubSession()


@pytest.fixture
def store_config():
    return StoreConfig()

from typing import Any, Dict, List, Sequence, Tuple
from urllib.parse import quote

from tradezen.google_workspace.helpers.google_helpers import google_request

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"


def _values_url(spreadsheet_id: str, range_: str, suffix: str = "") -> str:
    return f"{SHEETS_API}/{spreadsheet_id}/values/{quote(range_, safe='')}{suffix}"


async def get_spreadsheet(access_token: str, spreadsheet_id: str) -> Dict[str, Any]:
    """Fetch document metadata: id plus title and numeric id of every tab."""
    return await google_request(
        "GET",
        f"{SHEETS_API}/{spreadsheet_id}",
        access_token,
        params={"fields": "spreadsheetId,sheets.properties(sheetId,title)"},
    )


async def create_spreadsheet(
    access_token: str,
    title: str,
    tabs: Sequence[Tuple[str, int]],
    row_count: int = 1000,
) -> Dict[str, Any]:
    """Create a document with one tab per ``(title, column_count)``."""
    payload = {
        "properties": {"title": title},
        "sheets": [
            {
                "properties": {
                    "title": tab_title,
                    "gridProperties": {"rowCount": row_count, "columnCount": column_count},
                }
            }
            for tab_title, column_count in tabs
        ],
    }
    return await google_request("POST", SHEETS_API, access_token, json_body=payload)


async def batch_update(access_token: str, spreadsheet_id: str, requests: List[Dict[str, Any]]) -> Dict[str, Any]:
    return await google_request(
        "POST",
        f"{SHEETS_API}/{spreadsheet_id}:batchUpdate",
        access_token,
        json_body={"requests": requests},
    )


async def get_values(access_token: str, spreadsheet_id: str, range_: str) -> List[List[Any]]:
    """Read a range. Trailing empty cells and rows are omitted by the API."""
    result = await google_request(
        "GET",
        _values_url(spreadsheet_id, range_),
        access_token,
        params={"valueRenderOption": "UNFORMATTED_VALUE"},
    )
    return result.get("values", [])


async def append_values(access_token: str, spreadsheet_id: str, range_: str, rows: List[List[Any]]) -> Dict[str, Any]:
    return await google_request(
        "POST",
        _values_url(spreadsheet_id, range_, ":append"),
        access_token,
        params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
        json_body={"values": rows},
    )


async def update_values(access_token: str, spreadsheet_id: str, range_: str, rows: List[List[Any]]) -> Dict[str, Any]:
    return await google_request(
        "PUT",
        _values_url(spreadsheet_id, range_),
        access_token,
        params={"valueInputOption": "RAW"},
        json_body={"values": rows},
    )


def tab_ids(spreadsheet: Dict[str, Any]) -> Dict[str, int]:
    """Map tab title -> numeric sheetId from a metadata payload."""
    return {
        sheet["properties"]["title"]: sheet["properties"]["sheetId"]
        for sheet in spreadsheet.get("sheets", [])
        if "properties" in sheet
    }


def header_request(sheet_id: int, headers: Sequence[str]) -> Dict[str, Any]:
    """``updateCells`` request writing a header row into row 1 of a tab."""
    return {
        "updateCells": {
            "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1},
            "rows": [{"values": [{"userEnteredValue": {"stringValue": h}} for h in headers]}],
            "fields": "userEnteredValue",
        }
    }


def delete_row_request(sheet_id: int, row_index: int) -> Dict[str, Any]:
    """``deleteDimension`` request removing one 0-based row and shifting the rest up."""
    return {
        "deleteDimension": {
            "range": {
                "sheetId": sheet_id,
                "dimension": "ROWS",
                "startIndex": row_index,
                "endIndex": row_index + 1,
            }
        }
    }

from typing import Any, Dict, List, Optional

import aiohttp

from tradezen.google_workspace.helpers.google_helpers import google_request

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


def _quote_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


async def list_drive_files(
    access_token: str,
    query: str,
    fields: str = "files(id,name,mimeType,modifiedTime)",
    order_by: Optional[str] = None,
    page_size: int = 100,
) -> List[Dict[str, Any]]:
    params = {
        "q": query,
        "fields": fields,
        "spaces": "drive",
        "pageSize": page_size,
    }
    if order_by:
        params["orderBy"] = order_by

    result = await google_request("GET", DRIVE_FILES_URL, access_token, params=params)
    return result.get("files", [])


async def find_spreadsheets_by_name(access_token: str, name: str) -> List[Dict[str, Any]]:
    """Spreadsheets called ``name``, newest-modified first."""
    q = [
        f"name = '{_quote_literal(name)}'",
        f"mimeType = '{SPREADSHEET_MIME_TYPE}'",
        "trashed = false",
    ]
    return await list_drive_files(
        access_token,
        " and ".join(q),
        fields="files(id,name,createdTime,modifiedTime)",
        order_by="modifiedTime desc",
    )


async def find_drive_folder_by_name(
    access_token: str,
    name: str,
    parent_folder_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    q = [
        f"name = '{_quote_literal(name)}'",
        f"mimeType = '{FOLDER_MIME_TYPE}'",
        "trashed = false",
    ]
    if parent_folder_id:
        q.append(f"'{parent_folder_id}' in parents")

    files = await list_drive_files(access_token, " and ".join(q), fields="files(id,name)")
    return files[0] if files else None


async def create_drive_folder(
    access_token: str,
    name: str,
    parent_folder_id: Optional[str] = None,
) -> Dict[str, Any]:
    payload = {
        "name": name,
        "mimeType": FOLDER_MIME_TYPE,
    }

    if parent_folder_id:
        payload["parents"] = [parent_folder_id]

    return await google_request("POST", DRIVE_FILES_URL, access_token, params={"fields": "id"}, json_body=payload)


async def get_drive_file(
    access_token: str,
    file_id: str,
    fields: str = "id,trashed",
) -> Dict[str, Any]:
    return await google_request("GET", f"{DRIVE_FILES_URL}/{file_id}", access_token, params={"fields": fields})


async def upload_drive_file(
    access_token: str,
    content: bytes,
    name: str,
    parent_folder_id: str,
    mime_type: str = "image/jpeg",
) -> Dict[str, Any]:
    """Multipart upload: JSON metadata part followed by the media part."""
    metadata = {
        "name": name,
        "parents": [parent_folder_id],
        "mimeType": mime_type,
    }

    with aiohttp.MultipartWriter("related") as writer:
        writer.append_json(metadata)
        writer.append(content, {"Content-Type": mime_type})

    return await google_request(
        "POST",
        DRIVE_UPLOAD_URL,
        access_token,
        params={"uploadType": "multipart", "fields": "id"},
        data=writer,
    )


def drive_thumbnail_url(file_id: str, width: int = 800) -> str:
    return f"https://drive.google.com/thumbnail?id={file_id}&sz=w{width}"

"""
Spreadsheet storage.

The booking data lives in a spreadsheet. A Workbook is the backend (Google
Sheets over REST, or an in-memory workbook for local runs and tests) and
RowStore reads and writes one sheet as a table whose first row holds the
column headers.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from config import Settings, settings
from errors import StoreFailure
from schemas import Appointment, BookingSchema

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

_CELL_RE = re.compile(r"^([A-Z]+)(\d+)$")


# A1 notation helpers

def column_letter(index: int) -> str:
    """Zero-based column index to its A1 letters (0 -> A, 26 -> AA)."""
    letters = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def cell_ref(row: int, col: int) -> str:
    """Zero-based (row, col) to an A1 cell reference."""
    return f"{column_letter(col)}{row + 1}"


def parse_cell_ref(ref: str) -> tuple:
    """A1 cell reference to zero-based (row, col)."""
    match = _CELL_RE.match(ref.upper())
    if not match:
        raise ValueError(f"Invalid cell reference: {ref}")
    letters, digits = match.groups()
    col = 0
    for ch in letters:
        col = col * 26 + (ord(ch) - ord("A") + 1)
    return int(digits) - 1, col - 1


def a1_range(sheet: str, cell: Optional[str] = None) -> str:
    quoted = "'" + sheet.replace("'", "''") + "'"
    return f"{quoted}!{cell}" if cell else quoted


# Workbook backends

class Workbook(ABC):
    """Minimal spreadsheet surface used by the adapters."""

    @abstractmethod
    def get_values(self, sheet: str, unformatted: bool = False) -> List[List[Any]]:
        """All rows of a sheet; raises StoreFailure when the sheet is missing."""

    @abstractmethod
    def append_row(self, sheet: str, values: List[Any]) -> None:
        pass

    @abstractmethod
    def update_range(self, sheet: str, start_cell: str, rows: List[List[Any]]) -> None:
        pass

    @abstractmethod
    def delete_rows(self, sheet: str, start_index: int, end_index: int) -> None:
        pass

    @abstractmethod
    def sheet_titles(self) -> List[str]:
        pass


class GoogleSheetsWorkbook(Workbook):
    """Google Sheets v4 REST backend authenticated with a service account."""

    def __init__(
        self,
        spreadsheet_id: str,
        key_file: Optional[str] = None,
        credentials=None,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self._key_file = key_file
        self._credentials = credentials
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def _access_token(self) -> str:
        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_file(
                self._key_file, scopes=SCOPES
            )
        if not self._credentials.valid:
            self._credentials.refresh(GoogleAuthRequest())
        return self._credentials.token

    def _request(self, method: str, suffix: str = "", **kwargs) -> Dict[str, Any]:
        url = f"{SHEETS_API}/{self.spreadsheet_id}{suffix}"
        try:
            headers = {"Authorization": f"Bearer {self._access_token()}"}
            response = self._client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except (httpx.HTTPError, GoogleAuthError, OSError) as e:
            logger.warning(f"Sheets API {method} {suffix or '/'} failed: {e}")
            raise StoreFailure(f"Spreadsheet request failed: {e}") from e
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Sheets API {method} {suffix or '/'} returned malformed JSON: {e}")
            raise StoreFailure("Spreadsheet response was not valid JSON") from e

    def get_values(self, sheet: str, unformatted: bool = False) -> List[List[Any]]:
        data = self._request(
            "GET",
            f"/values/{quote(a1_range(sheet), safe='')}",
            params={"valueRenderOption": "UNFORMATTED_VALUE" if unformatted else "FORMATTED_VALUE"},
        )
        return data.get("values", [])

    def append_row(self, sheet: str, values: List[Any]) -> None:
        data = self._request(
            "POST",
            f"/values/{quote(a1_range(sheet, 'A1'), safe='')}:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [values]},
        )
        logger.debug(f"Appended to {sheet}: {data.get('updates', {}).get('updatedRange')}")

    def update_range(self, sheet: str, start_cell: str, rows: List[List[Any]]) -> None:
        target = a1_range(sheet, start_cell)
        self._request(
            "PUT",
            f"/values/{quote(target, safe='')}",
            params={"valueInputOption": "RAW"},
            json={"range": target, "majorDimension": "ROWS", "values": rows},
        )

    def _sheet_id(self, sheet: str) -> int:
        data = self._request("GET", params={"fields": "sheets.properties"})
        for entry in data.get("sheets", []):
            props = entry.get("properties", {})
            if props.get("title") == sheet:
                return props["sheetId"]
        raise StoreFailure(f'Sheet "{sheet}" not found in spreadsheet')

    def delete_rows(self, sheet: str, start_index: int, end_index: int) -> None:
        sheet_id = self._sheet_id(sheet)
        self._request(
            "POST",
            ":batchUpdate",
            json={
                "requests": [
                    {
                        "deleteDimension": {
                            "range": {
                                "sheetId": sheet_id,
                                "dimension": "ROWS",
                                "startIndex": start_index,
                                "endIndex": end_index,
                            }
                        }
                    }
                ]
            },
        )

    def sheet_titles(self) -> List[str]:
        data = self._request("GET", params={"fields": "sheets.properties.title"})
        return [entry["properties"]["title"] for entry in data.get("sheets", [])]


def _formatted(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


class MemoryWorkbook(Workbook):
    """
    Workbook held in process memory.

    Sheets are lists of rows; formatted reads render every cell as a
    string the way the Sheets API does.
    """

    def __init__(self, sheets: Optional[Dict[str, List[List[Any]]]] = None):
        self.sheets: Dict[str, List[List[Any]]] = {
            name: [list(row) for row in rows] for name, rows in (sheets or {}).items()
        }

    def _rows(self, sheet: str) -> List[List[Any]]:
        if sheet not in self.sheets:
            raise StoreFailure(f"Unable to parse range: {a1_range(sheet)}")
        return self.sheets[sheet]

    def get_values(self, sheet: str, unformatted: bool = False) -> List[List[Any]]:
        rows = self._rows(sheet)
        if unformatted:
            return [list(row) for row in rows]
        return [[_formatted(v) for v in row] for row in rows]

    def append_row(self, sheet: str, values: List[Any]) -> None:
        self._rows(sheet).append(list(values))

    def update_range(self, sheet: str, start_cell: str, rows: List[List[Any]]) -> None:
        table = self._rows(sheet)
        top, left = parse_cell_ref(start_cell)
        for r, values in enumerate(rows):
            while len(table) <= top + r:
                table.append([])
            target = table[top + r]
            for c, value in enumerate(values):
                while len(target) <= left + c:
                    target.append("")
                target[left + c] = value

    def delete_rows(self, sheet: str, start_index: int, end_index: int) -> None:
        del self._rows(sheet)[start_index:end_index]

    def sheet_titles(self) -> List[str]:
        return list(self.sheets)


def build_workbook(config: Settings) -> Optional[Workbook]:
    if config.SHEETS_BACKEND == "memory":
        return MemoryWorkbook()
    if not config.SPREADSHEET_ID:
        logger.warning("SPREADSHEET_ID is not set; spreadsheet backend disabled")
        return None
    return GoogleSheetsWorkbook(
        config.SPREADSHEET_ID,
        key_file=config.GOOGLE_KEY_FILE,
        timeout=config.SHEETS_TIMEOUT,
    )


workbook = build_workbook(settings)


# Row store

class RowStore:
    """Reads and writes a sheet as a header row followed by data rows."""

    HEADER_ROWS = 1

    def __init__(self, workbook: Workbook):
        self.workbook = workbook

    def read_table(self, name: str, unformatted: bool = False) -> List[Dict[str, Any]]:
        """
        Map every data row to {header: value}.

        Missing cells become "". Strings are trimmed; with unformatted=True
        numbers and booleans keep their type.
        """
        rows = self.workbook.get_values(name, unformatted=unformatted)
        if not rows:
            return []
        headers = [str(h).strip() for h in rows[0]]
        records = []
        for row in rows[self.HEADER_ROWS:]:
            record = {}
            for i, header in enumerate(headers):
                value = row[i] if i < len(row) else ""
                if value is None:
                    value = ""
                if isinstance(value, str) or not unformatted:
                    value = str(value).strip()
                record[header] = value
            records.append(record)
        return records

    def append_row(self, name: str, values: List[Any]) -> None:
        self.workbook.append_row(name, values)

    def update_row(self, name: str, row_index: int, values: List[Any]) -> None:
        # A1 rows are 1-based and row 1 is the header
        self.workbook.update_range(name, f"A{row_index + self.HEADER_ROWS + 1}", [values])

    def delete_row(self, name: str, row_index: int) -> None:
        start = row_index + self.HEADER_ROWS
        self.workbook.delete_rows(name, start, start + 1)

    def read_records(self, name: str, schema: BookingSchema) -> List[Appointment]:
        """Booking rows as Appointment records, one per data row (blank rows included)."""
        records = []
        for row in self.read_table(name):
            values = {field: row.get(header, "") for field, header in schema.columns}
            records.append(Appointment(**values))
        return records

    @staticmethod
    def record_to_row(schema: BookingSchema, record: Appointment) -> List[str]:
        return [getattr(record, field) for field in schema.field_names]

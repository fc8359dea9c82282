"""Excel export of extraction results."""

import json
import re
from datetime import datetime, timezone
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from cre_docs.core.exceptions import ValidationError
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SUMMARY_HEADERS = ["File", "Document Type", "Property Name", "Property Address", "Extracted Date"]

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(start_color="FFE6F3FF", end_color="FFE6F3FF", fill_type="solid")

_INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")
_MAX_TITLE_LENGTH = 31


def _label(key: str) -> str:
    """camelCase key to a column label: ``baseRent`` -> ``Base Rent``."""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", key).replace("_", " ")
    return spaced[:1].upper() + spaced[1:]


def _cell(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return json.dumps(value, default=str)


def _flatten(record: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in record.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(_flatten(value, path))
        else:
            flat[path] = value
    return flat


def _is_table(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(item, dict) for item in value)


def export_filename(document_type: Optional[str]) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    return f"extraction_{document_type or 'documents'}_{stamp}.xlsx"


class SpreadsheetExportService:
    """Builds one workbook for any number of extraction results.

    Layout: a summary sheet with one row per document, a sheet per
    list-of-records section (tenants, comparables, ...) and a details sheet
    holding the remaining fields as path/value pairs.
    """

    def __init__(self, column_width: int = 18):
        self.column_width = column_width

    def _title(self, workbook: Workbook, base: str) -> str:
        title = _INVALID_TITLE_CHARS.sub(" ", base).strip()[:_MAX_TITLE_LENGTH] or "Sheet"
        existing = set(workbook.sheetnames)
        candidate, counter = title, 2
        while candidate in existing:
            suffix = f" ({counter})"
            candidate = f"{title[:_MAX_TITLE_LENGTH - len(suffix)]}{suffix}"
            counter += 1
        return candidate

    def _write_header(self, sheet: Worksheet, headers: Sequence[str]) -> None:
        sheet.append(list(headers))
        for cell in sheet[1]:
            cell.font = HEADER_FONT
            cell.fill = HEADER_FILL
        for index in range(1, len(headers) + 1):
            sheet.column_dimensions[get_column_letter(index)].width = self.column_width

    def _write_table(self, workbook: Workbook, title: str, rows: List[Dict[str, Any]]) -> None:
        flat_rows = [_flatten(row) for row in rows]
        columns: List[str] = []
        for row in flat_rows:
            columns.extend(key for key in row if key not in columns)

        sheet = workbook.create_sheet(self._title(workbook, title))
        self._write_header(sheet, [_label(column) for column in columns])
        for row in flat_rows:
            sheet.append([_cell(row.get(column)) for column in columns])

    def _write_details(self, workbook: Workbook, title: str, pairs: List[Tuple[str, Any]]) -> None:
        sheet = workbook.create_sheet(self._title(workbook, title))
        self._write_header(sheet, ["Field", "Value"])
        sheet.column_dimensions["A"].width = self.column_width * 2
        for path, value in pairs:
            sheet.append([path, _cell(value)])

    def _write_document(self, workbook: Workbook, index: int, extracted: Dict[str, Any]) -> None:
        data = extracted.get("data")
        prefix = f"{index} " if index else ""
        if not isinstance(data, dict):
            self._write_details(workbook, f"{prefix}Details", [("data", data)])
            return

        details: List[Tuple[str, Any]] = []
        for key, value in data.items():
            if _is_table(value):
                self._write_table(workbook, f"{prefix}{_label(key)}", value)
            elif isinstance(value, dict):
                details.extend(_flatten(value, key).items())
            else:
                details.append((key, value))
        if details:
            self._write_details(workbook, f"{prefix}Details", details)

    def build_workbook(
        self,
        documents: Sequence[Dict[str, Any]],
        file_names: Optional[Iterable[Optional[str]]] = None,
    ) -> Workbook:
        """Lay out the given extractions in a new workbook.

        Raises:
            ValidationError: If no extraction was given
        """
        if not documents:
            raise ValidationError("No extracted data provided")

        names = list(file_names or [])
        workbook = Workbook()
        summary = workbook.active
        summary.title = "Summary"
        self._write_header(summary, SUMMARY_HEADERS)

        multiple = len(documents) > 1
        for position, extracted in enumerate(documents):
            metadata = extracted.get("metadata") or {}
            if not isinstance(metadata, dict):
                metadata = {}
            summary.append(
                [
                    names[position] if position < len(names) else None,
                    extracted.get("documentType"),
                    _cell(metadata.get("propertyName")),
                    _cell(metadata.get("propertyAddress")),
                    _cell(metadata.get("extractedDate")),
                ]
            )
            self._write_document(workbook, position + 1 if multiple else 0, extracted)

        return workbook

    def export(
        self,
        documents: Sequence[Dict[str, Any]],
        file_names: Optional[Iterable[Optional[str]]] = None,
    ) -> bytes:
        """Render extractions as ``.xlsx`` bytes."""
        workbook = self.build_workbook(documents, file_names)
        buffer = BytesIO()
        workbook.save(buffer)
        LOGGER.info(
            f"Exported {len(documents)} extraction(s) to spreadsheet",
            extra={"sheets": len(workbook.sheetnames)},
        )
        return buffer.getvalue()

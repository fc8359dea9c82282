from cre_docs.services.export.spreadsheet_service import (
    XLSX_MEDIA_TYPE,
    SpreadsheetExportService,
    export_filename,
)

__all__ = ["SpreadsheetExportService", "XLSX_MEDIA_TYPE", "export_filename"]

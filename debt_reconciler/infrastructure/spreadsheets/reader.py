"""Workbook reader for uploaded bank statements and manual cash sheets"""

import logging
from dataclasses import dataclass, replace
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from debt_reconciler.domain.exceptions import StructuralUploadError
from debt_reconciler.domain.ingestion import RawRow
from debt_reconciler.domain.models import UploadSource

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".xlsx", ".xlsm")


@dataclass(frozen=True)
class ColumnLayout:
    """0-based column positions of one export format"""

    date: int
    amount: int
    customer_id: int
    description: Optional[int] = None
    balance: Optional[int] = None
    sheet_index: int = 0
    default_description: str = ""

    @property
    def min_columns(self) -> int:
        columns = [self.date, self.amount, self.customer_id, self.description, self.balance]
        return max(c for c in columns if c is not None) + 1


# A=date, B=description, E=amount, F=balance after, L=counterparty id
BANK_STATEMENT_LAYOUT = ColumnLayout(date=0, description=1, amount=4, balance=5, customer_id=11)

LAYOUTS: Dict[UploadSource, ColumnLayout] = {
    # TBC exports put the statement on the second sheet
    UploadSource.BANK_TBC: replace(BANK_STATEMENT_LAYOUT, sheet_index=1),
    UploadSource.BANK_BOG: BANK_STATEMENT_LAYOUT,
    # A=date, C=amount, E=customer id
    UploadSource.MANUAL_CASH: ColumnLayout(
        date=0, amount=2, customer_id=4, default_description="Manual cash (Excel)"
    ),
}


def validate_upload(file_bytes: bytes, max_bytes: int, filename: Optional[str] = None) -> None:
    """Reject uploads that cannot be a statement before opening them"""
    if not file_bytes:
        raise StructuralUploadError("File is required")
    if len(file_bytes) > max_bytes:
        raise StructuralUploadError(f"File size exceeds maximum ({max_bytes} bytes)")
    if filename is not None and not filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise StructuralUploadError("File must be an Excel workbook (.xlsx)")


def _cell(values: Sequence[Any], column: Optional[int]) -> Any:
    if column is None or column >= len(values):
        return None
    return values[column]


def read_rows(file_bytes: bytes, layout: ColumnLayout) -> List[RawRow]:
    """
    Open the workbook and return its data rows (header skipped).

    Raises:
        StructuralUploadError: unreadable workbook, empty sheet, or a sheet
            narrower than the layout requires
    """
    try:
        workbook = load_workbook(BytesIO(file_bytes), data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
        raise StructuralUploadError(f"Failed to read Excel file: {e}") from e

    try:
        sheets = workbook.worksheets
        if not sheets:
            raise StructuralUploadError("Workbook has no sheets")

        sheet_index = layout.sheet_index
        if sheet_index >= len(sheets):
            logger.warning("Sheet index %s not found, falling back to sheet 0", sheet_index)
            sheet_index = 0
        sheet = sheets[sheet_index]

        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None or (sheet.max_row <= 1 and all(v is None for v in header)):
            raise StructuralUploadError("Spreadsheet is empty")
        if sheet.max_column < layout.min_columns:
            raise StructuralUploadError(
                f"Spreadsheet has {sheet.max_column} columns, expected at least {layout.min_columns}"
            )

        raw_rows = []
        for row_index, values in enumerate(rows, start=2):
            if all(v is None for v in values):
                continue
            description = _cell(values, layout.description)
            raw_rows.append(
                RawRow(
                    row_index=row_index,
                    date=_cell(values, layout.date),
                    amount=_cell(values, layout.amount),
                    customer_id=_cell(values, layout.customer_id),
                    balance=_cell(values, layout.balance),
                    description=str(description).strip() if description is not None else layout.default_description,
                )
            )

        logger.info("Read %s data rows from sheet %r", len(raw_rows), sheet.title)
        return raw_rows
    finally:
        workbook.close()

"""
Recipient list import from .xlsx spreadsheets.

Row layout (first sheet):
- 1 column: email
- 2-3 columns: name, email
- 4+ columns: name, email, subject, message (blank cells fall back to the
  common subject/message)

A first row with any cell mentioning "email" is treated as a header.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import List, Optional

from openpyxl import load_workbook


@dataclass
class Recipient:
    email: str
    subject: str
    message: str
    name: Optional[str] = None


def _cell_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_header(row: tuple) -> bool:
    return any("email" in str(c).lower() for c in row if c is not None)


def read_rows(content: bytes) -> List[tuple]:
    """All rows of the first worksheet, as tuples of cell values."""
    workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        return [tuple(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def parse_recipients(rows: List[tuple], common_subject: str, common_message: str) -> List[Recipient]:
    """
    Turn spreadsheet rows into recipients.

    Rows without an email are skipped.
    """
    if rows and _is_header(rows[0]):
        rows = rows[1:]

    recipients = []
    for row in rows:
        cells = [_cell_text(c) for c in row]
        name = None
        email = None
        subject = common_subject
        message = common_message

        if len(cells) == 1:
            email = cells[0]
        elif len(cells) in (2, 3):
            name, email = cells[0], cells[1]
        elif len(cells) >= 4:
            name, email = cells[0], cells[1]
            subject = cells[2] or common_subject
            message = cells[3] or common_message

        if not email:
            continue

        recipients.append(Recipient(email=email, subject=subject, message=message, name=name))

    return recipients


def load_recipients(content: bytes, common_subject: str, common_message: str) -> List[Recipient]:
    return parse_recipients(read_rows(content), common_subject, common_message)

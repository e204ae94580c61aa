from io import BytesIO

from openpyxl import Workbook

from mailserver.services.recipient_import import load_recipients, parse_recipients


def _workbook_bytes(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_single_column_without_header():
    recipients = parse_recipients([("a@example.com",), ("b@example.com",)], "Hi", "Body")

    assert [r.email for r in recipients] == ["a@example.com", "b@example.com"]
    assert all(r.subject == "Hi" and r.message == "Body" for r in recipients)
    assert recipients[0].name is None


def test_header_row_is_skipped():
    rows = [("Name", "Email Address"), ("Ann", "ann@example.com")]

    recipients = parse_recipients(rows, "Hi", "Body")

    assert len(recipients) == 1
    assert recipients[0].name == "Ann"
    assert recipients[0].email == "ann@example.com"


def test_four_columns_override_subject_and_message():
    rows = [
        ("Ann", "ann@example.com", "Custom subject", "Custom body"),
        ("Ben", "ben@example.com", None, ""),
    ]

    ann, ben = parse_recipients(rows, "Common", "Common body")

    assert (ann.subject, ann.message) == ("Custom subject", "Custom body")
    assert (ben.subject, ben.message) == ("Common", "Common body")


def test_rows_without_email_are_skipped():
    rows = [("Ann", None), ("Ben", "ben@example.com"), (None, "  ")]

    recipients = parse_recipients(rows, "Hi", "Body")

    assert [r.email for r in recipients] == ["ben@example.com"]


def test_load_recipients_from_xlsx():
    content = _workbook_bytes([
        ["name", "email"],
        ["Ann", "ann@example.com"],
        ["Ben", "ben@example.com"],
    ])

    recipients = load_recipients(content, "Hi", "Body")

    assert [(r.name, r.email) for r in recipients] == [
        ("Ann", "ann@example.com"),
        ("Ben", "ben@example.com"),
    ]

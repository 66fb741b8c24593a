"""Unit tests for the upload parser.

Word and Excel fixtures are generated with python-docx and openpyxl; the PDF
fixture is a blank page written with pypdf.
"""

from unittest.mock import patch

import pytest
from docx import Document
from openpyxl import Workbook
from pypdf import PdfWriter

from docqa.core.exceptions import DocumentParseError
from docqa.rag.parser import parse_file, parse_text
from docqa.rag.segmenter import EMPTY_DOCUMENT_TEXT


def test_parse_plain_text(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("first line\nsecond line\n", encoding="utf-8")

    parsed = parse_file(path, "notes.txt")

    assert parsed.filename == "notes.txt"
    assert parsed.text.startswith("first line")
    assert parsed.segments[0].line_start == 1
    assert "second line" in parsed.segments[0].text


def test_unknown_extension_is_read_as_text(tmp_path):
    path = tmp_path / "stored-blob"
    path.write_bytes("caf\xe9 menu".encode("latin-1"))

    parsed = parse_file(path, "menu.md")

    assert "menu" in parsed.text
    assert parsed.segments


def test_parse_text_blank_content():
    parsed = parse_text("", "empty.txt")

    assert parsed.text == ""
    assert [s.text for s in parsed.segments] == [EMPTY_DOCUMENT_TEXT]


def test_parse_docx_paragraphs_and_tables(tmp_path):
    document = Document()
    document.add_paragraph("Project summary")
    document.add_paragraph("Budget is approved")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Owner"
    table.rows[0].cells[1].text = "Alice"
    path = tmp_path / "summary.docx"
    document.save(str(path))

    parsed = parse_file(path, "summary.docx")

    assert parsed.text.splitlines()[:2] == ["Project summary", "Budget is approved"]
    assert "Owner | Alice" in parsed.text


def test_parse_xlsx_sheets(tmp_path):
    workbook = Workbook()
    people = workbook.active
    people.title = "People"
    people.append(["Name", "Age"])
    people.append(["Alice", 30])
    cities = workbook.create_sheet("Cities")
    cities.append([None, "Paris"])
    path = tmp_path / "data.xlsx"
    workbook.save(str(path))

    parsed = parse_file(path, "data.xlsx")

    assert "[Sheet: People]\nA1: Name | Age\nA2: Alice | 30" in parsed.text
    assert "[Sheet: Cities]\nB1: Paris" in parsed.text
    assert [(s.sheet, s.sheet_index) for s in parsed.segments] == [("People", 0), ("Cities", 1)]


def test_parse_pdf_without_text_returns_placeholder(tmp_path):
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    path = tmp_path / "scan.pdf"
    with open(path, "wb") as handle:
        writer.write(handle)

    parsed = parse_file(path, "scan.pdf")

    assert parsed.text == "[PDF file with 1 pages - no extractable text]"
    assert len(parsed.segments) == 1
    assert "no extractable text" in parsed.segments[0].text


def test_parse_pdf_pages_are_tagged(tmp_path):
    path = tmp_path / "report.pdf"
    path.write_bytes(b"%PDF-stub")

    class FakePage:
        def __init__(self, text):
            self.text = text

        def extract_text(self):
            return self.text

    class FakeReader:
        def __init__(self, _path):
            self.pages = [FakePage("Intro line\nSecond line"), FakePage("Results on page two")]

    with patch("pypdf.PdfReader", FakeReader):
        parsed = parse_file(path, "report.pdf")

    assert [(s.page, s.line_start, s.line_end) for s in parsed.segments] == [(1, 1, 2), (2, 3, 3)]
    assert parsed.text == "Intro line\nSecond line\nResults on page two"


def test_corrupt_file_raises_parse_error(tmp_path):
    path = tmp_path / "broken.docx"
    path.write_bytes(b"this is not a zip archive")

    with pytest.raises(DocumentParseError) as exc_info:
        parse_file(path, "broken.docx")

    assert exc_info.value.status_code == 422
    assert exc_info.value.details["filename"] == "broken.docx"

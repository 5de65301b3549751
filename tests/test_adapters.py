"""Tests for the CSV and Excel file adapters."""

import pytest

from taxokit.adapters.csv_adapter import CsvAdapter
from taxokit.adapters.excel_adapter import ExcelAdapter
from taxokit.parser import TabularParser


# =============================================================================
# CSV
# =============================================================================

class TestCsvDelimiterDetection:
    """Delimiter comes from the header line only."""

    def test_comma_header_with_semicolon_lists(self):
        text = "code,name,level,keywords\npwa,PWA,1,app;mobile;web\n"
        rows = CsvAdapter().read_text(text)

        assert rows == [{"code": "pwa", "name": "PWA", "level": "1", "keywords": "app;mobile;web"}]

    def test_semicolon_header(self):
        text = "code;name;level\npwa;PWA;1\n"
        rows = CsvAdapter().read_text(text)

        assert rows[0]["name"] == "PWA"

    def test_tab_header(self):
        assert CsvAdapter.detect_delimiter("code\tname\tlevel") == "\t"

    def test_quoted_cells_keep_delimiters(self):
        text = 'term,definition\nSELIC,"Taxa básica, definida pelo Copom"\n'
        rows = CsvAdapter().read_text(text)

        assert rows[0]["definition"] == "Taxa básica, definida pelo Copom"


class TestCsvReading:

    def test_bom_is_stripped_from_text(self):
        rows = CsvAdapter().read_text("\ufeffcode,name\npwa,PWA\n")

        assert list(rows[0].keys()) == ["code", "name"]

    def test_empty_text(self):
        assert CsvAdapter().read_text("   \n") == []

    def test_missing_trailing_cells_become_empty(self):
        rows = CsvAdapter().read_text("code,name,description\npwa,PWA\n")

        assert rows[0]["description"] == ""

    def test_rows_record_their_start_line(self):
        text = (
            "code,name,description\n"
            "a,A,\"first line\nsecond line\"\n"
            "\n"
            "b,B,\n"
        )
        rows = CsvAdapter().read_text(text)

        assert [row.line_number for row in rows] == [2, 5]
        assert rows[0]["description"] == "first line\nsecond line"

    def test_read_utf8_bom_file(self, tmp_path):
        path = tmp_path / "taxonomy.csv"
        path.write_bytes("code,name\npwa,Saúde\n".encode("utf-8-sig"))

        rows = CsvAdapter().read(str(path))

        assert rows == [{"code": "pwa", "name": "Saúde"}]

    def test_read_latin1_file(self, tmp_path):
        path = tmp_path / "lexicon.csv"
        path.write_bytes("term,definition\nPreço,Valor cobrado por um produto ou serviço\n".encode("latin-1"))

        rows = CsvAdapter().read(str(path))

        assert rows[0]["term"] == "Preço"

    def test_tsv_uses_tab(self, tmp_path):
        path = tmp_path / "rows.tsv"
        path.write_text("code\tname\npwa\tPWA, app\n", encoding="utf-8")

        rows = CsvAdapter().read(str(path))

        assert rows[0]["name"] == "PWA, app"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            CsvAdapter().read(str(tmp_path / "nope.csv"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_bytes(b"")

        assert CsvAdapter().read(str(path)) == []

    def test_can_handle(self):
        adapter = CsvAdapter()
        assert adapter.can_handle("a.CSV")
        assert adapter.can_handle("a.tsv")
        assert not adapter.can_handle("a.xlsx")


# =============================================================================
# EXCEL
# =============================================================================

class TestExcelAdapter:

    def test_reads_exported_template(self, tmp_path):
        path = tmp_path / "taxonomy.xlsx"
        TabularParser().export_template("taxonomy", str(path))

        rows = ExcelAdapter().read(str(path))

        assert [r["code"] for r in rows] == ["pwa", "pwa.world"]
        assert rows[1]["parent_code"] == "pwa"
        assert rows[1]["level"] == "2"

    def test_integer_floats_are_rendered_as_integers(self, tmp_path):
        import openpyxl

        path = tmp_path / "levels.xlsx"
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(["code", "level", "weight"])
        ws.append(["pwa", 1.0, 0.5])
        wb.save(path)

        rows = ExcelAdapter().read(str(path))

        assert rows == [{"code": "pwa", "level": "1", "weight": "0.5"}]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ExcelAdapter().read(str(tmp_path / "nope.xlsx"))

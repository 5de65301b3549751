from .validator import RowValidator, ParseReport, RowCheck
from .schema import get_schema
from .adapters.csv_adapter import CsvAdapter
from .adapters.excel_adapter import ExcelAdapter
from typing import List, Dict, Any, Optional
from pathlib import Path
import csv
import json
import logging
import openpyxl

logger = logging.getLogger(__name__)

# Template file extension -> writer
TEMPLATE_FORMATS = {".csv": "csv", ".xlsx": "excel", ".xlsm": "excel", ".json": "json"}


class TabularParser:
    """Parser for tabular import files with per-entity validation."""

    def __init__(self, register_defaults: bool = True):
        """Initialize the parser.

        Args:
            register_defaults: If True, register the CSV and Excel adapters (default: True)
        """
        self.adapters = []
        self._text_adapter = CsvAdapter()
        if register_defaults:
            self.register_adapter(self._text_adapter)
            self.register_adapter(ExcelAdapter())

    def register_adapter(self, adapter):
        """Register a file adapter for parsing.

        Adapters registered later take precedence over earlier ones for
        files both can handle.

        Args:
            adapter: Adapter instance with can_handle() and read() methods
        """
        self.adapters.insert(0, adapter)

    def _find_adapter(self, file_path: str):
        for a in self.adapters:
            if a.can_handle(file_path):
                return a
        raise ValueError(f"No adapter found for {file_path}")

    def read_raw(self, file_path: str) -> List[Dict[str, Any]]:
        """Read a file with the matching adapter, without validation.

        Raises:
            ValueError: If no adapter is found for the file
            FileNotFoundError: If the file doesn't exist
        """
        return self._find_adapter(file_path).read(file_path)

    def parse(self, file_path: str, entity: str,
              row_check: Optional[RowCheck] = None) -> ParseReport:
        """Parse and validate an import file.

        Args:
            file_path: Path to a .csv, .tsv or .xlsx file
            entity: Entity type (taxonomy, lexicon, regional_pronunciations,
                ontology_concepts, ontology_relations)
            row_check: Optional cross-field check, returns an error message or None

        Returns:
            ParseReport with one ParsedRow per non-blank data row

        Raises:
            ValueError: If the entity is unknown or no adapter is found for the file
            FileNotFoundError: If the file doesn't exist
        """
        validator = RowValidator(get_schema(entity), row_check=row_check)
        raw_rows = self.read_raw(file_path)
        logger.info(f"Read {len(raw_rows)} raw rows from {file_path}")
        return validator.validate(raw_rows)

    def parse_text(self, text: str, entity: str,
                   row_check: Optional[RowCheck] = None) -> ParseReport:
        """Parse and validate delimited text (e.g. pasted content).

        Args:
            text: Delimited text with a header row
            entity: Entity type
            row_check: Optional cross-field check

        Returns:
            ParseReport
        """
        validator = RowValidator(get_schema(entity), row_check=row_check)
        return validator.validate(self._text_adapter.read_text(text))

    def get_template(self, entity: str) -> List[str]:
        """Get the template headers for an entity.

        Returns:
            List of schema keys in column order
        """
        return get_schema(entity).headers

    def get_mapping_report(self, file_path: str, entity: str) -> Dict[str, Any]:
        """Get a report of how columns from a file map to an entity's schema.

        Args:
            file_path: Path to the import file
            entity: Entity type

        Returns:
            Dictionary with mapped, unmapped and missing required columns
        """
        validator = RowValidator(get_schema(entity))
        return validator.get_mapping_report(self.read_raw(file_path))

    def export_template(self, entity: str, output_path: str, format: Optional[str] = None) -> str:
        """Write a template file (headers plus example rows) for an entity.

        Args:
            entity: Entity type
            output_path: Destination file
            format: 'csv', 'excel' or 'json'. None picks it from the extension,
                falling back to CSV (and a .csv suffix) for unknown extensions.

        Returns:
            Path of the written file

        Raises:
            ValueError: If the entity or format is unknown
        """
        schema = get_schema(entity)
        path = Path(output_path)

        if format is None:
            format = TEMPLATE_FORMATS.get(path.suffix.lower())
            if format is None:
                format = "csv"
                path = path.with_suffix(".csv")

        writers = {
            "csv": self._write_csv,
            "excel": self._write_excel,
            "json": self._write_json,
        }
        writer = writers.get(format.lower())
        if writer is None:
            raise ValueError(f"Unsupported template format: {format}. Use one of: {', '.join(writers)}")

        writer(path, schema.headers, schema.template_rows)
        logger.info(f"Wrote {schema.display_name} template to {path}")
        return str(path)

    @staticmethod
    def _write_csv(path: Path, headers: List[str], rows: List[Dict[str, str]]) -> None:
        # utf-8-sig so spreadsheet apps keep accents
        with open(path, "w", newline="", encoding="utf-8-sig") as f:
            writer = csv.DictWriter(f, fieldnames=headers, restval="")
            writer.writeheader()
            writer.writerows(rows)

    @staticmethod
    def _write_excel(path: Path, headers: List[str], rows: List[Dict[str, str]]) -> None:
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Import"
        ws.append(headers)
        for row in rows:
            ws.append([row.get(h) or None for h in headers])
        ws.freeze_panes = "A2"
        wb.save(path)

    @staticmethod
    def _write_json(path: Path, headers: List[str], rows: List[Dict[str, str]]) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump([{h: row.get(h, "") for h in headers} for row in rows], f,
                      indent=2, ensure_ascii=False)

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Callable
import json
import logging
import math
import re

from .schema import (
    EntitySchema,
    ColumnSpec,
    LIST_DELIMITER,
    KIND_INTEGER,
    KIND_NUMBER,
    KIND_LIST,
    KIND_JSON,
)
from .similarity import strip_diacritics

logger = logging.getLogger(__name__)

# Caller-supplied cross-field check: converted row -> error message or None
RowCheck = Callable[[Dict[str, Any]], Optional[str]]

# Header row is line 1, so the first data row is line 2
FIRST_DATA_LINE = 2


@dataclass
class ParsedRow:
    """One data row after header mapping, conversion and validation."""
    row_number: int
    data: Dict[str, Any]
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class ParseReport:
    """Outcome of parsing one file or text block.

    Attributes:
        entity: Entity type the rows were validated against
        rows: Every non-blank data row, valid or not, in file order
        mapping: Header mapping report (mapped, unmapped, missing_required)
    """
    entity: str
    rows: List[ParsedRow] = field(default_factory=list)
    mapping: Dict[str, Any] = field(default_factory=dict)

    @property
    def valid_rows(self) -> List[ParsedRow]:
        return [r for r in self.rows if r.is_valid]

    @property
    def invalid_rows(self) -> List[ParsedRow]:
        return [r for r in self.rows if not r.is_valid]

    @property
    def valid_count(self) -> int:
        return len(self.valid_rows)

    @property
    def invalid_count(self) -> int:
        return len(self.invalid_rows)

    @property
    def errors(self) -> List[str]:
        """Row errors formatted for the import result, one entry per bad row."""
        return [f"Row {r.row_number}: {'; '.join(r.errors)}" for r in self.invalid_rows]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "valid_count": self.valid_count,
            "invalid_count": self.invalid_count,
            "errors": self.errors,
            "mapping": self.mapping,
        }


def fold_header(name: str) -> str:
    """Fold a header cell: lowercase, no accents, spaces/underscores/hyphens unified."""
    folded = strip_diacritics(str(name).lower().strip())
    return re.sub(r'[\s_\-]+', ' ', folded)


class RowValidator:
    """Validator for mapping raw rows onto an entity schema.

    Maps header variations (key, display label, aliases) to the schema keys,
    converts cell values to their declared kinds and collects per-row errors.
    A bad row never stops the rest of the batch.
    """

    def __init__(self, schema: EntitySchema, row_check: Optional[RowCheck] = None):
        """Initialize the validator.

        Args:
            schema: Entity schema the rows must satisfy
            row_check: Optional extra cross-field check run after the schema's own
        """
        self.schema = schema
        self.row_check = row_check

        # Forward lookup: folded variation -> schema key
        self._variation_to_key: Dict[str, str] = {}
        for col in schema.columns:
            for variation in (col.key, col.label) + tuple(col.aliases):
                self._variation_to_key.setdefault(fold_header(variation), col.key)

    def normalize_column_name(self, column_name: str) -> Optional[str]:
        """Map a header cell to its schema key.

        Args:
            column_name: The original header cell

        Returns:
            Schema key if the header matches, None otherwise
        """
        if not column_name:
            return None
        return self._variation_to_key.get(fold_header(column_name))

    def get_mapping_report(self, raw_rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Report how the columns of raw rows map onto the schema.

        Args:
            raw_rows: Rows as returned by an adapter

        Returns:
            Dictionary with mapped (key -> source headers), unmapped headers and
            required keys no header maps to
        """
        columns: List[str] = []
        for row in raw_rows:
            for column in row.keys():
                if column is not None and column not in columns:
                    columns.append(column)

        mapped: Dict[str, List[str]] = {}
        unmapped = []
        for column in columns:
            key = self.normalize_column_name(str(column))
            if key:
                mapped.setdefault(key, []).append(column)
            else:
                unmapped.append(column)

        missing_required = [
            c.key for c in self.schema.columns if c.required and c.key not in mapped
        ]

        return {
            "mapped": mapped,
            "unmapped": unmapped,
            "missing_required": missing_required,
            "standard_headers": self.schema.headers,
        }

    def _map_row(self, row: Dict[str, Any]) -> Dict[str, str]:
        mapped: Dict[str, str] = {}
        for original_key, value in row.items():
            if original_key is None:
                continue
            key = self.normalize_column_name(str(original_key))
            if key is None:
                continue
            text = "" if value is None else str(value).strip()
            # Keep first non-empty value when several headers map to one key
            if not mapped.get(key):
                mapped[key] = text
        return mapped

    def _convert(self, col: ColumnSpec, text: str, errors: List[str]) -> Any:
        if text == "":
            if col.required:
                errors.append(f'Missing required field "{col.key}"')
                return None
            if col.kind == KIND_JSON:
                return {} if col.default is None else col.default
            return col.default

        if col.kind == KIND_INTEGER:
            try:
                number = float(text.replace(",", "."))
            except ValueError:
                errors.append(f'Invalid integer for "{col.key}": "{text}"')
                return None
            if not number.is_integer():
                errors.append(f'Invalid integer for "{col.key}": "{text}"')
                return None
            value: Any = int(number)
            return self._check_range(col, value, errors)

        if col.kind == KIND_NUMBER:
            try:
                value = float(text.replace(",", "."))
            except ValueError:
                value = math.nan
            # nan and inf slip past the range comparisons
            if not math.isfinite(value):
                errors.append(f'Invalid number for "{col.key}": "{text}"')
                return None
            return self._check_range(col, value, errors)

        if col.kind == KIND_LIST:
            items = [item.strip() for item in text.split(LIST_DELIMITER)]
            return [item for item in items if item] or None

        if col.kind == KIND_JSON:
            return self._parse_json_object(col, text, errors)

        if col.choices:
            for choice in col.choices:
                if choice.lower() == text.lower():
                    return choice
            errors.append(
                f'Invalid value for "{col.key}": "{text}". Use: {", ".join(col.choices)}'
            )
            return None

        return text

    def _check_range(self, col: ColumnSpec, value: Any, errors: List[str]) -> Any:
        if (col.min_value is not None and value < col.min_value) or \
                (col.max_value is not None and value > col.max_value):
            errors.append(
                f'"{col.key}" must be between {_fmt(col.min_value)} and '
                f'{_fmt(col.max_value)} (got {_fmt(value)})'
            )
            return None
        return value

    def _parse_json_object(self, col: ColumnSpec, text: str, errors: List[str]) -> Any:
        try:
            value = json.loads(text)
        except ValueError:
            errors.append(f'Invalid JSON in "{col.key}"')
            return None
        if not isinstance(value, dict):
            errors.append(f'"{col.key}" must be a JSON object')
            return None
        for key, item in value.items():
            if not _is_property_value(item):
                errors.append(
                    f'"{col.key}.{key}" must be a string, number, boolean, null or a list of those'
                )
                return None
        return value

    def validate_row(self, row: Dict[str, Any], row_number: int) -> ParsedRow:
        """Validate and convert a single raw row.

        Args:
            row: Raw row keyed by source headers
            row_number: Source line number of the row

        Returns:
            ParsedRow with every schema key present in data
        """
        cells = self._map_row(row)
        errors: List[str] = []
        data: Dict[str, Any] = {}

        for col in self.schema.columns:
            data[col.key] = self._convert(col, cells.get(col.key, ""), errors)

        for check in (self.schema.row_validator, self.row_check):
            if check is None:
                continue
            message = check(data)
            if message:
                errors.append(message)

        return ParsedRow(row_number=row_number, data=data, errors=errors)

    def validate(self, raw_rows: List[Dict[str, Any]],
                 first_row_number: int = FIRST_DATA_LINE) -> ParseReport:
        """Validate a list of raw rows.

        Fully blank rows are skipped. A row's number is the line_number an
        adapter recorded on it, else its position counted from
        first_row_number.

        Args:
            raw_rows: Rows as returned by an adapter
            first_row_number: Line number of the first data row

        Returns:
            ParseReport with valid and invalid rows
        """
        report = ParseReport(entity=self.schema.name, mapping=self.get_mapping_report(raw_rows))
        if report.mapping["unmapped"]:
            logger.info(f"Ignoring unmapped columns for {self.schema.name}: {report.mapping['unmapped']}")

        for offset, row in enumerate(raw_rows):
            if all(value is None or str(value).strip() == "" for value in row.values()):
                continue
            row_number = getattr(row, "line_number", None) or first_row_number + offset
            report.rows.append(self.validate_row(row, row_number))

        if report.invalid_count:
            logger.warning(
                f"{report.invalid_count} of {len(report.rows)} {self.schema.name} rows failed validation"
            )
        return report


def _is_property_value(value: Any) -> bool:
    scalar = (str, int, float, bool, type(None))
    if isinstance(value, list):
        return all(isinstance(item, scalar) for item in value)
    return isinstance(value, scalar)


def _fmt(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)

import codecs
import csv
import io
import chardet
from pathlib import Path
from typing import List, Dict, Any, Optional


class SourceRow(dict):
    """A raw row that remembers the file line it starts on."""

    def __init__(self, cells, line_number: int):
        super().__init__(cells)
        self.line_number = line_number


class CsvAdapter:
    """CSV adapter for reading delimited import files reliably.

    Handles:
    - Multiple encodings (UTF-8, UTF-8-BOM, Windows-1252, ISO-8859-1, etc.)
    - Different delimiters (comma, semicolon, tab), detected from the header line
    - Raw text input (pasted content) as well as files
    """

    # Tried in order when the detected encoding fails to decode
    FALLBACK_ENCODINGS = ['latin-1', 'cp1252']

    def can_handle(self, file_path: str) -> bool:
        return Path(file_path).suffix.lower() in (".csv", ".tsv", ".txt")

    def _decode(self, raw_data: bytes, source: str) -> str:
        """Decode file bytes: UTF-8 BOM, then chardet's guess, then the fallbacks."""
        if raw_data.startswith(codecs.BOM_UTF8):
            candidates = ['utf-8-sig']
        else:
            guess = (chardet.detect(raw_data[:10000]).get('encoding') or 'utf-8').lower()
            if guess == 'ascii' or guess.replace('-', '') == 'utf8':
                guess = 'utf-8'
            candidates = [guess]
        candidates += [enc for enc in self.FALLBACK_ENCODINGS if enc not in candidates]

        last_error = None
        for encoding in candidates:
            try:
                return raw_data.decode(encoding)
            except (UnicodeDecodeError, LookupError) as e:
                last_error = e
        raise ValueError(f"Could not decode file {source}: {last_error}")

    @staticmethod
    def detect_delimiter(header_line: str) -> str:
        """Detect the delimiter by counting candidates in the header line.

        Data lines are not sampled: cells routinely contain ';' as the
        list separator, which would mislead a sniffer.
        """
        comma_count = header_line.count(',')
        semicolon_count = header_line.count(';')
        tab_count = header_line.count('\t')

        if tab_count > comma_count and tab_count > semicolon_count:
            return '\t'
        elif semicolon_count > comma_count:
            return ';'
        return ','

    def read_text(self, text: str, delimiter: Optional[str] = None) -> List[Dict[str, Any]]:
        """Parse delimited text with a header row.

        Args:
            text: Full file content, header on the first line
            delimiter: Force a delimiter instead of detecting it

        Returns:
            SourceRow dictionaries keyed by the header cells, each carrying the
            1-based line it starts on. Values are strings; missing trailing
            cells become '' and blank lines are skipped.

        Raises:
            ValueError: If the text cannot be parsed as CSV
        """
        if text.startswith('\ufeff'):
            text = text[1:]
        if not text.strip():
            return []

        if delimiter is None:
            header_line = text.splitlines()[0]
            delimiter = self.detect_delimiter(header_line)

        rows = []
        try:
            reader = csv.reader(io.StringIO(text, newline=''), delimiter=delimiter)
            headers = [h.strip() for h in next(reader, [])]
            start = reader.line_num + 1
            for cells in reader:
                # Quoted cells may span lines; blank lines yield no cells
                if cells:
                    cells += [''] * (len(headers) - len(cells))
                    rows.append(SourceRow(zip(headers, cells), line_number=start))
                start = reader.line_num + 1
        except csv.Error as e:
            raise ValueError(f"Error parsing CSV content: {e}")

        return rows

    def read(self, file_path: str) -> List[Dict[str, Any]]:
        """Read a CSV/TSV/TXT file into raw string rows keyed by header.

        .tsv files are always split on tabs; other files detect the delimiter.
        Raises FileNotFoundError for a missing file and ValueError when the
        bytes cannot be decoded or parsed.
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        raw_data = path.read_bytes()
        if not raw_data:
            return []

        text = self._decode(raw_data, file_path)

        # TSV files use tab delimiter
        delimiter = '\t' if path.suffix.lower() == '.tsv' else None
        return self.read_text(text, delimiter=delimiter)

import openpyxl
from pathlib import Path


class ExcelAdapter:
    def can_handle(self, file_path):
        return Path(file_path).suffix.lower() in [".xlsx", ".xlsm"]

    def read(self, file_path):
        if not Path(file_path).exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
        try:
            ws = wb.active
            rows_iter = ws.iter_rows(values_only=True)
            header_row = next(rows_iter, None)
            if header_row is None:
                return []

            headers = [str(h).strip() if h is not None else "" for h in header_row]

            rows = []
            # Blank rows are kept so row positions stay aligned with sheet lines
            for row in rows_iter:
                row_dict = {
                    header: _cell_to_str(value)
                    for header, value in zip(headers, row)
                    if header
                }
                rows.append(row_dict)
        finally:
            wb.close()

        return rows


def _cell_to_str(value):
    if value is None:
        return ""
    # Integers typed into Excel come back as floats (1.0)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)

"""CSV file support: the run-scoped record cache and file helpers."""

from .cache import CsvRecordCache
from .io import merge_csv_files, read_csv_rows, save_report, write_csv_rows

__all__ = [
    "CsvRecordCache",
    "merge_csv_files",
    "read_csv_rows",
    "save_report",
    "write_csv_rows",
]

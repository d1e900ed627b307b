import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .constants import (
    CSV_ISSUES_ERRORS_FILENAME,
    MISSING_PARENT_LOOKUP_RECORDS_ERRORS_FILENAME,
)
from .csvfiles.io import save_report
from .models import CsvIssueRow, MissingParentLookupRow

CSV_ISSUE_COLUMNS = list(CsvIssueRow("", "").to_csv_row().keys())
MISSING_LOOKUP_COLUMNS = list(MissingParentLookupRow("", "", "", "", "", "").to_csv_row().keys())


def log_table(logger: logging.Logger, rows: List[Dict[str, Any]],
              title: Optional[str] = None, level: int = logging.INFO) -> None:
    """Log rows as an aligned text table."""
    if not rows:
        return
    text = pd.DataFrame(rows).to_string(index=False)
    if title:
        text = f"{title}\n{text}"
    logger.log(level, text)


def save_csv_issues_report(base_path: Path, issues: List[CsvIssueRow]) -> Path:
    return save_report(Path(base_path) / CSV_ISSUES_ERRORS_FILENAME,
                       [i.to_csv_row() for i in issues], CSV_ISSUE_COLUMNS)


def save_missing_lookups_report(base_path: Path, rows: List[MissingParentLookupRow]) -> Path:
    return save_report(Path(base_path) / MISSING_PARENT_LOOKUP_RECORDS_ERRORS_FILENAME,
                       [r.to_csv_row() for r in rows], MISSING_LOOKUP_COLUMNS)

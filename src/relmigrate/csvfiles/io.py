import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

logger = logging.getLogger(__name__)


def read_csv_rows(path: Path) -> Tuple[List[str], List[Dict[str, str]]]:
    """Read a CSV file as text cells. Returns (columns, rows)."""
    path = Path(path)
    if not path.exists():
        return [], []
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        return [], []
    columns = [str(c) for c in df.columns]
    return columns, df.to_dict(orient="records")


def write_csv_rows(path: Path, rows: Iterable[Dict[str, object]],
                   columns: Optional[Sequence[str]] = None) -> Path:
    path = Path(path)
    rows = list(rows)
    if columns is None:
        columns = []
        for row in rows:
            for key in row.keys():
                if key not in columns:
                    columns.append(key)
    df = pd.DataFrame(rows, columns=list(columns))
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    return path


def merge_csv_files(first: Path, second: Path, merged: Path,
                    columns: Sequence[str], key: str) -> bool:
    """
    Merge two files sharing the same identity into one. Only the given
    columns are kept; the first row of a duplicated key wins. Nothing is
    written unless both inputs exist.
    """
    if not (Path(first).exists() and Path(second).exists()):
        return False
    frames = []
    for p in (first, second):
        df = pd.read_csv(p, dtype=str, keep_default_na=False)
        frames.append(df[[c for c in columns if c in df.columns]])
    combined = pd.concat(frames, ignore_index=True)
    if key in combined.columns:
        combined = combined.drop_duplicates(subset=[key], keep="first")
    Path(merged).parent.mkdir(parents=True, exist_ok=True)
    combined.to_csv(merged, index=False)
    logger.info("Merged %s and %s into %s (%d rows)",
                Path(first).name, Path(second).name, Path(merged).name, len(combined))
    return True


def save_report(path: Path, rows: List[Dict[str, str]], columns: Sequence[str]) -> Path:
    logger.info("Writing %d row(s) to %s", len(rows), path)
    return write_csv_rows(path, rows, columns)

import logging
from pathlib import Path
from typing import Any, Dict, Hashable, List

from ..constants import ID_FIELD, SYNTHETIC_ID_PREFIX, SYNTHETIC_ID_WIDTH
from .io import read_csv_rows, write_csv_rows

logger = logging.getLogger(__name__)


def is_pending(key: Hashable) -> bool:
    """True for the placeholder key of a row still waiting for an id."""
    return isinstance(key, tuple)


class CsvRecordCache:
    """
    Run-scoped cache of file-backed rows.

    Each loaded file is kept as ``row id -> row``. Once a path is loaded the
    cache is the only source of truth for it until :meth:`flush` writes the
    paths marked dirty back to disk.
    """

    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self.rows: Dict[Path, Dict[Any, Dict[str, str]]] = {}
        self.columns: Dict[Path, List[str]] = {}
        self.dirty: set = set()
        self._id_counter = 1
        self._pending = 0

    def next_id(self) -> str:
        """Next synthetic id, e.g. ``ID0000000000000001``."""
        value = f"{SYNTHETIC_ID_PREFIX}{self._id_counter:0{SYNTHETIC_ID_WIDTH}d}"
        self._id_counter += 1
        return value

    def load(self, path: Path) -> Dict[Any, Dict[str, str]]:
        """
        Return the rows of ``path``, reading the file on first access.

        Rows without an ``Id``, or repeating one, are stored under a
        ``(None, n)`` placeholder key, which no CSV cell can produce, so that
        repair can give them a synthetic id later.
        """
        path = Path(path)
        if path in self.rows:
            return self.rows[path]
        columns, rows = read_csv_rows(path)
        data: Dict[Any, Dict[str, str]] = {}
        for row in rows:
            key: Any = str(row.get(ID_FIELD) or "").strip()
            if not key or key in data:
                self._pending += 1
                key = (None, self._pending)
            data[key] = row
        self.rows[path] = data
        self.columns[path] = columns
        logger.debug("Cached %d row(s) from %s", len(data), path)
        return data

    def get_columns(self, path: Path) -> List[str]:
        self.load(path)
        return self.columns[Path(path)]

    def add_column(self, path: Path, column: str) -> None:
        columns = self.get_columns(path)
        if column in columns:
            return
        if column == ID_FIELD:
            columns.insert(0, column)
        else:
            columns.append(column)

    def replace_rows(self, path: Path, rows: Dict[str, Dict[str, str]]) -> None:
        self.rows[Path(path)] = rows
        self.mark_dirty(path)

    def mark_dirty(self, path: Path) -> None:
        self.dirty.add(Path(path))

    def flush(self) -> List[Path]:
        """Write every dirty path once, then forget the dirty marks."""
        written: List[Path] = []
        for path, rows in self.rows.items():
            if path not in self.dirty:
                continue
            logger.info("Writing to %s", path)
            write_csv_rows(path, rows.values(), self.columns.get(path) or None)
            written.append(path)
        self.dirty.clear()
        return written


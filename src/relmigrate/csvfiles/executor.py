import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import ID_FIELD
from ..core.context import JobContext
from ..executors import RecordExecutor
from ..models import EntityDescriptor, Operation, QueryContext, Side
from .io import write_csv_rows


class FileExecutor(RecordExecutor):
    """
    Record access for a file-backed side.

    Source rows come from the run's :class:`CsvRecordCache`. A file target
    starts empty; written records go to ``target/<Entity>_<op>_target.csv``
    and inserted records get synthetic ids.
    """

    def __init__(self, context: JobContext, logger: Optional[logging.Logger] = None) -> None:
        self._context = context
        self._written: Dict[Path, List[Dict[str, Any]]] = {}
        self.logger = logger or logging.getLogger(__name__)

    def query(self, side: Side, context: QueryContext) -> List[Dict[str, Any]]:
        if side == Side.TARGET:
            return []
        path = self._context.csv_filename(context.entity.name)
        rows = self._context.cache.load(path)
        result = []
        for row in rows.values():
            if not str(row.get(ID_FIELD) or "").strip():
                self.logger.debug("%s: skipping a row without %s", context.entity.name, ID_FIELD)
                continue
            if context.matches(row):
                result.append(dict(row))
        return result

    def write(self, side: Side, operation: Operation, entity: EntityDescriptor,
              records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if side == Side.SOURCE:
            raise ValueError("The source side of a job is never written")
        if operation == Operation.DELETE:
            return [dict(r) for r in records]

        written: List[Dict[str, Any]] = []
        for record in records:
            row = dict(record)
            if operation == Operation.INSERT or not row.get(ID_FIELD):
                row[ID_FIELD] = self._context.cache.next_id()
            written.append(row)

        path = self._context.target_csv_filename(entity.name, operation)
        rows = self._written.setdefault(path, [])
        rows.extend(written)
        write_csv_rows(path, rows, entity.query_fields)
        self.logger.info("Writing to %s", path)
        return written

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from .constants import ID_FIELD
from .models import EntityDescriptor, Operation, QueryContext, Side


class RecordExecutor(ABC):
    """
    Reads and writes records of one endpoint.

    ``write`` returns one row per submitted record, in the submitted order;
    a row carries the record's ``Id`` on success and an empty ``Id`` (plus an
    ``Error`` column where available) on failure.
    """

    @abstractmethod
    def query(self, side: Side, context: QueryContext) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def write(self, side: Side, operation: Operation, entity: EntityDescriptor,
              records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...

    def count(self, side: Side, context: QueryContext) -> int:
        return len(self.query(side, context))

    def delete(self, side: Side, entity: EntityDescriptor, ids: List[str]) -> int:
        if not ids:
            return 0
        rows = self.write(side, Operation.DELETE, entity, [{ID_FIELD: i} for i in ids])
        return sum(1 for row in rows if row.get(ID_FIELD))

    def close(self) -> None:
        """Release held connections. Nothing to do by default."""


class SideRouter(RecordExecutor):
    """Sends each call to the executor of the requested side."""

    def __init__(self, source: RecordExecutor, target: RecordExecutor) -> None:
        self._executors = {Side.SOURCE: source, Side.TARGET: target}

    def executor(self, side: Side) -> RecordExecutor:
        return self._executors[side]

    def query(self, side: Side, context: QueryContext) -> List[Dict[str, Any]]:
        return self.executor(side).query(side, context)

    def write(self, side: Side, operation: Operation, entity: EntityDescriptor,
              records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.executor(side).write(side, operation, entity, records)

    def count(self, side: Side, context: QueryContext) -> int:
        return self.executor(side).count(side, context)

    def delete(self, side: Side, entity: EntityDescriptor, ids: List[str]) -> int:
        return self.executor(side).delete(side, entity, ids)

    def close(self) -> None:
        source, target = self._executors[Side.SOURCE], self._executors[Side.TARGET]
        source.close()
        if target is not source:
            target.close()

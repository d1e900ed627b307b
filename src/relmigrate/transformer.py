import logging
from typing import Any, Dict, List, Optional, Tuple

from .constants import ID_FIELD
from .core.context import JobContext
from .models import (
    Media,
    MissingParentLookupRow,
    Operation,
    ProcessedData,
    QueryContext,
    Side,
    Task,
)

FORWARDS = "forwards"
BACKWARDS = "backwards"
TARGET = "target"

# Outcome of resolving one lookup value
RESOLVED = "resolved"
DEFERRED = "deferred"
MISSING = "missing"


class RecordTransformer:
    """
    Task-level record logic: what each retrieval pass asks for, and how
    source records turn into insert/update batches for the target.
    """

    def __init__(self, context: JobContext, logger: Optional[logging.Logger] = None) -> None:
        self._context = context
        self.logger = logger or logging.getLogger(__name__)

    # ---------- value mapping ----------
    def map_value(self, entity_name: str, field_name: str, raw: Any) -> Any:
        mapping = self._context.value_mapping.get((entity_name, field_name))
        if not mapping:
            return raw
        key = "" if raw is None else str(raw).strip()
        return mapping.get(key, raw)

    # ---------- query building ----------
    def build_query(self, task: Task, mode: str, reversed: bool = False) -> Optional[QueryContext]:
        """
        Return what ``task`` should ask for in this pass, or None when the
        pass has nothing to add for it.
        """
        desc = task.descriptor
        if mode == TARGET:
            return self._build_target_query(task)

        source = task.source
        if source.all_records or source.media == Media.FILE:
            if mode == FORWARDS and not reversed:
                return QueryContext(desc, Side.SOURCE, mode, all_records=True)
            return None

        if mode == BACKWARDS:
            missing = self._unknown_parent_ids(task)
            if not missing:
                return None
            return QueryContext(desc, Side.SOURCE, mode, filters={ID_FIELD: missing})

        if not reversed and desc.limited_query:
            # the declared base query comes first; relationships add to it later
            return QueryContext(desc, Side.SOURCE, mode, where=dict(desc.where))

        index = self._context.task_index(task)
        filters: Dict[str, List[str]] = {}
        for fld, parent_name in desc.lookups.items():
            parent = self._context.get_task(parent_name)
            if parent is None or not parent.source.id_map:
                continue
            parent_index = self._context.task_index(parent)
            if reversed:
                wanted = parent is task or parent_index > index
            else:
                wanted = parent is not task and parent_index < index
            if wanted:
                filters[fld] = list(parent.source.id_map.keys())

        if not filters:
            return None
        return QueryContext(desc, Side.SOURCE, mode, reversed=reversed, filters=filters)

    def _build_target_query(self, task: Task) -> Optional[QueryContext]:
        desc = task.descriptor
        if task.target.media == Media.FILE:
            return None
        if task.target.all_records or len(desc.external_id_fields) != 1:
            return QueryContext(desc, Side.TARGET, TARGET, all_records=True)
        values: List[str] = []
        for ext_id in task.source.ext_id_map.keys():
            if ext_id and ext_id not in values:
                values.append(ext_id)
        if not values:
            return None
        return QueryContext(desc, Side.TARGET, TARGET, filters={desc.external_id_fields[0]: values})

    def _unknown_parent_ids(self, task: Task) -> List[str]:
        """Ids referenced by children's lookup fields that ``task`` does not hold yet."""
        known = task.source.id_map
        missing: List[str] = []
        for child in self._context.tasks:
            for fld, parent_name in child.descriptor.lookups.items():
                if parent_name != task.name:
                    continue
                for record in child.source.id_map.values():
                    value = str(record.get(fld) or "").strip()
                    if value and value not in known and value not in missing:
                        missing.append(value)
        return missing

    # ---------- record processing ----------
    def process_records(self, task: Task, mode: str) -> ProcessedData:
        data = ProcessedData()
        if task.descriptor.operation == Operation.DELETE:
            return data
        if mode == FORWARDS:
            self._process_forwards(task, data)
        else:
            self._process_backwards(task, data)
        return data

    def _process_forwards(self, task: Task, data: ProcessedData) -> None:
        desc = task.descriptor
        readonly = desc.readonly
        for source_id, source_record in task.source.id_map.items():
            if source_id in task.source_to_target:
                continue

            target_id = None
            if desc.external_id != ID_FIELD:
                target_id = task.target.ext_id_map.get(desc.external_id_value(source_record))

            if readonly:
                if target_id:
                    data.correlations[source_id] = target_id
                continue

            record = self._transform_record(task, source_record, FORWARDS, data)

            if target_id:
                existing = task.target.id_map.get(target_id, {})
                changes = {k: v for k, v in record.items()
                           if _as_text(existing.get(k)) != _as_text(v)}
                if changes and desc.operation in (Operation.UPDATE, Operation.UPSERT):
                    changes[ID_FIELD] = target_id
                    data.records_to_update.append(changes)
                    data.update_source_ids.append(source_id)
                else:
                    data.correlations[source_id] = target_id
            elif desc.operation in (Operation.INSERT, Operation.UPSERT):
                data.records_to_insert.append(record)
                data.insert_source_ids.append(source_id)

    def _process_backwards(self, task: Task, data: ProcessedData) -> None:
        desc = task.descriptor
        if desc.readonly:
            return
        backward_fields = self._backward_fields(task)
        if not backward_fields:
            return
        for source_id, target_id in list(task.source_to_target.items()):
            source_record = task.source.id_map.get(source_id)
            if source_record is None:
                continue
            existing = task.target.id_map.get(target_id, {})
            changes: Dict[str, Any] = {}
            for fld in backward_fields:
                status, value = self.resolve_lookup(task, fld, source_record.get(fld), BACKWARDS, data)
                if status == RESOLVED and _as_text(existing.get(fld)) != _as_text(value):
                    changes[fld] = value
            if changes:
                changes[ID_FIELD] = target_id
                data.records_to_update.append(changes)
                data.update_source_ids.append(source_id)

    def _backward_fields(self, task: Task) -> List[str]:
        index = self._context.task_index(task)
        result: List[str] = []
        for fld, parent_name in task.descriptor.lookups.items():
            parent = self._context.get_task(parent_name)
            if parent is not None and self._context.task_index(parent) >= index:
                result.append(fld)
        return result

    def _transform_record(self, task: Task, source_record: Dict[str, Any],
                          mode: str, data: ProcessedData) -> Dict[str, Any]:
        desc = task.descriptor
        record: Dict[str, Any] = {}
        for fld in desc.external_id_fields + desc.fields:
            if fld == ID_FIELD or fld in desc.lookups or fld in record:
                continue
            record[fld] = self.map_value(desc.name, fld, source_record.get(fld))
        for fld in desc.reference_fields:
            status, value = self.resolve_lookup(task, fld, source_record.get(fld), mode, data)
            if status == RESOLVED:
                record[fld] = value
        return record

    def resolve_lookup(self, task: Task, field_name: str, raw: Any, mode: str,
                       data: ProcessedData) -> Tuple[str, Optional[str]]:
        """
        Translate a source lookup value into the target id of the parent.

        Returns ``(RESOLVED, id)``, ``(DEFERRED, None)`` when the parent is
        written later in this job, or ``(MISSING, None)``; missing values are
        appended to ``data.missing_parent_lookups``.
        """
        value = _as_text(raw).strip()
        if not value:
            return RESOLVED, None
        desc = task.descriptor
        parent = self._context.get_task(desc.lookups[field_name])
        if parent is None:
            return RESOLVED, value

        parent_desc = parent.descriptor
        parent_record = parent.source.id_map.get(value)
        missing_value = value
        if parent_record is not None:
            target_id = parent.source_to_target.get(value)
            parent_ext_id = parent_desc.external_id_value(parent_record)
            if not target_id and parent_desc.external_id != ID_FIELD:
                target_id = parent.target.ext_id_map.get(parent_ext_id)
            if target_id:
                return RESOLVED, target_id
            if mode == FORWARDS and self._context.task_index(parent) >= self._context.task_index(task):
                return DEFERRED, None
            missing_value = parent_ext_id or value

        data.missing_parent_lookups.append(MissingParentLookupRow(
            child_entity=desc.name,
            child_field=field_name,
            child_external_id_field=desc.external_id,
            parent_entity=parent_desc.name,
            parent_external_id_field=parent_desc.external_id,
            missing_value=missing_value,
        ))
        return MISSING, None


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)

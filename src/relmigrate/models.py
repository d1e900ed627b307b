from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .constants import (
    COMPLEX_EXTERNAL_ID_SEPARATOR,
    ID_FIELD,
    REPORT_DATE_FORMAT,
)


class Media(str, Enum):
    ORG = "org"
    FILE = "file"


class Operation(str, Enum):
    INSERT = "Insert"
    UPDATE = "Update"
    UPSERT = "Upsert"
    READONLY = "Readonly"
    DELETE = "Delete"


class Side(str, Enum):
    SOURCE = "source"
    TARGET = "target"


def report_timestamp() -> str:
    return datetime.now().strftime(REPORT_DATE_FORMAT)


@dataclass
class EntityDescriptor:
    """
    Declaration of one entity type: its external id, the fields to move and
    the reference fields pointing at other entity types.

    ``lookups`` maps every reference field to its parent entity name.
    ``master_details`` holds the reference fields that are strong
    (master-detail) relationships; they are also lookups.
    """

    name: str
    external_id: str = ID_FIELD
    fields: List[str] = field(default_factory=list)
    lookups: Dict[str, str] = field(default_factory=dict)
    master_details: Dict[str, str] = field(default_factory=dict)
    operation: Operation = Operation.UPSERT
    special: bool = False
    no_relationships: bool = False
    fetch_all_records: bool = False
    limited_query: bool = False
    where: Dict[str, List[str]] = field(default_factory=dict)
    autonumber_external_id: bool = False
    delete_old_data: bool = False

    # Computed by the scheduler
    process_all_source: bool = False
    process_all_target: bool = False

    def __post_init__(self) -> None:
        for fld, parent in self.master_details.items():
            self.lookups.setdefault(fld, parent)

    @property
    def readonly(self) -> bool:
        return self.operation == Operation.READONLY

    @property
    def external_id_fields(self) -> List[str]:
        return [p.strip() for p in self.external_id.split(COMPLEX_EXTERNAL_ID_SEPARATOR) if p.strip()]

    @property
    def complex_or_autonumber_external_id(self) -> bool:
        return (len(self.external_id_fields) > 1
                or self.autonumber_external_id
                or self.external_id == ID_FIELD)

    @property
    def reference_fields(self) -> List[str]:
        return list(self.lookups.keys())

    @property
    def parent_lookup_entities(self) -> List[str]:
        seen: List[str] = []
        for parent in self.lookups.values():
            if parent not in seen:
                seen.append(parent)
        return seen

    @property
    def parent_master_detail_entities(self) -> List[str]:
        seen: List[str] = []
        for parent in self.master_details.values():
            if parent not in seen:
                seen.append(parent)
        return seen

    @property
    def query_fields(self) -> List[str]:
        """Every column a record of this entity carries, ``Id`` first."""
        result: List[str] = [ID_FIELD]
        for name in self.external_id_fields + self.fields + self.reference_fields:
            if name not in result:
                result.append(name)
        return result

    def external_id_value(self, record: Dict[str, Any]) -> str:
        parts = [str(record.get(f) or "") for f in self.external_id_fields]
        return COMPLEX_EXTERNAL_ID_SEPARATOR.join(parts)


class SideData:
    """Records of one task on one side, indexed by external and internal id."""

    def __init__(self, side: Side, media: Media = Media.ORG, all_records: bool = False) -> None:
        self.side = side
        self.media = media
        self.all_records = all_records
        self.ext_id_map: Dict[str, str] = {}
        self.id_map: Dict[str, Dict[str, Any]] = {}

    def add(self, record: Dict[str, Any], external_id: str) -> bool:
        """Store a record; returns False when its internal id was already known."""
        record_id = str(record.get(ID_FIELD) or "")
        if not record_id:
            return False
        is_new = record_id not in self.id_map
        self.id_map[record_id] = record
        if external_id:
            self.ext_id_map[external_id] = record_id
        return is_new

    def __len__(self) -> int:
        return len(self.id_map)


class Task:
    """Unit of work for one entity type."""

    def __init__(self, descriptor: EntityDescriptor,
                 source_media: Media = Media.ORG,
                 target_media: Media = Media.ORG) -> None:
        self.descriptor = descriptor
        self.source = SideData(Side.SOURCE, source_media)
        self.target = SideData(Side.TARGET, target_media)
        self.source_to_target: Dict[str, str] = {}

    @property
    def name(self) -> str:
        return self.descriptor.name

    def side(self, side: Side) -> SideData:
        return self.source if side == Side.SOURCE else self.target

    def add_record(self, side: Side, record: Dict[str, Any]) -> bool:
        return self.side(side).add(record, self.descriptor.external_id_value(record))

    def __repr__(self) -> str:
        return f"Task({self.name!r})"


@dataclass
class QueryContext:
    """What a task asks the executor for during one retrieval pass."""

    entity: EntityDescriptor
    side: Side
    mode: str
    reversed: bool = False
    all_records: bool = False
    filters: Dict[str, List[str]] = field(default_factory=dict)
    where: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def fields(self) -> List[str]:
        return self.entity.query_fields

    def matches(self, record: Dict[str, Any]) -> bool:
        """``where`` conditions must all hold; ``filters`` are OR-combined."""
        for fld, values in self.where.items():
            if str(record.get(fld) or "") not in values:
                return False
        if self.all_records or not self.filters:
            return True
        return any(str(record.get(fld) or "") in values
                   for fld, values in self.filters.items())


@dataclass
class MissingParentLookupRow:
    child_entity: str
    child_field: str
    child_external_id_field: str
    parent_entity: str
    parent_external_id_field: str
    missing_value: str
    timestamp: str = field(default_factory=report_timestamp)

    def to_csv_row(self) -> Dict[str, str]:
        return {
            "Date update": self.timestamp,
            "Child lookup object": self.child_entity,
            "Child lookup field": self.child_field,
            "Child ExternalId field": self.child_external_id_field,
            "Parent lookup object": self.parent_entity,
            "Parent ExternalId field": self.parent_external_id_field,
            "Missing parent ExternalId value": self.missing_value,
        }


@dataclass
class CsvIssueRow:
    child_entity: str
    error: str
    child_value: str = ""
    child_field: str = ""
    parent_value: str = ""
    parent_entity: str = ""
    parent_field: str = ""
    timestamp: str = field(default_factory=report_timestamp)

    def to_csv_row(self) -> Dict[str, str]:
        return {
            "Date update": self.timestamp,
            "Child value": self.child_value,
            "Child sObject": self.child_entity,
            "Child field": self.child_field,
            "Parent value": self.parent_value,
            "Parent sObject": self.parent_entity,
            "Parent field": self.parent_field,
            "Error": self.error,
        }


@dataclass
class ProcessedData:
    """Batch produced by the transformer for one task and one update pass."""

    records_to_insert: List[Dict[str, Any]] = field(default_factory=list)
    insert_source_ids: List[str] = field(default_factory=list)
    records_to_update: List[Dict[str, Any]] = field(default_factory=list)
    update_source_ids: List[str] = field(default_factory=list)
    # source id -> target id of records matched without any change to write
    correlations: Dict[str, str] = field(default_factory=dict)
    missing_parent_lookups: List[MissingParentLookupRow] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.records_to_insert and not self.records_to_update


def find_task(tasks: List[Task], entity_name: str) -> Optional[Task]:
    for task in tasks:
        if task.name == entity_name:
            return task
    return None

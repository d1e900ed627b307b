import csv
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from relmigrate.config import EndpointSettings, JobSettings
from relmigrate.constants import ID_FIELD
from relmigrate.core.context import JobContext
from relmigrate.core.scheduler import JobScheduler
from relmigrate.executors import RecordExecutor
from relmigrate.models import EntityDescriptor, Media, Operation, QueryContext, Side


class MemoryExecutor(RecordExecutor):
    """In-memory endpoint: ``records[side][entity]`` is a list of rows."""

    def __init__(self, source: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 target: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        self.records = {Side.SOURCE: source or {}, Side.TARGET: target or {}}
        self.queries: List[QueryContext] = []
        self.writes: List[tuple] = []
        self.closed = False
        self._counter = 0

    def query(self, side: Side, context: QueryContext) -> List[Dict[str, Any]]:
        self.queries.append(context)
        rows = self.records[side].get(context.entity.name, [])
        return [dict(r) for r in rows if context.matches(r)]

    def write(self, side: Side, operation: Operation, entity: EntityDescriptor,
              records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        self.writes.append((operation, entity.name, [dict(r) for r in records]))
        rows = self.records[side].setdefault(entity.name, [])
        result = []
        for record in records:
            if operation == Operation.INSERT:
                self._counter += 1
                row = dict(record)
                row[ID_FIELD] = f"T{self._counter:03d}"
                rows.append(row)
            elif operation == Operation.DELETE:
                rows[:] = [r for r in rows if r.get(ID_FIELD) != record[ID_FIELD]]
                row = dict(record)
            else:
                row = next(r for r in rows if r.get(ID_FIELD) == record[ID_FIELD])
                row.update(record)
            result.append({ID_FIELD: row[ID_FIELD]})
        return result

    def close(self) -> None:
        self.closed = True


def write_csv(tmp_path: Path, filename: str, rows: List[Dict[str, Any]]) -> Path:
    fieldnames: List[str] = []
    for row in rows:
        for key in row.keys():
            if key not in fieldnames:
                fieldnames.append(key)

    path = tmp_path / filename
    with path.open("w", encoding="utf-8", newline="") as fp:
        writer = csv.DictWriter(fp, fieldnames=fieldnames)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
    return path


def read_csv(path: Path) -> List[Dict[str, str]]:
    with Path(path).open(encoding="utf-8", newline="") as fp:
        return list(csv.DictReader(fp))


def make_settings(base_path: Path, objects: List[EntityDescriptor],
                  source: Media = Media.FILE, target: Media = Media.FILE,
                  **kwargs: Any) -> JobSettings:
    return JobSettings(
        base_path=base_path,
        objects=objects,
        source=EndpointSettings(source, url="" if source == Media.FILE else "http://source"),
        target=EndpointSettings(target, url="" if target == Media.FILE else "http://target"),
        **kwargs,
    )


def make_context(base_path: Path, objects: List[EntityDescriptor],
                 source: Media = Media.FILE, target: Media = Media.FILE,
                 **kwargs: Any) -> JobContext:
    settings = make_settings(base_path, objects, source, target, **kwargs)
    context = JobContext(settings)
    context.tasks, context.query_tasks = JobScheduler().schedule(objects, source, target)
    return context


@pytest.fixture()
def account_contact():
    """Account (external id Name) and Contact (external id Email) looking up Account."""
    account = EntityDescriptor(name="Account", external_id="Name",
                               fields=["Name", "Industry"], fetch_all_records=True)
    contact = EntityDescriptor(name="Contact", external_id="Email", fields=["Email"],
                               lookups={"AccountId": "Account"})
    return account, contact

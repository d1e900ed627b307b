"""
Job file loading.

A job file is a JSON document in the ``export.json`` style::

    {
      "source": {"media": "file"},
      "target": {"media": "org", "url": "https://example.org/api", "token": "..."},
      "objects": [
        {"name": "Account", "externalId": "Name", "operation": "Upsert",
         "fields": ["Name", "Industry"], "lookups": {"ParentId": "Account"},
         "where": {"Industry": ["Tech"]}},
        {"name": "Contact", "externalId": "Email", "master": false,
         "fields": ["Email"], "masterDetails": {"AccountId": "Account"}}
      ]
    }

``where`` restricts the base query of an object (a limited query).
``master: false`` objects are only read through their relationships.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import GROUP_ENTITY_NAME, ID_FIELD, USER_AND_GROUP_FILENAME, USER_ENTITY_NAME
from .errors import ConfigurationError
from .models import EntityDescriptor, Media, Operation


class RetrievalMode(str, Enum):
    FIXED = "fixed"
    ITERATIVE = "iterative"


@dataclass
class EndpointSettings:
    media: Media = Media.ORG
    url: str = ""
    token: Optional[str] = None
    batch_size: int = 200
    page_size: int = 2000
    max_retries: int = 3
    timeout: float = 120.0


@dataclass
class JobSettings:
    base_path: Path
    objects: List[EntityDescriptor] = field(default_factory=list)
    source: EndpointSettings = field(default_factory=lambda: EndpointSettings(Media.FILE))
    target: EndpointSettings = field(default_factory=EndpointSettings)
    import_csv_files_as_is: bool = False
    validate_csv_files_only: bool = False
    prompt_on_missing_parent_objects: bool = True
    prompt_on_issues_in_csv_files: bool = True
    retrieval_mode: RetrievalMode = RetrievalMode.FIXED

    def csv_path(self, entity_name: str) -> Path:
        """
        File holding the rows of an entity. Users and groups share the merged
        ``UserAndGroup.csv`` once it exists.
        """
        if entity_name in (USER_ENTITY_NAME, GROUP_ENTITY_NAME):
            merged = self.base_path / f"{USER_AND_GROUP_FILENAME}.csv"
            if merged.exists():
                return merged
        return self.base_path / f"{entity_name}.csv"


def _parse_endpoint(raw: Optional[Dict[str, Any]], default_media: Media) -> EndpointSettings:
    raw = raw or {}
    try:
        media = Media(str(raw.get("media", default_media.value)).lower())
    except ValueError as e:
        raise ConfigurationError(f"Unknown media {raw.get('media')!r}") from e
    endpoint = EndpointSettings(
        media=media,
        url=str(raw.get("url") or ""),
        token=raw.get("token"),
        batch_size=int(raw.get("batchSize", 200)),
        page_size=int(raw.get("pageSize", 2000)),
        max_retries=int(raw.get("maxRetries", 3)),
        timeout=float(raw.get("timeout", 120.0)),
    )
    if endpoint.media == Media.ORG and not endpoint.url:
        raise ConfigurationError("An org endpoint requires a 'url'")
    return endpoint


def _parse_operation(value: Any) -> Operation:
    text = str(value or Operation.UPSERT.value).strip().lower()
    for op in Operation:
        if op.value.lower() == text:
            return op
    raise ConfigurationError(f"Unknown operation {value!r}")


def parse_descriptor(raw: Dict[str, Any]) -> EntityDescriptor:
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ConfigurationError(f"Object without a name: {raw!r}")
    where = {str(k): [str(v) for v in (vals if isinstance(vals, list) else [vals])]
             for k, vals in (raw.get("where") or {}).items()}
    # Unrestricted master objects are read in full; others only through relationships
    master = bool(raw.get("master", True))
    all_records = raw.get("allRecords")
    if all_records is None:
        all_records = master and not where
    return EntityDescriptor(
        name=name,
        external_id=str(raw.get("externalId") or ID_FIELD),
        fields=[str(f) for f in raw.get("fields", [])],
        lookups={str(k): str(v) for k, v in (raw.get("lookups") or {}).items()},
        master_details={str(k): str(v) for k, v in (raw.get("masterDetails") or {}).items()},
        operation=_parse_operation(raw.get("operation")),
        special=bool(raw.get("special", False)),
        fetch_all_records=bool(all_records),
        limited_query=bool(raw.get("limitedQuery", bool(where))),
        where=where,
        autonumber_external_id=bool(raw.get("autonumberExternalId", False)),
        delete_old_data=bool(raw.get("deleteOldData", False)),
    )


def resolve_relationships(objects: List[EntityDescriptor]) -> None:
    """Check reference targets and derive the ``no_relationships`` trait."""
    names = {o.name for o in objects}
    referenced = set()
    for obj in objects:
        for fld, parent in obj.lookups.items():
            if parent not in names:
                raise ConfigurationError(
                    f"{obj.name}.{fld} references unknown object {parent!r}")
            if parent != obj.name:
                referenced.add(parent)
    for obj in objects:
        if not obj.lookups and obj.name not in referenced:
            obj.no_relationships = True


def load_job(path: Path, base_path: Optional[Path] = None) -> JobSettings:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read job file {path}: {e}") from e

    objects = [parse_descriptor(o) for o in data.get("objects", [])]
    if not objects:
        raise ConfigurationError("The job file declares no objects")
    seen = set()
    for o in objects:
        if o.name in seen:
            raise ConfigurationError(f"Object {o.name!r} is declared twice")
        seen.add(o.name)
    resolve_relationships(objects)

    try:
        mode = RetrievalMode(str(data.get("retrievalMode", RetrievalMode.FIXED.value)).lower())
    except ValueError as e:
        raise ConfigurationError(f"Unknown retrieval mode {data.get('retrievalMode')!r}") from e

    return JobSettings(
        base_path=Path(base_path or data.get("basePath") or Path(path).resolve().parent),
        objects=objects,
        source=_parse_endpoint(data.get("source"), Media.FILE),
        target=_parse_endpoint(data.get("target"), Media.ORG),
        import_csv_files_as_is=bool(data.get("importCSVFilesAsIs", False)),
        validate_csv_files_only=bool(data.get("validateCSVFilesOnly", False)),
        prompt_on_missing_parent_objects=bool(data.get("promptOnMissingParentObjects", True)),
        prompt_on_issues_in_csv_files=bool(data.get("promptOnIssuesInCSVFiles", True)),
        retrieval_mode=mode,
    )

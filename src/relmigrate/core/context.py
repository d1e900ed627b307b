from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..config import JobSettings
from ..constants import (
    CSV_SOURCE_FILE_SUFFIX,
    CSV_SOURCE_SUB_DIRECTORY,
    CSV_TARGET_FILE_SUFFIX,
    CSV_TARGET_SUB_DIRECTORY,
)
from ..csvfiles.cache import CsvRecordCache
from ..models import CsvIssueRow, MissingParentLookupRow, Operation, Task, find_task


class JobContext:
    """
    State owned by one run of a migration job.

    Created when the run starts and discarded when it ends. Every phase
    receives the same instance; nothing else writes to it.
    """

    def __init__(self, settings: JobSettings, cache: Optional[CsvRecordCache] = None) -> None:
        self.settings = settings
        self.tasks: List[Task] = []
        self.query_tasks: List[Task] = []
        self.cache = cache or CsvRecordCache()
        self.csv_issues: List[CsvIssueRow] = []
        self.missing_parent_lookups: List[MissingParentLookupRow] = []
        self.value_mapping: Dict[Tuple[str, str], Dict[str, str]] = {}
        self.missing_lookups_prompted = False

    @property
    def base_path(self) -> Path:
        return self.settings.base_path

    def get_task(self, entity_name: str) -> Optional[Task]:
        return find_task(self.tasks, entity_name)

    def task_index(self, task: Task) -> int:
        return self.tasks.index(task)

    def csv_filename(self, entity_name: str) -> Path:
        return self.settings.csv_path(entity_name)

    def source_csv_filename(self, entity_name: str) -> Path:
        directory = self.base_path / CSV_SOURCE_SUB_DIRECTORY
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{entity_name}{CSV_SOURCE_FILE_SUFFIX}.csv"

    def target_csv_filename(self, entity_name: str, operation: Operation) -> Path:
        directory = self.base_path / CSV_TARGET_SUB_DIRECTORY
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{entity_name}_{operation.value.lower()}{CSV_TARGET_FILE_SUFFIX}.csv"

    def clear(self) -> None:
        self.tasks = []
        self.query_tasks = []
        self.cache.clear()
        self.csv_issues = []
        self.missing_parent_lookups = []
        self.value_mapping = {}
        self.missing_lookups_prompted = False

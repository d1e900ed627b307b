"""
Validation and repair of file-backed source data.

Runs before any record is retrieved. Every structural or referential problem
found becomes a :class:`CsvIssueRow`; the rows are written once, to
``CSVIssuesReport.csv``, when the phase ends or the user aborts.
"""
import logging
import shutil
from typing import Dict, List, Optional

from ..constants import (
    CSV_ISSUES_ERRORS_FILENAME,
    GROUP_CSV_FILENAME,
    ID_FIELD,
    NAME_FIELD,
    USER_AND_GROUP_FILENAME,
    USER_CSV_FILENAME,
    VALUE_MAPPING_CSV_FILENAME,
)
from ..core.context import JobContext
from ..errors import SuccessExit
from ..models import CsvIssueRow, Operation, Task
from ..prompts import CSV_ISSUES, Prompter, abort_with_prompt
from ..utils import save_csv_issues_report
from .cache import is_pending
from .io import merge_csv_files, read_csv_rows

MISSING_FILE = "CSV file is missing"
MISSING_COLUMN = "Column is missing in the CSV file"
DUPLICATE_ID = "Duplicate Id, a new Id was generated"
MISSING_PARENT = "Missing parent record"


class CsvValidator:

    def __init__(self, context: JobContext, prompter: Prompter,
                 logger: Optional[logging.Logger] = None) -> None:
        self._context = context
        self._cache = context.cache
        self._prompter = prompter
        self.logger = logger or logging.getLogger(__name__)

    def run(self) -> None:
        settings = self._context.settings
        self.merge_user_group_files()
        self.load_value_mapping()
        self.copy_to_source_directory()

        if settings.import_csv_files_as_is:
            self.logger.info("Validation of the source CSV files was skipped")
            return

        self.logger.info("Validating and fixing source CSV files…")
        issues = self._context.csv_issues
        for task in self._context.tasks:
            issues.extend(self.validate_task(task))

        prompted = False
        if issues:
            self._prompt_to_abort()
            prompted = True

        for task in self._context.tasks:
            issues.extend(self.repair_ids(task))
        for task in self._context.tasks:
            issues.extend(self.repair_lookups(task))

        written = self._cache.flush()
        self.logger.info("%d CSV file(s) were updated", len(written))

        if issues:
            if not prompted:
                self._prompt_to_abort()
            else:
                self.logger.warning("%d issue(s) found in the source CSV files, see %s",
                                    len(issues), CSV_ISSUES_ERRORS_FILENAME)
            self.save_report()
        else:
            self.logger.info("No issues were found in the source CSV files")

        if settings.validate_csv_files_only:
            raise SuccessExit()

    # ---------- preparation ----------
    def merge_user_group_files(self) -> bool:
        base = self._context.base_path
        return merge_csv_files(base / USER_CSV_FILENAME, base / GROUP_CSV_FILENAME,
                               base / f"{USER_AND_GROUP_FILENAME}.csv",
                               columns=[ID_FIELD, NAME_FIELD], key=ID_FIELD)

    def load_value_mapping(self) -> Dict:
        _, rows = read_csv_rows(self._context.base_path / VALUE_MAPPING_CSV_FILENAME)
        mapping = self._context.value_mapping
        if rows:
            self.logger.info("Reading values mapping from %s", VALUE_MAPPING_CSV_FILENAME)
        for row in rows:
            entity = str(row.get("ObjectName") or "").strip()
            field_name = str(row.get("FieldName") or "").strip()
            if not entity or not field_name:
                continue
            raw = str(row.get("RawValue") or "").strip()
            mapping.setdefault((entity, field_name), {})[raw] = str(row.get("Value") or "").strip()
        return mapping

    def copy_to_source_directory(self) -> None:
        for task in self._context.tasks:
            path = self._context.csv_filename(task.name)
            if path.exists():
                shutil.copyfile(path, self._context.source_csv_filename(task.name))

    # ---------- per task ----------
    def validate_task(self, task: Task) -> List[CsvIssueRow]:
        desc = task.descriptor
        path = self._context.csv_filename(task.name)
        if not path.exists():
            if desc.readonly or desc.operation == Operation.DELETE:
                return []
            return [CsvIssueRow(child_entity=task.name, child_value=path.name, error=MISSING_FILE)]

        columns = self._cache.get_columns(path)
        return [CsvIssueRow(child_entity=task.name, child_field=col, error=MISSING_COLUMN)
                for col in desc.query_fields
                if col != ID_FIELD and col not in columns]

    def repair_ids(self, task: Task) -> List[CsvIssueRow]:
        """Give a synthetic id to every row without a usable ``Id``."""
        path = self._context.csv_filename(task.name)
        if not path.exists():
            return []
        rows = self._cache.load(path)
        issues: List[CsvIssueRow] = []
        repaired: Dict[str, Dict[str, str]] = {}
        changed = ID_FIELD not in self._cache.get_columns(path)
        for key, row in rows.items():
            row_id = str(row.get(ID_FIELD) or "").strip()
            if not is_pending(key):
                repaired[key] = row
                continue
            if row_id:
                issues.append(CsvIssueRow(child_entity=task.name, child_field=ID_FIELD,
                                          child_value=row_id, error=DUPLICATE_ID))
            row[ID_FIELD] = self._cache.next_id()
            repaired[row[ID_FIELD]] = row
            changed = True
        if changed:
            self._cache.add_column(path, ID_FIELD)
            self._cache.replace_rows(path, repaired)
        return issues

    def repair_lookups(self, task: Task) -> List[CsvIssueRow]:
        """
        Point lookup values at parent ``Id``s. A value equal to a parent's
        external id is rewritten to that parent's ``Id``; a value matching no
        parent row is reported.
        """
        path = self._context.csv_filename(task.name)
        if not path.exists():
            return []
        issues: List[CsvIssueRow] = []
        rows = self._cache.load(path)
        for fld, parent_name in task.descriptor.lookups.items():
            parent = self._context.get_task(parent_name)
            parent_path = self._context.csv_filename(parent_name)
            if parent is None or not parent_path.exists():
                continue
            parent_rows = self._cache.load(parent_path)
            by_external_id = {parent.descriptor.external_id_value(r): row_id
                              for row_id, r in parent_rows.items()}
            for row in rows.values():
                value = str(row.get(fld) or "").strip()
                if not value or value in parent_rows:
                    continue
                if value in by_external_id:
                    row[fld] = by_external_id[value]
                    self._cache.mark_dirty(path)
                    continue
                issues.append(CsvIssueRow(
                    child_entity=task.name, child_field=fld, child_value=value,
                    parent_entity=parent_name, parent_field=parent.descriptor.external_id,
                    error=MISSING_PARENT))
        return issues

    # ---------- reporting ----------
    def save_report(self) -> None:
        save_csv_issues_report(self._context.base_path, self._context.csv_issues)

    def _prompt_to_abort(self) -> None:
        message = (f"{len(self._context.csv_issues)} issue(s) found in the source CSV files, "
                   f"see {CSV_ISSUES_ERRORS_FILENAME}")
        abort_with_prompt(self._prompter,
                          self._context.settings.prompt_on_issues_in_csv_files,
                          CSV_ISSUES, message, on_abort=self.save_report)

import logging
from typing import Any, Dict, List, Optional

from ..constants import ID_FIELD, MISSING_PARENT_LOOKUP_RECORDS_ERRORS_FILENAME
from ..errors import TransportError
from ..executors import RecordExecutor
from ..models import Media, Operation, ProcessedData, Side, Task
from ..prompts import MISSING_PARENT_LOOKUPS, Prompter, abort_with_prompt
from ..transformer import BACKWARDS, FORWARDS, RecordTransformer
from ..utils import save_missing_lookups_report
from .context import JobContext


class UpdateOrchestrator:
    """
    Writes the target in two passes over the execution order.

    The forward pass inserts and updates records; the backward pass (live
    targets only) fills lookups whose parents were written after their
    children. Missing parent lookups are collected for the whole job; the
    first one prompts, later ones only warn.
    """

    def __init__(self, context: JobContext, executor: RecordExecutor,
                 transformer: RecordTransformer, prompter: Prompter,
                 logger: Optional[logging.Logger] = None) -> None:
        self._context = context
        self._executor = executor
        self._transformer = transformer
        self._prompter = prompter
        self.logger = logger or logging.getLogger(__name__)

    def update(self) -> int:
        """Run both passes. The missing lookups report is saved even when a pass fails."""
        try:
            total = self.run_pass(FORWARDS, "step 1")
            if self._context.settings.target.media == Media.ORG:
                total += self.run_pass(BACKWARDS, "step 2")
            else:
                self.logger.info("Updating target, step 2: skipped for file targets")
        finally:
            self.save_report()
        return total

    def run_pass(self, mode: str, label: str) -> int:
        self.logger.info("Updating target, %s", label)
        total = 0
        for task in self._context.tasks:
            processed = self.update_task(task, mode)
            if processed:
                self.logger.info("%s: %d record(s) processed", task.name, processed)
            total += processed
        if total:
            self.logger.info("Updating target, %s completed: %d record(s)", label, total)
        else:
            self.logger.info("Nothing was updated")
        return total

    def update_task(self, task: Task, mode: str) -> int:
        data = self._transformer.process_records(task, mode)
        for source_id, target_id in data.correlations.items():
            task.source_to_target[source_id] = target_id

        if data.missing_parent_lookups:
            self._on_missing_lookups(task, data)

        processed = 0
        if data.records_to_insert:
            written = self._executor.write(Side.TARGET, Operation.INSERT,
                                           task.descriptor, data.records_to_insert)
            processed += self._fold(task, data.records_to_insert, data.insert_source_ids, written)
        if data.records_to_update:
            written = self._executor.write(Side.TARGET, Operation.UPDATE,
                                           task.descriptor, data.records_to_update)
            processed += self._fold(task, data.records_to_update, data.update_source_ids, written)
        return processed

    def _fold(self, task: Task, submitted: List[Dict[str, Any]],
              source_ids: List[str], written: List[Dict[str, Any]]) -> int:
        if len(written) != len(submitted):
            raise TransportError(
                f"{task.name}: {len(written)} result row(s) for {len(submitted)} record(s)")
        done = 0
        for record, source_id, row in zip(submitted, source_ids, written):
            target_id = str(row.get(ID_FIELD) or "")
            if not target_id:
                self.logger.warning("%s: record %s was not written: %s",
                                    task.name, source_id, row.get("Error", "unknown error"))
                continue
            merged = dict(task.target.id_map.get(target_id, {}))
            merged.update(record)
            merged.update(row)
            task.add_record(Side.TARGET, merged)
            task.source_to_target[source_id] = target_id
            done += 1
        return done

    def _on_missing_lookups(self, task: Task, data: ProcessedData) -> None:
        context = self._context
        context.missing_parent_lookups.extend(data.missing_parent_lookups)
        message = (f"{task.name}: {len(data.missing_parent_lookups)} missing parent lookup "
                   f"record(s), see {MISSING_PARENT_LOOKUP_RECORDS_ERRORS_FILENAME}")
        if context.missing_lookups_prompted:
            self.logger.warning(message)
            return
        context.missing_lookups_prompted = True
        abort_with_prompt(self._prompter,
                          context.settings.prompt_on_missing_parent_objects,
                          MISSING_PARENT_LOOKUPS, message)

    def save_report(self) -> None:
        save_missing_lookups_report(self._context.base_path,
                                    self._context.missing_parent_lookups)

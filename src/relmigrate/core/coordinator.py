import logging
import shutil
from typing import Callable, List, Optional

from ..config import EndpointSettings, JobSettings
from ..constants import CSV_TARGET_SUB_DIRECTORY, ID_FIELD, LOG_FILENAME, LOG_SUB_DIRECTORY
from ..csvfiles.executor import FileExecutor
from ..csvfiles.validation import CsvValidator
from ..errors import SuccessExit
from ..executors import RecordExecutor, SideRouter
from ..models import Media, Operation, QueryContext, Side, Task
from ..prompts import ConsolePrompter, Prompter
from ..remote import RestExecutor
from ..transformer import TARGET, RecordTransformer
from ..utils import log_table
from .context import JobContext
from .retrieval import RetrievalCoordinator
from .scheduler import JobScheduler
from .updater import UpdateOrchestrator

coord_logger = logging.getLogger("relmigrate")

ExecutorFactory = Callable[[JobContext], RecordExecutor]


def default_executor(context: JobContext) -> RecordExecutor:
    settings = context.settings

    def for_side(endpoint: EndpointSettings) -> RecordExecutor:
        if endpoint.media == Media.FILE:
            return FileExecutor(context)
        return RestExecutor.from_settings(endpoint)

    return SideRouter(for_side(settings.source), for_side(settings.target))


class MigrationCoordinator:
    """
    Runs one migration job: schedule, validate/repair the CSV source,
    count, delete old target data, retrieve, update.

    Every run gets a fresh :class:`JobContext`; the phases run one after the
    other and share only that context.
    """

    def __init__(self, settings: JobSettings,
                 prompter: Optional[Prompter] = None,
                 executor_factory: ExecutorFactory = default_executor,
                 logger: Optional[logging.Logger] = None) -> None:
        self.settings = settings
        self._prompter = prompter or ConsolePrompter()
        self._executor_factory = executor_factory
        self.logger = logger or coord_logger
        self.context: Optional[JobContext] = None

    # ---------- main ----------
    def run(self) -> JobContext:
        """
        Run the job and return its (finished) context. A validate-only run
        ends after the CSV phase; aborts and transport failures propagate.
        """
        context = JobContext(self.settings)
        self.context = context
        handler = self._attach_log_file()
        executor: Optional[RecordExecutor] = None
        try:
            executor = self._executor_factory(context)
            transformer = RecordTransformer(context)

            self.setup(context)

            if self.settings.target.media == Media.FILE:
                self.delete_target_directory()

            if self.settings.source.media == Media.FILE:
                CsvValidator(context, self._prompter).run()

            self.log_records_count(context, executor)
            self.delete_old_records(context, executor)

            retrieved = RetrievalCoordinator(context, executor, transformer,
                                             mode=self.settings.retrieval_mode).retrieve()
            empty = [name for name, found in retrieved.items() if not found]
            if empty:
                self.logger.info("No records were retrieved for: %s", ", ".join(empty))
            UpdateOrchestrator(context, executor, transformer, self._prompter).update()
            self.logger.info("Migration job completed")
        except SuccessExit:
            self.logger.info("Validation of the source CSV files completed")
        finally:
            if executor is not None:
                executor.close()
            context.cache.clear()
            self._detach_log_file(handler)
        return context

    def get_task(self, entity_name: str) -> Optional[Task]:
        """Task of the last run for ``entity_name``."""
        if self.context is None:
            return None
        return self.context.get_task(entity_name)

    def setup(self, context: JobContext) -> None:
        scheduler = JobScheduler(logger=self.logger)
        context.tasks, context.query_tasks = scheduler.schedule(
            self.settings.objects, self.settings.source.media, self.settings.target.media)

    # ---------- phases ----------
    def log_records_count(self, context: JobContext, executor: RecordExecutor) -> None:
        rows = []
        for task in context.tasks:
            rows.append({
                "Object": task.name,
                "Source": self._count(executor, task, Side.SOURCE),
                "Target": self._count(executor, task, Side.TARGET),
            })
        log_table(self.logger, rows, title="Records count")

    def _count(self, executor: RecordExecutor, task: Task, side: Side) -> str:
        if task.side(side).media == Media.FILE and side == Side.TARGET:
            return "-"
        return str(executor.count(side, QueryContext(task.descriptor, side, "count", all_records=True)))

    def delete_old_records(self, context: JobContext, executor: RecordExecutor) -> bool:
        """Delete existing target records of ``delete_old_data`` tasks, children first."""
        if self.settings.target.media != Media.ORG:
            return False
        deleted = False
        for task in reversed(context.tasks):
            desc = task.descriptor
            if not desc.delete_old_data or desc.operation == Operation.READONLY:
                continue
            rows = executor.query(Side.TARGET, QueryContext(desc, Side.TARGET, TARGET, all_records=True))
            ids: List[str] = [str(r.get(ID_FIELD)) for r in rows if r.get(ID_FIELD)]
            count = executor.delete(Side.TARGET, desc, ids)
            self.logger.info("%s: %d old record(s) deleted", task.name, count)
            deleted = deleted or count > 0
        if not deleted:
            self.logger.info("Deleting old data skipped")
        return deleted

    def delete_target_directory(self) -> None:
        path = self.settings.base_path / CSV_TARGET_SUB_DIRECTORY
        if path.exists():
            shutil.rmtree(path)

    # ---------- logging ----------
    def _attach_log_file(self) -> logging.Handler:
        log_dir = self.settings.base_path / LOG_SUB_DIRECTORY
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / LOG_FILENAME, mode="a", encoding="utf-8")
        fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        coord_logger.addHandler(fh)
        return fh

    @staticmethod
    def _detach_log_file(handler: logging.Handler) -> None:
        coord_logger.removeHandler(handler)
        handler.close()

import logging
from typing import Dict, List, Optional, Tuple

from ..config import RetrievalMode
from ..constants import MAX_ITERATIVE_ROUNDS
from ..executors import RecordExecutor
from ..models import Task
from ..transformer import BACKWARDS, FORWARDS, TARGET, RecordTransformer
from ..utils import log_table
from .context import JobContext

# (mode, reversed) of the source passes run after the first forward pass
RESOLUTION_PASSES: List[Tuple[str, bool]] = [
    (BACKWARDS, False),
    (BACKWARDS, False),
    (FORWARDS, True),
    (FORWARDS, True),
]


class RetrievalCoordinator:
    """
    Fills the source and target records of every task.

    The default sequence is fixed: one source-forward pass, four resolution
    passes (backward, backward, forward reversed, forward reversed) and one
    target pass, each over all query tasks. The iterative mode repeats the
    resolution passes until a round brings nothing new.
    """

    def __init__(self, context: JobContext, executor: RecordExecutor,
                 transformer: RecordTransformer,
                 mode: RetrievalMode = RetrievalMode.FIXED,
                 max_rounds: int = MAX_ITERATIVE_ROUNDS,
                 logger: Optional[logging.Logger] = None) -> None:
        self._context = context
        self._executor = executor
        self._transformer = transformer
        self.mode = mode
        self.max_rounds = max_rounds
        self.logger = logger or logging.getLogger(__name__)
        self.retrieved: Dict[str, bool] = {}
        self.passes: List[Tuple[str, bool]] = []

    def retrieve(self) -> Dict[str, bool]:
        """Run all passes; returns, per entity, whether any record was retrieved."""
        self.retrieved = {t.name: False for t in self._context.query_tasks}
        self.passes = []

        self.logger.info("Retrieving data, step 1: source records")
        self.run_pass(FORWARDS, False)

        self.logger.info("Retrieving data, step 2: related source records")
        if self.mode == RetrievalMode.ITERATIVE:
            self._resolve_iteratively()
        else:
            for number, (mode, reversed) in enumerate(RESOLUTION_PASSES, start=1):
                self.logger.info("Pass %d", number)
                self.run_pass(mode, reversed)

        self.logger.info("Retrieving data: target records")
        self.run_pass(TARGET, False)

        log_table(self.logger, [
            {"Object": t.name, "Fetched (source/target)": f"{len(t.source)}/{len(t.target)}"}
            for t in self._context.query_tasks
        ], title="Fetching summary")
        return self.retrieved

    def _resolve_iteratively(self) -> None:
        for number in range(1, self.max_rounds + 1):
            self.logger.info("Round %d", number)
            found = 0
            for mode, reversed in ((BACKWARDS, False), (FORWARDS, True)):
                found += self.run_pass(mode, reversed)
            if not found:
                return
        self.logger.warning(
            "Related records were still being discovered after %d rounds; "
            "some lookups may remain unresolved", self.max_rounds)

    def run_pass(self, mode: str, reversed: bool) -> int:
        """Query every task once; returns the number of new records."""
        self.passes.append((mode, reversed))
        total = 0
        for task in self._context.query_tasks:
            found = self.retrieve_task(task, mode, reversed)
            if found:
                self.retrieved[task.name] = True
            total += found
        if not total:
            self.logger.info("No records")
        return total

    def retrieve_task(self, task: Task, mode: str, reversed: bool) -> int:
        query = self._transformer.build_query(task, mode, reversed)
        if query is None:
            return 0
        rows = self._executor.query(query.side, query)
        new = 0
        for row in rows:
            if task.add_record(query.side, dict(row)):
                new += 1
        if new:
            self.logger.info("%s: %d new %s record(s) (%s%s)", task.name, new,
                             query.side.value, mode, ", reversed" if reversed else "")
        return new

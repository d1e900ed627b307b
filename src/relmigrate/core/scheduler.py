"""
Ordering of the tasks of a migration job.

The execution order is computed in three steps:

1. zone placement: special entities first, then readonly entities, then
   the rest, where a new entity lands before the earliest already placed
   task that looks it up;
2. a stable topological pass over the lookup edges of the normal zone,
   breaking ties (and lookup cycles) by the position from step 1;
3. a bounded repair pass moving master-detail parents in front of their
   children, at most ``MAX_MASTER_DETAIL_PASSES`` times.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from ..constants import MAX_MASTER_DETAIL_PASSES, SPECIAL_ENTITY_NAME
from ..models import EntityDescriptor, Media, Task


def is_special(descriptor: EntityDescriptor) -> bool:
    return descriptor.special or descriptor.name == SPECIAL_ENTITY_NAME


def set_processing_flags(descriptor: EntityDescriptor) -> None:
    """Decide whether each side is read in full or filtered by relationships."""
    if descriptor.fetch_all_records or is_special(descriptor) or descriptor.no_relationships:
        descriptor.process_all_source = True
        descriptor.process_all_target = True
    else:
        descriptor.process_all_source = False
        descriptor.process_all_target = descriptor.complex_or_autonumber_external_id


class JobScheduler:

    def __init__(self, max_master_detail_passes: int = MAX_MASTER_DETAIL_PASSES,
                 logger: Optional[logging.Logger] = None) -> None:
        self.max_master_detail_passes = max_master_detail_passes
        self.logger = logger or logging.getLogger(__name__)
        self.converged = True

    def schedule(self, descriptors: Iterable[EntityDescriptor],
                 source_media: Media = Media.ORG,
                 target_media: Media = Media.ORG) -> Tuple[List[Task], List[Task]]:
        """Return ``(tasks, query_tasks)`` for the given descriptors."""
        tasks: List[Task] = []
        special_count = 0
        fixed_count = 0

        for descriptor in descriptors:
            set_processing_flags(descriptor)
            task = Task(descriptor, source_media, target_media)
            task.source.all_records = descriptor.process_all_source
            task.target.all_records = descriptor.process_all_target

            if is_special(descriptor):
                tasks.insert(0, task)
                special_count += 1
                fixed_count += 1
            elif descriptor.readonly:
                tasks.insert(special_count, task)
                fixed_count += 1
            else:
                tasks.insert(self._insert_index(tasks, fixed_count, descriptor.name), task)

        normal = self._order_by_lookups(tasks[fixed_count:])
        self._repair_master_details(normal)
        tasks = tasks[:fixed_count] + normal

        query_tasks = [t for t in tasks
                       if t.descriptor.process_all_source or t.descriptor.limited_query]
        query_tasks += [t for t in tasks if t not in query_tasks]

        self.logger.info("Query order: %s", "; ".join(t.name for t in query_tasks))
        self.logger.info("Execution order: %s", "; ".join(t.name for t in tasks))
        return tasks, query_tasks

    @staticmethod
    def _insert_index(tasks: List[Task], lower_bound: int, entity_name: str) -> int:
        # A lookup parent goes before the earliest placed task that looks it up
        index = len(tasks)
        for existing in range(len(tasks) - 1, lower_bound - 1, -1):
            if entity_name in tasks[existing].descriptor.parent_lookup_entities:
                index = existing
        return index

    def _order_by_lookups(self, tasks: List[Task]) -> List[Task]:
        names = {t.name for t in tasks}
        placed: set = set()
        remaining = list(tasks)
        ordered: List[Task] = []
        while remaining:
            pick = None
            for task in remaining:
                parents = [p for p in task.descriptor.parent_lookup_entities
                           if p != task.name and p in names]
                if all(p in placed for p in parents):
                    pick = task
                    break
            if pick is None:
                # lookup cycle: release the earliest remaining task
                pick = remaining[0]
                self.logger.debug("Lookup cycle around %s, keeping its position", pick.name)
            remaining.remove(pick)
            ordered.append(pick)
            placed.add(pick.name)
        return ordered

    def _repair_master_details(self, tasks: List[Task]) -> None:
        self.converged = True
        for _ in range(self.max_master_detail_passes):
            if not self._put_master_details_before(tasks):
                return
        if self._needs_master_detail_repair(tasks):
            self.converged = False
            self.logger.warning(
                "Master-detail ordering did not converge after %d passes; "
                "check the master-detail relationships for cycles. Current order: %s",
                self.max_master_detail_passes, "; ".join(t.name for t in tasks))

    @staticmethod
    def _put_master_details_before(tasks: List[Task]) -> bool:
        moved = False
        snapshot = list(tasks)
        for left_index, left in enumerate(snapshot[:-1]):
            for right in snapshot[left_index + 1:]:
                if right.name == left.name:
                    continue
                if right.name not in left.descriptor.parent_master_detail_entities:
                    continue
                current_left = tasks.index(left)
                current_right = tasks.index(right)
                if current_right > current_left:
                    tasks.pop(current_right)
                    tasks.insert(current_left, right)
                    moved = True
        return moved

    @staticmethod
    def _needs_master_detail_repair(tasks: List[Task]) -> bool:
        for index, task in enumerate(tasks):
            later = {t.name for t in tasks[index + 1:]}
            if any(p in later and p != task.name
                   for p in task.descriptor.parent_master_detail_entities):
                return True
        return False

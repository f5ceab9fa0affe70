"""
BlockingStateComputer: is a task waiting on unfinished prerequisites?

Only direct prerequisites count. The result is derived on every read and
never written back; a task's manual ``blocked`` status is a separate thing
and is left alone.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from opsdesk.models.task import Task
from opsdesk.services.dependency_graph import TaskDependencyGraph
from opsdesk_shared.schemas.common import BLOCKING_TASK_STATUSES, TaskStatus


@dataclass
class BlockingState:
    is_blocked: bool
    blocking_tasks: list[Task] = field(default_factory=list)

    @property
    def blocking_task_ids(self) -> list[uuid.UUID]:
        return [t.id for t in self.blocking_tasks]


class BlockingStateComputer:
    def compute_blocking(self, task_id: uuid.UUID, graph: TaskDependencyGraph) -> BlockingState:
        blocking = [
            graph.task(p)
            for p in graph.prerequisites(task_id)
            if TaskStatus(graph.task(p).status) in BLOCKING_TASK_STATUSES
        ]
        return BlockingState(is_blocked=bool(blocking), blocking_tasks=blocking)

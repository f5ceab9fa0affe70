"""
TaskDependencyGraph: the dependency edges of one project as an adjacency map.

Nodes are the project's tasks; an edge ``task -> prerequisite`` means the task
waits on the prerequisite. The graph is loaded from the database once per
operation and then queried purely in memory, so the integrity checker and
the blocking computer share the same traversal code.
"""

from __future__ import annotations

import uuid
from collections import defaultdict, deque
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from opsdesk.models.dependency import TaskDependency
from opsdesk.models.task import Task


class TaskDependencyGraph:
    def __init__(
        self,
        project_id: Optional[uuid.UUID],
        tasks: Iterable[Task] = (),
        edges: Iterable[tuple[uuid.UUID, uuid.UUID]] = (),
    ):
        self.project_id = project_id
        self.tasks: dict[uuid.UUID, Task] = {t.id: t for t in tasks}
        self._prerequisites: dict[uuid.UUID, set[uuid.UUID]] = defaultdict(set)
        self._dependents: dict[uuid.UUID, set[uuid.UUID]] = defaultdict(set)
        for task_id, depends_on_id in edges:
            self.add_edge(task_id, depends_on_id)

    @classmethod
    async def load(cls, session: AsyncSession, project_id: uuid.UUID) -> "TaskDependencyGraph":
        """Read every task and edge of ``project_id`` in one pass."""
        task_result = await session.execute(
            select(Task)
            .where(Task.project_id == project_id)
            .execution_options(populate_existing=True)
        )
        edge_result = await session.execute(
            select(TaskDependency.task_id, TaskDependency.depends_on_task_id).where(
                TaskDependency.project_id == project_id
            )
        )
        return cls(
            project_id,
            tasks=task_result.scalars().all(),
            edges=[(row[0], row[1]) for row in edge_result.all()],
        )

    # -- membership ---------------------------------------------------------

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.tasks

    def task(self, task_id: uuid.UUID) -> Task:
        return self.tasks[task_id]

    def has_edge(self, task_id: uuid.UUID, depends_on_id: uuid.UUID) -> bool:
        return depends_on_id in self._prerequisites.get(task_id, ())

    def prerequisites(self, task_id: uuid.UUID) -> list[uuid.UUID]:
        return sorted(self._prerequisites.get(task_id, ()), key=self._sort_key)

    def dependents(self, task_id: uuid.UUID) -> list[uuid.UUID]:
        return sorted(self._dependents.get(task_id, ()), key=self._sort_key)

    def edges(self) -> list[tuple[uuid.UUID, uuid.UUID]]:
        return [(t, p) for t, prereqs in self._prerequisites.items() for p in prereqs]

    def _sort_key(self, task_id: uuid.UUID) -> tuple:
        task = self.tasks.get(task_id)
        return (task.task_code if task is not None else "", str(task_id))

    # -- mutation (in memory only) -----------------------------------------

    def add_edge(self, task_id: uuid.UUID, depends_on_id: uuid.UUID) -> None:
        self._prerequisites[task_id].add(depends_on_id)
        self._dependents[depends_on_id].add(task_id)

    def remove_edge(self, task_id: uuid.UUID, depends_on_id: uuid.UUID) -> None:
        self._prerequisites[task_id].discard(depends_on_id)
        self._dependents[depends_on_id].discard(task_id)

    # -- traversal ----------------------------------------------------------

    def find_path(self, start: uuid.UUID, goal: uuid.UUID) -> Optional[list[uuid.UUID]]:
        """Breadth-first search along depends-on edges.

        Returns the node sequence ``[start, ..., goal]`` or None when ``goal``
        is not reachable. Each node is expanded at most once.
        """
        parents: dict[uuid.UUID, Optional[uuid.UUID]] = {start: None}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current == goal:
                path = [current]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])
                return list(reversed(path))
            for nxt in self._prerequisites.get(current, ()):
                if nxt not in parents:
                    parents[nxt] = current
                    queue.append(nxt)
        return None

    def reaches(self, start: uuid.UUID, goal: uuid.UUID) -> bool:
        return self.find_path(start, goal) is not None

    def is_acyclic(self) -> bool:
        """Kahn's algorithm over the whole graph."""
        nodes = set(self.tasks) | set(self._prerequisites) | set(self._dependents)
        remaining = {n: len(self._prerequisites.get(n, ())) for n in nodes}
        ready = deque(n for n, count in remaining.items() if count == 0)
        seen = 0
        while ready:
            node = ready.popleft()
            seen += 1
            for dependent in self._dependents.get(node, ()):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    ready.append(dependent)
        return seen == len(nodes)

"""Structural checks for dependency edits against a loaded project graph."""

from __future__ import annotations

import uuid

from opsdesk.core.errors import CycleDetected, DependencyNotFound, DuplicateEdge, SelfDependency, UnknownTask
from opsdesk.services.dependency_graph import TaskDependencyGraph


class DependencyIntegrityChecker:
    def validate_add(
        self,
        graph: TaskDependencyGraph,
        dependent_task_id: uuid.UUID,
        prerequisite_task_id: uuid.UUID,
    ) -> None:
        """Raise unless ``dependent -> prerequisite`` can be added. First failure wins."""
        if dependent_task_id == prerequisite_task_id:
            raise SelfDependency(
                "A task cannot depend on itself",
                details={"task_id": str(dependent_task_id)},
            )

        missing = [str(t) for t in (dependent_task_id, prerequisite_task_id) if t not in graph]
        if missing:
            raise UnknownTask(
                "Both tasks must belong to the same project",
                details={"task_ids": missing, "project_id": str(graph.project_id) if graph.project_id else None},
            )

        if graph.has_edge(dependent_task_id, prerequisite_task_id):
            raise DuplicateEdge(
                "Dependency already exists",
                details={
                    "task_id": str(dependent_task_id),
                    "depends_on_task_id": str(prerequisite_task_id),
                },
            )

        # The new edge closes a cycle iff the dependent is already reachable
        # from the prerequisite.
        path = graph.find_path(prerequisite_task_id, dependent_task_id)
        if path is not None:
            cycle = [dependent_task_id, *path]
            raise CycleDetected(
                "Adding this dependency would create a circular dependency",
                details={
                    "path": [str(t) for t in cycle],
                    "task_codes": [graph.task(t).task_code for t in cycle],
                },
            )

    def validate_remove(
        self,
        graph: TaskDependencyGraph,
        dependent_task_id: uuid.UUID,
        prerequisite_task_id: uuid.UUID,
    ) -> None:
        if not graph.has_edge(dependent_task_id, prerequisite_task_id):
            raise DependencyNotFound(
                "Dependency not found",
                details={
                    "task_id": str(dependent_task_id),
                    "depends_on_task_id": str(prerequisite_task_id),
                },
            )

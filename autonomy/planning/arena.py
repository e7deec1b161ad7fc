"""
Task Arena

Flat, id-keyed storage for a task tree.

Design decisions:
- Tasks reference parents and children by id only, so the tree has no
  object cycles and any task can be copied or serialized on its own
- The arena is the only place that links a child to its parent
"""

from collections.abc import Iterator
from typing import Any

from autonomy.core.exceptions import TaskNotFoundError
from autonomy.core.types import Task


class TaskArena:
    """Owns every task of the runs it has seen."""

    def __init__(self):
        self._tasks: dict[str, Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def create(
        self,
        description: str,
        context: dict[str, Any] | None = None,
        parent_id: str | None = None,
        max_attempts: int = 3,
    ) -> Task:
        """Create a task and link it under its parent."""
        task = Task(
            description=description,
            context=dict(context or {}),
            max_attempts=max_attempts,
        )
        return self.add(task, parent_id=parent_id)

    def add(self, task: Task, parent_id: str | None = None) -> Task:
        if parent_id is not None:
            parent = self.get(parent_id)
            parent.subtask_ids.append(task.id)
            task.parent_id = parent.id
            task.depth = parent.depth + 1

        self._tasks[task.id] = task
        return task

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}", context={"task_id": task_id})
        return task

    def find(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def parent(self, task_id: str) -> Task | None:
        task = self.get(task_id)
        return self._tasks.get(task.parent_id) if task.parent_id else None

    def children(self, task_id: str) -> list[Task]:
        """Direct children in declaration order."""
        return [self._tasks[cid] for cid in self.get(task_id).subtask_ids]

    def walk(self, task_id: str) -> Iterator[Task]:
        """Depth-first, parents before children."""
        task = self.get(task_id)
        yield task
        for child_id in task.subtask_ids:
            yield from self.walk(child_id)

    def tree_depth(self, task_id: str) -> int:
        """Number of levels below the given task (0 for a leaf)."""
        root = self.get(task_id)
        return max(t.depth for t in self.walk(task_id)) - root.depth

    def remove_tree(self, task_id: str) -> list[str]:
        """Drop a task and its descendants; returns the removed ids."""
        removed = [t.id for t in self.walk(task_id)]

        task = self._tasks[task_id]
        if task.parent_id and task.parent_id in self._tasks:
            self._tasks[task.parent_id].subtask_ids.remove(task_id)

        for tid in removed:
            del self._tasks[tid]
        return removed

    def clear(self) -> None:
        self._tasks.clear()

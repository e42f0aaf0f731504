"""
Background task queue.

The API and the reconciler enqueue work; the worker picks it up. Tasks live
in a JSON file shared between processes, like the records.
"""
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from transcode.job_schema import Task, TaskStatus
from transcode.jsonfile import JsonListFile


class TaskQueue(Protocol):
    def enqueue(self, kind: str, payload: Dict[str, Any]) -> Task:
        ...

    def next_pending(self) -> Optional[Task]:
        ...

    def update(self, task: Task) -> None:
        ...


class JsonTaskQueue:
    def __init__(self, path: Path):
        self.file = JsonListFile(path)

    def _read(self) -> List[Task]:
        return [Task(**x) for x in self.file.read()]

    def _write(self, tasks: List[Task]) -> None:
        self.file.write([t.model_dump(mode="json") for t in tasks])

    def enqueue(self, kind: str, payload: Dict[str, Any]) -> Task:
        task = Task(id=str(uuid.uuid4()), kind=kind, payload=payload)
        with self.file.locked():
            tasks = self._read()
            tasks.append(task)
            self._write(tasks)
        return task

    def get(self, task_id: str) -> Optional[Task]:
        with self.file.locked():
            return next((t for t in self._read() if t.id == task_id), None)

    def next_pending(self) -> Optional[Task]:
        """Claims the oldest pending task by moving it to PROCESSING."""
        with self.file.locked():
            tasks = self._read()
            for i, task in enumerate(tasks):
                if task.status == TaskStatus.PENDING:
                    tasks[i] = task.model_copy(update={"status": TaskStatus.PROCESSING})
                    self._write(tasks)
                    return tasks[i]
        return None

    def update(self, task: Task) -> None:
        with self.file.locked():
            tasks = self._read()
            for i, t in enumerate(tasks):
                if t.id == task.id:
                    tasks[i] = task
                    break
            self._write(tasks)

    def pending(self) -> List[Task]:
        with self.file.locked():
            return [t for t in self._read() if t.status == TaskStatus.PENDING]

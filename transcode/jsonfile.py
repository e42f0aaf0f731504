"""
A JSON list kept in one file and shared between processes.

The API and the worker open the same files, so every read-modify-write
holds an OS-level lock on ``<file>.lock``. Writes go to a temporary file
that then replaces the original, so readers never see a partial file.
"""
import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List

from filelock import FileLock


class JsonListFile:
    def __init__(self, path: Path, timeout: float = 30.0):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(f"{self.path}.lock", timeout=timeout)

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            yield

    def read(self) -> List[Any]:
        # If empty or missing, default to "[]"
        content = self.path.read_text() if self.path.exists() else "[]"
        if not content.strip():
            content = "[]"
        return json.loads(content)

    def write(self, items: List[Any]) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(items, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

"""
Record persistence.

The reconciler only needs ``load`` and ``compare_and_swap``; the demo also
creates and lists records. ``JsonRecordStore`` keeps everything in one JSON
file shared with the worker process (see ``transcode.jsonfile``).
"""
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from transcode.job_schema import Record
from transcode.jsonfile import JsonListFile


class SwapResult(str, Enum):
    OK = "OK"
    CONFLICT = "CONFLICT"
    MISSING = "MISSING"


class RecordStore(Protocol):
    def load(self, record_class: str, record_id: str) -> Optional[Record]:
        ...

    def compare_and_swap(self, record_class: str, record_id: str, field: str, expected: Any, new: Any) -> SwapResult:
        ...


class JsonRecordStore:
    def __init__(self, path: Path):
        self.file = JsonListFile(path)

    @property
    def path(self) -> Path:
        return self.file.path

    def _read(self) -> List[Record]:
        return [Record(**x) for x in self.file.read()]

    def _write(self, records: List[Record]) -> None:
        self.file.write([r.model_dump() for r in records])

    @staticmethod
    def _find(records: List[Record], record_class: str, record_id: str) -> Optional[int]:
        for i, r in enumerate(records):
            if r.record_class == record_class and r.id == record_id:
                return i
        return None

    def create(self, record_class: str, data: Optional[Dict[str, Any]] = None,
               attachments: Optional[Dict[str, Any]] = None) -> Record:
        record = Record(id=str(uuid.uuid4()), record_class=record_class, data=data or {},
                        attachments=attachments or {})
        with self.file.locked():
            records = self._read()
            records.append(record)
            self._write(records)
        return record

    def load(self, record_class: str, record_id: str) -> Optional[Record]:
        with self.file.locked():
            records = self._read()
        i = self._find(records, record_class, record_id)
        return records[i] if i is not None else None

    def all(self, record_class: str) -> List[Record]:
        with self.file.locked():
            return [r for r in self._read() if r.record_class == record_class]

    def save(self, record: Record) -> SwapResult:
        """Writes ``record`` if nobody saved it since it was loaded."""
        with self.file.locked():
            records = self._read()
            i = self._find(records, record.record_class, record.id)
            if i is None:
                return SwapResult.MISSING
            if records[i].version != record.version:
                return SwapResult.CONFLICT
            records[i] = record.model_copy(update={"version": record.version + 1})
            self._write(records)
            return SwapResult.OK

    def compare_and_swap(self, record_class: str, record_id: str, field: str, expected: Any, new: Any) -> SwapResult:
        with self.file.locked():
            records = self._read()
            i = self._find(records, record_class, record_id)
            if i is None:
                return SwapResult.MISSING
            current = records[i]
            if current.attachments.get(field) != expected:
                return SwapResult.CONFLICT
            records[i] = current.model_copy(update={
                "attachments": {**current.attachments, field: new},
                "version": current.version + 1,
            })
            self._write(records)
            return SwapResult.OK

    def delete(self, record_class: str, record_id: str) -> bool:
        with self.file.locked():
            records = self._read()
            i = self._find(records, record_class, record_id)
            if i is None:
                return False
            del records[i]
            self._write(records)
            return True

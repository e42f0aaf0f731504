"""
Applies finished assembly results to the record they were made for.

The assembly echoes back the correlation payload (record, attachment field
and the cached file processing started from). Results are stored only if
the record still exists and its attachment still equals that cached file;
the write itself is a compare-and-swap on the same value, so a concurrent
change between the check and the write is caught too. Otherwise the files
the assembly produced are scheduled for deletion.
"""
import logging
from typing import Any, Dict, List, Mapping, Set, Tuple, Union

from pydantic import ValidationError

from transcode.errors import ResponseError, ResultError
from transcode.job_schema import (AssemblyEnvelope, CorrelationPayload, Outcome, OutcomeKind, ResultDescriptor,
                                  UploadedFileRef)
from transcode.records import RecordStore, SwapResult
from transcode.steps import LIST
from transcode.storage import StorageDescriptor
from transcode.tasks import TaskQueue

logger = logging.getLogger(__name__)

Files = Union[UploadedFileRef, List[UploadedFileRef]]
Results = Dict[str, List[ResultDescriptor]]


def build_file(result: ResultDescriptor, storage: StorageDescriptor) -> UploadedFileRef:
    metadata: Dict[str, Any] = {
        "filename": result.name,
        "size": result.size,
        "mime_type": result.mime_type,
    }
    # robot metadata (width, duration, ...) never overrides ours
    for key, value in result.meta.items():
        metadata.setdefault(key, value)

    return UploadedFileRef(id=storage.file_id(result.url), storage=storage.key, metadata=metadata)


def parse_envelope(envelope: Mapping[str, Any]) -> AssemblyEnvelope:
    try:
        return AssemblyEnvelope.model_validate(dict(envelope))
    except (TypeError, ValueError) as e:
        raise ResultError(f"malformed assembly: {e}") from e


def _serialize(files: Any) -> Any:
    if isinstance(files, UploadedFileRef):
        return files.to_data()
    if isinstance(files, list):
        return [_serialize(f) for f in files]
    return {name: _serialize(f) for name, f in files.items()}


class ResultReconciler:
    def __init__(
        self,
        records: RecordStore,
        storages: Mapping[str, StorageDescriptor],
        tasks: TaskQueue,
        default_storage: str = "store",
    ):
        self.records = records
        self.storages = storages
        self.tasks = tasks
        self.default_storage = default_storage

    def storage_for(self, fields: Mapping[str, Any]) -> StorageDescriptor:
        key = fields.get("storage") or self.default_storage
        try:
            return self.storages[key]
        except (KeyError, TypeError):
            raise ResultError(f"unknown storage {key!r}") from None

    def _files_for(self, step: Any, results: Results, multiple: Any, storage: StorageDescriptor) -> Files:
        if not isinstance(step, str) or step not in results:
            raise ResultError(f"assembly has no results for step {step!r}")
        descriptors = results[step]

        if multiple == LIST:
            return [build_file(d, storage) for d in descriptors]
        if len(descriptors) > 1:
            raise ResultError(f"step {step!r} produced multiple files but wasn't marked as multiple")
        if not descriptors:
            raise ResultError(f"step {step!r} produced no files")
        return build_file(descriptors[0], storage)

    def build_files(self, results: Results, fields: Mapping[str, Any], storage: StorageDescriptor):
        """Maps results to a file, a list of files, or a dict of versions."""
        versions = fields.get("versions")
        if versions:
            multiple = fields.get("multiple") or {}
            if not isinstance(versions, Mapping) or not isinstance(multiple, Mapping):
                raise ResultError("fields.versions and fields.multiple must map version names")
            return {
                name: self._files_for(step, results, multiple.get(name), storage)
                for name, step in versions.items()
            }

        if not results:
            raise ResultError("assembly produced no results")
        step = fields.get("result") or list(results)[-1]
        return self._files_for(step, results, fields.get("multiple"), storage)

    def produced_files(self, results: Results, storage: StorageDescriptor) -> List[UploadedFileRef]:
        """Every result that maps to a file in ``storage``, whatever shape was declared."""
        files: List[UploadedFileRef] = []
        seen: Set[str] = set()
        for descriptors in results.values():
            for descriptor in descriptors:
                try:
                    ref = build_file(descriptor, storage)
                except ResultError:
                    logger.info("%s is not in storage %r, leaving it", descriptor.url, storage.key)
                    continue
                if ref.id not in seen:
                    seen.add(ref.id)
                    files.append(ref)
        return files

    def reconcile(self, envelope: Mapping[str, Any]) -> Outcome:
        if envelope.get("error"):
            raise ResponseError.from_body(dict(envelope))

        assembly = parse_envelope(envelope)
        try:
            payload = CorrelationPayload(**assembly.fields["attacher"])
        except (KeyError, TypeError, ValidationError) as e:
            raise ResultError(f"assembly {assembly.assembly_id} has no usable attacher field") from e
        storage = self.storage_for(assembly.fields)

        record = self.records.load(payload.record_class, payload.record_id)
        if record is None:
            return self._discard(OutcomeKind.ORPHANED, payload, self.produced_files(assembly.results, storage))

        if record.attachments.get(payload.field) == payload.cached_file:
            stored = _serialize(self.build_files(assembly.results, assembly.fields, storage))
            swap = self.records.compare_and_swap(
                payload.record_class, payload.record_id, payload.field,
                expected=payload.cached_file, new=stored,
            )
            if swap == SwapResult.OK:
                logger.info("stored %s.%s on record %s", payload.record_class, payload.field, payload.record_id)
                return self._outcome(OutcomeKind.STORED, payload, stored=stored)

            # someone wrote the attachment in between; see what they wrote
            record = self.records.load(payload.record_class, payload.record_id)
            if record is None:
                return self._discard(OutcomeKind.ORPHANED, payload, self.produced_files(assembly.results, storage))

        current = record.attachments.get(payload.field)
        if current is not None and current == self._stored_value(assembly, storage):
            # same results delivered twice (webhook and poll, or a replay)
            logger.info("%s %s already has these results", payload.record_class, payload.record_id)
            return self._outcome(OutcomeKind.STORED, payload, stored=current)
        return self._discard(OutcomeKind.STALE, payload, self.produced_files(assembly.results, storage), keep=current)

    def _stored_value(self, assembly: AssemblyEnvelope, storage: StorageDescriptor) -> Any:
        try:
            return _serialize(self.build_files(assembly.results, assembly.fields, storage))
        except ResultError:
            return None

    def _outcome(self, kind: OutcomeKind, payload: CorrelationPayload, **kwargs: Any) -> Outcome:
        return Outcome(
            kind=kind,
            record_class=payload.record_class,
            record_id=payload.record_id,
            field=payload.field,
            **kwargs,
        )

    def _discard(self, kind: OutcomeKind, payload: CorrelationPayload, files: List[UploadedFileRef], keep: Any = None) -> Outcome:
        in_use = _referenced(keep)
        discarded = [ref for ref in files if (ref.storage, ref.id) not in in_use]
        for ref in discarded:
            self.tasks.enqueue("delete", {"storage": ref.storage, "id": ref.id})
        logger.info(
            "%s %s %s: attachment %r moved on, deleting %d processed file(s)",
            kind.value, payload.record_class, payload.record_id, payload.field, len(discarded),
        )
        return self._outcome(kind, payload, discarded=discarded)


def _referenced(data: Any) -> Set[Tuple[str, str]]:
    """(storage, id) pairs of every file in a stored attachment value."""
    if isinstance(data, list):
        return {pair for item in data for pair in _referenced(item)}
    if not isinstance(data, dict):
        return set()
    if isinstance(data.get("id"), str) and isinstance(data.get("storage"), str):
        return {(data["storage"], data["id"])}
    return {pair for value in data.values() for pair in _referenced(value)}

"""Named processors per record class, looked up when a job is started."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from transcode.builder import JobSpecBuilder
from transcode.errors import BuildError, ConfigurationError
from transcode.job_schema import JobSpec, Record, Step, UploadedFileRef
from transcode.steps import StepGraph
from transcode.storage import StorageDescriptor

logger = logging.getLogger(__name__)


@dataclass
class ProcessingContext:
    record: Record
    field: str
    cached_file: UploadedFileRef
    cache: StorageDescriptor
    store: StorageDescriptor
    builder: JobSpecBuilder
    notify_url: Optional[str] = None

    def import_step(self, name: str = "import", **options: Any) -> Step:
        return self.cache.import_step(self.cached_file.id, name=name, **options)

    def graph(self, **options: Any) -> StepGraph:
        """A new graph starting with the import of the cached file."""
        return StepGraph().add_step(self.import_step(**options))

    def build(self, source, **options: Any) -> JobSpec:
        options.setdefault("notify_url", self.notify_url)
        return self.builder.build(source, **options)


ProcessorFn = Callable[[ProcessingContext], JobSpec]


class ProcessorRegistry:
    def __init__(self):
        self._processors: Dict[Tuple[str, str], ProcessorFn] = {}

    def register(self, record_class: str, name: str):
        def decorator(fn: ProcessorFn) -> ProcessorFn:
            self._processors[(record_class, name)] = fn
            return fn
        return decorator

    def get(self, record_class: str, name: str) -> ProcessorFn:
        try:
            return self._processors[(record_class, name)]
        except KeyError:
            known = ", ".join(self.names(record_class)) or "none"
            raise ConfigurationError(
                f"processor {name!r} not registered for {record_class!r} (known: {known})"
            ) from None

    def names(self, record_class: str):
        return sorted(name for cls, name in self._processors if cls == record_class)

    def run(self, name: str, context: ProcessingContext) -> JobSpec:
        processor = self.get(context.record.record_class, name)
        t0 = time.perf_counter()
        job_spec = processor(context)
        if not isinstance(job_spec, JobSpec):
            raise BuildError(f"processor {name!r} returned {type(job_spec).__name__}, expected JobSpec")
        elapsed_ms = (time.perf_counter() - t0) * 1000
        logger.info("processor %s for %s ran in %.0fms", name, context.record.record_class, elapsed_ms)
        return job_spec

"""
Entry points tying processors, the client and the reconciler together.

``process_attachment`` is run by the worker after a file was cached;
``receive_webhook`` by the API when Transloadit reports back.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from transcode.builder import JobSpecBuilder
from transcode.client import TransloaditClient
from transcode.errors import ResponseError
from transcode.job_schema import CorrelationPayload, JobHandle, JobSpec, Outcome, UploadedFileRef
from transcode.processors import ProcessingContext, ProcessorRegistry
from transcode.reconciler import ResultReconciler
from transcode.records import RecordStore
from transcode.storage import StorageDescriptor
from transcode.tasks import TaskQueue
from transcode.tracker import JobStatusTracker
from transcode.webhook import parse_notification

logger = logging.getLogger(__name__)


class TranscodeService:
    def __init__(
        self,
        client: TransloaditClient,
        records: RecordStore,
        storages: Mapping[str, StorageDescriptor],
        processors: ProcessorRegistry,
        tasks: TaskQueue,
        secret: str,
        notify_url: Optional[str] = None,
        cache_key: str = "cache",
        store_key: str = "store",
        tracker_options: Optional[Dict[str, Any]] = None,
    ):
        self.client = client
        self.records = records
        self.storages = storages
        self.processors = processors
        self.tasks = tasks
        self.secret = secret
        self.notify_url = notify_url
        self.cache_key = cache_key
        self.store_key = store_key
        self.tracker_options = tracker_options or {}
        self.builder = JobSpecBuilder(storages[store_key])
        self.reconciler = ResultReconciler(records, storages, tasks, default_storage=store_key)

    def build_job_spec(self, source, **options: Any) -> JobSpec:
        return self.builder.build(source, **options)

    def track(self, handle: JobHandle) -> JobStatusTracker:
        return JobStatusTracker(self.client, handle, **self.tracker_options)

    def process_attachment(self, record_class: str, record_id: str, field: str,
                           processor: str = "default") -> Optional[JobHandle]:
        """
        Starts processing the cached file attached to ``field``.

        Returns None when there is nothing to process (record gone, or the
        attachment isn't cached anymore). Without a notify URL this blocks
        until the assembly finishes and stores the results.
        """
        record = self.records.load(record_class, record_id)
        if record is None:
            logger.info("%s %s no longer exists, skipping processing", record_class, record_id)
            return None

        cached_data = record.attachments.get(field)
        if not cached_data:
            logger.info("%s %s has no %s attached", record_class, record_id, field)
            return None
        cached = UploadedFileRef(**cached_data) if isinstance(cached_data, dict) else None
        if cached is None or cached.storage != self.cache_key:
            logger.info("%s %s %s is not a cached file, skipping", record_class, record_id, field)
            return None

        payload = CorrelationPayload(
            record_class=record_class,
            record_id=record_id,
            field=field,
            cached_file=cached_data,
        )
        context = ProcessingContext(
            record=record,
            field=field,
            cached_file=cached,
            cache=self.storages[cached.storage],
            store=self.storages[self.store_key],
            builder=self.builder,
            notify_url=self.notify_url,
        )
        job_spec = self.processors.run(processor, context)
        job_spec = job_spec.with_fields(attacher=payload.model_dump(), storage=self.store_key)

        handle = self.client.submit(job_spec)
        logger.info("assembly %s started for %s %s: %s", handle.assembly_id, record_class, record_id,
                    ", ".join(job_spec.step_names()) or job_spec.template_id)

        if handle.notify_url:
            # the webhook stores the results
            return handle

        handle = self.track(handle).wait_until_finished()
        self.save_results(handle)
        return handle

    def save_results(self, handle: JobHandle) -> Outcome:
        if handle.error:
            raise ResponseError.from_body(handle.body)
        if not handle.completed:
            raise ResponseError(f"assembly ended as {handle.ok}", code=handle.ok, assembly_url=handle.assembly_url,
                                body=handle.body)
        return self.reconciler.reconcile(handle.body)

    def receive_webhook(self, params: Mapping[str, Any]) -> Outcome:
        envelope = parse_notification(params, self.secret)
        outcome = self.reconciler.reconcile(envelope)
        logger.info("assembly %s: %s", envelope.get("assembly_id"), outcome.kind.value)
        return outcome

    def reconcile_assembly(self, assembly_id: str) -> Outcome:
        """Fetches an assembly (waiting if needed) and stores its results."""
        handle = self.client.get_assembly(assembly_id)
        handle = self.track(handle).wait_until_finished()
        return self.save_results(handle)


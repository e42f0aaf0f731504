import logging
import time

from transcode.config import POLL_INTERVAL
from transcode.errors import TranscodeError
from transcode.job_schema import Task, TaskStatus
from transcode.runtime import build_service
from transcode.service import TranscodeService

logger = logging.getLogger(__name__)


def run_task(service: TranscodeService, task: Task) -> None:
    payload = task.payload
    if task.kind == "process":
        handle = service.process_attachment(
            payload["record_class"],
            payload["record_id"],
            payload["field"],
            processor=payload.get("processor", "default"),
        )
        if handle is not None:
            logger.info("task %s: assembly %s", task.id, handle.assembly_id)
    elif task.kind == "delete":
        service.storages[payload["storage"]].delete(payload["id"])
        logger.info("task %s: deleted %s from %s", task.id, payload["id"], payload["storage"])
    else:
        raise TranscodeError(f"unknown task kind {task.kind!r}")


def process_task(service: TranscodeService, task: Task) -> Task:
    try:
        run_task(service, task)
        task = task.model_copy(update={"status": TaskStatus.DONE, "error": None})
    except Exception as e:
        task = task.model_copy(update={"status": TaskStatus.FAILED, "error": str(e)})
        logger.exception("task %s failed", task.id)
    service.tasks.update(task)
    return task


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    service = build_service()
    logger.info("Worker started...")
    try:
        while True:
            task = service.tasks.next_pending()
            if task:
                process_task(service, task)
            else:
                time.sleep(POLL_INTERVAL)
    finally:
        service.client.close()


if __name__ == "__main__":
    main()

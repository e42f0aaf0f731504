from transcode.errors import ResponseError
from transcode.job_schema import JobHandle, TaskStatus
from worker.worker import process_task


class FakeService:
    def __init__(self, storages, tasks, error=None):
        self.storages = storages
        self.tasks = tasks
        self.error = error
        self.processed = []

    def process_attachment(self, record_class, record_id, field, processor="default"):
        self.processed.append((record_class, record_id, field, processor))
        if self.error:
            raise self.error
        return JobHandle(assembly_id="a1")


def test_process_task(storages, tasks):
    service = FakeService(storages, tasks)
    tasks.enqueue("process", {"record_class": "photo", "record_id": "1", "field": "image", "processor": "thumbnails"})

    task = process_task(service, tasks.next_pending())

    assert task.status == TaskStatus.DONE
    assert tasks.get(task.id).status == TaskStatus.DONE
    assert service.processed == [("photo", "1", "image", "thumbnails")]


def test_delete_task(storages, tasks, s3_client):
    service = FakeService(storages, tasks)
    tasks.enqueue("delete", {"storage": "store", "id": "x.jpg"})

    task = process_task(service, tasks.next_pending())

    assert task.status == TaskStatus.DONE
    assert s3_client.deleted == ["my-bucket/store/x.jpg"]


def test_failed_task_records_error(storages, tasks):
    service = FakeService(storages, tasks, error=ResponseError("boom", code="ROBOT_FAILED"))
    tasks.enqueue("process", {"record_class": "photo", "record_id": "1", "field": "image"})

    task = process_task(service, tasks.next_pending())

    assert task.status == TaskStatus.FAILED
    assert tasks.get(task.id).error == "[ROBOT_FAILED] boom"
    assert service.processed == [("photo", "1", "image", "default")]

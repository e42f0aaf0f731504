import pytest

from transcode.errors import AssemblyTimeout, ResponseError
from transcode.job_schema import JobHandle
from transcode.tracker import JobStatusTracker


def handle(ok="ASSEMBLY_EXECUTING", **body):
    return JobHandle.from_body({"assembly_id": "a1", "ok": ok, **body})


class ScriptedClient:
    def __init__(self, handles):
        self.handles = list(handles)
        self.polls = 0

    def poll(self, current):
        self.polls += 1
        return self.handles.pop(0) if self.handles else current


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


def make_tracker(client, start=None, **options):
    clock = FakeClock()
    tracker = JobStatusTracker(client, start or handle(), sleep=clock.sleep, clock=clock, **options)
    return tracker, clock


def test_waits_until_finished():
    client = ScriptedClient([handle(), handle(), handle("ASSEMBLY_COMPLETED")])
    tracker, clock = make_tracker(client)

    result = tracker.wait_until_finished()

    assert result.completed
    assert client.polls == 3
    assert clock.sleeps == [1.0, 1.0, 1.0]


def test_backoff_is_capped():
    client = ScriptedClient([handle()] * 5 + [handle("ASSEMBLY_COMPLETED")])
    tracker, clock = make_tracker(client, interval=1.0, backoff=2.0, max_interval=5.0)

    tracker.wait_until_finished()

    assert clock.sleeps == [1.0, 2.0, 4.0, 5.0, 5.0, 5.0]


def test_finished_handle_is_not_polled():
    client = ScriptedClient([])
    tracker, clock = make_tracker(client, start=handle("ASSEMBLY_COMPLETED"))

    assert tracker.wait_until_finished().completed
    assert client.polls == 0
    assert clock.sleeps == []


def test_stops_on_error():
    client = ScriptedClient([handle(None, error="ROBOT_FAILED", message="boom")])
    tracker, _ = make_tracker(client)

    result = tracker.wait_until_finished()

    assert result.error.code == "ROBOT_FAILED"
    assert not result.completed


def test_aborted_assembly_counts_as_finished():
    client = ScriptedClient([handle("REQUEST_ABORTED")])
    tracker, _ = make_tracker(client)

    assert tracker.wait_until_finished().finished


def test_times_out():
    client = ScriptedClient([])
    tracker, clock = make_tracker(client, interval=2.0, timeout=5.0)

    with pytest.raises(AssemblyTimeout) as excinfo:
        tracker.wait_until_finished()

    assert not isinstance(excinfo.value, ResponseError)
    assert excinfo.value.assembly_id == "a1"
    assert clock.sleeps == [2.0, 2.0, 1.0]


def test_reload_replaces_handle():
    client = ScriptedClient([handle("ASSEMBLY_COMPLETED")])
    tracker, _ = make_tracker(client)

    assert not tracker.finished
    tracker.reload()
    assert tracker.finished


def test_awaits_webhook_with_notify_url():
    tracker, _ = make_tracker(ScriptedClient([]), start=handle(notify_url="http://app.test/hook"))
    assert tracker.awaits_webhook

from tools import replay_notifications
from transcode.errors import ResponseError
from transcode.job_schema import Outcome, OutcomeKind


class FakeClient:
    def __init__(self):
        self.replayed = []
        self.closed = False

    def close(self):
        self.closed = True

    def get_notifications(self, assembly_id):
        return [{"url": "http://app.test/webhooks/transloadit", "response_status": "500"}]

    def replay_notification(self, assembly_id):
        self.replayed.append(assembly_id)
        return {"ok": "ASSEMBLY_NOTIFICATION_REPLAYED"}


class FakeService:
    def __init__(self, failing=()):
        self.client = FakeClient()
        self.failing = failing
        self.reconciled = []

    def reconcile_assembly(self, assembly_id):
        if assembly_id in self.failing:
            raise ResponseError("assembly not found", code="ASSEMBLY_NOT_FOUND")
        self.reconciled.append(assembly_id)
        return Outcome(kind=OutcomeKind.STORED, record_class="photo", record_id="1", field="image")


def test_reconciles_given_assemblies(monkeypatch):
    service = FakeService()
    monkeypatch.setattr(replay_notifications, "build_service", lambda: service)

    assert replay_notifications.main(["a1", "a2"]) == 0
    assert service.reconciled == ["a1", "a2"]
    assert service.client.replayed == []
    assert service.client.closed


def test_replay_asks_for_notifications_again(monkeypatch):
    service = FakeService()
    monkeypatch.setattr(replay_notifications, "build_service", lambda: service)

    assert replay_notifications.main(["--replay", "a1"]) == 0
    assert service.client.replayed == ["a1"]
    assert service.reconciled == []


def test_failures_set_exit_code(monkeypatch):
    service = FakeService(failing={"a1"})
    monkeypatch.setattr(replay_notifications, "build_service", lambda: service)

    assert replay_notifications.main(["a1", "a2"]) == 1
    assert service.reconciled == ["a2"]
    assert service.client.closed


def test_usage(capsys):
    assert replay_notifications.main([]) == 2
    assert "usage" in capsys.readouterr().out

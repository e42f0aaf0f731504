import json
from urllib.parse import parse_qs

import httpx
import pytest

from transcode.client import TransloaditClient
from transcode.errors import ResponseError
from transcode.job_schema import JobHandle, JobSpec
from transcode.steps import make_step
from transcode.webhook import sign

from conftest import API_URL, SECRET, FakeTransloadit


def make_client(handler) -> TransloaditClient:
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return TransloaditClient("test-key", SECRET, api_url=API_URL, http=http)


def job_spec() -> JobSpec:
    return JobSpec(
        steps=(make_step("import", "/http/import", url="http://example.com/a.jpg"),),
        fields={"foo": "bar"},
    )


def test_submit_sends_signed_params():
    api = FakeTransloadit()
    client = make_client(api)

    handle = client.submit(job_spec())

    params = api.submitted[0]
    assert params["auth"]["key"] == "test-key"
    assert params["auth"]["expires"].endswith("+00:00")
    assert params["steps"] == {"import": {"robot": "/http/import", "url": "http://example.com/a.jpg"}}
    assert params["fields"] == {"foo": "bar"}

    assert handle.assembly_id == "a1"
    assert handle.assembly_url == f"{API_URL}/assemblies/a1"
    assert not handle.finished


def test_submit_signature_matches_params():
    requests = []

    def handler(request):
        requests.append(parse_qs(request.content.decode("utf-8")))
        return httpx.Response(200, json={"ok": "ASSEMBLY_EXECUTING", "assembly_id": "a1"})

    make_client(handler).submit(job_spec())

    form = requests[0]
    assert form["signature"][0] == sign(form["params"][0], SECRET)


def test_submit_raises_response_error_for_service_errors():
    api = FakeTransloadit(create_error={
        "error": "INVALID_STEP_NAME",
        "message": "bad step",
        "assembly_ssl_url": f"{API_URL}/assemblies/a1",
    })

    with pytest.raises(ResponseError) as excinfo:
        make_client(api).submit(job_spec())

    assert excinfo.value.code == "INVALID_STEP_NAME"
    assert excinfo.value.message == "bad step"
    assert excinfo.value.assembly_url == f"{API_URL}/assemblies/a1"


def test_submit_raises_response_error_for_transport_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ResponseError) as excinfo:
        make_client(handler).submit(job_spec())

    assert excinfo.value.code == "TRANSPORT_ERROR"


def test_submit_raises_response_error_for_invalid_json():
    with pytest.raises(ResponseError):
        make_client(lambda request: httpx.Response(502, text="Bad Gateway")).submit(job_spec())


def test_poll_fetches_assembly_url():
    api = FakeTransloadit(results={"import": []}, polls_needed=1)
    client = make_client(api)
    handle = client.submit(job_spec())

    handle = client.poll(handle)

    assert api.polls == 1
    assert handle.completed
    assert handle.finished
    assert handle.fields == {"foo": "bar"}


def test_get_notifications():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"items": [{"assembly_id": "a1", "notify_status": "successful"}]})

    notifications = make_client(handler).get_notifications("a1")

    assert notifications == [{"assembly_id": "a1", "notify_status": "successful"}]
    assert seen[0].url.path == "/assembly_notifications"
    params = json.loads(seen[0].url.params["params"])
    assert params["assembly_id"] == "a1"
    assert seen[0].url.params["signature"] == sign(seen[0].url.params["params"], SECRET)


def test_replay_notification():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": "ASSEMBLY_NOTIFICATION_REPLAYED"})

    body = make_client(handler).replay_notification("a1")

    assert body["ok"] == "ASSEMBLY_NOTIFICATION_REPLAYED"
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/assembly_notifications/a1/replay"


def test_handle_from_error_body():
    handle = JobHandle.from_body({"assembly_id": "a1", "error": "ROBOT_FAILED", "message": "boom"})

    assert handle.error.code == "ROBOT_FAILED"
    assert handle.error.message == "boom"
    assert handle.terminal
    assert not handle.finished

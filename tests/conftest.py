import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from transcode.records import JsonRecordStore
from transcode.storage import S3Storage, UrlStorage
from transcode.tasks import JsonTaskQueue
from transcode.webhook import sign

SECRET = "test-secret"
API_URL = "https://api.transloadit.test"


class FakeS3Client:
    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    def put_object(self, Bucket: str, Key: str, Body: bytes, **kwargs: Any) -> None:
        self.objects[f"{Bucket}/{Key}"] = Body

    def delete_object(self, Bucket: str, Key: str) -> None:
        self.deleted.append(f"{Bucket}/{Key}")
        self.objects.pop(f"{Bucket}/{Key}", None)


class FakeTransloadit:
    """
    Stands in for the assemblies API behind an httpx.MockTransport.

    Assemblies report EXECUTING until they were polled ``polls_needed``
    times, then COMPLETED with ``results``.
    """

    def __init__(self, results: Optional[Dict[str, Any]] = None, polls_needed: int = 2,
                 create_error: Optional[Dict[str, Any]] = None) -> None:
        self.results = results or {}
        self.polls_needed = polls_needed
        self.create_error = create_error
        self.submitted: List[Dict[str, Any]] = []
        self.signatures: List[str] = []
        self.polls = 0

    def body(self, ok: str) -> Dict[str, Any]:
        params = self.submitted[-1]
        body = {
            "ok": ok,
            "assembly_id": "a1",
            "assembly_ssl_url": f"{API_URL}/assemblies/a1",
            "fields": params.get("fields", {}),
            "notify_url": params.get("notify_url"),
            "results": {},
        }
        if ok == "ASSEMBLY_COMPLETED":
            body["results"] = self.results
        return body

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/assemblies":
            form = parse_qs(request.content.decode("utf-8"))
            self.submitted.append(json.loads(form["params"][0]))
            self.signatures.append(form["signature"][0])
            if self.create_error:
                return httpx.Response(400, json=self.create_error)
            return httpx.Response(200, json=self.body("ASSEMBLY_EXECUTING"))

        if request.method == "GET" and request.url.path == "/assemblies/a1":
            self.polls += 1
            ok = "ASSEMBLY_COMPLETED" if self.polls >= self.polls_needed else "ASSEMBLY_EXECUTING"
            return httpx.Response(200, json=self.body(ok))

        return httpx.Response(404, json={"error": "NOT_FOUND", "message": str(request.url)})


def signed_params(envelope: Dict[str, Any], secret: str = SECRET) -> Dict[str, str]:
    payload = json.dumps(envelope)
    return {"transloadit": payload, "signature": sign(payload, secret)}


def result(url: str, name: str, size: int = 100, mime: str = "image/jpeg", **meta: Any) -> Dict[str, Any]:
    return {"url": url, "name": name, "size": size, "mime": mime, "meta": meta}


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def store(s3_client: FakeS3Client) -> S3Storage:
    return S3Storage("store", bucket="my-bucket", prefix="store", credentials="s3_store", client=s3_client)


@pytest.fixture
def cache(tmp_path) -> UrlStorage:
    return UrlStorage("cache", directory=tmp_path / "cache", base_url="http://app.test/uploads")


@pytest.fixture
def storages(cache: UrlStorage, store: S3Storage) -> Dict[str, Any]:
    return {"cache": cache, "store": store}


@pytest.fixture
def records(tmp_path) -> JsonRecordStore:
    return JsonRecordStore(tmp_path / "records.json")


@pytest.fixture
def tasks(tmp_path) -> JsonTaskQueue:
    return JsonTaskQueue(tmp_path / "tasks.json")

"""
Thin client for the Transloadit assemblies API.

Every request carries a ``params`` JSON document with the auth key and an
expiry, and a ``signature`` which is the HMAC of that document.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from transcode.errors import ResponseError
from transcode.job_schema import JobHandle, JobSpec
from transcode.webhook import sign

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api2.transloadit.com"


class TransloaditClient:
    def __init__(
        self,
        key: str,
        secret: str,
        api_url: str = DEFAULT_API_URL,
        expires_in: int = 300,
        http: Optional[httpx.Client] = None,
    ):
        self.key = key
        self.secret = secret
        self.api_url = api_url.rstrip("/")
        self.expires_in = expires_in
        self.http = http or httpx.Client(timeout=30.0)

    def _signed(self, params: Dict[str, Any]) -> Dict[str, str]:
        expires = datetime.now(timezone.utc) + timedelta(seconds=self.expires_in)
        params = {
            "auth": {"key": self.key, "expires": expires.strftime("%Y/%m/%d %H:%M:%S+00:00")},
            **params,
        }
        encoded = json.dumps(params)
        return {"params": encoded, "signature": sign(encoded, self.secret)}

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.http.request(method, url, **kwargs)
            body = response.json()
        except httpx.HTTPError as e:
            raise ResponseError(f"request to {url} failed: {e}", code="TRANSPORT_ERROR", assembly_url=url) from e
        except ValueError as e:
            raise ResponseError(f"invalid JSON from {url}", code="INVALID_RESPONSE", assembly_url=url) from e

        if not isinstance(body, dict):
            raise ResponseError(f"unexpected response from {url}", code="INVALID_RESPONSE", assembly_url=url)
        if body.get("error"):
            raise ResponseError.from_body(body)
        if response.is_error:
            raise ResponseError(f"HTTP {response.status_code} from {url}", code=str(response.status_code),
                                assembly_url=url, body=body)
        return body

    def submit(self, job_spec: JobSpec) -> JobHandle:
        body = self._request("POST", f"{self.api_url}/assemblies", data=self._signed(job_spec.to_params()))
        handle = JobHandle.from_body(body)
        logger.info("created assembly %s (%s)", handle.assembly_id, handle.ok)
        return handle

    def poll(self, handle: JobHandle) -> JobHandle:
        url = handle.assembly_url or f"{self.api_url}/assemblies/{handle.assembly_id}"
        return JobHandle.from_body(self._request("GET", url))

    def get_assembly(self, assembly_id: str) -> JobHandle:
        return JobHandle.from_body(self._request("GET", f"{self.api_url}/assemblies/{assembly_id}"))

    def get_notifications(self, assembly_id: str) -> List[Dict[str, Any]]:
        body = self._request(
            "GET",
            f"{self.api_url}/assembly_notifications",
            params=self._signed({"assembly_id": assembly_id}),
        )
        return body.get("items", [])

    def replay_notification(self, assembly_id: str, notify_url: Optional[str] = None) -> Dict[str, Any]:
        params = {"notify_url": notify_url} if notify_url else {}
        return self._request(
            "POST",
            f"{self.api_url}/assembly_notifications/{assembly_id}/replay",
            data=self._signed(params),
        )

    def close(self) -> None:
        self.http.close()

"""
Error classes raised by the transcode package.

ConfigurationError and BuildError are caller mistakes and are raised before
any network call. ResponseError and AssemblyTimeout come from the remote
service and go up to whoever runs the job (usually the worker), which
decides whether to retry. A stale or orphaned attachment is not an error:
reconciliation returns an Outcome for those.
"""
from typing import Any, Dict, Optional


class TranscodeError(Exception):
    """Base exception for the transcode package."""
    pass


class ConfigurationError(TranscodeError):
    """Required settings (auth, credentials, processors) are missing."""
    pass


class BuildError(TranscodeError):
    """A step graph or job spec is malformed."""
    pass


class ResultError(TranscodeError):
    """Assembly results don't match what the job spec declared."""
    pass


class InvalidSignature(TranscodeError):
    """A webhook payload failed the HMAC check."""
    pass


class ResponseError(TranscodeError):
    """The transcoding service reported a failure."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        assembly_url: Optional[str] = None,
        body: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.assembly_url = assembly_url
        self.body = body or {}

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.assembly_url:
            parts.append(f"({self.assembly_url})")
        return " ".join(parts)

    @classmethod
    def from_body(cls, body: Dict[str, Any]) -> "ResponseError":
        return cls(
            body.get("message") or body.get("reason") or "assembly failed",
            code=body.get("error"),
            assembly_url=body.get("assembly_ssl_url") or body.get("assembly_url"),
            body=body,
        )


class AssemblyTimeout(TranscodeError):
    """Waiting for an assembly exceeded the configured limit."""

    def __init__(self, assembly_id: str, waited: float):
        super().__init__(f"assembly {assembly_id} not finished after {waited:.1f}s")
        self.assembly_id = assembly_id
        self.waited = waited

"""
Webhook authentication.

Transloadit signs the raw ``transloadit`` form field with the account secret.
The signature is checked against those raw bytes before anything is parsed,
so a forged payload never reaches the JSON decoder.
"""
import hashlib
import hmac
import json
from typing import Any, Dict, Mapping, Union

from transcode.errors import InvalidSignature, TranscodeError

# Newer accounts prefix signatures with the algorithm, e.g. "sha384:<hex>";
# bare hex digests are SHA-1.
ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha384": hashlib.sha384,
}


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign(payload: Union[str, bytes], secret: str, algorithm: str = "sha1") -> str:
    return hmac.new(_to_bytes(secret), _to_bytes(payload), ALGORITHMS[algorithm]).hexdigest()


def verify(payload: Union[str, bytes], signature: str, secret: str) -> None:
    if not signature:
        raise InvalidSignature("missing signature")

    algorithm, sep, digest = signature.partition(":")
    if not sep:
        algorithm, digest = "sha1", signature
    if algorithm not in ALGORITHMS:
        raise InvalidSignature(f"unsupported signature algorithm {algorithm!r}")

    expected = sign(payload, secret, algorithm)
    if not hmac.compare_digest(expected.encode("utf-8"), digest.lower().encode("utf-8")):
        raise InvalidSignature("received signature doesn't match calculated")


def is_valid(payload: Union[str, bytes], signature: str, secret: str) -> bool:
    try:
        verify(payload, signature, secret)
    except InvalidSignature:
        return False
    return True


def parse_notification(params: Mapping[str, Any], secret: str) -> Dict[str, Any]:
    """Verifies and decodes the ``transloadit`` field of a webhook request."""
    payload = params.get("transloadit")
    if not isinstance(payload, (str, bytes)):
        raise InvalidSignature("webhook payload must be the raw transloadit field")

    verify(payload, params.get("signature") or "", secret)

    try:
        envelope = json.loads(payload)
    except ValueError as e:
        raise TranscodeError(f"webhook payload is not valid JSON: {e}") from e
    if not isinstance(envelope, dict):
        raise TranscodeError("webhook payload is not an assembly")
    return envelope

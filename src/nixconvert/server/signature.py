# server/signature.py
"""HMAC HTTP-signature checks for requests coming from the Drone server."""
from __future__ import annotations

import base64
import hashlib
import hmac
import re
import time
from email.utils import parsedate_to_datetime
from typing import Dict, Mapping, Optional

_PARAM = re.compile(r'(\w+)="([^"]*)"')

SUPPORTED_ALGORITHMS = ("hmac-sha256",)

# seconds a signed Date may differ from the local clock
MAX_CLOCK_SKEW = 300.0


class SignatureError(Exception):
    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


def parse_signature(value: str) -> Dict[str, str]:
    """Parse `keyId="..",algorithm="..",headers="..",signature=".."`."""
    if value.lower().startswith("signature "):
        value = value[len("signature "):]
    return dict(_PARAM.findall(value))


def body_digest(body: bytes) -> str:
    return "SHA-256=" + base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")


def signing_string(headers_list: str, method: str, path: str, headers: Mapping[str, str]) -> str:
    lines = []
    for name in headers_list.lower().split():
        if name == "(request-target)":
            lines.append(f"(request-target): {method.lower()} {path}")
            continue
        value = headers.get(name)
        if value is None:
            raise SignatureError(f"signed header {name!r} missing from request")
        lines.append(f"{name}: {value}")
    return "\n".join(lines)


def check_date(value: Optional[str], max_skew: float = MAX_CLOCK_SKEW, now: Optional[float] = None) -> None:
    """Reject a missing, unparsable or stale `Date` header."""
    if not value:
        raise SignatureError("missing date header")
    try:
        sent = parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        raise SignatureError(f"invalid date header {value!r}")
    if now is None:
        now = time.time()
    if abs(now - sent) > max_skew:
        raise SignatureError("request date outside allowed window")


def sign(secret: str, message: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256)
    return base64.b64encode(mac.digest()).decode("ascii")


def verify_request(
    secret: str,
    method: str,
    path: str,
    headers: Mapping[str, str],
    body: bytes,
    max_skew: float = MAX_CLOCK_SKEW,
    now: Optional[float] = None,
) -> None:
    """
    Check the request signature, body digest and Date freshness.

    The `date` header must be among the signed headers and within `max_skew`
    seconds of `now`, so a captured request cannot be replayed later.
    `headers` must be case-insensitive (Starlette's Headers is).

    Raises:
        SignatureError: missing/invalid signature (401) or digest mismatch (400)
    """
    raw: Optional[str] = headers.get("signature") or headers.get("authorization")
    if not raw:
        raise SignatureError("missing signature")

    params = parse_signature(raw)
    if "signature" not in params:
        raise SignatureError("malformed signature header")
    algorithm = params.get("algorithm", "hmac-sha256").lower()
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise SignatureError(f"unsupported signature algorithm {algorithm!r}")

    digest = headers.get("digest")
    if digest is not None and not hmac.compare_digest(digest, body_digest(body)):
        raise SignatureError("invalid digest", status_code=400)

    signed = params.get("headers", "date")
    if "date" not in signed.lower().split():
        raise SignatureError("date header is not signed")
    message = signing_string(signed, method, path, headers)
    if not hmac.compare_digest(sign(secret, message), params["signature"]):
        raise SignatureError("invalid signature")
    check_date(headers.get("date"), max_skew=max_skew, now=now)

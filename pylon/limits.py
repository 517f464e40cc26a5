"""Concurrency limits for agent containers and webhook signature checks."""

from __future__ import annotations

import hashlib
import hmac
import os
import re
import threading
from typing import Mapping

_ENV_REF = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z0-9_]+))")


class AgentLimiter:
    """Caps the number of agent containers running at once.

    A maximum of zero or less means there is no limit.
    """

    def __init__(self, maximum: int) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._maximum = maximum

    def acquire(self) -> bool:
        """Take a slot; return False if the limiter is at capacity."""
        with self._lock:
            if self._maximum > 0 and self._count >= self._maximum:
                return False
            self._count += 1
            return True

    def release(self) -> None:
        """Give a slot back; never drops below zero."""
        with self._lock:
            if self._count > 0:
                self._count -= 1

    def active(self) -> int:
        """Return the number of slots in use."""
        with self._lock:
            return self._count


def _expand_env(value: str) -> str:
    """Replace $NAME and ${NAME} with environment values; unset names become empty."""
    return _ENV_REF.sub(
        lambda m: os.environ.get(m.group(1) if m.group(1) is not None else m.group(2), ""),
        value,
    )


def _header_value(headers: Mapping[str, str], name: str) -> str:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return ""


def verify_signature(
    secret: str,
    signature_header: str,
    headers: Mapping[str, str],
    body: bytes | str,
) -> bool:
    """Check a webhook body against an HMAC-SHA256 hex signature.

    With no signature header configured every request passes. Otherwise the
    named header (looked up case-insensitively) must hold the hex digest of
    the body keyed with the secret, after environment references in the
    secret are expanded.
    """
    if not signature_header:
        return True
    signature = _header_value(headers, signature_header)
    if not signature:
        return False
    key = _expand_env(secret).encode("utf-8")
    payload = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    expected = hmac.new(key, payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))
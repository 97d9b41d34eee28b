"""HTTP error helpers for extracting backend error details."""

from __future__ import annotations

import json
from typing import Any


def extract_error_detail(body: str) -> str:
    """Extract a readable error detail from a response body.

    The route handlers answer ``{"error": ...}``; proxies in front of them may
    answer ``{"detail": ...}`` or plain text.
    """
    try:
        payload: Any = json.loads(body)
    except ValueError:
        return body.strip() or "<empty response>"

    if not isinstance(payload, dict):
        return str(payload)

    detail_payload = payload.get("detail", payload)
    if not isinstance(detail_payload, dict):
        return str(detail_payload)

    return str(
        detail_payload.get("error")
        or detail_payload.get("exception")
        or detail_payload.get("message")
        or detail_payload
    )

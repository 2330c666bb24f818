"""
Cache keys for idempotent upstream calls.

A key is the SHA-256 of the canonical JSON of {operation, params}: keys
are sorted and separators fixed, so two requests that differ only in the
order of their JSON keys share one entry. Explanation requests embed whole
astrology payloads, hence a constant-size digest instead of the raw text.
"""
import hashlib
import json
from typing import Any, Dict

OPERATION_TAGS = (
    "chart",
    "dasha",
    "yearly",
    "explain-chart",
    "explain-dasha",
    "explain-yearly",
)


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(operation_tag: str, params: Dict[str, Any]) -> str:
    """Return the 64-char hex digest identifying this logical request."""
    if operation_tag not in OPERATION_TAGS:
        raise ValueError(f"Unknown operation tag: {operation_tag}")
    payload = canonical_json({"operation": operation_tag, "params": params})
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def cache_key(operation_tag: str, params: Dict[str, Any]) -> str:
    """Fingerprint prefixed with its operation, e.g. 'chart-3f1a...'."""
    return f"{operation_tag}-{fingerprint(operation_tag, params)}"

"""Deterministic content digests for audit and cheap equality."""

from __future__ import annotations

import hashlib
import json


def canonical_json(content: object) -> str:
    """Key-sorted, whitespace-free JSON form of *content*."""
    return json.dumps(
        content, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )


def content_hash(content: object) -> str:
    """SHA-256 hex digest over the canonical JSON form."""
    return hashlib.sha256(canonical_json(content).encode("utf-8")).hexdigest()

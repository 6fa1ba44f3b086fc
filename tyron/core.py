"""Core primitives for the Tyron account.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization (JCS/RFC8785 subset)
- JSON loading with consistent encoding
- Path resolution relative to the package root

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import hashlib
import json
import pathlib
from datetime import date, datetime, timezone
from typing import Any, Dict


# Package root, computed once at module load
PACKAGE_ROOT = pathlib.Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_ROOT / "schemas"


def sha256(data: bytes) -> bytes:
    """Compute SHA-256 of bytes, returning the raw 32-byte digest."""
    return hashlib.sha256(data).digest()



def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def _coerce_json_types(obj: Any) -> Any:
    """Coerce Python objects into strict JSON types.

    - bytes become 0x-prefixed lowercase hex.
    - datetime/date objects become ISO strings.
    - Floats are rejected to avoid non-JCS number edge cases.
    """
    if obj is None:
        return None
    if isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, float):
        raise ValueError("Floats are not allowed in JCS canonicalization. Use strings or integers.")
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, (datetime, date)):
        if isinstance(obj, datetime):
            if obj.tzinfo is None:
                obj = obj.replace(tzinfo=timezone.utc)
            return obj.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
        return obj.isoformat()
    if isinstance(obj, (list, tuple)):
        return [_coerce_json_types(x) for x in obj]
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            out[str(k)] = _coerce_json_types(v)
        return out
    return str(obj)


def jcs_canonicalize(obj: Any) -> bytes:
    """Canonicalize JSON using a JCS-like subset (RFC 8785 compatible for objects without floats)."""
    clean = _coerce_json_types(obj)
    return json.dumps(clean, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

"""Stable, short hashes of arbitrary object trees."""

from __future__ import annotations

import base64
import dataclasses
import json
from datetime import timedelta
from enum import Enum
from typing import Any

_SAFE_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def safe_encode_string(value: str) -> str:
    """Map each byte of the value onto an alphabet free of vowels and look-alikes."""
    return "".join(
        _SAFE_ALPHABET[byte % len(_SAFE_ALPHABET)] for byte in value.encode("utf-8")
    )


def _encode(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"cannot hash object of type {type(value).__name__}")


def _canonical(obj: Any) -> str:
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_encode,
    )


def _fnv1a_32(data: bytes) -> int:
    digest = _FNV32_OFFSET
    for byte in data:
        digest ^= byte
        digest = (digest * _FNV32_PRIME) & 0xFFFFFFFF
    return digest


def deep_hash_object(obj: Any) -> int:
    """Return the 32-bit FNV-1a hash of a canonical rendering of the object.

    Mappings are rendered with sorted keys, so the hash depends on values only,
    not on insertion order or object identity.
    """
    return _fnv1a_32(_canonical(obj).encode("utf-8"))


def compute_hash(obj: Any) -> str:
    """Return a short, safely encoded hash of the object."""
    return safe_encode_string(str(deep_hash_object(obj)))
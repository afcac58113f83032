"""
Native Spanner type decoding.

Turns catalog spellings such as ``STRING(255)``, ``ARRAY<STRING(MAX)>`` or
``PROTO<pkg.Msg>`` into a logical (kind, size, proto package) triple.
"""

import re
from typing import NamedTuple, Optional

from .model import DataType


_PARENS = re.compile(r"\(([^)]*)\)")


class DecodedType(NamedTuple):
    """Logical view of a native type string."""

    kind: str
    size: Optional[int] = None
    proto_package: Optional[str] = None


def _parse_size(native: str) -> Optional[int]:
    """Length inside the first parentheses; MAX or anything malformed is None."""
    match = _PARENS.search(native)
    if not match:
        return None
    value = match.group(1).strip()
    if value.isdigit():
        return int(value)
    return None


def _parse_proto_package(native: str) -> Optional[str]:
    start = native.find("<")
    end = native.rfind(">")
    if start == -1 or end <= start:
        return None
    return native[start + 1:end] or None


def decode_type(native: str) -> DecodedType:
    """Decode a native type string.

    Unrecognized strings come back unchanged as the kind, with no size and
    no package.
    """
    if native.startswith("ARRAY<STRING"):
        return DecodedType(DataType.ARRAY_STRING.value, _parse_size(native))
    if native.startswith("ARRAY<INT64"):
        return DecodedType(DataType.ARRAY_INT64.value)
    if native.startswith("ARRAY<FLOAT32"):
        return DecodedType(DataType.ARRAY_FLOAT32.value)
    if native.startswith("ARRAY<FLOAT64"):
        return DecodedType(DataType.ARRAY_FLOAT64.value)
    if native.startswith("STRING"):
        return DecodedType(DataType.STRING.value, _parse_size(native))
    if native.startswith("BYTES"):
        return DecodedType(DataType.BYTES.value, _parse_size(native))
    if native.startswith("PROTO<") or native.startswith("ENUM<"):
        return DecodedType(DataType.PROTO.value, None, _parse_proto_package(native))
    return DecodedType(native)

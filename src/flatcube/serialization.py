"""
Binary framing for serialized cubes and stores.

A record is laid out as:

    magic (4 bytes) | version (uint32) | header length (uint32)
    | JSON header | blob 0 | blob 1 | ...

The header lists the length of every blob, so a record is self-describing
and records can be nested as blobs of other records.
"""

import json
import struct
from typing import Any, Dict, List, Sequence, Tuple

from flatcube.errors import InvalidDataError

MAGIC = b"FCUB"
FORMAT_VERSION = 1

_PREFIX = struct.Struct("<4sII")


def pack_record(header: Dict[str, Any], blobs: Sequence[bytes] = ()) -> bytes:
    """Frame a JSON-serializable header followed by raw blobs."""
    header = dict(header, blob_lengths=[len(blob) for blob in blobs])
    encoded = json.dumps(header).encode("utf-8")
    prefix = _PREFIX.pack(MAGIC, FORMAT_VERSION, len(encoded))
    return b"".join([prefix, encoded, *blobs])


def unpack_record(buffer: bytes) -> Tuple[Dict[str, Any], List[bytes]]:
    """Split a record produced by pack_record into its header and blobs."""
    view = memoryview(buffer)
    if len(view) < _PREFIX.size:
        raise InvalidDataError("Buffer is too short to hold a record")

    magic, version, header_length = _PREFIX.unpack_from(view)
    if magic != MAGIC:
        raise InvalidDataError(f"Bad magic number: {magic!r}")
    if version != FORMAT_VERSION:
        raise InvalidDataError(f"Unsupported format version: {version}")

    offset = _PREFIX.size + header_length
    try:
        header = json.loads(bytes(view[_PREFIX.size:offset]).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidDataError(f"Corrupted record header: {e}") from e

    blobs = []
    for length in header.pop("blob_lengths", []):
        blobs.append(bytes(view[offset:offset + length]))
        offset += length

    if offset != len(view):
        raise InvalidDataError("Record length does not match its header")

    return header, blobs

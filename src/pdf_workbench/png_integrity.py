"""
PNG completeness checks.

A buffer can start with the PNG signature and still be unsafe to embed:
truncated uploads lose their trailing chunks. is_png_complete walks the
chunk list and only accepts a buffer that reaches IEND.
"""

from __future__ import annotations

import struct


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
IEND = b"IEND"

# 4-byte big-endian length, 4-byte type code.
_CHUNK_HEADER = struct.Struct(">I4s")
_CRC_SIZE = 4


def has_png_signature(data: bytes) -> bool:
    return data[: len(PNG_SIGNATURE)] == PNG_SIGNATURE


def is_png_complete(data: bytes) -> bool:
    """True only if every chunk up to and including IEND fits in the buffer."""

    if not has_png_signature(data):
        return False

    total = len(data)
    offset = len(PNG_SIGNATURE)
    while offset + _CHUNK_HEADER.size <= total:
        length, type_code = _CHUNK_HEADER.unpack_from(data, offset)
        crc_end = offset + _CHUNK_HEADER.size + length + _CRC_SIZE
        if crc_end > total:
            return False
        if type_code == IEND:
            return True
        offset = crc_end
    return False

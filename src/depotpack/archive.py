"""Zip writer for the delivered packages.

Downstream tools are strict about the layout, so every record is packed by
hand: deflated entries, no data descriptors, no extra fields, zero timestamps.
"""

import logging
import struct
import zlib
from collections.abc import Iterable
from pathlib import Path

from depotpack.errors import PackagingError
from depotpack.types import ArchiveEntry
from depotpack.utils import collect_files

__all__ = ["crc32", "build", "entries_from_dir", "write_archive"]

logger = logging.getLogger(__name__)

LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
END_OF_CENTRAL_DIRECTORY = struct.Struct("<IHHHHIIH")

LOCAL_SIGNATURE = 0x04034B50
CENTRAL_SIGNATURE = 0x02014B50
END_SIGNATURE = 0x06054B50
VERSION = 20
DEFLATED = 8


def _crc_table() -> tuple[int, ...]:
    table = []
    for i in range(256):
        c = i
        for _ in range(8):
            c = (0xEDB88320 ^ (c >> 1)) if c & 1 else c >> 1
        table.append(c)
    return tuple(table)


CRC_TABLE = _crc_table()


def crc32(data: bytes) -> int:
    crc = 0xFFFFFFFF
    for byte in data:
        crc = CRC_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def _deflate(data: bytes) -> bytes:
    # raw stream, no zlib header
    compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -15)
    return compressor.compress(data) + compressor.flush()


def build(entries: Iterable[ArchiveEntry]) -> bytes:
    body = bytearray()
    central = bytearray()
    count = 0
    for entry in entries:
        name = entry.path.replace("\\", "/").encode("utf-8")
        compressed = _deflate(entry.content)
        crc = crc32(entry.content)
        offset = len(body)

        body += LOCAL_HEADER.pack(
            LOCAL_SIGNATURE,
            VERSION,  # version needed to extract
            0,  # flags
            DEFLATED,
            0,  # mod time
            0,  # mod date
            crc,
            len(compressed),
            len(entry.content),
            len(name),
            0,  # extra field length
        )
        body += name
        body += compressed

        central += CENTRAL_HEADER.pack(
            CENTRAL_SIGNATURE,
            VERSION,  # made by
            VERSION,  # needed to extract
            0,
            DEFLATED,
            0,
            0,
            crc,
            len(compressed),
            len(entry.content),
            len(name),
            0,  # extra field length
            0,  # comment length
            0,  # disk number start
            0,  # internal attributes
            0,  # external attributes
            offset,
        )
        central += name
        count += 1

    end = END_OF_CENTRAL_DIRECTORY.pack(
        END_SIGNATURE,
        0,  # this disk
        0,  # disk with central directory
        count,
        count,
        len(central),
        len(body),
        0,  # comment length
    )
    return bytes(body + central + end)


def entries_from_dir(directory: Path) -> list[ArchiveEntry]:
    return [
        ArchiveEntry(path.relative_to(directory).as_posix(), path.read_bytes())
        for path in collect_files(directory)
    ]


def write_archive(path: Path, entries: Iterable[ArchiveEntry]) -> Path:
    try:
        data = build(entries)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as ex:
        raise PackagingError(f"Failed to write archive {path}: {ex}") from ex
    logger.debug("Wrote %s (%d bytes)", path, len(data))
    return path

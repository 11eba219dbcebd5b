import io
import struct
import zipfile
import zlib

import pytest

from depotpack import archive
from depotpack.errors import PackagingError
from depotpack.types import ArchiveEntry

ENTRIES = [
    ArchiveEntry("730.lua", b'addappid(730, 1, "abcd")\n' * 20),
    ArchiveEntry("depotcache\\731_123.manifest", bytes(range(256)) * 4),
    ArchiveEntry("empty.txt", b""),
]


def test_crc32_matches_zlib():
    for data in (b"", b"a", b"depotpack", bytes(range(256)) * 3):
        assert archive.crc32(data) == zlib.crc32(data)


def test_readable_by_zipfile():
    data = archive.build(ENTRIES)
    with zipfile.ZipFile(io.BytesIO(data)) as zip_file:
        assert zip_file.testzip() is None
        assert zip_file.namelist() == ["730.lua", "depotcache/731_123.manifest", "empty.txt"]
        for entry, info in zip(ENTRIES, zip_file.infolist()):
            assert info.compress_type == zipfile.ZIP_DEFLATED
            assert info.CRC == zlib.crc32(entry.content)
            assert zip_file.read(info) == entry.content


def test_record_layout():
    data = archive.build([ArchiveEntry("a.txt", b"hello")])
    compressed = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -15)
    deflated = compressed.compress(b"hello") + compressed.flush()

    signature, version, flags, method, time, date, crc, csize, usize, name_len, extra_len = struct.unpack_from(
        "<IHHHHHIIIHH", data
    )
    assert signature == 0x04034B50
    assert (version, flags, method, time, date) == (20, 0, 8, 0, 0)
    assert (crc, csize, usize) == (zlib.crc32(b"hello"), len(deflated), 5)
    assert (name_len, extra_len) == (5, 0)

    central_offset = 30 + 5 + len(deflated)
    central = struct.unpack_from("<IHHHHHHIIIHHHHHII", data, central_offset)
    assert central[0] == 0x02014B50
    assert central[-1] == 0

    end = struct.unpack_from("<IHHHHIIH", data, len(data) - 22)
    assert end[0] == 0x06054B50
    assert end[3] == end[4] == 1
    assert end[5] == 46 + 5
    assert end[6] == central_offset
    assert len(data) == central_offset + 46 + 5 + 22


def test_empty_archive():
    data = archive.build([])
    assert len(data) == 22
    with zipfile.ZipFile(io.BytesIO(data)) as zip_file:
        assert zip_file.namelist() == []


def test_entries_from_dir(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.manifest").write_bytes(b"b")
    (tmp_path / "a.lua").write_bytes(b"a")
    entries = archive.entries_from_dir(tmp_path)
    assert entries == [ArchiveEntry("a.lua", b"a"), ArchiveEntry("sub/b.manifest", b"b")]


def test_write_archive_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(PackagingError):
        archive.write_archive(blocker / "out.zip", ENTRIES)

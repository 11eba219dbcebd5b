import io
import logging
import zipfile
from pathlib import Path

from luaparser import ast

from depotpack import keyfile, lua
from depotpack.types import ArchiveEntry, DepotKeys, ManifestMap
from depotpack.utils import MANIFEST_SUFFIX, collect_files, is_key_file, parse_manifest_name

__all__ = ["Findings"]

logger = logging.getLogger(__name__)


class Findings:
    """Keys and manifests collected from a set of downloaded files."""

    depot_keys: DepotKeys
    manifests: ManifestMap
    manifest_files: list[ArchiveEntry]

    def __init__(self):
        self.depot_keys = {}
        self.manifests = {}
        self.manifest_files = []

    def __bool__(self) -> bool:
        return bool(self.depot_keys or self.manifest_files or self.manifests)

    def add(self, name: str, content: bytes):
        base_name = name.replace("\\", "/").rsplit("/", 1)[-1]
        lower = base_name.lower()
        if lower.endswith(MANIFEST_SUFFIX):
            # packages are flat, first file of a name wins
            if any(entry.path == base_name for entry in self.manifest_files):
                logger.debug('Duplicate manifest "%s" ignored', name)
                return
            self.manifest_files.append(ArchiveEntry(base_name, content))
            if parsed := parse_manifest_name(base_name):
                depot_id, gid = parsed
                self.manifests[depot_id] = gid
            else:
                logger.debug('Unrecognized manifest filename "%s"', base_name)
        elif lower.endswith(".lua"):
            src = content.decode("utf-8-sig", errors="replace")
            try:
                keys = lua.parse_keys(src)
            except ast.SyntaxException as ex:
                logger.warning('Unparsable "%s", scanning it line by line: %s', name, ex)
                keys = lua.scan_keys(src)
            self.depot_keys |= keys
        elif is_key_file(base_name):
            keys = keyfile.parse_depot_keys(content.decode("utf-8-sig", errors="replace"))
            logger.debug('%d keys in "%s"', len(keys), name)
            self.depot_keys |= keys

    @classmethod
    def from_archive(cls, data: bytes) -> "Findings":
        """Scan a zip held in memory; raises ``zipfile.BadZipFile``."""
        findings = cls()
        with zipfile.ZipFile(io.BytesIO(data)) as zip_file:
            for info in zip_file.infolist():
                if not info.is_dir():
                    findings.add(info.filename, zip_file.read(info))
        return findings

    @classmethod
    def from_dir(cls, directory: Path) -> "Findings":
        findings = cls()
        for path in collect_files(directory):
            findings.add(path.relative_to(directory).as_posix(), path.read_bytes())
        return findings

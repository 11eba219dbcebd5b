from enum import StrEnum
from pathlib import Path
from typing import NamedTuple

__all__ = [
    "KeyTable",
    "DepotKeys",
    "ManifestMap",
    "ArchiveEntry",
    "SourceKind",
    "SourceConfig",
    "CacheEntry",
    "CacheStatus",
    "Resolved",
    "Empty",
    "Failed",
    "ResolutionResult",
    "PackageResult",
]

# depot id -> hex key, the whole published table
type KeyTable = dict[str, str]
# depot id -> hex key, filtered down to one app
type DepotKeys = dict[str, str]
# depot id -> manifest gid
type ManifestMap = dict[str, str]


class ArchiveEntry(NamedTuple):
    path: str
    content: bytes


class SourceKind(StrEnum):
    BRANCH = "branch"
    ENCRYPTED = "encrypted"
    DECRYPTED = "decrypted"
    ZIP = "zip"
    KEY_VALUE = "kv"
    SESSION = "session"

    @property
    def is_tree(self) -> bool:
        return self in (SourceKind.ENCRYPTED, SourceKind.DECRYPTED)


class SourceConfig(NamedTuple):
    identifier: str
    enabled: bool
    kind: SourceKind
    base_location: str
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.identifier


class CacheEntry(NamedTuple):
    payload: KeyTable
    fetched_at: float


class CacheStatus(NamedTuple):
    has_memory: bool
    memory_count: int
    memory_age: float | None
    has_file: bool
    file_count: int
    file_age: float | None


class Resolved(NamedTuple):
    """Data found for an app.

    ``artifacts`` are files that go into the package next to the generated
    script (downloaded manifests, placeholders). ``archive`` is set when the
    source already delivered a finished package.
    """

    app_id: str
    depot_keys: DepotKeys
    manifests: ManifestMap
    label: str
    dlc_ids: tuple[str, ...] = ()
    game_name: str | None = None
    artifacts: tuple[ArchiveEntry, ...] = ()
    archive: bytes | None = None

    @property
    def complete(self) -> bool:
        return bool(self.depot_keys)


class Empty(NamedTuple):
    app_id: str
    reason: str


class Failed(NamedTuple):
    app_id: str
    reason: str


type ResolutionResult = Resolved | Empty | Failed


class PackageResult(NamedTuple):
    success: bool
    app_id: str
    archive_path: Path | None = None
    key_count: int = 0
    manifest_count: int = 0
    dlc_count: int = 0
    source_label: str | None = None
    game_name: str | None = None
    error: str | None = None

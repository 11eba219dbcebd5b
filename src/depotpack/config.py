import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from depotpack.types import SourceConfig, SourceKind

__all__ = ["KeySource", "HubSettings", "Config", "load_config", "sanitize"]

logger = logging.getLogger(__name__)


class KeySource(StrEnum):
    SAC = "SAC"
    SUDAMA = "Sudama"


REPO_KINDS = {
    "Branch": SourceKind.BRANCH,
    "Encrypted": SourceKind.ENCRYPTED,
    "Decrypted": SourceKind.DECRYPTED,
}
MIRROR_KINDS = {
    "zip": SourceKind.ZIP,
    "kv": SourceKind.KEY_VALUE,
    "session": SourceKind.SESSION,
}


def _repo(name: str, kind: SourceKind, enabled: bool) -> SourceConfig:
    return SourceConfig(name, enabled, kind, name)


DEFAULT_REPOSITORIES = (
    _repo("AQiaoYo/ManifestHub", SourceKind.BRANCH, True),
    _repo("Auiowu/ManifestAutoUpdate", SourceKind.DECRYPTED, False),
    _repo("ikun0014/ManifestHub", SourceKind.DECRYPTED, False),
    _repo("tymolu233/ManifestAutoUpdate", SourceKind.DECRYPTED, False),
)

DEFAULT_MIRRORS = (
    SourceConfig("printedwaste", True, SourceKind.ZIP, "https://github.com/printedwaste/ManifestHub/raw/main", "PrintedWaste"),
    SourceConfig("cysaw", True, SourceKind.ZIP, "https://github.com/cysaw/ManifestAutoUpdate/raw/main", "Cysaw"),
    SourceConfig("furcate", True, SourceKind.ZIP, "https://github.com/furcate/ManifestHub/raw/main", "Furcate"),
    SourceConfig("assiw", True, SourceKind.ZIP, "https://github.com/assiw/ManifestAutoUpdate/raw/main", "Assiw"),
    SourceConfig("steamdatabase", True, SourceKind.ZIP, "https://github.com/SteamDatabase/ManifestHub/raw/main", "SteamDatabase"),
    SourceConfig("steamautocracks_v2", True, SourceKind.KEY_VALUE, "https://steam.ddxnb.cn/v1/info", "SteamAutoCracks V2"),
    SourceConfig("buqiuren", False, SourceKind.SESSION, "https://api.buqiuren.com/api", "Buqiuren"),
)


@dataclass(frozen=True)
class HubSettings:
    enabled: bool = True
    depot_key_source: KeySource = KeySource.SAC
    include_dlc: bool = True
    set_manifest_id: bool = True
    cache_expire_hours: float = 24


@dataclass(frozen=True)
class Config:
    debug: bool = False
    github_token: str = ""
    use_github_token: bool = False
    temp_dir: str = "temp"
    preload: bool = False
    repositories: tuple[SourceConfig, ...] = DEFAULT_REPOSITORIES
    mirrors: tuple[SourceConfig, ...] = DEFAULT_MIRRORS
    manifest_hub: HubSettings = field(default_factory=HubSettings)

    @property
    def token(self) -> str | None:
        if self.use_github_token and self.github_token:
            return self.github_token
        return None


def _typed[T](raw: dict[str, Any], key: str, type_: type[T], default: T) -> T:
    value = raw.get(key)
    # bool is an int, keep it out of numeric fields
    if isinstance(value, type_) and not (type_ is not bool and isinstance(value, bool)):
        return value
    return default


def _sanitize_repositories(raw: Any) -> tuple[SourceConfig, ...]:
    if not isinstance(raw, list):
        return DEFAULT_REPOSITORIES
    repos = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        type_name = item.get("type")
        kind = REPO_KINDS.get(type_name) if isinstance(type_name, str) else None
        if not isinstance(name, str) or kind is None:
            logger.warning("Ignoring repository entry %r", item)
            continue
        repos.append(_repo(name, kind, _typed(item, "enabled", bool, False)))
    return tuple(repos)


def _sanitize_mirrors(raw: Any) -> tuple[SourceConfig, ...]:
    if not isinstance(raw, list):
        return DEFAULT_MIRRORS
    mirrors = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        base_url = item.get("base_url")
        kind_name = item.get("kind")
        kind = MIRROR_KINDS.get(kind_name) if isinstance(kind_name, str) else None
        if not isinstance(name, str) or not isinstance(base_url, str) or kind is None:
            logger.warning("Ignoring mirror entry %r", item)
            continue
        mirrors.append(
            SourceConfig(
                name,
                _typed(item, "enabled", bool, False),
                kind,
                base_url.rstrip("/"),
                _typed(item, "display_name", str, ""),
            )
        )
    return tuple(mirrors)


def _sanitize_hub(raw: Any) -> HubSettings:
    default = HubSettings()
    if not isinstance(raw, dict):
        return default
    try:
        key_source = KeySource(raw.get("depot_key_source"))
    except ValueError:
        key_source = default.depot_key_source
    hours = raw.get("cache_expire_hours")
    return HubSettings(
        enabled=_typed(raw, "enabled", bool, default.enabled),
        depot_key_source=key_source,
        include_dlc=_typed(raw, "include_dlc", bool, default.include_dlc),
        set_manifest_id=_typed(raw, "set_manifest_id", bool, default.set_manifest_id),
        cache_expire_hours=(
            float(hours)
            if isinstance(hours, (int, float)) and not isinstance(hours, bool) and hours >= 0
            else default.cache_expire_hours
        ),
    )


def sanitize(raw: Any) -> Config:
    """Build a ``Config`` from decoded JSON, falling back to defaults field by field."""
    if not isinstance(raw, dict):
        return Config()
    default = Config()
    return Config(
        debug=_typed(raw, "debug", bool, default.debug),
        github_token=_typed(raw, "github_token", str, default.github_token),
        use_github_token=_typed(raw, "use_github_token", bool, default.use_github_token),
        temp_dir=_typed(raw, "temp_dir", str, default.temp_dir),
        preload=_typed(raw, "preload", bool, default.preload),
        repositories=_sanitize_repositories(raw.get("repositories")),
        mirrors=_sanitize_mirrors(raw.get("mirrors")),
        manifest_hub=_sanitize_hub(raw.get("manifest_hub")),
    )


def load_config(path: Path | None) -> Config:
    if path is None or not path.is_file():
        logger.debug("No config file at %s, using defaults", path)
        return Config()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as ex:
        logger.error("Failed to load config %s, using defaults: %s", path, ex)
        return Config()
    logger.debug("Loaded config from %s", path)
    return sanitize(raw)

import logging
import threading
from pathlib import Path

import requests

from depotpack import archive, hub, keyfile, lua, network, store
from depotpack.cache import KeyTableCache
from depotpack.config import Config
from depotpack.errors import InvalidAppIdError, PackagingError, SourceError
from depotpack.hub import HubResolver
from depotpack.merge import can_merge, merge
from depotpack.mirrors import MirrorResolver
from depotpack.repos import RepositoryResolver
from depotpack.types import (
    ArchiveEntry,
    CacheStatus,
    Empty,
    Failed,
    PackageResult,
    Resolved,
    ResolutionResult,
)
from depotpack.utils import is_app_id, numeric_sorted

__all__ = ["Orchestrator", "package_entries"]

logger = logging.getLogger(__name__)


def package_entries(result: Resolved, set_manifest_id: bool = True) -> list[ArchiveEntry]:
    app_id = result.app_id
    script = lua.generate(app_id, result.depot_keys, result.manifests, result.dlc_ids, set_manifest_id)
    entries = [ArchiveEntry(f"{app_id}.lua", script.encode())]
    if result.depot_keys:
        key_lines = "\n".join(f"{depot}\t{key}" for depot, key in result.depot_keys.items())
        entries.append(
            ArchiveEntry(
                "depot_keys.txt",
                f"# Steam Depot Keys for AppID {app_id}\n# DepotID\tDecryptionKey\n{key_lines}".encode(),
            )
        )
        entries.append(ArchiveEntry("key.vdf", keyfile.dump_depot_keys(result.depot_keys).encode()))
    if result.manifests:
        manifest_lines = "\n".join(f"{depot}\t{result.manifests[depot]}" for depot in numeric_sorted(result.manifests))
        entries.append(
            ArchiveEntry(
                "manifests.txt",
                f"# Steam Manifests for AppID {app_id}\n# DepotID\tManifestID\n{manifest_lines}".encode(),
            )
        )
    names = {entry.path for entry in entries}
    entries.extend(entry for entry in result.artifacts if entry.path not in names)
    return entries


class Orchestrator:
    """Runs the source fallback chain for an app and packages what it finds.

    Owns the depot key table cache and the HTTP session; use as a context
    manager, or call ``start`` / ``close``.
    """

    def __init__(
        self,
        config: Config,
        data_dir: Path,
        session: requests.Session | None = None,
        cache: KeyTableCache | None = None,
    ):
        self.config = config
        self.data_dir = data_dir
        self.session = session or network.initialize_session()
        settings = config.manifest_hub
        self.cache = cache or KeyTableCache(
            data_dir / "cache" / "depotkeys.json",
            settings.cache_expire_hours,
            hub.key_table_fetcher(self.session, settings.depot_key_source, config.token),
        )
        self.hub = HubResolver(self.session, self.cache, settings)
        self.repositories = RepositoryResolver(
            self.session, config.repositories, config.token, settings.set_manifest_id
        )
        self.mirrors = MirrorResolver(self.session, config.mirrors)
        self._preload: threading.Thread | None = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def temp_root(self) -> Path:
        return self.data_dir / self.config.temp_dir

    def start(self):
        if not (self.config.preload and self.config.manifest_hub.enabled):
            return
        self._preload = threading.Thread(target=self._preload_keys, name="preload", daemon=True)
        self._preload.start()

    def _preload_keys(self):
        logger.info("Preloading depot key table")
        try:
            table, from_cache = self.cache.get()
        except (requests.RequestException, SourceError) as ex:
            logger.warning("Preloading depot key table failed: %s", ex)
            return
        logger.info("Preloaded %d depot keys%s", len(table), " from cache" if from_cache else "")

    def close(self):
        self.cache.close()
        self.session.close()

    @staticmethod
    def _validate(app_id: str):
        if not is_app_id(app_id):
            raise InvalidAppIdError(app_id)

    def info(self, app_id: str) -> ResolutionResult:
        """Hub lookup only, nothing is downloaded or packaged."""
        self._validate(app_id)
        result = self.hub.resolve(app_id)
        if isinstance(result, Resolved):
            return result._replace(game_name=store.fetch_app_name(self.session, app_id))
        return result

    def resolve(self, app_id: str, work_dir: Path) -> ResolutionResult:
        self._validate(app_id)

        hub_result = self.hub.resolve(app_id)
        if isinstance(hub_result, Resolved) and hub_result.complete:
            return hub_result
        if isinstance(hub_result, Resolved):
            logger.info("ManifestHub has manifests but no keys for %s, trying repositories", app_id)

        repo_result = self.repositories.resolve(app_id, work_dir)
        if can_merge(hub_result, repo_result):
            merged = merge(hub_result, repo_result)
            logger.info("Merged ManifestHub manifests with repository keys for %s", app_id)
            return merged
        if isinstance(repo_result, Resolved):
            return repo_result

        mirror_result = self.mirrors.resolve(app_id, work_dir)
        if isinstance(mirror_result, Resolved):
            return mirror_result

        if isinstance(hub_result, Resolved):
            logger.info("Falling back to keyless ManifestHub data for %s", app_id)
            return hub_result

        for result in (hub_result, repo_result, mirror_result):
            match result:
                case Failed(reason=reason):
                    logger.warning("%s", reason)
                case Empty(reason=reason):
                    logger.debug("%s", reason)
        return Failed(app_id, f"AppID {app_id} not found in any source")

    def _write_package(self, result: Resolved, work_dir: Path) -> Path:
        path = work_dir / f"{result.app_id}.zip"
        if result.archive is None:
            entries = package_entries(result, self.config.manifest_hub.set_manifest_id)
            return archive.write_archive(path, entries)
        try:
            path.write_bytes(result.archive)
        except OSError as ex:
            raise PackagingError(f"Failed to write archive {path}: {ex}") from ex
        return path

    def package(self, app_id: str, work_dir: Path) -> PackageResult:
        """Resolve ``app_id`` and write ``{app_id}.zip`` into ``work_dir``.

        Raises ``InvalidAppIdError``; every other failure is reported in the
        returned ``PackageResult``.
        """
        logger.info("Packaging %s", app_id)
        result = self.resolve(app_id, work_dir)
        if not isinstance(result, Resolved):
            return PackageResult(False, app_id, error=result.reason)

        try:
            path = self._write_package(result, work_dir)
        except PackagingError as ex:
            logger.error("%s", ex)
            return PackageResult(False, app_id, source_label=result.label, error=str(ex))

        logger.info("Packaged %s from %s: %s", app_id, result.label, path)
        return PackageResult(
            True,
            app_id,
            archive_path=path,
            key_count=len(result.depot_keys),
            manifest_count=len(result.manifests) or len(result.artifacts),
            dlc_count=len(result.dlc_ids),
            source_label=result.label,
            game_name=result.game_name or store.fetch_app_name(self.session, app_id),
        )

    def cache_status(self) -> CacheStatus:
        return self.cache.status()

    def clear_cache(self):
        self.cache.clear()

    def refresh_cache(self) -> int:
        return self.cache.refresh()

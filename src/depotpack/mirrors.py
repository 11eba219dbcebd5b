"""Secondary manifest mirrors, tried in order when the hub and repositories come up empty.

Three kinds of mirror exist: zip mirrors serving ``{app}.zip`` bundles,
key-value APIs answering with depot -> manifest ids only, and session APIs
that hand out a token and then serve manifests one depot at a time.
"""

import io
import logging
import zipfile
from pathlib import Path
from typing import Any, Protocol

import requests

from depotpack import network
from depotpack.errors import SourceEmptyError, SourceError
from depotpack.scan import Findings
from depotpack.types import ArchiveEntry, Empty, Failed, ManifestMap, Resolved, ResolutionResult, SourceConfig, SourceKind
from depotpack.utils import is_app_id

__all__ = ["ZipMirror", "KeyValueMirror", "SessionMirror", "MirrorResolver", "placeholder_manifest"]

logger = logging.getLogger(__name__)


class MirrorStrategy(Protocol):
    def resolve(self, mirror: SourceConfig, app_id: str, work_dir: Path) -> ResolutionResult: ...


def placeholder_manifest(depot_id: str, manifest_id: str) -> ArchiveEntry:
    return ArchiveEntry(
        f"{depot_id}_{manifest_id}.manifest",
        f"# Depot: {depot_id}\n# Manifest: {manifest_id}\n".encode(),
    )


class ZipMirror:
    def __init__(self, session: requests.Session):
        self.session = session

    def resolve(self, mirror: SourceConfig, app_id: str, work_dir: Path) -> ResolutionResult:
        url = f"{mirror.base_location}/{app_id}.zip"
        response = network.get(self.session, url)
        if response.status_code == 404:
            logger.debug("%s not on %s", app_id, mirror.label)
            return Empty(app_id, f"{app_id} not on {mirror.label}")
        if response.status_code != 200:
            logger.warning("%s: HTTP %d for %s", mirror.label, response.status_code, url)
            return Failed(app_id, f"{mirror.label}: HTTP {response.status_code}")

        extract_dir = work_dir / f"{app_id}_{mirror.identifier}"
        extract_dir.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(io.BytesIO(response.content)) as zip_file:
            zip_file.extractall(extract_dir)
        findings = Findings.from_dir(extract_dir)
        if not findings:
            return Empty(app_id, f"{mirror.label}: no manifests or keys in archive")
        logger.info(
            "%s: %d manifests, %d keys", mirror.label, len(findings.manifest_files), len(findings.depot_keys)
        )
        return Resolved(
            app_id,
            findings.depot_keys,
            findings.manifests,
            mirror.label,
            artifacts=tuple(findings.manifest_files),
        )


def _depot_manifests(data: Any, app_id: str) -> ManifestMap:
    if not isinstance(data, dict):
        return {}
    depots = data.get("depots")
    if depots is None and isinstance(data.get("data"), dict):
        app = data["data"].get(app_id)
        depots = app.get("depots") if isinstance(app, dict) else None
    if not isinstance(depots, dict):
        return {}
    manifests: ManifestMap = {}
    for depot_id, depot in depots.items():
        if not is_app_id(depot_id) or not isinstance(depot, dict):
            continue
        listing = depot.get("manifests")
        public = listing.get("public") if isinstance(listing, dict) else None
        # either the gid itself or {"gid": ...}
        gid = public.get("gid") if isinstance(public, dict) else public
        if isinstance(gid, (str, int)) and is_app_id(str(gid)):
            manifests[depot_id] = str(gid)
    return manifests


class KeyValueMirror:
    def __init__(self, session: requests.Session):
        self.session = session

    def resolve(self, mirror: SourceConfig, app_id: str, work_dir: Path) -> ResolutionResult:
        data = network.get_json(self.session, f"{mirror.base_location}/{app_id}", source=mirror.label)
        manifests = _depot_manifests(data, app_id)
        if not manifests:
            raise SourceEmptyError(mirror.label, f"no depot manifests for {app_id}")
        logger.info("%s: %d depots", mirror.label, len(manifests))
        return Resolved(
            app_id,
            {},
            manifests,
            mirror.label,
            artifacts=tuple(placeholder_manifest(depot, gid) for depot, gid in manifests.items()),
        )


class SessionMirror:
    def __init__(self, session: requests.Session):
        self.session = session

    def resolve(self, mirror: SourceConfig, app_id: str, work_dir: Path) -> ResolutionResult:
        base = mirror.base_location
        token_data = network.get_json(self.session, f"{base}/get_session_token", source=mirror.label)
        token = token_data.get("session_token") if isinstance(token_data, dict) else None
        if not isinstance(token, str) or not token:
            return Failed(app_id, f"{mirror.label}: no session token")

        depot_data = network.get_json(
            self.session,
            f"{base}/get_depots",
            source=mirror.label,
            params={"appid": app_id, "session_token": token},
        )
        depots = depot_data.get("depots") if isinstance(depot_data, dict) else None
        if not depots or not isinstance(depots, list):
            raise SourceEmptyError(mirror.label, f"no depots for {app_id}")

        manifests: ManifestMap = {}
        files: list[ArchiveEntry] = []
        for depot in depots:
            if not isinstance(depot, dict):
                continue
            depot_id = str(depot.get("depot_id") or "")
            manifest_id = str(depot.get("manifest_id") or "")
            if not is_app_id(depot_id) or not is_app_id(manifest_id):
                continue
            try:
                response = network.get(
                    self.session,
                    f"{base}/download_manifest",
                    params={"depot_id": depot_id, "manifest_id": manifest_id, "session_token": token},
                )
            except requests.RequestException as ex:
                logger.warning("%s: manifest %s for depot %s failed: %s", mirror.label, manifest_id, depot_id, ex)
                continue
            if response.status_code != 200:
                logger.warning("%s: manifest %s for depot %s: HTTP %d", mirror.label, manifest_id, depot_id, response.status_code)
                continue
            manifests[depot_id] = manifest_id
            files.append(ArchiveEntry(f"{depot_id}_{manifest_id}.manifest", response.content))

        if not files:
            return Empty(app_id, f"{mirror.label}: no manifest could be downloaded")
        logger.info("%s: downloaded %d manifests", mirror.label, len(files))
        return Resolved(app_id, {}, manifests, mirror.label, artifacts=tuple(files))


class MirrorResolver:
    def __init__(self, session: requests.Session, mirrors: tuple[SourceConfig, ...]):
        strategies: dict[SourceKind, MirrorStrategy] = {
            SourceKind.ZIP: ZipMirror(session),
            SourceKind.KEY_VALUE: KeyValueMirror(session),
            SourceKind.SESSION: SessionMirror(session),
        }
        self.mirrors = [
            (mirror, strategies[mirror.kind]) for mirror in mirrors if mirror.enabled and mirror.kind in strategies
        ]

    def resolve(self, app_id: str, work_dir: Path) -> ResolutionResult:
        if not self.mirrors:
            return Empty(app_id, "No mirrors enabled")
        logger.info("Trying %d mirrors for %s", len(self.mirrors), app_id)
        failures: list[str] = []
        for mirror, strategy in self.mirrors:
            try:
                result = strategy.resolve(mirror, app_id, work_dir)
            except SourceEmptyError as ex:
                logger.debug("%s", ex)
                continue
            except (requests.RequestException, SourceError, zipfile.BadZipFile, OSError, ValueError) as ex:
                logger.warning("Mirror %s failed for %s: %s", mirror.label, app_id, ex)
                failures.append(f"{mirror.label}: {ex}")
                continue
            match result:
                case Resolved():
                    logger.info("Resolved %s from %s", app_id, mirror.label)
                    return result
                case Failed(reason=reason):
                    failures.append(reason)
                case Empty(reason=reason):
                    logger.debug("%s", reason)
        if failures:
            return Failed(app_id, "; ".join(failures))
        return Empty(app_id, f"{app_id} not found on any mirror")

"""Depot data from GitHub manifest repositories.

Branch repositories publish one branch per app, downloaded as a ready zipball.
Tree repositories (encrypted or decrypted) are crawled: the app's branch tree
is listed and its manifest and key files fetched one by one through raw CDNs.
"""

import logging
import zipfile
from pathlib import Path
from typing import Protocol

import requests

from depotpack import archive, lua, network
from depotpack.errors import SourceEmptyError, SourceError
from depotpack.scan import Findings
from depotpack.types import Empty, Failed, Resolved, ResolutionResult, SourceConfig, SourceKind
from depotpack.utils import MANIFEST_SUFFIX, is_key_file

__all__ = ["GITHUB_API", "RAW_CDNS", "BranchStrategy", "TreeStrategy", "RepositoryResolver"]

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
RAW_CDNS = (
    "https://raw.githubusercontent.com",
    "https://ghproxy.org/https://raw.githubusercontent.com",
    "https://raw.dgithub.xyz",
)


class RepoStrategy(Protocol):
    def resolve(self, repo: SourceConfig, app_id: str, work_dir: Path) -> ResolutionResult: ...


class BranchStrategy:
    def __init__(self, session: requests.Session, token: str | None = None):
        self.session = session
        self.token = token

    def resolve(self, repo: SourceConfig, app_id: str, work_dir: Path) -> ResolutionResult:
        url = f"{GITHUB_API}/repos/{repo.base_location}/zipball/{app_id}"
        logger.info("Trying branch %s", url)
        response = network.get(self.session, url, headers=network.github_headers(self.token))
        if response.status_code == 404:
            logger.debug("%s not in %s", app_id, repo.label)
            return Empty(app_id, f"{app_id} not in {repo.label}")
        if response.status_code != 200:
            logger.warning("Branch download failed (HTTP %d): %s/%s", response.status_code, repo.label, app_id)
            return Failed(app_id, f"{repo.label}: HTTP {response.status_code}")

        findings = Findings.from_archive(response.content)
        if not findings:
            logger.warning("Branch %s/%s has no manifests or keys", repo.label, app_id)
            return Empty(app_id, f"{repo.label}: branch {app_id} has no manifests or keys")
        logger.info("Branch download ok: %s/%s (%d bytes)", repo.label, app_id, len(response.content))
        return Resolved(
            app_id,
            findings.depot_keys,
            findings.manifests,
            repo.label,
            artifacts=tuple(findings.manifest_files),
            archive=response.content,
        )


class TreeStrategy:
    def __init__(self, session: requests.Session, token: str | None = None, set_manifest_id: bool = True):
        self.session = session
        self.token = token
        self.set_manifest_id = set_manifest_id

    def _download(self, repo: SourceConfig, sha: str, path: str) -> bytes | None:
        for cdn in RAW_CDNS:
            url = f"{cdn}/{repo.base_location}/{sha}/{path}"
            try:
                response = network.get(self.session, url)
            except requests.RequestException as ex:
                logger.debug("CDN %s failed: %s", cdn, ex)
                continue
            if response.status_code == 200:
                logger.debug("Downloaded %s (%d bytes)", path, len(response.content))
                return response.content
            logger.debug("CDN %s: HTTP %d for %s", cdn, response.status_code, path)
        return None

    def resolve(self, repo: SourceConfig, app_id: str, work_dir: Path) -> ResolutionResult:
        headers = network.github_headers(self.token)
        api = f"{GITHUB_API}/repos/{repo.base_location}"
        try:
            branch = network.get_json(self.session, f"{api}/branches/{app_id}", source=repo.label, headers=headers)
        except SourceError as ex:
            logger.debug("%s not in %s: %s", app_id, repo.label, ex)
            return Empty(app_id, f"{app_id} not in {repo.label}")
        try:
            sha = branch["commit"]["sha"]
        except (KeyError, TypeError):
            logger.warning("No commit sha for %s/%s", repo.label, app_id)
            return Failed(app_id, f"{repo.label}: no commit for {app_id}")

        tree = network.get_json(
            self.session, f"{api}/git/trees/{sha}", source=repo.label, headers=headers, params={"recursive": "1"}
        )
        items = tree.get("tree") if isinstance(tree, dict) else None
        if not isinstance(items, list):
            raise SourceEmptyError(repo.label, f"empty tree for {app_id}")

        app_dir = work_dir / repo.identifier.replace("/", "_") / app_id
        app_dir.mkdir(parents=True, exist_ok=True)
        findings = Findings()
        for item in items:
            if not isinstance(item, dict) or item.get("type") != "blob":
                continue
            path = str(item.get("path", ""))
            name = path.rsplit("/", 1)[-1]
            if not (name.lower().endswith(MANIFEST_SUFFIX) or is_key_file(name)):
                continue
            if (content := self._download(repo, sha, path)) is None:
                continue
            if name.lower().endswith(MANIFEST_SUFFIX):
                (app_dir / name).write_bytes(content)
            findings.add(path, content)

        if not findings:
            return Empty(app_id, f"{repo.label}: nothing usable for {app_id}")
        script = lua.generate(app_id, findings.depot_keys, findings.manifests, set_manifest_id=self.set_manifest_id)
        (app_dir / f"{app_id}.lua").write_text(script, encoding="utf-8")
        logger.debug("Generated %s.lua with %d keys", app_id, len(findings.depot_keys))
        if not findings.manifest_files:
            return Empty(app_id, f"{repo.label}: no manifest files for {app_id}")

        return Resolved(
            app_id,
            findings.depot_keys,
            findings.manifests,
            repo.label,
            artifacts=tuple(findings.manifest_files),
            archive=archive.build(archive.entries_from_dir(app_dir)),
        )


class RepositoryResolver:
    """Branch repositories first (one request each), then tree repositories."""

    def __init__(
        self,
        session: requests.Session,
        repositories: tuple[SourceConfig, ...],
        token: str | None = None,
        set_manifest_id: bool = True,
    ):
        branch = BranchStrategy(session, token)
        tree = TreeStrategy(session, token, set_manifest_id)
        enabled = [repo for repo in repositories if repo.enabled]
        self.passes: tuple[list[tuple[SourceConfig, RepoStrategy]], ...] = (
            [(repo, branch) for repo in enabled if repo.kind is SourceKind.BRANCH],
            [(repo, tree) for repo in enabled if repo.kind.is_tree],
        )

    def resolve(self, app_id: str, work_dir: Path) -> ResolutionResult:
        if not any(self.passes):
            return Empty(app_id, "No repositories enabled")
        failures: list[str] = []
        for candidates in self.passes:
            for repo, strategy in candidates:
                try:
                    result = strategy.resolve(repo, app_id, work_dir)
                except SourceEmptyError as ex:
                    logger.debug("%s", ex)
                    continue
                except (requests.RequestException, SourceError, zipfile.BadZipFile, OSError, ValueError) as ex:
                    logger.warning("Repository %s failed for %s: %s", repo.label, app_id, ex)
                    failures.append(f"{repo.label}: {ex}")
                    continue
                match result:
                    case Resolved():
                        return result
                    case Failed(reason=reason):
                        failures.append(reason)
        if failures:
            return Failed(app_id, "; ".join(failures))
        return Empty(app_id, f"{app_id} not found in any repository")

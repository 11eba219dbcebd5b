"""Keys, manifests and DLC from the ManifestHub aggregation APIs.

Three lookups run side by side: the bulk depot key table (through the
cache), the app's depot -> manifest map, and its DLC list.
"""

import logging
import re
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import requests

from depotpack import network
from depotpack.cache import KeyTableCache
from depotpack.config import HubSettings, KeySource
from depotpack.errors import SourceEmptyError, SourceError
from depotpack.race import parse_json_object, race
from depotpack.types import DepotKeys, Empty, Failed, KeyTable, ManifestMap, Resolved, ResolutionResult
from depotpack.utils import dict_intersect, is_app_id, numeric_sorted

__all__ = [
    "SAC_DEPOTKEY_URLS",
    "SUDAMA_DEPOTKEY_URL",
    "key_table_fetcher",
    "get_manifests",
    "get_dlc_ids",
    "HubResolver",
]

logger = logging.getLogger(__name__)

_RAW_GITHUB = "https://raw.githubusercontent.com/AQiaoYo/ManifestHub/main/depotkeys.json"

# domestic mirrors first, github itself last
SAC_DEPOTKEY_URLS = (
    "https://cdn.jsdmirror.com/gh/AQiaoYo/ManifestHub@main/depotkeys.json",
    "https://gh.akass.cn/AQiaoYo/ManifestHub/main/depotkeys.json",
    f"https://ghfast.top/{_RAW_GITHUB}",
    f"https://gh-proxy.com/{_RAW_GITHUB}",
    "https://raw.gitmirror.com/AQiaoYo/ManifestHub/main/depotkeys.json",
    "https://raw.dgithub.xyz/AQiaoYo/ManifestHub/main/depotkeys.json",
    _RAW_GITHUB,
)
SUDAMA_DEPOTKEY_URL = "https://api.993499094.xyz/depotkeys.json"
SUDAMA_DEPOTKEY_URLS = (SUDAMA_DEPOTKEY_URL,)

MANIFEST_API = "https://steam.ddxnb.cn/v1/info"
STEAMCMD_API = "https://api.steamcmd.net/v1/info"


def key_table_fetcher(
    session: requests.Session,
    key_source: KeySource,
    token: str | None = None,
) -> Callable[[], KeyTable]:
    urls = SUDAMA_DEPOTKEY_URLS if key_source is KeySource.SUDAMA else SAC_DEPOTKEY_URLS

    def headers(url: str) -> dict[str, str] | None:
        if token and url.startswith("https://raw.githubusercontent.com"):
            return {"Authorization": f"Bearer {token}"}
        return None

    def fetch() -> KeyTable:
        logger.info("Fetching depot key table from %s (%d sources)", key_source, len(urls))
        table = race(
            session,
            urls,
            parse_json_object,
            source=f"depotkeys/{key_source}",
            timeout=network.BULK_TIMEOUT,
            headers=headers,
        )
        logger.info("Depot key table has %d keys", len(table))
        return table

    return fetch


def get_manifests(session: requests.Session, app_id: str) -> ManifestMap:
    data = network.get_json(session, f"{MANIFEST_API}/{app_id}", source="manifest api")
    if not isinstance(data, dict) or data.get("status") != "success":
        raise SourceEmptyError("manifest api", f"request for {app_id} failed")
    try:
        depots = data["data"][app_id]["depots"]
    except (KeyError, TypeError):
        raise SourceEmptyError("manifest api", f"no depots for {app_id}") from None
    if not isinstance(depots, dict):
        raise SourceEmptyError("manifest api", f"no depots for {app_id}")

    manifests: ManifestMap = {}
    for depot_id, depot in depots.items():
        # skip "branches" and friends
        if not is_app_id(depot_id):
            continue
        try:
            gid = depot["manifests"]["public"]["gid"]
        except (KeyError, TypeError):
            continue
        if isinstance(gid, str) and gid:
            manifests[depot_id] = gid
    logger.info("Manifest api: %d depots for %s", len(manifests), app_id)
    return manifests


def _dlc_from(app: dict[str, Any]) -> set[str]:
    dlc_ids: set[str] = set()
    for section in ("common", "extended"):
        listing = (app.get(section) or {}).get("listofdlc")
        if isinstance(listing, str):
            dlc_ids.update(re.findall(r"\d+", listing))
    depots = app.get("depots")
    if isinstance(depots, dict) and isinstance(depots.get("dlc"), dict):
        dlc_ids.update(depots["dlc"])
    if isinstance(app.get("dlc"), dict):
        dlc_ids.update(app["dlc"])
    return {id for id in dlc_ids if is_app_id(id)}


def get_dlc_ids(session: requests.Session, app_id: str) -> list[str]:
    """DLC ids of an app, best-effort: any failure yields an empty list."""
    try:
        data = network.get_json(session, f"{STEAMCMD_API}/{app_id}", source="steamcmd api")
        app = data["data"][app_id]
        dlc_ids = numeric_sorted(_dlc_from(app))
    except (requests.RequestException, SourceError, KeyError, TypeError, AttributeError) as ex:
        logger.debug("No DLC list for %s: %s", app_id, ex)
        return []
    logger.debug("%s has %d DLC", app_id, len(dlc_ids))
    return dlc_ids


class HubResolver:
    def __init__(self, session: requests.Session, cache: KeyTableCache, settings: HubSettings):
        self.session = session
        self.cache = cache
        self.settings = settings

    @property
    def label(self) -> str:
        return f"ManifestHub ({self.settings.depot_key_source})"

    def _key_table(self, force_refresh: bool = False) -> KeyTable | None:
        try:
            table, _ = self.cache.get(force_refresh)
        except (requests.RequestException, SourceError) as ex:
            logger.warning("[ManifestHub] depot key table unavailable: %s", ex)
            return None
        return table

    def resolve(self, app_id: str) -> ResolutionResult:
        if not self.settings.enabled:
            return Empty(app_id, "ManifestHub is disabled")

        logger.info("[ManifestHub] resolving %s", app_id)
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="hub") as executor:
            table_future = executor.submit(self._key_table)
            manifests_future = executor.submit(get_manifests, self.session, app_id)
            dlc_future = executor.submit(get_dlc_ids, self.session, app_id) if self.settings.include_dlc else None

            manifest_error = None
            try:
                manifests = manifests_future.result()
            except SourceEmptyError as ex:
                logger.debug("[ManifestHub] %s", ex)
                manifests = {}
            except (requests.RequestException, SourceError) as ex:
                logger.warning("[ManifestHub] no manifests for %s: %s", app_id, ex)
                manifests, manifest_error = {}, ex
            table = table_future.result()
            dlc_ids = tuple(dlc_future.result()) if dlc_future else ()

        required = [app_id, *numeric_sorted(manifests)]
        depot_keys: DepotKeys = dict_intersect(table or {}, required)
        if missing := [id for id in required if id not in depot_keys]:
            logger.info("[ManifestHub] %d depot keys missing, refreshing key table", len(missing))
            if (refreshed := self._key_table(force_refresh=True)) is not None:
                depot_keys |= dict_intersect(refreshed, missing)

        logger.info(
            "[ManifestHub] %s: %d depots, %d keys, %d DLC", app_id, len(manifests), len(depot_keys), len(dlc_ids)
        )
        if not manifests and not depot_keys:
            if manifest_error is not None and table is None:
                return Failed(app_id, f"ManifestHub unavailable: {manifest_error}")
            return Empty(app_id, f"No depots or keys for {app_id} on ManifestHub")
        return Resolved(app_id, depot_keys, manifests, self.label, dlc_ids=dlc_ids)

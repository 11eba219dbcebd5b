import logging
from typing import Any

import requests
import requests.adapters
from requests.adapters import HTTPAdapter

from depotpack.errors import SourceError

__all__ = ["DEFAULT_TIMEOUT", "BULK_TIMEOUT", "initialize_session", "github_headers", "get", "get_json"]

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
BULK_TIMEOUT = 60.0

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json, text/plain, */*",
}


def initialize_session(retries: int = 2) -> requests.Session:
    # Only connection-level retries: fallback to the next source beats waiting on this one
    retry_strategy = requests.adapters.Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session = requests.Session()
    session.headers.update(DEFAULT_HEADERS)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def github_headers(token: str | None) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github.v3+json"}
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


def get(
    session: requests.Session,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> requests.Response:
    logger.debug("GET %s", url)
    return session.get(url, headers=headers, params=params, timeout=timeout)


def get_json(
    session: requests.Session,
    url: str,
    *,
    source: str,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """GET and decode JSON; non-200 and undecodable bodies raise ``SourceError``."""
    response = get(session, url, headers=headers, params=params, timeout=timeout)
    if response.status_code != 200:
        raise SourceError(source, f"HTTP {response.status_code} from {url}")
    try:
        return response.json()
    except ValueError as ex:
        raise SourceError(source, f"invalid JSON from {url}") from ex

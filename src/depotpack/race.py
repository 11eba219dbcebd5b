"""First-valid-response-wins fetching across equivalent mirrors.

Every candidate runs in its own thread and shares one cancellation event.
Losers notice the event at their next I/O boundary (before the request, and
between body chunks), close their response and give up.
"""

import json
import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

import requests

from depotpack.errors import RaceError, SourceError
from depotpack.network import DEFAULT_TIMEOUT

__all__ = ["Cancelled", "race", "parse_json_object"]

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class Cancelled(Exception):
    pass


def parse_json_object(body: bytes) -> dict[str, Any] | None:
    data = json.loads(body)
    if isinstance(data, dict) and data:
        return data
    return None


def _fetch_candidate[T](
    session: requests.Session,
    url: str,
    parse: Callable[[bytes], T | None],
    cancel: threading.Event,
    timeout: float,
    headers: dict[str, str] | None,
) -> T:
    if cancel.is_set():
        raise Cancelled(url)
    deadline = time.monotonic() + timeout
    with session.get(url, headers=headers, timeout=timeout, stream=True) as response:
        if response.status_code != 200:
            raise SourceError(url, f"HTTP {response.status_code}")
        body = bytearray()
        for chunk in response.iter_content(CHUNK_SIZE):
            if cancel.is_set():
                raise Cancelled(url)
            if time.monotonic() > deadline:
                raise TimeoutError(f"{url}: no complete response within {timeout}s")
            body += chunk
    if cancel.is_set():
        raise Cancelled(url)
    value = parse(bytes(body))
    if not value:
        raise SourceError(url, "empty payload")
    return value


def race[T](
    session: requests.Session,
    urls: Sequence[str],
    parse: Callable[[bytes], T | None],
    *,
    source: str,
    timeout: float = DEFAULT_TIMEOUT,
    headers: Callable[[str], dict[str, str] | None] | None = None,
) -> T:
    """Fetch all ``urls`` concurrently, return the first body ``parse`` accepts.

    ``parse`` returning a falsy value or raising ``ValueError`` marks that
    candidate as failed. Raises ``RaceError`` once every candidate failed.
    """
    if not urls:
        raise RaceError(source, 0)

    cancel = threading.Event()
    started = time.monotonic()
    executor = ThreadPoolExecutor(max_workers=len(urls), thread_name_prefix="race")
    futures = {
        executor.submit(
            _fetch_candidate,
            session,
            url,
            parse,
            cancel,
            timeout,
            headers(url) if headers else None,
        ): index
        for index, url in enumerate(urls)
    }
    try:
        for future in as_completed(futures):
            index = futures[future]
            try:
                value = future.result()
            except Cancelled:
                continue
            except (requests.RequestException, SourceError, TimeoutError, ValueError) as ex:
                logger.debug("[%s #%d] %s", source, index, ex)
                continue
            cancel.set()
            logger.info(
                "[%s #%d] won after %.1fs: %s", source, index, time.monotonic() - started, urls[index]
            )
            return value
    finally:
        cancel.set()
        executor.shutdown(wait=False, cancel_futures=True)
    raise RaceError(source, len(urls))

import contextlib
import logging
import re
import shutil
import threading
import time
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, overload

logger = logging.getLogger(__name__)

APP_ID_PATTERN = re.compile(r"\d+")
MANIFEST_SUFFIX = ".manifest"
KEY_FILE_NAMES = frozenset({"key.vdf", "config.vdf"})
_MANIFEST_NAME = re.compile(r"(?P<depot_id>\d+)_(?P<gid>\d+)")


@overload
def dict_intersect[K, V](dict1: dict[K, V], e2: dict[K, Any]) -> dict[K, V]: ...
@overload
def dict_intersect[K, V](dict1: dict[K, V], e2: Iterable[K]) -> dict[K, V]: ...


def dict_intersect[K, V](dict1: dict[K, V], e2: dict[K, Any] | Iterable[K]) -> dict[K, V]:
    """Entries of dict1 whose key is in e2, in e2's order."""
    return {key: dict1[key] for key in e2 if key in dict1}


def is_app_id(value: str) -> bool:
    return APP_ID_PATTERN.fullmatch(value) is not None


def numeric_sorted(ids: Iterable[str]) -> list[str]:
    # "10" after "2"
    return sorted(ids, key=int)


def parse_manifest_name(name: str) -> tuple[str, str] | None:
    """``"{depot}_{gid}.manifest"`` -> ``(depot, gid)``."""
    name = name.replace("\\", "/").rsplit("/", 1)[-1]
    if not name.lower().endswith(MANIFEST_SUFFIX):
        return None
    if not (match := _MANIFEST_NAME.fullmatch(name[: -len(MANIFEST_SUFFIX)])):
        return None
    return match.group("depot_id"), match.group("gid")


def is_key_file(name: str) -> bool:
    return name.replace("\\", "/").rsplit("/", 1)[-1].lower() in KEY_FILE_NAMES


def collect_files(directory: Path) -> list[Path]:
    return sorted(path for path in directory.rglob("*") if path.is_file())


def remove_tree(path: Path):
    try:
        shutil.rmtree(path)
        logger.debug("Removed %s", path)
    except FileNotFoundError:
        pass
    except OSError as ex:
        logger.warning("Failed to remove %s: %s", path, ex)


@contextlib.contextmanager
def work_dir(root: Path, app_id: str, grace: float = 0) -> Iterator[Path]:
    """Per-request scratch directory, removed on exit (after ``grace`` seconds, in the background)."""
    path = root / f"download_{app_id}_{time.time_ns()}"
    path.mkdir(parents=True)
    try:
        yield path
    finally:
        if grace > 0:
            timer = threading.Timer(grace, remove_tree, (path,))
            timer.daemon = True
            timer.start()
        else:
            remove_tree(path)


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024 * 1024):.2f} MB"

import errno
import logging
import os
import re
import shutil
from collections.abc import Sequence

import requests

from depotpack.args import parse_args
from depotpack.config import load_config
from depotpack.errors import InvalidAppIdError, SourceError
from depotpack.orchestrator import Orchestrator
from depotpack.types import Resolved
from depotpack.utils import format_size, is_app_id, work_dir

__all__ = ["main", "Orchestrator"]

PREVIEW = 10
UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def _age(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    return f"{seconds / 3600:.1f}h"


def cache_command(orchestrator: Orchestrator, action: str) -> int:
    match action:
        case "clear":
            orchestrator.clear_cache()
            print("Depot key cache cleared")
        case "refresh":
            try:
                count = orchestrator.refresh_cache()
            except (requests.RequestException, SourceError) as ex:
                print(f"Failed to refresh depot key cache: {ex}")
                return 3
            print(f"Depot key cache refreshed, {count} keys")
        case _:
            status = orchestrator.cache_status()
            print(f"memory: {status.memory_count} keys, age {_age(status.memory_age)}")
            print(f"file:   {status.file_count} keys, age {_age(status.file_age)}")
    return 0


def info_command(orchestrator: Orchestrator, app_id: str) -> int:
    result = orchestrator.info(app_id)
    if not isinstance(result, Resolved):
        print(f"Lookup failed: {result.reason}")
        return 3

    if result.game_name:
        print(f"Game: {result.game_name}")
    print(f"Source: {result.label}")
    print(f"Depot keys: {len(result.depot_keys)}")
    for depot, key in list(result.depot_keys.items())[:PREVIEW]:
        print(f"  {depot} -> {key[:16]}...")
    if len(result.depot_keys) > PREVIEW:
        print(f"  ... {len(result.depot_keys) - PREVIEW} more")
    print(f"Manifests: {len(result.manifests)}")
    for depot, gid in list(result.manifests.items())[:PREVIEW]:
        print(f"  {depot} -> {gid}")
    if len(result.manifests) > PREVIEW:
        print(f"  ... {len(result.manifests) - PREVIEW} more")
    if result.dlc_ids:
        print(f"DLC: {len(result.dlc_ids)}")
        print("  " + ", ".join(result.dlc_ids))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose or config.debug else logging.INFO,
        format="[%(name)s] %(levelname)s: %(message)s",
    )

    if not args.out_dir.is_dir():
        print(OSError(errno.ENOENT, os.strerror(errno.ENOENT), str(args.out_dir)))
        return 1
    if args.app_id is not None and not is_app_id(args.app_id):
        print(InvalidAppIdError(args.app_id))
        return 2

    with Orchestrator(config, args.data_dir) as orchestrator:
        if args.cache:
            return cache_command(orchestrator, args.cache)
        assert args.app_id is not None

        if args.info:
            return info_command(orchestrator, args.app_id)

        orchestrator.temp_root.mkdir(parents=True, exist_ok=True)
        with work_dir(orchestrator.temp_root, args.app_id) as directory:
            result = orchestrator.package(args.app_id, directory)
            if not result.success or result.archive_path is None:
                print(f"Failed: {result.error}")
                # a source label means data was found but could not be packaged
                return 4 if result.source_label else 3

            game_name = result.game_name or f"AppID {args.app_id}"
            file_name = f"{UNSAFE_FILENAME_CHARS.sub('_', game_name)} - {args.app_id}.zip"
            target = args.out_dir / file_name
            try:
                shutil.copyfile(result.archive_path, target)
            except OSError as ex:
                print(f"Failed to write output to {args.out_dir.absolute()}:")
                print(ex)
                return 4

    print(f"Game: {game_name}")
    print(f"AppID: {args.app_id}")
    print(f"Size: {format_size(target.stat().st_size)}")
    print(f"Source: {result.source_label}")
    if result.key_count:
        print(f"Depot keys: {result.key_count}")
    if result.manifest_count:
        print(f"Manifests: {result.manifest_count}")
    if result.dlc_count:
        print(f"DLC: {result.dlc_count}")
    print(f'Written "{target}"')
    return 0

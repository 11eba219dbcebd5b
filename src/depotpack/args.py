import argparse
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

__all__ = ["Args", "parse_args"]

_parser = argparse.ArgumentParser(
    "depotpack",
    description="Collect depot keys and manifests for a Steam app and pack them with an unlock script",
)

_parser.add_argument(
    "app_id",
    metavar="APPID",
    nargs="?",
    help="Numeric Steam app id",
)

_parser.add_argument(
    "-c",
    "--config",
    metavar="PATH",
    help="JSON configuration file. Defaults are used when it does not exist",
    default="depotpack.json",
    type=Path,
)

_parser.add_argument(
    "-d",
    "--data-dir",
    metavar="PATH",
    help="Directory holding the key table cache and temporary working directories",
    default=".",
    type=Path,
)

_parser.add_argument(
    "-o",
    "--out-dir",
    metavar="PATH",
    help="Directory where the .zip package will be written to",
    default=".",
    type=Path,
)

_parser.add_argument(
    "-i",
    "--info",
    help="Only show keys, manifests and DLC known to ManifestHub. Nothing is packaged",
    action="store_true",
)

_parser.add_argument(
    "--cache",
    choices=["status", "clear", "refresh"],
    help="Inspect, clear or refresh the depot key table cache instead of packaging",
)

_parser.add_argument(
    "-v",
    "--verbose",
    help="Debug logging",
    action="store_true",
)


@dataclass
class Args:
    app_id: str | None
    config: Path
    data_dir: Path
    out_dir: Path
    info: bool
    cache: str | None
    verbose: bool


def parse_args(argv: Sequence[str] | None = None) -> Args:
    args = cast(Args, _parser.parse_args(argv))
    if args.app_id is None and args.cache is None:
        _parser.error("APPID is required unless --cache is given")
    return args

"""Depot keys in ``key.vdf`` / ``config.vdf`` files.

Reading is a line scanner rather than a full vdf parse: repositories ship
fragments and hand-edited files that ``vdf.loads`` rejects, and the only
thing needed is ``depots -> <id> -> DecryptionKey``.
"""

import re
from typing import NamedTuple

import vdf

from depotpack.types import DepotKeys

__all__ = ["Outside", "InDepots", "KeyScanner", "parse_depot_keys", "dump_depot_keys"]

_DEPOTS_MARKER = '"depots"'
_DEPOT_ID = re.compile(r'"(\d+)"')
_DECRYPTION_KEY = re.compile(r'"DecryptionKey"\s+"([A-Fa-f0-9]+)"', re.IGNORECASE)


class Outside(NamedTuple):
    pass


class InDepots(NamedTuple):
    depot_id: str | None = None


type ScanState = Outside | InDepots


class KeyScanner:
    state: ScanState
    keys: DepotKeys

    def __init__(self):
        self.state = Outside()
        self.keys = {}

    def feed(self, line: str):
        line = line.strip()
        match self.state:
            case Outside():
                if line.lower() == _DEPOTS_MARKER:
                    self.state = InDepots()
            case InDepots(depot_id):
                if match := _DEPOT_ID.fullmatch(line):
                    self.state = InDepots(match.group(1))
                elif depot_id is not None and (match := _DECRYPTION_KEY.fullmatch(line)):
                    self.keys[depot_id] = match.group(1)


def parse_depot_keys(text: str) -> DepotKeys:
    scanner = KeyScanner()
    for line in text.splitlines():
        scanner.feed(line)
    return scanner.keys


def dump_depot_keys(depot_keys: DepotKeys) -> str:
    return vdf.dumps(
        {"depots": {depot: {"DecryptionKey": key} for depot, key in depot_keys.items()}},
        pretty=True,
    )

import logging
import re
from collections.abc import Iterable
from typing import override

from luaparser import ast

from depotpack.types import DepotKeys, ManifestMap
from depotpack.utils import numeric_sorted

__all__ = ["generate", "parse_keys", "scan_keys"]

logger = logging.getLogger(__name__)


def generate(
    app_id: str,
    depot_keys: DepotKeys,
    manifests: ManifestMap,
    dlc_ids: Iterable[str] = (),
    set_manifest_id: bool = True,
) -> str:
    """Render the unlock script.

    One ``addappid`` per id (app, then depots in numeric order, then DLC),
    keyed where a key is known except for DLC, followed by optional
    ``setManifestid`` pins.
    """
    lines: list[str] = []
    seen: set[str] = set()

    def add(id: str, keyed: bool = True):
        if id in seen:
            return
        seen.add(id)
        if keyed and (key := depot_keys.get(id)):
            lines.append(f'addappid({id}, 1, "{key}")')
        else:
            lines.append(f"addappid({id}, 1)")

    add(app_id)
    depot_ids = numeric_sorted(manifests)
    for depot_id in depot_ids:
        add(depot_id)
    for dlc_id in dlc_ids:
        add(dlc_id, keyed=False)

    if set_manifest_id:
        for depot_id in depot_ids:
            if manifest_id := manifests[depot_id]:
                lines.append(f'setManifestid({depot_id}, "{manifest_id}")')

    return "\n".join(lines)


class CallVisitor(ast.ASTVisitor):
    depots: DepotKeys

    @override
    def __init__(self):
        self.depots = {}

    def visit_Call(self, node: ast.Call):
        if not (isinstance(node.func, ast.Name) and node.func.id == "addappid"):
            return
        if len(node.args) != 3:
            return
        depot, _, key = node.args
        if not (isinstance(depot, ast.Number) and isinstance(key, ast.String)):
            return
        value = key.s.decode() if isinstance(key.s, bytes) else key.s
        self.depots[str(depot.n)] = value


def parse_keys(src: str) -> DepotKeys:
    """Depot keys from ``addappid(depot, 1, "key")`` calls; raises ``ast.SyntaxException``."""
    tree = ast.parse(src)
    call_visitor = CallVisitor()
    call_visitor.visit(tree)
    logger.debug("Parsed %d depot keys from lua", len(call_visitor.depots))
    return call_visitor.depots


_KEY_LINE = re.compile(r'addappid\(\s*(\d+)\s*,\s*1\s*,\s*"([^"]+)"\s*\)')


def scan_keys(src: str) -> DepotKeys:
    """Line by line ``addappid(depot, 1, "key")`` matches, for scripts luaparser rejects."""
    depots: DepotKeys = {}
    for line in src.splitlines():
        for depot, key in _KEY_LINE.findall(line):
            depots[depot] = key
    return depots

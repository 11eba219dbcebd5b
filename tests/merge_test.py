from depotpack.merge import can_merge, merge
from depotpack.types import ArchiveEntry, Empty, Resolved

HUB = Resolved("730", {}, {"731": "111", "732": "222"}, "ManifestHub (SAC)", dlc_ids=("740",))
REPO = Resolved(
    "730",
    {"731": "aa"},
    {"731": "999"},
    "owner/repo",
    artifacts=(ArchiveEntry("731_999.manifest", b"m"),),
    archive=b"PK",
)


def test_merge_takes_keys_from_later_and_manifests_from_hub():
    assert can_merge(HUB, REPO)
    merged = merge(HUB, REPO)
    assert merged.depot_keys == REPO.depot_keys
    assert merged.manifests == HUB.manifests
    assert merged.label == "ManifestHub (SAC) + owner/repo"
    assert merged.dlc_ids == ("740",)
    assert merged.artifacts == REPO.artifacts
    assert merged.archive is None


def test_no_merge_returns_later_untouched():
    keyless = REPO._replace(depot_keys={})
    assert merge(HUB, keyless) is keyless
    assert merge(Empty("730", "nothing"), REPO) is REPO
    assert merge(HUB._replace(depot_keys={"731": "bb"}), REPO) is REPO
    assert merge(HUB._replace(manifests={}), REPO) is REPO

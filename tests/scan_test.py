from depotpack import lua
from depotpack.scan import Findings

from conftest import KEY_VDF, make_zip


def test_lua_with_byte_order_mark():
    findings = Findings.from_archive(make_zip({"730/730.lua": b'\xef\xbb\xbfaddappid(731, 1, "aa11")'}))
    assert findings.depot_keys == {"731": "aa11"}


def test_partly_broken_lua_keeps_good_lines():
    src = b'addappid(730)\naddappid(731, 1, "aa11")\naddappid(732, 1, "bb22"\naddappid(733,1,"cc33")'
    findings = Findings()
    findings.add("730.lua", src)
    assert findings.depot_keys == {"731": "aa11", "733": "cc33"}


def test_scan_keys():
    assert lua.scan_keys('addappid(731, 1, "aa")  addappid(732,1,"bb")\naddappid(733, 0, "cc")') == {
        "731": "aa",
        "732": "bb",
    }


def test_key_file_with_byte_order_mark(tmp_path):
    (tmp_path / "key.vdf").write_bytes(b"\xef\xbb\xbf" + KEY_VDF)
    assert Findings.from_dir(tmp_path).depot_keys == {"731": "aabbccdd"}


def test_duplicate_manifest_names_kept_once():
    findings = Findings.from_archive(
        make_zip({"a/731_111.manifest": b"first", "b/731_111.manifest": b"second", "b/732_222.manifest": b"x"})
    )
    assert [entry.path for entry in findings.manifest_files] == ["731_111.manifest", "732_222.manifest"]
    assert findings.manifest_files[0].content == b"first"
    assert findings.manifests == {"731": "111", "732": "222"}

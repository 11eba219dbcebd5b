import requests

from depotpack import mirrors
from depotpack.types import Empty, Failed, Resolved, SourceConfig, SourceKind

from conftest import FakeResponse, FakeSession, make_zip

APP = "730"
ZIP = SourceConfig("zipmirror", True, SourceKind.ZIP, "https://zip.example", "Zip Mirror")
KV = SourceConfig("kv", True, SourceKind.KEY_VALUE, "https://kv.example/v1/info")
SESSION = SourceConfig("session", True, SourceKind.SESSION, "https://session.example/api")


def test_zip_mirror(tmp_path):
    bundle = make_zip(
        {
            "730/730.lua": b'addappid(730, 1, "00ff")\naddappid(731, 1, "aa11")',
            "730/731_111.manifest": b"m",
        }
    )
    session = FakeSession({"https://zip.example/730.zip": FakeResponse(200, bundle)})
    result = mirrors.ZipMirror(session).resolve(ZIP, APP, tmp_path)
    assert isinstance(result, Resolved)
    assert result.label == "Zip Mirror"
    assert result.depot_keys == {"730": "00ff", "731": "aa11"}
    assert result.manifests == {"731": "111"}
    assert [entry.path for entry in result.artifacts] == ["731_111.manifest"]
    assert (tmp_path / "730_zipmirror" / "730" / "731_111.manifest").is_file()


def test_zip_mirror_missing(tmp_path):
    assert isinstance(mirrors.ZipMirror(FakeSession()).resolve(ZIP, APP, tmp_path), Empty)


def test_key_value_mirror(tmp_path):
    session = FakeSession(
        {
            "https://kv.example/v1/info/730": FakeResponse.of_json(
                {
                    "data": {
                        APP: {
                            "depots": {
                                "731": {"manifests": {"public": {"gid": "111"}}},
                                "732": {"manifests": {"public": "222"}},
                                "branches": {},
                            }
                        }
                    }
                }
            )
        }
    )
    result = mirrors.KeyValueMirror(session).resolve(KV, APP, tmp_path)
    assert isinstance(result, Resolved)
    assert result.manifests == {"731": "111", "732": "222"}
    assert result.artifacts[0] == mirrors.placeholder_manifest("731", "111")
    assert result.artifacts[0].content == b"# Depot: 731\n# Manifest: 111\n"


def test_session_mirror_skips_failed_depots(tmp_path):
    base = "https://session.example/api"
    session = FakeSession(
        {
            f"{base}/get_session_token": FakeResponse.of_json({"session_token": "t"}),
            f"{base}/get_depots?appid=730&session_token=t": FakeResponse.of_json(
                {"depots": [{"depot_id": 731, "manifest_id": "111"}, {"depot_id": "732", "manifest_id": "222"}]}
            ),
            f"{base}/download_manifest?depot_id=731&manifest_id=111&session_token=t": FakeResponse(200, b"m1"),
            f"{base}/download_manifest?depot_id=732&manifest_id=222&session_token=t": FakeResponse(500),
        }
    )
    result = mirrors.SessionMirror(session).resolve(SESSION, APP, tmp_path)
    assert isinstance(result, Resolved)
    assert result.manifests == {"731": "111"}
    assert [entry.path for entry in result.artifacts] == ["731_111.manifest"]


def test_session_mirror_without_token(tmp_path):
    session = FakeSession({"https://session.example/api/get_session_token": FakeResponse.of_json({})})
    assert isinstance(mirrors.SessionMirror(session).resolve(SESSION, APP, tmp_path), Failed)


def test_resolver_stops_at_first_hit(tmp_path):
    later = ZIP._replace(identifier="later", base_location="https://later.example")
    session = FakeSession(
        {
            "https://zip.example/730.zip": requests.ConnectionError("refused"),
            "https://kv.example/v1/info/730": FakeResponse.of_json(
                {"depots": {"731": {"manifests": {"public": "111"}}}}
            ),
        }
    )
    resolver = mirrors.MirrorResolver(session, (ZIP, KV, later, SESSION._replace(enabled=False)))
    result = resolver.resolve(APP, tmp_path)
    assert isinstance(result, Resolved)
    assert result.label == "kv"
    assert not any(call.startswith("https://later.example") for call in session.calls)


def test_resolver_nothing_found(tmp_path):
    result = mirrors.MirrorResolver(FakeSession(), (ZIP, KV)).resolve(APP, tmp_path)
    # 404 everywhere: the kv api counts as unreachable, the zip mirror as empty
    assert isinstance(result, Failed)
    assert mirrors.MirrorResolver(FakeSession(), ()).resolve(APP, tmp_path) == Empty(APP, "No mirrors enabled")


def test_malformed_key_value_answer_is_empty(tmp_path):
    session = FakeSession(
        {
            "https://kv.example/v1/info/730": FakeResponse.of_json(
                {"depots": {"731": {"manifests": ["x"]}, "732": {"manifests": {"public": {"gid": ["y"]}}}}}
            )
        }
    )
    result = mirrors.MirrorResolver(session, (KV,)).resolve(APP, tmp_path)
    assert result == Empty(APP, f"{APP} not found on any mirror")
    assert mirrors._depot_manifests({"data": {APP: ["not", "a", "dict"]}}, APP) == {}


def test_malformed_session_depots_is_empty(tmp_path):
    base = "https://session.example/api"
    session = FakeSession(
        {
            f"{base}/get_session_token": FakeResponse.of_json({"session_token": "t"}),
            f"{base}/get_depots?appid=730&session_token=t": FakeResponse.of_json({"depots": 5}),
        }
    )
    result = mirrors.MirrorResolver(session, (SESSION,)).resolve(APP, tmp_path)
    assert result == Empty(APP, f"{APP} not found on any mirror")


def test_session_depot_entries_of_wrong_shape_skipped(tmp_path):
    base = "https://session.example/api"
    session = FakeSession(
        {
            f"{base}/get_session_token": FakeResponse.of_json({"session_token": "t"}),
            f"{base}/get_depots?appid=730&session_token=t": FakeResponse.of_json(
                {"depots": ["731", {"depot_id": {"x": 1}, "manifest_id": "1"}]}
            ),
        }
    )
    result = mirrors.SessionMirror(session).resolve(SESSION, APP, tmp_path)
    assert isinstance(result, Empty)
    assert not any("download_manifest" in call for call in session.calls)

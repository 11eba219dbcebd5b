from depotpack import keyfile
from depotpack.keyfile import InDepots, KeyScanner, Outside

from conftest import KEY_VDF


def test_scanner_states():
    scanner = KeyScanner()
    assert scanner.state == Outside()
    scanner.feed('  "Depots"  ')
    assert scanner.state == InDepots()
    scanner.feed('"228981"')
    assert scanner.state == InDepots("228981")
    scanner.feed('\t"DecryptionKey"\t\t"ABCdef01"')
    assert scanner.keys == {"228981": "ABCdef01"}


def test_key_outside_depots_ignored():
    text = '"731"\n"DecryptionKey" "aa"\n"depots"\n"DecryptionKey" "bb"\n"732"\n"decryptionkey" "cc"'
    assert keyfile.parse_depot_keys(text) == {"732": "cc"}


def test_non_hex_key_ignored():
    assert keyfile.parse_depot_keys('"depots"\n"731"\n"DecryptionKey" "not-hex"') == {}


def test_parse_key_vdf():
    assert keyfile.parse_depot_keys(KEY_VDF.decode()) == {"731": "aabbccdd"}


def test_dump_parses_back():
    keys = {"731": "aa01", "732": "bb02"}
    assert keyfile.parse_depot_keys(keyfile.dump_depot_keys(keys)) == keys

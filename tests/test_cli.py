"""Tests for the command line front end."""

import io

import pytest
from lxml import etree

import hivexml.api
from hivexml import __version__
from hivexml.cli import EXIT_FAILURE, EXIT_OK, main
from hivexml.config import ValueType
from hivexml.testing import MemoryHive


@pytest.fixture
def memory_hive(monkeypatch):
    """Serve a MemoryHive for any path passed on the command line."""
    hive = MemoryHive("Root")
    hive.add_value(hive.root, "hello", ValueType.STRING, "world")
    opened = []

    def fake_open_hive(path, debug=False):
        opened.append((path, debug))
        return hive.adapter()

    monkeypatch.setattr(hivexml.api, "open_hive", fake_open_hive)
    hive.opened = opened
    return hive


def test_missing_file_name(capsys):
    assert main([]) == EXIT_FAILURE
    err = capsys.readouterr().err
    assert "hivexml: missing name of input file" in err
    assert "usage:" in err


def test_unknown_option():
    with pytest.raises(SystemExit) as excinfo:
        main(["--bogus", "hive"])
    assert excinfo.value.code == 2


def test_version(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--version"])
    assert excinfo.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_open_failure(tmp_path, capsys):
    missing = tmp_path / "missing"
    stdout = io.BytesIO()

    assert main([str(missing)], stdout=stdout) == EXIT_FAILURE

    err = capsys.readouterr().err.strip().splitlines()
    assert len(err) == 1
    assert err[0].startswith(f"hivexml: {missing}: ")
    assert stdout.getvalue() == b""


def test_converts_to_stdout(memory_hive):
    stdout = io.BytesIO()

    assert main(["SYSTEM"], stdout=stdout) == EXIT_OK

    document = etree.fromstring(stdout.getvalue())
    assert document.find("node").get("name") == "Root"
    assert memory_hive.opened == [("SYSTEM", False)]


def test_debug_flag_reaches_the_engine(memory_hive):
    assert main(["-d", "SYSTEM"], stdout=io.BytesIO()) == EXIT_OK
    assert memory_hive.opened == [("SYSTEM", True)]


def test_malformed_entry_fails_without_keep_going(memory_hive, capsys):
    memory_hive.add_bad_child(memory_hive.root, "subkey list is corrupt")

    assert main(["SYSTEM"], stdout=io.BytesIO()) == EXIT_FAILURE

    err = capsys.readouterr().err
    assert err.startswith("hivexml: SYSTEM: ")
    assert "subkey list is corrupt" in err


def test_keep_going_skips_malformed_entries(memory_hive, capsys):
    memory_hive.add_bad_child(memory_hive.root, "subkey list is corrupt")
    stdout = io.BytesIO()

    assert main(["-k", "SYSTEM"], stdout=stdout) == EXIT_OK

    assert etree.fromstring(stdout.getvalue()).find("node") is not None
    assert "WARNING: get_children failed" in capsys.readouterr().err


def test_close_failure(memory_hive, capsys):
    memory_hive.fail_close = True

    assert main(["SYSTEM"], stdout=io.BytesIO()) == EXIT_FAILURE
    assert capsys.readouterr().err.startswith("hivexml: close failed")


def test_invariant_violation(memory_hive, capsys):
    memory_hive.add_value(memory_hive.root, "x", ValueType.QWORD, raw=b"\x00" * 8, decoded=False)

    assert main(["SYSTEM"], stdout=io.BytesIO()) == EXIT_FAILURE
    assert "internal error" in capsys.readouterr().err

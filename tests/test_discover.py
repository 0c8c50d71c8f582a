import json
import os
from pathlib import Path

import pytest

from kegcellar.discover import InstalledKeg, discover_installed_kegs, find_installed_keg
from kegcellar.link import relative_from_to
from kegcellar.materialize import atomic_symlink_replace
from kegcellar.receipt import (
    InstallReason,
    InstallReceipt,
    ReceiptSource,
    ReceiptSourceVersions,
    write_receipt,
)


def _receipt(version: str, on_request: bool) -> InstallReceipt:
    return InstallReceipt.for_bottle(
        InstallReason.ON_REQUEST if on_request else InstallReason.AS_DEPENDENCY,
        1_700_000_000.0,
        [],
        ReceiptSource(
            path="",
            tap="homebrew/core",
            spec="stable",
            versions=ReceiptSourceVersions(stable=version, head=None, version_scheme=0),
        ),
    )


def _setup_keg(cellar: Path, opt_dir: Path, name: str, version: str, on_request: bool) -> Path:
    keg_path = cellar / name / version
    keg_path.mkdir(parents=True)
    write_receipt(keg_path, _receipt(version, on_request))
    opt_dir.mkdir(parents=True, exist_ok=True)
    atomic_symlink_replace(relative_from_to(opt_dir, keg_path), opt_dir / name)
    return keg_path


@pytest.fixture
def dirs(tmp_path):
    return tmp_path / "Cellar", tmp_path / "opt"


def test_find_installed_keg_returns_keg_when_present(dirs):
    cellar, opt_dir = dirs
    _setup_keg(cellar, opt_dir, "jq", "1.7", True)

    keg = find_installed_keg("jq", cellar, opt_dir)
    assert keg == InstalledKeg(name="jq", pkg_version="1.7", installed_on_request=True)


def test_find_installed_keg_returns_none_when_not_installed(dirs):
    cellar, opt_dir = dirs
    cellar.mkdir()
    opt_dir.mkdir()
    assert find_installed_keg("jq", cellar, opt_dir) is None


def test_find_installed_keg_returns_none_when_receipt_missing(dirs):
    cellar, opt_dir = dirs
    keg_path = cellar / "jq" / "1.7"
    keg_path.mkdir(parents=True)
    opt_dir.mkdir()
    atomic_symlink_replace(relative_from_to(opt_dir, keg_path), opt_dir / "jq")

    assert find_installed_keg("jq", cellar, opt_dir) is None


def test_find_installed_keg_reads_dependency_install_reason(dirs):
    cellar, opt_dir = dirs
    _setup_keg(cellar, opt_dir, "oniguruma", "6.9.9", False)

    keg = find_installed_keg("oniguruma", cellar, opt_dir)
    assert keg is not None
    assert keg.installed_on_request is False


def test_find_installed_keg_handles_version_with_revision(dirs):
    cellar, opt_dir = dirs
    _setup_keg(cellar, opt_dir, "openssl@3", "3.4.1_1", True)

    keg = find_installed_keg("openssl@3", cellar, opt_dir)
    assert keg is not None
    assert keg.pkg_version == "3.4.1_1"


def test_find_installed_keg_reads_homebrew_generated_receipt(dirs):
    cellar, opt_dir = dirs
    keg_path = cellar / "tree" / "2.2.1"
    keg_path.mkdir(parents=True)
    homebrew_receipt = {
        "homebrew_version": "4.4.20",
        "used_options": [],
        "unused_options": [],
        "built_as_bottle": True,
        "poured_from_bottle": True,
        "installed_as_dependency": False,
        "installed_on_request": True,
        "changed_files": ["INSTALL_RECEIPT.json"],
        "time": 1_700_000_000,
        "source_modified_time": 1_700_000_000,
        "compiler": "clang",
        "aliases": [],
        "runtime_dependencies": [],
        "source": {
            "path": "@@HOMEBREW_PREFIX@@/Library/Taps/homebrew/homebrew-core/Formula/t/tree.rb",
            "tap": "homebrew/core",
            "tap_git_head": "abc123",
            "spec": "stable",
            "versions": {"stable": "2.2.1", "head": None, "version_scheme": 0},
        },
        "arch": "arm64",
        "built_on": {
            "os": "Macintosh",
            "os_version": "macOS 15.3",
            "cpu_family": "dunno",
            "xcode": "16.2",
            "clt": "16.2.0.0.1.1733547573",
        },
    }
    (keg_path / "INSTALL_RECEIPT.json").write_text(json.dumps(homebrew_receipt, indent=2))
    opt_dir.mkdir()
    atomic_symlink_replace(relative_from_to(opt_dir, keg_path), opt_dir / "tree")

    keg = find_installed_keg("tree", cellar, opt_dir)
    assert keg == InstalledKeg(name="tree", pkg_version="2.2.1", installed_on_request=True)


def test_find_installed_keg_defaults_missing_flag_to_false(dirs):
    cellar, opt_dir = dirs
    keg_path = cellar / "tool" / "1.0"
    keg_path.mkdir(parents=True)
    (keg_path / "INSTALL_RECEIPT.json").write_text("{}")
    opt_dir.mkdir()
    atomic_symlink_replace(relative_from_to(opt_dir, keg_path), opt_dir / "tool")

    keg = find_installed_keg("tool", cellar, opt_dir)
    assert keg == InstalledKeg(name="tool", pkg_version="1.0", installed_on_request=False)


def test_find_installed_keg_accepts_absolute_opt_link_with_matching_keg(dirs):
    cellar, opt_dir = dirs
    keg_path = cellar / "jq" / "1.7"
    keg_path.mkdir(parents=True)
    write_receipt(keg_path, _receipt("1.7", True))
    opt_dir.mkdir()
    atomic_symlink_replace(keg_path, opt_dir / "jq")

    keg = find_installed_keg("jq", cellar, opt_dir)
    assert keg is not None
    assert keg.pkg_version == "1.7"


def test_find_installed_keg_rejects_mismatched_opt_symlink_target(tmp_path, dirs):
    cellar, opt_dir = dirs
    keg_path = cellar / "jq" / "1.7"
    keg_path.mkdir(parents=True)
    write_receipt(keg_path, _receipt("1.7", True))

    hostile_target = tmp_path / "outside" / "other" / "1.7"
    hostile_target.parent.mkdir(parents=True)
    opt_dir.mkdir()
    atomic_symlink_replace(hostile_target, opt_dir / "jq")

    assert find_installed_keg("jq", cellar, opt_dir) is None


def test_find_installed_keg_rejects_opt_link_outside_formula_directory(dirs):
    cellar, opt_dir = dirs
    other_keg = cellar / "other" / "9.9"
    other_keg.mkdir(parents=True)
    write_receipt(other_keg, _receipt("9.9", True))
    opt_dir.mkdir()
    os.symlink("../Cellar/other/9.9", opt_dir / "target")

    assert find_installed_keg("target", cellar, opt_dir) is None


def test_find_installed_keg_rejects_invalid_receipt_json(dirs):
    cellar, opt_dir = dirs
    keg_path = cellar / "jq" / "1.7"
    keg_path.mkdir(parents=True)
    (keg_path / "INSTALL_RECEIPT.json").write_text("{not json")
    opt_dir.mkdir()
    atomic_symlink_replace(relative_from_to(opt_dir, keg_path), opt_dir / "jq")

    with pytest.raises(json.JSONDecodeError):
        find_installed_keg("jq", cellar, opt_dir)


def test_find_installed_keg_raises_when_opt_entry_is_not_a_symlink(dirs):
    cellar, opt_dir = dirs
    opt_dir.mkdir()
    (opt_dir / "jq").write_text("regular file")

    with pytest.raises(OSError):
        find_installed_keg("jq", cellar, opt_dir)


def test_discover_installed_kegs_finds_all(dirs):
    cellar, opt_dir = dirs
    _setup_keg(cellar, opt_dir, "jq", "1.7", True)
    _setup_keg(cellar, opt_dir, "oniguruma", "6.9.9", False)
    _setup_keg(cellar, opt_dir, "ripgrep", "14.1.1", True)

    kegs = discover_installed_kegs(cellar, opt_dir)
    assert [keg.name for keg in kegs] == ["jq", "oniguruma", "ripgrep"]
    assert [keg.installed_on_request for keg in kegs] == [True, False, True]


def test_discover_installed_kegs_returns_empty_when_cellar_missing(tmp_path):
    assert discover_installed_kegs(tmp_path / "nonexistent", tmp_path / "opt") == []


def test_discover_installed_kegs_skips_kegs_without_receipt(dirs):
    cellar, opt_dir = dirs
    _setup_keg(cellar, opt_dir, "jq", "1.7", True)

    broken_keg = cellar / "broken" / "1.0"
    broken_keg.mkdir(parents=True)
    atomic_symlink_replace(relative_from_to(opt_dir, broken_keg), opt_dir / "broken")

    kegs = discover_installed_kegs(cellar, opt_dir)
    assert len(kegs) == 1
    assert kegs[0].name == "jq"


def test_discover_installed_kegs_ignores_plain_files_in_cellar(dirs):
    cellar, opt_dir = dirs
    _setup_keg(cellar, opt_dir, "jq", "1.7", True)
    (cellar / ".DS_Store").write_text("junk")

    kegs = discover_installed_kegs(cellar, opt_dir)
    assert [keg.name for keg in kegs] == ["jq"]
# kegcellar

A library for managing a Homebrew-style Cellar. It puts extracted bottles
into place, writes install receipts, links kegs into a prefix, rewrites
`@@HOMEBREW_*@@` placeholders, finds installed kegs through their `opt/`
symlinks and records installs in a small SQLite database.

It uses only the standard library and is meant for POSIX systems. Patching
Mach-O load commands (`RelocationScope.FULL`) also runs the macOS tools
`otool`, `install_name_tool` and `codesign`.

## Installation

```
pip install kegcellar
```

## Modules

| Module | Contents |
| --- | --- |
| `kegcellar.materialize` | `materialize(source, keg_path, opt_dir, name)` copies an extracted bottle into the keg directory through a temporary sibling directory and points `opt_dir/name` at it with a relative symlink. `atomic_symlink_replace(target, link_path)` creates a symlink under a temporary name and renames it over the old one. `copy_dir_recursive(src, dst)` copies a tree, recreating relative symlinks and refusing absolute ones. |
| `kegcellar.receipt` | `InstallReceipt.for_bottle()` and `InstallReceipt.for_source()` build receipts from an `InstallReason`, a timestamp, a list of `ReceiptDependency` and a `ReceiptSource` (with `ReceiptSourceVersions`). `InstallReceipt.to_dict()` gives the JSON structure; `write_receipt(keg_path, receipt)` writes `INSTALL_RECEIPT.json`. |
| `kegcellar.link` | `link(keg_path, prefix)` creates relative symlinks in the prefix for every file and symlink under the keg's `bin`, `sbin`, `lib`, `include`, `share` and `etc`. `unlink(keg_path, prefix)` removes only links that point into that keg and prunes directories it empties. `relative_from_to(from_dir, to_path)` computes a relative path. |
| `kegcellar.relocate` | `relocate_keg(keg_path, prefix, scope)` and `relocate_keg_with_manifest(...)` replace `@@HOMEBREW_CELLAR@@`, `@@HOMEBREW_PREFIX@@` and `@@HOMEBREW_REPOSITORY@@`. `RelocationManifest.derive(root)` lists the regular files that contain a placeholder. Helpers: `has_placeholder`, `is_macho`, `replace_placeholders`, `parse_load_commands`, `relocate_text_file`. |
| `kegcellar.discover` | `find_installed_keg(name, cellar, opt_dir)` returns an `InstalledKeg` or `None`; `discover_installed_kegs(cellar, opt_dir)` returns all of them sorted by name. An `opt/` link that does not resolve to `Cellar/<name>/<version>` is ignored. |
| `kegcellar.state` | `StateDb.open(path)` opens or creates the database; `insert`, `get`, `list`, `remove` and `close` work on `InstallRecord` rows. `StateDb` is also a context manager. |
| `kegcellar.fsutil` | `make_writable`, `walk_files`, `walk_entries`, `normalize_absolute_path`. |
| `kegcellar.errors` | `CellarError` and its subclasses. |

## Example

```python
from pathlib import Path

from kegcellar.discover import discover_installed_kegs
from kegcellar.link import link
from kegcellar.materialize import materialize
from kegcellar.receipt import (
    InstallReason, InstallReceipt, ReceiptSource, ReceiptSourceVersions, write_receipt,
)
from kegcellar.relocate import RelocationScope, relocate_keg
from kegcellar.state import InstallRecord, StateDb

prefix = Path("/opt/homebrew")
keg = prefix / "Cellar" / "jq" / "1.7"

materialize(Path("/tmp/extracted/jq/1.7"), keg, prefix / "opt", "jq")
relocate_keg(keg, prefix, RelocationScope.TEXT_ONLY)

receipt = InstallReceipt.for_bottle(
    InstallReason.ON_REQUEST,
    1_700_000_000.0,
    [],
    ReceiptSource(
        path="",
        tap="homebrew/core",
        spec="stable",
        versions=ReceiptSourceVersions(stable="1.7"),
    ),
)
write_receipt(keg, receipt)
link(keg, prefix)

for installed in discover_installed_kegs(prefix / "Cellar", prefix / "opt"):
    print(installed.name, installed.pkg_version, installed.installed_on_request)

with StateDb.open(prefix / "var" / "kegcellar" / "state.db") as db:
    db.insert(InstallRecord("jq", "1.7", 0, True, "2024-01-15T12:00:00Z"))
    print(db.list())
```

## Errors

- `LinkCollisionError` (a `CellarError`): `link()` found a prefix entry that is
  not a symlink into the same keg.
- `MissingParentDirectoryError`, `InvalidPathComponentError`: a path given to
  `materialize()`, `atomic_symlink_replace()` or `link()` has no parent or no
  file name.
- `CommandFailedError`: `otool` or `install_name_tool` could not be started or
  failed. A failing `codesign` is only logged as a warning.
- Filesystem failures, including an absolute symlink in a bottle, are raised
  as `OSError`.
- `find_installed_keg()` raises `ValueError` (including
  `json.JSONDecodeError`) for a malformed receipt.
- `StateDb` lets `sqlite3.Error` propagate.

## What it does not do

This is a library only: it has no command-line program. It does not download
or unpack bottles, resolve dependencies, or run a formula's post-install
steps; it works on bottle contents that are already extracted on disk.

## Running the tests

```
pip install -e ".[test]"
pytest
```
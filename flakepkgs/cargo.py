"""Offline cargo builds from ``Cargo.lock``.

Python take on ``import-cargo``: every crate pinned in the lock file
becomes a fixed-output fetch, and a ``cargo-home`` derivation unpacks
them into a vendor directory with a cargo config that points crates.io
at it. With that home on the build path, ``cargo build --frozen
--offline`` never touches the network and sees exactly the pinned
versions.

Lock files from cargo 1.x come in two shapes, both read here:

    # version 2 and later: checksum next to each package
    [[package]]
    name = "adler"
    version = "1.0.2"
    source = "registry+https://github.com/rust-lang/crates.io-index"
    checksum = "f26201..."

    # version 1: checksums collected under [metadata]
    [metadata]
    "checksum adler 1.0.2 (registry+https://github.com/rust-lang/crates.io-index)" = "f26201..."

Packages without a source are the workspace's own crates and are not
vendored. Git and alternative-registry sources are not supported.
"""

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path

from flakepkgs.drv import Package
from flakepkgs.errors import LockFileError
from flakepkgs.fetchurl import fetchurl
from flakepkgs.mk_derivation import mk_derivation

logger = logging.getLogger(__name__)

CRATES_IO = "registry+https://github.com/rust-lang/crates.io-index"
CRATES_IO_DOWNLOAD = "https://crates.io/api/v1/crates/{name}/{version}/download"


@dataclass(frozen=True)
class Crate:
    name: str
    version: str
    source: str | None = None
    checksum: str | None = None

    @property
    def is_local(self) -> bool:
        return self.source is None

    @property
    def url(self) -> str:
        return CRATES_IO_DOWNLOAD.format(name=self.name, version=self.version)

    @property
    def dirname(self) -> str:
        return f"{self.name}-{self.version}"


def read_lock(path: str | Path) -> tuple[Crate, ...]:
    """Parse a Cargo.lock file."""
    path = Path(path)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise LockFileError(f"lock file not found: {path}") from None
    except tomllib.TOMLDecodeError as e:
        raise LockFileError(f"{path}: {e}") from e

    metadata = data.get("metadata", {})
    crates = []
    for entry in data.get("package", []):
        try:
            name, version = entry["name"], entry["version"]
        except (KeyError, TypeError):
            raise LockFileError(f"{path}: package entry without name/version: {entry!r}") from None
        source = entry.get("source")
        checksum = entry.get("checksum")
        if checksum is None and source is not None:
            checksum = metadata.get(f"checksum {name} {version} ({source})")
        crates.append(Crate(name, version, source, checksum))
    return tuple(crates)


def vendored_crates(crates: tuple[Crate, ...]) -> tuple[Crate, ...]:
    """The crates that have to be fetched, in lock-file order."""
    vendored = []
    for crate in crates:
        if crate.is_local:
            continue
        if crate.source != CRATES_IO:
            raise LockFileError(f"unsupported source for {crate.dirname}: {crate.source}")
        if not crate.checksum:
            raise LockFileError(f"no checksum for {crate.dirname}")
        vendored.append(crate)
    return tuple(vendored)


def fetch_crate(crate: Crate) -> Package:
    return fetchurl(f"crate-{crate.dirname}.tar.gz", crate.url, crate.checksum)


CARGO_HOME_BUILDER = """\
mkdir -p "$out/vendor" "$out/nix-support"
for entry in $crates; do
  IFS='|' read -r dir tarball checksum <<< "$entry"
  mkdir -p "$out/vendor/$dir"
  tar -xzf "$tarball" -C "$out/vendor/$dir" --strip-components=1
  printf '{"files":{},"package":"%s"}' "$checksum" > "$out/vendor/$dir/.cargo-checksum.json"
done
cat > "$out/config.toml" <<CONFIG
[source.crates-io]
replace-with = "vendored-sources"

[source.vendored-sources]
directory = "$out/vendor"
CONFIG
echo "export CARGO_HOME=$out" > "$out/nix-support/setup-hook"
"""


def import_cargo(lock_file: str | Path, *, bash: Package, stdenv: Package,
                 system: str = "x86_64-linux") -> Package:
    """Build the ``cargo-home`` package for ``lock_file``."""
    crates = vendored_crates(read_lock(lock_file))
    fetched = [(crate, fetch_crate(crate)) for crate in crates]
    logger.debug("vendoring %d crates from %s", len(fetched), lock_file)
    return mk_derivation(
        name="cargo-home",
        bash=bash,
        stdenv=stdenv,
        system=system,
        native_build_inputs=[pkg for _, pkg in fetched],
        env={
            "buildCommand": CARGO_HOME_BUILDER,
            "crates": " ".join(f"{c.dirname}|{pkg}|{c.checksum}" for c, pkg in fetched),
        },
    )

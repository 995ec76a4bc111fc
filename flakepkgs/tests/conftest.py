"""Shared fixtures: a base package index and a small cargo project."""

import json

import pytest

from flakepkgs.config import index_from_table
from flakepkgs.descriptor import PackageSpec
from flakestore.paths import text_path

SYSTEM = "x86_64-linux"
VERSION = "20240305-abc1234"

ADLER_SHA256 = "f26201604c87b1e01bd3d98f8d5d9a8fcbb815e8cedb41ffccbeb4bf593a35fe"
CFG_IF_SHA256 = "baf1de4339761588bc0619e3cbc0120ee582ebb74b53b4efbf79117bd2da40fd"

CARGO_LOCK = f"""\
# This file is automatically @generated by Cargo.
version = 3

[[package]]
name = "adler"
version = "1.0.2"
source = "registry+https://github.com/rust-lang/crates.io-index"
checksum = "{ADLER_SHA256}"

[[package]]
name = "cfg-if"
version = "1.0.0"
source = "registry+https://github.com/rust-lang/crates.io-index"
checksum = "{CFG_IF_SHA256}"

[[package]]
name = "timetrax"
version = "0.1.0"
dependencies = [
 "adler",
 "cfg-if",
]
"""


def fake_path(name: str, tag: str = "") -> str:
    """A well-formed store path that stands in for a prebuilt package."""
    return text_path(name, f"{name}{tag}".encode())


def index_table(tag: str = "") -> dict:
    """Everything the project looks up, as an ``[index.<system>]`` table."""
    flat = [
        "bash", "stdenv",
        "rustc", "cargo", "cmake", "pkg-config", "fontconfig",
        "rustfmt", "rust-analyzer", "clippy",
        "sqlite", "freetype", "zlib", "libpng", "expat", "bzip2", "vulkan-loader",
    ]
    table = {name: fake_path(name, tag) for name in flat}
    table["brotli"] = {"out": fake_path("brotli", tag), "lib": fake_path("brotli-lib", tag)}
    table["xorg"] = {name: fake_path(name, tag) for name in ("libX11", "libXcursor", "libXrandr", "libXi")}
    table["rust"] = {"packages": {"stable": {"rustPlatform": {"rustLibSrc": fake_path("rust-lib-src", tag)}}}}
    return table


def toml_value(value) -> str:
    if isinstance(value, dict):
        return "{ " + ", ".join(f'"{k}" = {toml_value(v)}' for k, v in value.items()) + " }"
    return json.dumps(value)


def write_flake_toml(project, systems=(SYSTEM,), extra_package: str = "") -> str:
    lines = [
        "[flake]",
        'description = "GUI for tracking your working time"',
        f"systems = {json.dumps(list(systems))}",
        "",
        "[package]",
        'pname = "timetrax"',
        extra_package,
        "",
    ]
    for system in systems:
        lines.append(f'[index."{system}"]')
        lines.extend(f'"{k}" = {toml_value(v)}' for k, v in index_table(system).items())
        lines.append("")
    path = project / "flake.toml"
    path.write_text("\n".join(lines))
    return str(path)


@pytest.fixture
def base():
    return index_from_table(index_table(), "index")


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "timetrax"
    (root / "src").mkdir(parents=True)
    (root / "src" / "main.rs").write_text('fn main() { println!("timetrax"); }\n')
    (root / "Cargo.toml").write_text('[package]\nname = "timetrax"\nversion = "0.1.0"\n')
    (root / "Cargo.lock").write_text(CARGO_LOCK)
    return root


@pytest.fixture
def spec(project):
    return PackageSpec(
        pname="timetrax",
        version=VERSION,
        src=project,
        lock_file=project / "Cargo.lock",
    )

"""Flake configuration file.

A project describes itself in ``flake.toml`` next to its sources:

    [flake]
    description = "GUI for tracking your working time"
    systems = ["x86_64-linux"]

    [package]
    pname = "timetrax"
    src = "."
    lock-file = "Cargo.lock"

    [index.x86_64-linux]
    bash = "/nix/store/...-bash-5.2p37"
    stdenv = "/nix/store/...-stdenv-linux"
    sqlite = "/nix/store/...-sqlite-3.46.1"
    brotli = { out = "/nix/store/...-brotli-1.1.0", lib = "/nix/store/...-brotli-1.1.0-lib" }

    [index.x86_64-linux.xorg]
    libX11 = "/nix/store/...-libX11-1.8.10"

``[index.<system>]`` is the base package index for that platform: the
prebuilt libraries and tools the project consumes. A string is a
package's ``out`` path. A table whose keys include ``out`` and whose
values are all strings is a package with several outputs; any other
table is a nested set (``xorg.libX11``).

Optional ``[package]`` keys: ``toolchain``, ``shell-tools``,
``runtime``, ``rust-src``, ``target``, ``check``, ``env``. Relative
paths are taken from the directory holding the file.

Environment:
    FLAKEPKGS_CONFIG   config file used when none is given
    FLAKEPKGS_SYSTEMS  comma-separated list replacing ``flake.systems``
"""

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flakepkgs.descriptor import RUNTIME_LIBRARIES, RUST_SRC, RUST_TOOLCHAIN, SHELL_TOOLS, PackageSpec
from flakepkgs.drv import Package, prebuilt
from flakepkgs.errors import ConfigError
from flakepkgs.package_set import LazyAttrSet
from flakepkgs.systems import SUPPORTED_SYSTEMS, normalize_systems

DEFAULT_CONFIG_FILE = "flake.toml"
ENV_PREFIX = "FLAKEPKGS_"


@dataclass(frozen=True)
class FlakeConfig:
    path: Path
    pname: str
    description: str = ""
    systems: tuple[str, ...] = SUPPORTED_SYSTEMS
    src: Path | None = None
    lock_file: Path | None = None
    toolchain: tuple[str, ...] = RUST_TOOLCHAIN
    shell_tools: tuple[str, ...] = SHELL_TOOLS
    runtime: tuple[str, ...] = RUNTIME_LIBRARIES
    rust_src: str = RUST_SRC
    target: str = "--release"
    check: bool = True
    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    indices: Mapping[str, Mapping[str, Any]] = field(default_factory=dict, hash=False)

    @property
    def root(self) -> Path:
        return self.path.parent

    def package_spec(self, version: str) -> PackageSpec:
        return PackageSpec(
            pname=self.pname,
            version=version,
            src=self.src,
            lock_file=self.lock_file,
            toolchain_inputs=self.toolchain,
            shell_tools=self.shell_tools,
            runtime_inputs=self.runtime,
            rust_src=self.rust_src,
            target=self.target,
            do_check=self.check,
            env=dict(self.env),
        )

    def base_index(self, system: str) -> LazyAttrSet:
        if system not in self.indices:
            raise ConfigError(f"{self.path}: no [index.{system}] table")
        return index_from_table(self.indices[system], f"index.{system}")


def _is_multi_output(table: Mapping[str, Any]) -> bool:
    return "out" in table and all(isinstance(v, str) for v in table.values())


def _entry(key: str, value: Any, where: str):
    if isinstance(value, str):
        return prebuilt(key, value)
    if isinstance(value, Mapping):
        if _is_multi_output(value):
            outputs = {k: v for k, v in value.items() if k != "out"}
            return prebuilt(key, value["out"], **outputs)
        return index_from_table(value, f"{where}.{key}")
    raise ConfigError(f"{where}.{key}: expected a store path or a table, got {type(value).__name__}")


def _const(value: Package | LazyAttrSet):
    return lambda: value


def index_from_table(table: Mapping[str, Any], where: str = "index") -> LazyAttrSet:
    """Turn an ``[index.<system>]`` table into a package set of prebuilt packages."""
    return LazyAttrSet({key: _const(_entry(key, value, where)) for key, value in table.items()}, name=where)


def _str(data: Mapping[str, Any], key: str, where: str, default: str | None = None) -> str | None:
    value = data.get(key, default)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"{where}.{key}: expected a string")
    return value


def _str_list(data: Mapping[str, Any], key: str, where: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{where}.{key}: expected a list of strings")
    return tuple(value)


def _path(root: Path, value: str | None) -> Path | None:
    if value is None:
        return None
    p = Path(value)
    return p if p.is_absolute() else (root / p).resolve()


def load_config(path: str | Path | None = None, *, environ: Mapping[str, str] | None = None) -> FlakeConfig:
    """Read and validate a flake configuration file."""
    env = os.environ if environ is None else environ
    if path is None:
        path = env.get(f"{ENV_PREFIX}CONFIG", DEFAULT_CONFIG_FILE)
    path = Path(path).resolve()

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"config file not found: {path}") from None
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e

    flake = data.get("flake", {})
    package = data.get("package")
    indices = data.get("index", {})
    if not isinstance(package, dict):
        raise ConfigError(f"{path}: missing [package] table")
    if not isinstance(flake, dict) or not isinstance(indices, dict):
        raise ConfigError(f"{path}: [flake] and [index] must be tables")

    pname = _str(package, "pname", "package")
    if not pname:
        raise ConfigError(f"{path}: package.pname is required")

    systems = _str_list(flake, "systems", "flake", SUPPORTED_SYSTEMS)
    override = env.get(f"{ENV_PREFIX}SYSTEMS")
    if override:
        systems = tuple(s.strip() for s in override.split(",") if s.strip())

    extra_env = package.get("env", {})
    if not isinstance(extra_env, dict) or not all(isinstance(v, str) for v in extra_env.values()):
        raise ConfigError(f"{path}: package.env must map names to strings")
    check = package.get("check", True)
    if not isinstance(check, bool):
        raise ConfigError(f"{path}: package.check must be a boolean")

    root = path.parent
    return FlakeConfig(
        path=path,
        pname=pname,
        description=_str(flake, "description", "flake", ""),
        systems=normalize_systems(systems),
        src=_path(root, _str(package, "src", "package", ".")),
        lock_file=_path(root, _str(package, "lock-file", "package", "Cargo.lock")),
        toolchain=_str_list(package, "toolchain", "package", RUST_TOOLCHAIN),
        shell_tools=_str_list(package, "shell-tools", "package", SHELL_TOOLS),
        runtime=_str_list(package, "runtime", "package", RUNTIME_LIBRARIES),
        rust_src=_str(package, "rust-src", "package", RUST_SRC),
        target=_str(package, "target", "package", "--release"),
        check=check,
        env=dict(extra_env),
        indices=indices,
    )

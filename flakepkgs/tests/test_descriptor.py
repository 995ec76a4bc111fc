"""Tests for build and interactive package descriptors."""

import dataclasses

import pytest

from conftest import SYSTEM, VERSION, index_table
from flakepkgs.config import index_from_table
from flakepkgs.descriptor import (
    CARGO_INSTALL_METADATA,
    BuildMode,
    Hooks,
    InteractiveMode,
    PackageDescriptor,
    build_descriptor,
    make_library_path,
)
from flakepkgs.drv import prebuilt
from flakepkgs.errors import ConfigurationConflict, MissingDependency
from flakepkgs.source import import_source


@pytest.fixture
def build(spec, base):
    return build_descriptor(spec, base, SYSTEM)


@pytest.fixture
def shell(spec, base):
    return build_descriptor(spec, base, SYSTEM, in_shell=True)


def test_build_mode(build, spec):
    assert not build.in_shell
    assert isinstance(build.mode, BuildMode)
    assert build.name == f"timetrax-{VERSION}"
    assert build.system == SYSTEM
    assert build.src == import_source(spec.src)
    assert build.package.drv.env["src"] == build.src


def test_build_hooks(build):
    assert build.hooks.build == "cargo build --release --frozen --offline"
    assert build.hooks.check == "cargo test --release --frozen --offline"
    assert "cargo install" in build.hooks.install
    for name in CARGO_INSTALL_METADATA:
        assert f"$out/{name}" in build.hooks.install
    assert build.hooks.shell is None
    env = build.package.drv.env
    assert env["buildPhase"] == build.hooks.build
    assert env["installPhase"] == build.hooks.install
    assert env["doCheck"] == "1"


def test_build_vendors_dependencies(build):
    cargo_home = build.mode.cargo_home
    assert cargo_home in build.toolchain_inputs
    assert cargo_home.drv_path in build.package.drv.input_drvs


def test_interactive_mode(shell, base):
    assert shell.in_shell
    assert isinstance(shell.mode, InteractiveMode)
    assert shell.src is None
    assert shell.hooks.install is None
    assert shell.hooks.build is None
    assert shell.package.drv.env["src"] == ""
    rust_src = base.resolve("rust.packages.stable.rustPlatform.rustLibSrc")
    assert shell.mode.rust_src_path == str(rust_src)
    assert f'RUST_SRC_PATH="{rust_src}"' in shell.hooks.shell
    assert shell.package.drv.env["shellHook"] == shell.hooks.shell


def test_interactive_tools(shell, build, base):
    for tool in ("rustfmt", "rust-analyzer", "clippy"):
        assert base[tool] in shell.toolchain_inputs
        assert base[tool] not in build.toolchain_inputs
    for tool in ("rustc", "cargo", "cmake", "pkg-config", "fontconfig"):
        assert base[tool] in shell.toolchain_inputs
        assert base[tool] in build.toolchain_inputs


def test_runtime_parity(build, shell):
    assert build.runtime_inputs == shell.runtime_inputs
    assert build.library_path == shell.library_path
    assert f'LD_LIBRARY_PATH="{build.library_path}"' in build.hooks.prepare
    assert f'LD_LIBRARY_PATH="{shell.library_path}"' in shell.hooks.shell


def test_library_path(build, base):
    parts = build.library_path.split(":")
    assert len(parts) == 12
    assert parts[0] == f"{base.sqlite}/lib"
    assert f"{base.brotli.outputs['lib']}/lib" in parts
    assert f"{base.brotli.out}/lib" not in parts
    assert parts[-1] == f"{base['vulkan-loader']}/lib"


def test_make_library_path_empty():
    assert make_library_path(()) == ""


def test_modes_differ(build, shell):
    assert build.drv_path != shell.drv_path
    assert build.out != shell.out


def test_deterministic(spec, base):
    a = build_descriptor(spec, base, SYSTEM)
    b = build_descriptor(spec, index_from_table(index_table(), "index"), SYSTEM)
    assert a.drv_path == b.drv_path
    assert a == b
    assert hash(a) == hash(b)


def test_system_changes_descriptor(spec, base):
    assert build_descriptor(spec, base, SYSTEM).drv_path != build_descriptor(spec, base, "aarch64-linux").drv_path


def test_explicit_source(spec, base):
    d = build_descriptor(spec, base, SYSTEM, src="/nix/store/0000-source")
    assert d.src == "/nix/store/0000-source"


def test_shell_with_source_conflicts(spec, base):
    with pytest.raises(ConfigurationConflict, match="in_shell"):
        build_descriptor(spec, base, SYSTEM, in_shell=True, src="/nix/store/0000-source")


def test_build_without_source_conflicts(spec, base):
    with pytest.raises(ConfigurationConflict, match="source tree"):
        build_descriptor(dataclasses.replace(spec, src=None), base, SYSTEM)


def test_build_without_lock_file_conflicts(spec, base):
    with pytest.raises(ConfigurationConflict, match="lock file"):
        build_descriptor(dataclasses.replace(spec, lock_file=None), base, SYSTEM)


def test_shell_needs_no_lock_file(spec, base):
    d = build_descriptor(dataclasses.replace(spec, lock_file=None, src=None), base, SYSTEM, in_shell=True)
    assert d.in_shell


def test_no_check(spec, base):
    d = build_descriptor(dataclasses.replace(spec, do_check=False), base, SYSTEM)
    assert d.hooks.check is None
    assert d.package.drv.env["doCheck"] == ""


def test_extra_env(spec, base):
    d = build_descriptor(dataclasses.replace(spec, env={"RUSTFLAGS": "-C target-cpu=native"}), base, SYSTEM)
    assert d.package.drv.env["RUSTFLAGS"] == "-C target-cpu=native"


@pytest.mark.parametrize("missing", ["sqlite", "xorg", "bash"])
def test_missing_dependency(spec, missing):
    table = index_table()
    del table[missing]
    pkgs = index_from_table(table, "index")
    with pytest.raises(MissingDependency) as exc:
        build_descriptor(spec, pkgs, SYSTEM)
    assert exc.value.path.split(".")[0] == missing
    assert exc.value.required_by == "timetrax"


def test_missing_output(spec):
    table = index_table()
    table["brotli"] = table["brotli"]["out"]
    with pytest.raises(MissingDependency, match="brotli.lib"):
        build_descriptor(spec, index_from_table(table, "index"), SYSTEM)


def test_missing_shell_tool_only_affects_shell(spec):
    table = index_table()
    del table["clippy"]
    pkgs = index_from_table(table, "index")
    build_descriptor(spec, pkgs, SYSTEM)
    with pytest.raises(MissingDependency, match="clippy"):
        build_descriptor(spec, pkgs, SYSTEM, in_shell=True)


def test_mode_invariants():
    with pytest.raises(ConfigurationConflict):
        BuildMode(src="", cargo_home=prebuilt("cargo-home", "/nix/store/0000-cargo-home"))
    with pytest.raises(ConfigurationConflict):
        InteractiveMode(rust_src_path="/nix/store/0000-rust-src", src="/nix/store/1111-source")


def test_interactive_descriptor_rejects_install(shell):
    with pytest.raises(ConfigurationConflict, match="install"):
        dataclasses.replace(shell, hooks=Hooks(install="make install"))


def test_hooks_env():
    env = Hooks(build="make", shell="echo hi").to_env()
    assert env == {"buildPhase": "make", "shellHook": "echo hi", "doCheck": ""}
    assert Hooks(build="make").to_dict() == {"build": "make"}


def test_to_dict(build, shell):
    d = build.to_dict()
    assert d["mode"] == "build"
    assert d["src"] == build.src
    assert d["drvPath"] == build.drv_path
    assert d["outputs"] == {"out": build.out}
    assert set(d["hooks"]) == {"prepare", "build", "check", "install"}
    s = shell.to_dict()
    assert s["mode"] == "interactive"
    assert s["src"] is None
    assert s["runtimeInputs"] == d["runtimeInputs"]
    assert set(s["hooks"]) == {"shell"}


def test_not_overridable_outside_package_set(build):
    assert isinstance(build, PackageDescriptor)
    with pytest.raises(TypeError, match="not overridable"):
        build.override(in_shell=True)

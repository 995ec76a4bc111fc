"""Package descriptors: one project, two ways to materialize it.

The flake defines a single package function with an ``inShell`` switch:

    timetrax = callPackage ({ inShell ? false }: stdenv.mkDerivation {
      src = if inShell then null else ./.;
      nativeBuildInputs = [ rustc cargo ... ]
        ++ (if inShell then [ rustfmt rust-analyzer clippy ] else [ cargoHome ]);
      buildInputs = [ sqlite freetype ... ];
      ...
    }) {};

build_descriptor() is that function. It always resolves the runtime
libraries through the same code path, so both modes link against the
identical set and derive the identical library search path; only the
tools and the lifecycle hooks differ:

    build mode (in_shell=False)          interactive mode (in_shell=True)
    ---------------------------          --------------------------------
    src = imported source tree           src = None (the working checkout)
    tools + vendored cargo home          tools + rustfmt, rust-analyzer, clippy
    prepare: export LD_LIBRARY_PATH      shell: export RUST_SRC_PATH,
    build:   cargo build --frozen               export LD_LIBRARY_PATH
    check:   cargo test --frozen
    install: cargo install, then drop
             cargo's .crates.toml

Which mode a descriptor is in is carried by its ``mode`` field, a
BuildMode or an InteractiveMode, each validating its own fields when
constructed.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Union

from flakepkgs.cargo import import_cargo
from flakepkgs.drv import Input, Package
from flakepkgs.errors import ConfigurationConflict
from flakepkgs.mk_derivation import bool_env, mk_derivation
from flakepkgs.package_set import LazyAttrSet
from flakepkgs.source import import_source

RUST_TOOLCHAIN = ("rustc", "cargo", "cmake", "pkg-config", "fontconfig")
SHELL_TOOLS = ("rustfmt", "rust-analyzer", "clippy")
RUNTIME_LIBRARIES = (
    "sqlite",
    "freetype",
    "zlib",
    "libpng",
    "expat",
    "bzip2",
    "brotli.lib",
    "xorg.libX11",
    "xorg.libXcursor",
    "xorg.libXrandr",
    "xorg.libXi",
    "vulkan-loader",
)
RUST_SRC = "rust.packages.stable.rustPlatform.rustLibSrc"

# Bookkeeping `cargo install` writes into the install root; not part of the package.
CARGO_INSTALL_METADATA = (".crates.toml", ".crates2.json")

# Hook name -> stdenv variable the generic builder runs it from.
PHASE_VARIABLES = {
    "prepare": "preConfigure",
    "build": "buildPhase",
    "check": "checkPhase",
    "install": "installPhase",
    "shell": "shellHook",
}


class _Auto:
    def __repr__(self) -> str:
        return "AUTO"


AUTO: Any = _Auto()


@dataclass(frozen=True)
class PackageSpec:
    """Everything the package function needs besides the package index.

    Inputs are attribute paths into the index (``"pkg-config"``,
    ``"brotli.lib"``, ``"xorg.libX11"``), resolved per platform.
    """

    pname: str
    version: str
    src: Path | None = None
    lock_file: Path | None = None
    toolchain_inputs: tuple[str, ...] = RUST_TOOLCHAIN
    shell_tools: tuple[str, ...] = SHELL_TOOLS
    runtime_inputs: tuple[str, ...] = RUNTIME_LIBRARIES
    rust_src: str = RUST_SRC
    target: str = "--release"
    do_check: bool = True
    env: Mapping[str, str] = field(default_factory=dict, hash=False)

    @property
    def name(self) -> str:
        return f"{self.pname}-{self.version}"


@dataclass(frozen=True)
class BuildMode:
    src: str
    cargo_home: Package

    def __post_init__(self):
        if not self.src:
            raise ConfigurationConflict("build mode requires a source tree")


@dataclass(frozen=True)
class InteractiveMode:
    rust_src_path: str
    src: str | None = None

    def __post_init__(self):
        if self.src:
            raise ConfigurationConflict(
                f"interactive mode works on the checkout in place; got src={self.src!r}"
            )


Mode = Union[BuildMode, InteractiveMode]


@dataclass(frozen=True)
class Hooks:
    prepare: str | None = None
    build: str | None = None
    check: str | None = None
    install: str | None = None
    shell: str | None = None

    def to_env(self) -> dict[str, str]:
        env = {
            var: getattr(self, hook)
            for hook, var in PHASE_VARIABLES.items()
            if getattr(self, hook) is not None
        }
        env["doCheck"] = bool_env(self.check is not None)
        return env

    def to_dict(self) -> dict[str, str]:
        return {hook: getattr(self, hook) for hook in PHASE_VARIABLES if getattr(self, hook) is not None}


def library_dir(inp: Input) -> str:
    """``lib.getLib``: the ``lib`` output if there is one, else ``out``."""
    if isinstance(inp, Package) and "lib" in inp.outputs:
        return inp.outputs["lib"]
    return str(inp)


def make_library_path(inputs: tuple[Input, ...]) -> str:
    """``lib.makeLibraryPath``."""
    return ":".join(f"{library_dir(i)}/lib" for i in inputs)


def cargo_command(verb: str, target: str) -> str:
    return " ".join(filter(None, ["cargo", verb, target, "--frozen", "--offline"]))


def install_script() -> str:
    lines = [
        "mkdir -p $out",
        "cargo install --frozen --offline --path . --root $out",
        "rm -f " + " ".join(f"$out/{name}" for name in CARGO_INSTALL_METADATA),
    ]
    return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class PackageDescriptor:
    """A package bound to one platform and one mode, ready to build."""

    name: str
    system: str
    mode: Mode
    toolchain_inputs: tuple[Input, ...]
    runtime_inputs: tuple[Input, ...]
    hooks: Hooks
    env: dict[str, str]
    package: Package
    _override: Callable[..., Any] | None = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if isinstance(self.mode, InteractiveMode) and self.hooks.install is not None:
            raise ConfigurationConflict("interactive descriptors have no install step")

    def __hash__(self) -> int:
        return hash(self.package)

    def __str__(self) -> str:
        return self.package.out

    @property
    def in_shell(self) -> bool:
        return isinstance(self.mode, InteractiveMode)

    @property
    def src(self) -> str | None:
        return self.mode.src

    @property
    def library_path(self) -> str:
        return make_library_path(self.runtime_inputs)

    @property
    def out(self) -> str:
        return self.package.out

    @property
    def drv_path(self) -> str:
        return self.package.drv_path

    def override(self, **kw) -> PackageDescriptor:
        if self._override is None:
            raise TypeError(f"descriptor {self.name!r} is not overridable")
        return self._override(**kw)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "system": self.system,
            "mode": "interactive" if self.in_shell else "build",
            "src": self.src,
            "toolchainInputs": [str(i) for i in self.toolchain_inputs],
            "runtimeInputs": [str(i) for i in self.runtime_inputs],
            "libraryPath": self.library_path,
            "hooks": self.hooks.to_dict(),
            "drvPath": self.drv_path,
            "outputs": dict(self.package.outputs),
        }


def _resolve_all(pkgs: LazyAttrSet, paths: tuple[str, ...], required_by: str) -> tuple[Input, ...]:
    return tuple(pkgs.resolve(path, required_by) for path in paths)


def build_descriptor(
    spec: PackageSpec,
    pkgs: LazyAttrSet,
    system: str,
    *,
    in_shell: bool = False,
    src: str | None = AUTO,
) -> PackageDescriptor:
    """Materialize ``spec`` for ``system`` in build or interactive mode.

    ``pkgs`` is the index the package is looked up from, normally the
    composed index that contains this very package. ``src`` defaults to
    the imported ``spec.src`` in build mode and to nothing in
    interactive mode; passing a source together with ``in_shell=True``
    raises ConfigurationConflict.
    """
    if in_shell and src is not AUTO and src:
        raise ConfigurationConflict(f"{spec.pname}: in_shell=True cannot be combined with src={src!r}")

    required_by = spec.pname
    bash = pkgs.resolve("bash", required_by)
    stdenv = pkgs.resolve("stdenv", required_by)

    runtime = _resolve_all(pkgs, spec.runtime_inputs, required_by)
    toolchain = _resolve_all(pkgs, spec.toolchain_inputs, required_by)
    library_path = make_library_path(runtime)

    mode: Mode
    if in_shell:
        rust_src = pkgs.resolve(spec.rust_src, required_by)
        mode = InteractiveMode(rust_src_path=str(rust_src))
        toolchain += _resolve_all(pkgs, spec.shell_tools, required_by)
        hooks = Hooks(
            shell=(
                f'export RUST_SRC_PATH="{rust_src}"\n'
                f'export LD_LIBRARY_PATH="{library_path}"\n'
            ),
        )
    else:
        if src is AUTO:
            src = import_source(spec.src) if spec.src is not None else None
        if spec.lock_file is None:
            raise ConfigurationConflict(f"{spec.pname}: build mode needs a lock file for an offline build")
        cargo_home = import_cargo(spec.lock_file, bash=bash, stdenv=stdenv, system=system)
        mode = BuildMode(src=src, cargo_home=cargo_home)
        toolchain += (cargo_home,)
        hooks = Hooks(
            prepare=f'export LD_LIBRARY_PATH="{library_path}"\n',
            build=cargo_command("build", spec.target),
            check=cargo_command("test", spec.target) if spec.do_check else None,
            install=install_script(),
        )

    env = {**hooks.to_env(), **spec.env}
    package = mk_derivation(
        pname=spec.pname,
        version=spec.version,
        bash=bash,
        stdenv=stdenv,
        system=system,
        native_build_inputs=list(toolchain),
        build_inputs=list(runtime),
        src=mode.src,
        env=env,
    )
    return PackageDescriptor(
        name=spec.name,
        system=system,
        mode=mode,
        toolchain_inputs=toolchain,
        runtime_inputs=runtime,
        hooks=hooks,
        env=env,
        package=package,
    )

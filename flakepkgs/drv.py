"""Low-level derivation constructor.

Turns readable arguments into a content-addressed Package:

    drv(name="hello", builder="/bin/sh", args=["-c", "echo hi > $out"])

The pipeline mirrors what ``derivationStrict`` does in Nix:

  1. collect input derivations and input sources from ``deps``/``srcs``
  2. build the derivation with blank output paths
  3. hashDerivationModulo → output paths (or, for fixed outputs, the
     path promised by the expected content hash)
  4. fill the output paths into outputs and env
  5. serialize to ATerm → ``.drv`` text store path

Dependencies come in three shapes:

  - a Package built by drv(): every output becomes an input
  - an OutputRef (``pkg.output("lib")``): only that output
  - a prebuilt Package (no derivation, already in the store): its paths
    become input sources
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Union

from flakepkgs.errors import MissingDependency
from flakestore.aterm import Derivation, DerivationOutput, hash_derivation_modulo, serialize
from flakestore.paths import fixed_output_path, output_path, text_path


@dataclass(frozen=True)
class Package:
    """A derivation with computed output paths.

    ``str(pkg)`` is the ``out`` path, so packages can be interpolated
    into scripts and env values the way Nix string context works.
    """

    name: str
    drv: Derivation | None
    drv_path: str | None
    outputs: dict[str, str]
    _args: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    _override: Callable[..., Any] | None = field(default=None, repr=False, compare=False)

    def __hash__(self) -> int:
        return hash((self.name, self.drv_path, tuple(sorted(self.outputs.items()))))

    @property
    def out(self) -> str:
        return self.outputs["out"]

    @property
    def is_prebuilt(self) -> bool:
        return self.drv is None

    def __str__(self) -> str:
        return self.out

    def output(self, name: str) -> OutputRef:
        """Select one output, like ``brotli.lib`` in Nix."""
        if name not in self.outputs:
            raise MissingDependency(f"{self.name}.{name}")
        return OutputRef(self, name)

    def override(self, **kw) -> Any:
        """Re-call the function that produced this package with changed arguments.

        Only packages obtained through ``LazyAttrSet.call`` carry the
        original function; like ``pkg.override`` in Nix.
        """
        if self._override is None:
            raise TypeError(f"package {self.name!r} is not overridable")
        return self._override(**kw)


@dataclass(frozen=True)
class OutputRef:
    """One output of a package used as an input."""

    package: Package
    output: str

    @property
    def name(self) -> str:
        return f"{self.package.name}-{self.output}"

    @property
    def path(self) -> str:
        return self.package.outputs[self.output]

    def __str__(self) -> str:
        return self.path


Input = Union[Package, OutputRef]


def _split(dep: Input) -> tuple[Package, list[str]]:
    if isinstance(dep, OutputRef):
        return dep.package, [dep.output]
    return dep, list(dep.outputs)


def prebuilt(name: str, path: str, **outputs: str) -> Package:
    """A package that already exists in the store (no derivation).

    The base package index of a flake is made of these: libraries built
    elsewhere and consumed by path.
    """
    return Package(name=name, drv=None, drv_path=None, outputs={"out": path, **outputs})


def _collect_input_hashes(deps: list[Input], hashes: dict[str, bytes]) -> None:
    """Modular hashes of every input derivation, dependencies first.

    Inputs are hashed with their output paths filled in
    (``mask_outputs=False``); only the derivation being built has its
    own outputs blanked.
    """
    for dep in deps:
        pkg, _ = _split(dep)
        if pkg.drv is None or pkg.drv_path in hashes:
            continue
        _collect_input_hashes(pkg._args.get("deps") or [], hashes)
        hashes[pkg.drv_path] = hash_derivation_modulo(pkg.drv, hashes, mask_outputs=False)


def drv(
    name: str,
    builder: str,
    system: str = "x86_64-linux",
    args: list[str] | None = None,
    env: dict[str, str] | None = None,
    output_names: list[str] | None = None,
    deps: list[Input] | None = None,
    srcs: list[str] | None = None,
    output_hash: str | None = None,
    output_hash_mode: str = "flat",
) -> Package:
    """Create a Package with computed output paths and ``.drv`` store path.

    Args:
        name:             Derivation name (store path suffix).
        builder:          Builder executable.
        system:           Platform the derivation builds on.
        args:             Builder arguments.
        env:              Extra environment variables.
        output_names:     Output names (default: ["out"]).
        deps:             Packages or OutputRefs this derivation uses.
        srcs:             Extra input source store paths.
        output_hash:      Hex sha256 of the expected output; makes this a
                          fixed-output derivation.
        output_hash_mode: "flat" or "recursive" (fixed outputs only).
    """
    args = list(args or [])
    env = dict(env or {})
    output_names = list(output_names or ["out"])
    deps = list(deps or [])
    srcs = list(srcs or [])

    orig_args = dict(
        name=name, builder=builder, system=system, args=args, env=env,
        output_names=output_names, deps=deps, srcs=srcs,
        output_hash=output_hash, output_hash_mode=output_hash_mode,
    )

    input_drvs: dict[str, set[str]] = {}
    input_srcs = set(srcs)
    for dep in deps:
        pkg, outs = _split(dep)
        if pkg.drv_path is None:
            input_srcs.update(pkg.outputs[o] for o in outs)
        else:
            input_drvs.setdefault(pkg.drv_path, set()).update(outs)

    drv_obj = Derivation(
        outputs={n: DerivationOutput("") for n in output_names},
        input_drvs={p: sorted(o) for p, o in input_drvs.items()},
        input_srcs=sorted(input_srcs),
        platform=system,
        builder=builder,
        args=list(args),
        env=dict(env),
    )
    drv_obj.env.setdefault("name", name)
    drv_obj.env.setdefault("builder", builder)
    drv_obj.env.setdefault("system", system)
    for n in output_names:
        drv_obj.env[n] = ""

    if output_hash is not None:
        if output_names != ["out"]:
            raise ValueError("fixed-output derivations have exactly one output 'out'")
        recursive = output_hash_mode == "recursive"
        path = fixed_output_path(name, bytes.fromhex(output_hash), recursive=recursive)
        algo = "r:sha256" if recursive else "sha256"
        computed = {"out": path}
        drv_obj.outputs["out"] = DerivationOutput(path, algo, output_hash)
    else:
        hashes: dict[str, bytes] = {}
        _collect_input_hashes(deps, hashes)
        drv_hash = hash_derivation_modulo(drv_obj, hashes)
        computed = {n: output_path(drv_hash, n, name) for n in output_names}
        for n, path in computed.items():
            drv_obj.outputs[n] = DerivationOutput(path)

    for n, path in computed.items():
        drv_obj.env[n] = path

    refs = sorted(drv_obj.input_drvs) + drv_obj.input_srcs
    drv_path = text_path(name + ".drv", serialize(drv_obj).encode(), refs)

    return Package(
        name=name,
        drv=drv_obj,
        drv_path=drv_path,
        outputs=computed,
        _args=orig_args,
    )

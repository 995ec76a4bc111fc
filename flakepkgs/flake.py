"""Flake outputs: packages, defaultPackage and devShell per platform.

The Python side of

    outputs = { self, nixpkgs, ... }: {
      packages      = forAllSystems (system: { inherit (nixpkgsFor.${system}) timetrax; });
      defaultPackage = forAllSystems (system: self.packages.${system}.timetrax);
      devShell      = forAllSystems (system: self.packages.${system}.timetrax.override { inShell = true; });
    };

Each output is a lazy per-platform set; nothing is evaluated until a
platform is looked up, and then only once:

    flake = Flake(spec, {"x86_64-linux": base})
    flake.packages["x86_64-linux"]           # build-mode descriptor
    flake.default_package["x86_64-linux"]    # the same object
    flake.dev_shell["x86_64-linux"]          # interactive descriptor

Flake adds no logic of its own beyond wiring: descriptors come from the
composed per-platform index (see overlay.py), the per-platform maps
from for_all_systems().
"""

import functools
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any, Union

from flakepkgs.config import FlakeConfig
from flakepkgs.descriptor import AUTO, PackageDescriptor, PackageSpec
from flakepkgs.errors import ConfigError, FlakeCheckError, MissingDependency
from flakepkgs.overlay import compose
from flakepkgs.package_set import LazyAttrSet
from flakepkgs.source import import_source
from flakepkgs.systems import SUPPORTED_SYSTEMS, for_all_systems, force, normalize_systems
from flakepkgs.version import Provenance, read_provenance

logger = logging.getLogger(__name__)

BaseIndex = Union[Mapping[str, Mapping[str, Any]], Callable[[str], Mapping[str, Any]]]

# Output name as Nix spells it -> attribute on Flake.
OUTPUTS = {
    "packages": "packages",
    "defaultPackage": "default_package",
    "devShell": "dev_shell",
}


def _memoized(method):
    """Property computed once per Flake, also when read from several threads."""
    key = method.__name__

    @functools.wraps(method)
    def getter(self):
        with self._memo_lock:
            if key not in self._memo:
                self._memo[key] = method(self)
            return self._memo[key]

    return property(getter)


class Flake:
    """Per-platform outputs of one project.

    Args:
        spec:        The project package.
        base_index:  ``system -> index`` mapping, or a function of the
                     system returning that platform's base index.
        systems:     Supported platforms.
        description: Free-form description, shown by ``flakepkgs show``.
        source:      Store path of the imported source tree; imported
                     from ``spec.src`` on first use when not given.
    """

    def __init__(self, spec: PackageSpec, base_index: BaseIndex,
                 systems=SUPPORTED_SYSTEMS, description: str = "",
                 source: str | None = AUTO):
        self.spec = spec
        self.systems = normalize_systems(systems)
        self.description = description
        self._base_index = base_index
        self._source = source
        self._memo: dict[str, Any] = {}
        self._memo_lock = threading.RLock()

    @classmethod
    def from_config(cls, config: FlakeConfig, provenance: Provenance | None = None) -> "Flake":
        if provenance is None:
            provenance = read_provenance(config.root)
        return cls(
            config.package_spec(provenance.version),
            config.base_index,
            systems=config.systems,
            description=config.description,
        )

    def base_index(self, system: str) -> Mapping[str, Any]:
        if callable(self._base_index):
            return self._base_index(system)
        if system not in self._base_index:
            raise ConfigError(f"no base package index for {system}")
        return self._base_index[system]

    @property
    def version(self) -> str:
        return self.spec.version

    @_memoized
    def source(self) -> str | None:
        if self._source is not AUTO:
            return self._source
        return import_source(self.spec.src) if self.spec.src is not None else None

    # --- Outputs ---

    @_memoized
    def pkgs_for(self) -> LazyAttrSet:
        """Base index per platform with the project package added."""
        return for_all_systems(
            self.systems,
            lambda s: compose(self.base_index(s), self.spec, s, self.source),
            name="pkgsFor",
        )

    @_memoized
    def packages(self) -> LazyAttrSet:
        return for_all_systems(self.systems, lambda s: self.pkgs_for[s].force(self.spec.pname), name="packages")

    @_memoized
    def default_package(self) -> LazyAttrSet:
        return for_all_systems(self.systems, lambda s: self.packages[s], name="defaultPackage")

    @_memoized
    def dev_shell(self) -> LazyAttrSet:
        return for_all_systems(self.systems, lambda s: self.packages[s].override(in_shell=True), name="devShell")

    def output(self, name: str) -> LazyAttrSet:
        if name not in OUTPUTS:
            raise MissingDependency(name, "flake outputs")
        return getattr(self, OUTPUTS[name])

    def outputs(self, max_workers: int | None = None) -> dict[str, dict[str, PackageDescriptor]]:
        """Every output for every platform, fully evaluated."""
        return {name: force(self.output(name), max_workers) for name in OUTPUTS}

    # --- Inspection ---

    def show(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "version": self.version,
            "outputs": {
                name: {
                    system: {"name": d.name, "drvPath": d.drv_path, "mode": "interactive" if d.in_shell else "build"}
                    for system, d in evaluated.items()
                }
                for name, evaluated in self.outputs().items()
            },
        }

    def check(self, max_workers: int | None = None) -> None:
        """Evaluate everything and verify the output invariants.

        Like ``nix flake check``. Raises FlakeCheckError listing every
        violation found.
        """
        problems = []
        evaluated = self.outputs(max_workers)
        expected = set(self.systems)
        for name, per_system in evaluated.items():
            if set(per_system) != expected:
                problems.append(f"{name}: platforms {sorted(per_system)} != {sorted(expected)}")

        for system in self.systems:
            pkg = evaluated["packages"].get(system)
            shell = evaluated["devShell"].get(system)
            if pkg is None or shell is None:
                continue
            if evaluated["defaultPackage"].get(system) is not pkg:
                problems.append(f"defaultPackage.{system} is not packages.{system}")
            if pkg.in_shell:
                problems.append(f"packages.{system} is an interactive descriptor")
            if pkg.hooks.install is None:
                problems.append(f"packages.{system} has no install hook")
            if not shell.in_shell:
                problems.append(f"devShell.{system} is not an interactive descriptor")
            if shell.src is not None or shell.hooks.install is not None:
                problems.append(f"devShell.{system} carries a source tree or install hook")
            if pkg.runtime_inputs != shell.runtime_inputs:
                problems.append(f"{system}: runtime inputs differ between packages and devShell")
            if pkg.library_path != shell.library_path:
                problems.append(f"{system}: library path differs between packages and devShell")

        if problems:
            raise FlakeCheckError(problems)
        logger.info("flake check passed for %s", ", ".join(self.systems))

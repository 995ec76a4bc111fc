"""flakepkgs: reproducible build and development descriptors for a project.

    from flakepkgs import Flake, PackageSpec, prebuilt

    flake = Flake(PackageSpec("timetrax", version, src=root, lock_file=root / "Cargo.lock"),
                  {"x86_64-linux": base_index})
    flake.packages["x86_64-linux"]     # build descriptor
    flake.dev_shell["x86_64-linux"]    # interactive descriptor
"""

from flakepkgs.descriptor import PackageDescriptor, PackageSpec, build_descriptor
from flakepkgs.drv import OutputRef, Package, drv, prebuilt
from flakepkgs.errors import ConfigurationConflict, EvalError, MissingDependency
from flakepkgs.flake import Flake
from flakepkgs.overlay import compose, make_overlay
from flakepkgs.package_set import LazyAttrSet, extend, fix
from flakepkgs.systems import SUPPORTED_SYSTEMS, for_all_systems, gen_attrs
from flakepkgs.version import resolve_version

__all__ = [
    "Flake",
    "PackageSpec", "PackageDescriptor", "build_descriptor",
    "Package", "OutputRef", "drv", "prebuilt",
    "LazyAttrSet", "fix", "extend", "compose", "make_overlay",
    "SUPPORTED_SYSTEMS", "gen_attrs", "for_all_systems",
    "resolve_version",
    "EvalError", "MissingDependency", "ConfigurationConflict",
]

"""The project overlay.

    overlay = final: prev: {
      timetrax = final.callPackage ({ inShell ? false }: ...) {};
    };

make_overlay() returns that function for a PackageSpec. The package is
built from ``final``, the composed index it is part of, so its inputs
are resolved exactly as any other consumer of the index would resolve
them. compose() applies it to a base index for one platform; the base
index is never modified.
"""

from collections.abc import Mapping
from typing import Any

from flakepkgs.descriptor import AUTO, PackageDescriptor, PackageSpec, build_descriptor
from flakepkgs.package_set import LazyAttrSet, Overlay, extend


def make_overlay(spec: PackageSpec, system: str, source: str | None = AUTO) -> Overlay:
    """Overlay adding ``spec.pname`` for ``system``.

    ``source`` is the store path of the already-imported source tree; by
    default each build-mode evaluation imports ``spec.src`` itself.
    """
    def overlay(final: LazyAttrSet, prev: LazyAttrSet) -> dict[str, Any]:
        def package(in_shell: bool = False) -> PackageDescriptor:
            return build_descriptor(
                spec, final, system,
                in_shell=in_shell,
                src=AUTO if in_shell else source,
            )

        return {spec.pname: lambda: final.call(package)}

    return overlay


def compose(base: Mapping[str, Any], spec: PackageSpec, system: str,
            source: str | None = AUTO) -> LazyAttrSet:
    """``import nixpkgs { inherit system; overlays = [ self.overlay ]; }``."""
    return extend(base, make_overlay(spec, system, source), name=f"pkgs.{system}")

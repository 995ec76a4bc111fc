"""stdenv.mkDerivation for flake packages.

Wraps drv() with the attribute schema every stdenv package carries and
the generic builder invocation:

    builder: <bash> -e <stdenv>/default-builder.sh

Input lists become space-separated store paths, booleans "1" or "",
and phase scripts (``buildPhase``, ``shellHook``, ...) are handed to
the generic builder as plain environment variables:

    mk_derivation(
        pname="timetrax", version="20240305-abc1234",
        bash=pkgs.bash, stdenv=pkgs.stdenv,
        native_build_inputs=[pkgs.cargo], build_inputs=[pkgs.sqlite],
        env={"buildPhase": "cargo build --release"},
    )
"""

from flakepkgs.drv import Input, Package, drv

# Attributes make-derivation.nix always emits; empty unless the package sets them.
_SCHEMA = (
    "__structuredAttrs", "buildInputs", "cmakeFlags", "configureFlags",
    "depsBuildBuild", "depsBuildBuildPropagated", "depsBuildTarget", "depsBuildTargetPropagated",
    "depsHostHost", "depsHostHostPropagated", "depsTargetTarget", "depsTargetTargetPropagated",
    "doCheck", "doInstallCheck", "mesonFlags", "nativeBuildInputs", "patches",
    "propagatedBuildInputs", "propagatedNativeBuildInputs", "strictDeps",
)
MKDERIVATION_DEFAULTS = dict.fromkeys(_SCHEMA, "")


def bool_env(value: bool) -> str:
    """lib.boolToString as make-derivation uses it for env."""
    return "1" if value else ""


def join_inputs(inputs: list[Input]) -> str:
    return " ".join(str(i) for i in inputs)


def derivation_name(pname: str | None, version: str | None, name: str | None) -> str:
    if name is not None:
        return name
    if pname is None:
        raise ValueError("either name or pname is required")
    return f"{pname}-{version or ''}"


def mk_derivation(
    *,
    bash: Package,
    stdenv: Package,
    pname: str | None = None,
    version: str | None = None,
    name: str | None = None,
    system: str = "x86_64-linux",
    native_build_inputs: list[Input] | None = None,
    build_inputs: list[Input] | None = None,
    src: str | None = None,
    env: dict[str, str] | None = None,
) -> Package:
    """Create a stdenv package.

    ``native_build_inputs`` are tools run during the build,
    ``build_inputs`` the libraries linked into the result. ``src`` is a
    store path or None for packages without sources (shells,
    ``buildCommand`` packages). ``env`` wins over every generated
    attribute.
    """
    native = list(native_build_inputs or [])
    libs = list(build_inputs or [])

    attrs = {
        **MKDERIVATION_DEFAULTS,
        "outputs": "out",
        "stdenv": str(stdenv),
        "nativeBuildInputs": join_inputs(native),
        "buildInputs": join_inputs(libs),
        "src": src or "",
    }
    if pname is not None:
        attrs.update(pname=pname, version=version or "")
    attrs.update(env or {})

    return drv(
        name=derivation_name(pname, version, name),
        builder=f"{bash}/bin/bash",
        system=system,
        args=["-e", f"{stdenv}/default-builder.sh"],
        deps=[bash, stdenv, *native, *libs],
        srcs=[src] if src else [],
        env=attrs,
    )

"""Tests for mk_derivation and fetchurl."""

import pytest

from flakepkgs.drv import prebuilt
from flakepkgs.fetchurl import fetchurl
from flakepkgs.mk_derivation import MKDERIVATION_DEFAULTS, bool_env, mk_derivation
from flakestore.paths import fixed_output_path

BASH = prebuilt("bash", "/nix/store/0000-bash")
STDENV = prebuilt("stdenv", "/nix/store/1111-stdenv")
SQLITE = prebuilt("sqlite", "/nix/store/2222-sqlite")
CARGO = prebuilt("cargo", "/nix/store/3333-cargo")


def test_name_from_pname_and_version():
    pkg = mk_derivation(bash=BASH, stdenv=STDENV, pname="timetrax", version="20240305-abc1234")
    assert pkg.name == "timetrax-20240305-abc1234"
    assert pkg.drv.env["pname"] == "timetrax"
    assert pkg.drv.env["version"] == "20240305-abc1234"


def test_name_required():
    with pytest.raises(ValueError, match="name or pname"):
        mk_derivation(bash=BASH, stdenv=STDENV)


def test_builder_invocation():
    pkg = mk_derivation(bash=BASH, stdenv=STDENV, name="x")
    assert pkg.drv.builder == "/nix/store/0000-bash/bin/bash"
    assert pkg.drv.args == ["-e", "/nix/store/1111-stdenv/default-builder.sh"]
    assert pkg.drv.env["stdenv"] == "/nix/store/1111-stdenv"


def test_env_schema():
    pkg = mk_derivation(
        bash=BASH, stdenv=STDENV, name="x",
        native_build_inputs=[CARGO], build_inputs=[SQLITE],
        env={"buildPhase": "cargo build", "strictDeps": "1"},
    )
    env = pkg.drv.env
    assert set(MKDERIVATION_DEFAULTS) <= set(env)
    assert env["nativeBuildInputs"] == "/nix/store/3333-cargo"
    assert env["buildInputs"] == "/nix/store/2222-sqlite"
    assert env["buildPhase"] == "cargo build"
    assert env["strictDeps"] == "1"
    assert env["src"] == ""


def test_inputs_are_referenced():
    pkg = mk_derivation(bash=BASH, stdenv=STDENV, name="x", build_inputs=[SQLITE], src="/nix/store/4444-source")
    assert set(pkg.drv.input_srcs) == {
        "/nix/store/0000-bash", "/nix/store/1111-stdenv", "/nix/store/2222-sqlite", "/nix/store/4444-source",
    }
    assert pkg.drv.env["src"] == "/nix/store/4444-source"


def test_bool_env():
    assert bool_env(True) == "1"
    assert bool_env(False) == ""


SHA = "f26201604c87b1e01bd3d98f8d5d9a8fcbb815e8cedb41ffccbeb4bf593a35fe"


def test_fetchurl_is_fixed_output():
    pkg = fetchurl("adler.tar.gz", "https://example.org/adler.tar.gz", SHA)
    assert pkg.drv.is_fixed_output
    assert pkg.out == fixed_output_path("adler.tar.gz", bytes.fromhex(SHA))
    assert pkg.drv.builder == "builtin:fetchurl"
    assert pkg.drv.platform == "builtin"
    assert pkg.drv.env["outputHash"].startswith("sha256-")
    assert pkg.drv.env["outputHashAlgo"] == ""
    assert pkg.drv.env["url"] == "https://example.org/adler.tar.gz"


def test_fetchurl_recursive():
    flat = fetchurl("t", "https://example.org/t", SHA)
    rec = fetchurl("t", "https://example.org/t", SHA, recursive=True)
    assert flat.out != rec.out
    assert rec.drv.outputs["out"].hash_algo == "r:sha256"


@pytest.mark.parametrize("sha", ["xyz", "ab" * 20])
def test_fetchurl_invalid_hash(sha):
    with pytest.raises(ValueError, match="invalid sha256"):
        fetchurl("t", "https://example.org/t", sha)

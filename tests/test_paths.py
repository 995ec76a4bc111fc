"""Tests for store path computation."""

import pytest

from flakestore.encoding import NIX32_ALPHABET, sha256
from flakestore.paths import (
    STORE_DIR,
    fixed_output_path,
    output_path,
    source_path,
    store_path,
    text_path,
)


def _split(path):
    assert path.startswith(STORE_DIR + "/")
    return path[len(STORE_DIR) + 1:].split("-", 1)


def test_text_path_format():
    """Store path has correct format: /nix/store/<32-char-hash>-<name>."""
    hash_part, name = _split(text_path("hello.txt", b"hello world"))
    assert len(hash_part) == 32
    assert set(hash_part) <= set(NIX32_ALPHABET)
    assert name == "hello.txt"


def test_text_path_deterministic():
    assert text_path("test", b"content") == text_path("test", b"content")


@pytest.mark.parametrize("a, b", [
    (("test", b"aaa"), ("test", b"bbb")),
    (("foo", b"content"), ("bar", b"content")),
])
def test_text_path_sensitive(a, b):
    assert text_path(*a) != text_path(*b)


def test_references_change_path_but_not_their_order():
    refs = ["/nix/store/b-dep.drv", "/nix/store/a-dep.drv"]
    plain = text_path("x.drv", b"Derive()")
    with_refs = text_path("x.drv", b"Derive()", refs)
    assert plain != with_refs
    assert with_refs == text_path("x.drv", b"Derive()", list(reversed(refs)))


def test_no_references_means_bare_kind():
    inner = sha256(b"content")
    assert text_path("x", b"content") == store_path("text", inner, "x")
    assert text_path("x", b"content", ["/nix/store/r"]) == store_path("text:/nix/store/r", inner, "x")


def test_source_path_format():
    hash_part, name = _split(source_path("my-source", sha256(b"some nar data")))
    assert len(hash_part) == 32
    assert name == "my-source"


def test_kind_is_part_of_the_address():
    digest = sha256(b"x")
    assert store_path("text", digest, "n") != store_path("source", digest, "n")


def test_recursive_sha256_fixed_output_is_a_source_path():
    digest = sha256(b"tree")
    assert fixed_output_path("src", digest, recursive=True) == source_path("src", digest)


def test_flat_fixed_output_differs_from_recursive():
    digest = sha256(b"tarball")
    flat = fixed_output_path("crate.tar.gz", digest)
    assert flat != fixed_output_path("crate.tar.gz", digest, recursive=True)
    assert flat.endswith("-crate.tar.gz")


def test_output_path_names():
    drv_hash = sha256(b"drv")
    assert output_path(drv_hash, "out", "brotli-1.1.0").endswith("-brotli-1.1.0")
    assert output_path(drv_hash, "lib", "brotli-1.1.0").endswith("-brotli-1.1.0-lib")


def test_output_paths_differ_per_output():
    drv_hash = sha256(b"drv")
    out = output_path(drv_hash, "out", "p")
    lib = output_path(drv_hash, "lib", "p")
    assert _split(out)[0] != _split(lib)[0]


def test_custom_store_dir():
    path = store_path("text", sha256(b"x"), "x", store_dir="/gnu/store")
    assert path.startswith("/gnu/store/")
    assert path != store_path("text", sha256(b"x"), "x")

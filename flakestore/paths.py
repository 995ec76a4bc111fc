"""Store path computation.

    /nix/store/<32 chars of nix32>-<name>

The hash part is derived from a fingerprint

    <type>:sha256:<hex inner digest>:/nix/store:<name>

which is SHA-256 hashed, folded to 20 bytes and printed in nix32. The
type says what kind of object the path holds:

  text           writeText, .drv files (inner digest: sha256 of content)
  source         imported trees (inner digest: NAR hash)
  output:<name>  derivation outputs (inner digest: hashDerivationModulo)

References are appended to the type as ``:<path>`` in sorted order. No
references means no trailing colon.

See: nix/src/libstore/store-api.cc, makeStorePath()
"""

from flakestore.encoding import fold_digest, sha256, to_nix32

STORE_DIR = "/nix/store"
HASH_SIZE = 20


def store_path(kind: str, inner: bytes, name: str, store_dir: str = STORE_DIR) -> str:
    fingerprint = f"{kind}:sha256:{inner.hex()}:{store_dir}:{name}"
    digest = fold_digest(sha256(fingerprint.encode()), HASH_SIZE)
    return f"{store_dir}/{to_nix32(digest)}-{name}"


def _with_refs(kind: str, references: list[str] | None) -> str:
    return ":".join([kind, *sorted(references or [])])


def text_path(name: str, content: bytes, references: list[str] | None = None) -> str:
    """Path of a text object (``.drv`` files, ``writeText``)."""
    return store_path(_with_refs("text", references), sha256(content), name)


def source_path(name: str, nar_digest: bytes, references: list[str] | None = None) -> str:
    """Path of an imported tree, from the NAR hash of its contents."""
    return store_path(_with_refs("source", references), nar_digest, name)


def fixed_output_path(name: str, digest: bytes, *, recursive: bool = False, algo: str = "sha256") -> str:
    """Path of a fixed-output derivation (fetchurl).

    A recursive sha256 output is addressed exactly like a source import.
    Everything else goes through the ``fixed:out:`` descriptor first.
    """
    if recursive and algo == "sha256":
        return store_path("source", digest, name)
    method = "r:" if recursive else ""
    inner = sha256(f"fixed:out:{method}{algo}:{digest.hex()}:".encode())
    return store_path("output:out", inner, name)


def output_path(drv_hash: bytes, output: str, name: str) -> str:
    """Path of one output of a derivation.

    ``out`` keeps the derivation name, other outputs get a suffix:
    ``brotli-1.1.0`` and ``brotli-1.1.0-lib``.
    """
    suffix = name if output == "out" else f"{name}-{output}"
    return store_path(f"output:{output}", drv_hash, suffix)

"""Deterministic archives (NAR) of source trees.

A flake's ``src = ./.`` is imported into the store by archiving the
tree in NAR form and hashing the bytes. NAR keeps only what matters for
reproducibility:

  - file contents and the executable bit (no mtime, owner, mode bits)
  - symlink targets, unresolved
  - directory entries in sorted order

Every token is framed as ``uint64_le(len) + bytes + zero pad to 8``.
The layout of one node is:

    ( type regular [executable ""] contents <data> )
    ( type symlink target <target> )
    ( type directory { entry ( name <n> node <node> ) }* )

preceded once by the magic ``nix-archive-1``.

An optional ``include`` predicate receives each path relative to the
root (POSIX form) and drops entries for which it returns False. This is
how build outputs and VCS metadata are kept out of a source import.

See: nix/src/libutil/archive.cc, dump()
"""

import hashlib
import os
import struct
from collections.abc import Callable, Iterator
from pathlib import Path

MAGIC = "nix-archive-1"

PathFilter = Callable[[str], bool]


def _frame(token: str | bytes) -> bytes:
    if isinstance(token, str):
        token = token.encode()
    pad = -len(token) % 8
    return struct.pack("<Q", len(token)) + token + b"\0" * pad


def _node(path: Path, rel: str, include: PathFilter | None) -> Iterator[bytes]:
    yield _frame("(")
    yield _frame("type")
    if path.is_symlink():
        yield _frame("symlink")
        yield _frame("target")
        yield _frame(os.readlink(path))
    elif path.is_file():
        yield _frame("regular")
        if os.access(path, os.X_OK):
            yield _frame("executable")
            yield _frame("")
        yield _frame("contents")
        yield _frame(path.read_bytes())
    elif path.is_dir():
        yield _frame("directory")
        for name in sorted(os.listdir(path)):
            child_rel = f"{rel}/{name}" if rel else name
            if include is not None and not include(child_rel):
                continue
            yield _frame("entry")
            yield _frame("(")
            yield _frame("name")
            yield _frame(name)
            yield _frame("node")
            yield from _node(path / name, child_rel, include)
            yield _frame(")")
    else:
        raise ValueError(f"cannot archive special file: {path}")
    yield _frame(")")


def dump(path: str | Path, include: PathFilter | None = None) -> bytes:
    """Serialize ``path`` to NAR bytes."""
    return _frame(MAGIC) + b"".join(_node(Path(path), "", include))


def nar_hash(path: str | Path, include: PathFilter | None = None) -> bytes:
    """SHA-256 of the archive, what ``nix hash path`` prints."""
    digest = hashlib.sha256(_frame(MAGIC))
    for chunk in _node(Path(path), "", include):
        digest.update(chunk)
    return digest.digest()

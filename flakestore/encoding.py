"""Digest helpers and the Nix flavour of base32.

Store path hashes are 160-bit digests printed in Nix base32. Two steps
get a SHA-256 digest there:

  1. fold_digest() XORs the 32-byte digest down to 20 bytes, so every
     input byte still contributes (see nix/src/libutil/hash.cc,
     compressHash()).
  2. to_nix32() prints it with the alphabet
     "0123456789abcdfghijklmnpqrsvwxyz" (no e, o, t, u), reading 5-bit
     groups starting from the *end* of the digest
     (see nix/src/libutil/hash.cc, printHash32()).

The result is always ceil(len * 8 / 5) characters: 32 for a store path
hash, 52 for a full SHA-256.
"""

import hashlib

NIX32_ALPHABET = "0123456789abcdfghijklmnpqrsvwxyz"


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def fold_digest(digest: bytes, size: int) -> bytes:
    """XOR-fold ``digest`` into ``size`` bytes.

    Byte i of the input lands on position i % size, so for a 32-byte
    digest folded to 20 the first 12 positions mix two input bytes and
    the last 8 are copied as-is.
    """
    folded = bytearray(size)
    for i, byte in enumerate(digest):
        folded[i % size] ^= byte
    return bytes(folded)


def to_nix32(data: bytes) -> str:
    """Print ``data`` in Nix base32."""
    width = len(data)
    length = (width * 8 + 4) // 5
    chars = []
    for n in reversed(range(length)):
        bit = n * 5
        index, shift = divmod(bit, 8)
        value = data[index] >> shift
        if index + 1 < width:
            value |= data[index + 1] << (8 - shift)
        chars.append(NIX32_ALPHABET[value & 0x1F])
    return "".join(chars)


def sri(algo: str, digest: bytes) -> str:
    """Subresource-integrity form, e.g. ``sha256-<base64>``."""
    import base64

    return f"{algo}-{base64.b64encode(digest).decode()}"

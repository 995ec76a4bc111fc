"""Fixed-output fetches. Python equivalent of <nix/fetchurl.nix>.

A fetch is a derivation whose output is known in advance by content
hash. Its store path depends only on that hash and the name, never on
how the bytes are obtained, which is what makes vendored lock-file
dependencies reproducible offline.

The builder is ``builtin:fetchurl``, implemented inside Nix itself, so
fetches need nothing from the package index.
"""

from flakepkgs.drv import Package, drv
from flakestore.encoding import sri

FETCHURL_ENV_BASE = {
    "impureEnvVars": "http_proxy https_proxy ftp_proxy all_proxy no_proxy",
    "preferLocalBuild": "1",
}


def fetchurl(name: str, url: str, sha256: str, *,
             recursive: bool = False, executable: bool = False) -> Package:
    """Fetch ``url`` into the store, expecting the given hex sha256.

    The env carries the SRI form of the hash (``hash = "sha256-..."``
    in nixpkgs), with outputHashAlgo left empty.
    """
    try:
        digest = bytes.fromhex(sha256)
    except ValueError:
        raise ValueError(f"invalid sha256 for {name}: {sha256!r}") from None
    if len(digest) != 32:
        raise ValueError(f"invalid sha256 for {name}: expected 64 hex digits")

    mode = "recursive" if recursive else "flat"
    return drv(
        name=name,
        builder="builtin:fetchurl",
        system="builtin",
        output_hash=sha256,
        output_hash_mode=mode,
        env={
            **FETCHURL_ENV_BASE,
            "executable": "1" if executable else "",
            "outputHash": sri("sha256", digest),
            "outputHashAlgo": "",
            "outputHashMode": mode,
            "unpack": "",
            "url": url,
            "urls": url,
        },
    )

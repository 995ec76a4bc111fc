"""Import the project source tree: ``src = ./.``.

The tree is archived, hashed and addressed as a ``source`` store path,
the way Nix copies a flake into the store. VCS metadata and build
outputs are left out so that building the project does not change the
address of its own source.
"""

import logging
from pathlib import Path

from flakepkgs.errors import ConfigError
from flakestore.archive import nar_hash
from flakestore.paths import source_path

logger = logging.getLogger(__name__)

EXCLUDED_NAMES = frozenset({".git", ".direnv", "target"})


def default_filter(rel: str) -> bool:
    """Keep everything except VCS metadata, cargo's target dir and ``result*`` links."""
    top = rel.split("/", 1)[0]
    if top in EXCLUDED_NAMES:
        return False
    return not (top == "result" or top.startswith("result-"))


def import_source(path: str | Path, name: str = "source", include=default_filter) -> str:
    """Store path of the tree at ``path``."""
    root = Path(path)
    if not root.exists():
        raise ConfigError(f"source path does not exist: {root}")
    sp = source_path(name, nar_hash(root, include))
    logger.debug("imported %s as %s", root, sp)
    return sp

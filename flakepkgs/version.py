"""Version strings from repository provenance.

Same scheme as the flake's

    version = "${builtins.substring 0 8 self.lastModifiedDate}-${self.shortRev or "dirty"}";

so a clean checkout of commit abc1234 made on 2024-03-05 is
``20240305-abc1234`` and any uncommitted change to a tracked file gives
``20240305-dirty``. Resolution never fails: missing information
degrades to the ``dirty`` marker.
"""

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DIRTY = "dirty"
SHORT_REV_LENGTH = 7


def format_last_modified(epoch: int) -> str:
    """``lastModifiedDate``: UTC ``%Y%m%d%H%M%S`` of a Unix timestamp."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y%m%d%H%M%S")


def resolve_version(last_modified_date: str, short_rev: str | None) -> str:
    return f"{last_modified_date[:8]}-{short_rev or DIRTY}"


@dataclass(frozen=True)
class Provenance:
    """What is known about the state of the source tree.

    ``rev`` is the full commit hash of a clean checkout, ``None`` when
    the tree is dirty or not under version control.
    """

    last_modified: int = 0
    rev: str | None = None
    dirty: bool = False

    @property
    def last_modified_date(self) -> str:
        return format_last_modified(self.last_modified)

    @property
    def short_rev(self) -> str | None:
        if self.dirty or not self.rev:
            return None
        return self.rev[:SHORT_REV_LENGTH]

    @property
    def version(self) -> str:
        return resolve_version(self.last_modified_date, self.short_rev)


UNKNOWN = Provenance(last_modified=0, rev=None, dirty=True)


def _git(root: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", "-C", str(root), *args],
        capture_output=True,
        text=True,
        check=True,
    )
    return proc.stdout.strip()


def read_provenance(root: str | Path) -> Provenance:
    """Ask git about ``root``.

    A change to a tracked file makes the tree dirty; untracked files do
    not, as they are not part of the checkout. If ``root`` is not
    a git checkout (or git is not installed) the result is UNKNOWN.
    """
    root = Path(root)
    try:
        rev = _git(root, "rev-parse", "HEAD")
        last_modified = int(_git(root, "log", "-1", "--format=%ct", "HEAD"))
        status = _git(root, "status", "--porcelain", "--untracked-files=no")
    except (OSError, ValueError, subprocess.CalledProcessError) as e:
        logger.warning("cannot read git provenance of %s (%s); version will be %r", root, e, DIRTY)
        return UNKNOWN

    dirty = bool(status)
    if dirty:
        logger.info("working tree %s is dirty", root)
    return Provenance(last_modified=last_modified, rev=None if dirty else rev, dirty=dirty)

"""Per-platform attribute sets.

Every flake output is keyed by platform:

    packages.x86_64-linux.timetrax
    devShell.x86_64-linux

The helper that builds those maps, nixpkgs' ``lib.genAttrs`` behind the
usual ``forAllSystems``, lives here once and every output goes through
it. The platform list is always an argument, so synthetic platform
sets can be used in tests.
"""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from flakepkgs.errors import ConfigError
from flakepkgs.package_set import LazyAttrSet

logger = logging.getLogger(__name__)

SUPPORTED_SYSTEMS: tuple[str, ...] = ("x86_64-linux",)


def gen_attrs(names: Iterable[str], f: Callable[[str], Any], name: str = "") -> LazyAttrSet:
    """``{n: f(n) for n in names}``, lazily.

    ``f(n)`` runs the first time ``n`` is looked up and never again.
    Repeated names collapse into one entry.
    """
    return LazyAttrSet({n: _bind(f, n) for n in dict.fromkeys(names)}, name=name)


def _bind(f: Callable[[str], Any], value: str) -> Callable[[], Any]:
    return lambda: f(value)


def normalize_systems(systems: Iterable[str]) -> tuple[str, ...]:
    result = tuple(dict.fromkeys(systems))
    if not result:
        raise ConfigError("at least one system is required")
    for system in result:
        if not isinstance(system, str) or not system:
            raise ConfigError(f"invalid system identifier: {system!r}")
    return result


def for_all_systems(systems: Iterable[str], f: Callable[[str], Any], name: str = "") -> LazyAttrSet:
    """``forAllSystems = f: lib.genAttrs supportedSystems f``."""
    return gen_attrs(normalize_systems(systems), f, name=name)


def force(attrs: LazyAttrSet, max_workers: int | None = None) -> dict[str, Any]:
    """Evaluate every entry of ``attrs`` and return a plain dict.

    With ``max_workers`` the entries are forced on a thread pool; entries
    share no mutable state, and the set itself guarantees each thunk
    runs once.
    """
    names = list(attrs)
    if max_workers is None or len(names) < 2:
        return {n: attrs.force(n) for n in names}
    logger.debug("forcing %d entries with %d workers", len(names), max_workers)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        values = list(pool.map(attrs.force, names))
    return dict(zip(names, values))

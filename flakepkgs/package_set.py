"""Lazy package sets, fixed points and overlays.

Python replacement for the three pieces of Nix that make a package
index able to refer to itself:

    Nix:    lib.fix (self: { a = 1; b = self.a + 1; })
    Python: fix(lambda self: {"a": lambda: 1, "b": lambda: self.a + 1})

    Nix:    pkgs.extend (final: prev: { timetrax = final.callPackage ./. {}; })
    Python: extend(pkgs, lambda final, prev: {"timetrax": lambda: final.call(package)})

    Nix:    callPackage f { inShell = true; }
    Python: pkgs.call(f, in_shell=True)

A LazyAttrSet maps names to thunks (zero-argument callables). A thunk
runs the first time its name is looked up and the result is cached, so
every lookup of the same name in one set returns the same object.
Because ``final`` is handed to the overlay before any thunk runs, a
package may look up other packages, or itself, through the very set it
is being added to. A thunk that needs its own value raises
InfiniteRecursion instead of recursing forever.
"""

import dataclasses
import inspect
import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from flakepkgs.drv import Package
from flakepkgs.errors import InfiniteRecursion, MissingDependency

logger = logging.getLogger(__name__)

Thunk = Callable[[], Any]
Overlay = Callable[["LazyAttrSet", "LazyAttrSet"], Mapping[str, Thunk]]

# Which thread is evaluating each (set, name) slot, and which slot each
# blocked thread waits for. Shared by all sets so that cycles through
# several sets and several threads are seen.
_slots_guard = threading.Lock()
_owners: dict[tuple[int, str], int] = {}
_waiting: dict[int, tuple[int, str]] = {}


def _closes_cycle(slot: tuple[int, str], me: int) -> bool:
    """Would waiting for ``slot`` make ``me`` wait for itself?"""
    seen = set()
    owner = _owners.get(slot)
    while owner is not None and owner not in seen:
        if owner == me:
            return True
        seen.add(owner)
        blocked_on = _waiting.get(owner)
        if blocked_on is None:
            return False
        owner = _owners.get(blocked_on)
    return False


class LazyAttrSet(Mapping):
    """Read-only mapping of memoized thunks.

    Names are reachable as items (``pkgs["pkg-config"]``), as attributes
    (``pkgs.sqlite``) and as dotted paths (``pkgs["xorg.libX11"]``,
    ``pkgs["brotli.lib"]``). Missing names raise MissingDependency.

    Each name has its own lock, so different names can be forced from
    different threads while a given thunk still runs once. A name that
    needs itself raises InfiniteRecursion, also when the cycle runs
    through names being forced by other threads.
    """

    def __init__(self, thunks: Mapping[str, Thunk] | None = None, name: str = ""):
        self._thunks: dict[str, Thunk] = dict(thunks or {})
        self._cache: dict[str, Any] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._name = name

    def __repr__(self) -> str:
        label = f" {self._name}" if self._name else ""
        return f"<LazyAttrSet{label}: {len(self._thunks)} attrs, {len(self._cache)} forced>"

    # --- Mapping ---

    def __getitem__(self, path: str) -> Any:
        return self.resolve(path)

    def __iter__(self) -> Iterator[str]:
        return iter(self._thunks)

    def __len__(self) -> int:
        return len(self._thunks)

    def __contains__(self, name: object) -> bool:
        return name in self._thunks

    def get(self, path: str, default: Any = None) -> Any:
        try:
            return self.resolve(path)
        except MissingDependency:
            return default

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.force(name)

    # --- Evaluation ---

    def _lock_for(self, name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(name, threading.Lock())

    def is_forced(self, name: str) -> bool:
        return name in self._cache

    def force(self, name: str) -> Any:
        """Evaluate one top-level name, at most once."""
        if name in self._cache:
            return self._cache[name]
        if name not in self._thunks:
            raise MissingDependency(name, self._name or None)
        slot = (id(self), name)
        me = threading.get_ident()
        with _slots_guard:
            if _closes_cycle(slot, me):
                raise InfiniteRecursion(f"infinite recursion encountered while evaluating {name!r}")
            _waiting[me] = slot
        lock = self._lock_for(name)
        try:
            lock.acquire()
        finally:
            with _slots_guard:
                del _waiting[me]
        try:
            if name in self._cache:
                return self._cache[name]
            with _slots_guard:
                _owners[slot] = me
            try:
                logger.debug("forcing %s%s", f"{self._name}." if self._name else "", name)
                value = self._thunks[name]()
            finally:
                with _slots_guard:
                    del _owners[slot]
            self._cache[name] = value
            return value
        finally:
            lock.release()

    def resolve(self, path: str, required_by: str | None = None) -> Any:
        """Look up a dotted attribute path.

        Each segment selects a name from a nested set or mapping, or, on
        a package, one of its outputs:

            pkgs.resolve("xorg.libX11")    # nested set
            pkgs.resolve("brotli.lib")     # OutputRef to brotli's lib output

        A name containing dots that exists verbatim wins over walking.
        """
        if path in self._thunks:
            return self.force(path)
        value: Any = self
        for attr in path.split("."):
            if isinstance(value, LazyAttrSet):
                if attr not in value._thunks:
                    raise MissingDependency(path, required_by)
                value = value.force(attr)
            elif isinstance(value, Mapping):
                if attr not in value:
                    raise MissingDependency(path, required_by)
                value = value[attr]
            elif isinstance(value, Package) and attr in value.outputs:
                value = value.output(attr)
            else:
                raise MissingDependency(path, required_by)
        return value

    def call(self, fn: Callable[..., Any], **overrides: Any) -> Any:
        """Call ``fn`` with its parameters looked up in this set.

        Like Nix's callPackage: each parameter name is resolved as an
        attribute (``pkg_config`` also matches ``pkg-config``); explicit
        ``overrides`` win, and parameters with defaults may be absent.
        The result gains ``.override(**kw)`` re-calling ``fn`` with the
        merged arguments.
        """
        sig = inspect.signature(fn)
        unknown = set(overrides) - set(sig.parameters)
        if unknown:
            raise TypeError(f"{fn.__qualname__} has no parameters {sorted(unknown)}")

        kwargs = {}
        for param in sig.parameters.values():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            if param.name in overrides:
                kwargs[param.name] = overrides[param.name]
                continue
            for candidate in (param.name, param.name.replace("_", "-")):
                if candidate in self._thunks:
                    kwargs[param.name] = self.force(candidate)
                    break
            else:
                if param.default is param.empty:
                    raise MissingDependency(param.name, fn.__qualname__)

        result = fn(**kwargs)
        return _make_overridable(result, lambda **kw: self.call(fn, **{**overrides, **kw}))


def _make_overridable(result: Any, override: Callable[..., Any]) -> Any:
    if dataclasses.is_dataclass(result) and not isinstance(result, type):
        if any(f.name == "_override" for f in dataclasses.fields(result)):
            return dataclasses.replace(result, _override=override)
    return result


def fix(f: Callable[[LazyAttrSet], Mapping[str, Thunk]], name: str = "") -> LazyAttrSet:
    """Fixed point of ``f``: the set ``f`` describes, passed to ``f`` itself.

        fix = f: let x = f x; in x

    ``f`` receives the (still empty) result and returns the thunks that
    fill it. Nothing is forced until a name is looked up.
    """
    result = LazyAttrSet(name=name)
    result._thunks = dict(f(result))
    return result


def extend(base: Mapping[str, Any], *overlays: Overlay, name: str = "") -> LazyAttrSet:
    """Apply overlays on top of ``base`` without touching it.

    Each overlay is ``(final, prev) -> {name: thunk}``: ``final`` is the
    finished set, ``prev`` the layers below this overlay. Names the
    overlays do not define are read from ``base`` on demand, so objects
    coming from ``base`` are shared, not copied.
    """
    def layered(final: LazyAttrSet) -> dict[str, Thunk]:
        thunks: dict[str, Thunk] = {key: _from(base, key) for key in base}
        for overlay in overlays:
            prev = LazyAttrSet(thunks, name=f"{name}.prev" if name else "prev")
            layer = overlay(final, prev)
            logger.debug("overlay adds %s", ", ".join(sorted(layer)) or "nothing")
            thunks = {**thunks, **layer}
        return thunks

    return fix(layered, name)


def _from(base: Mapping[str, Any], key: str) -> Thunk:
    if isinstance(base, LazyAttrSet):
        return lambda: base.force(key)
    return lambda: base[key]

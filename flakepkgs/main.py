#!/usr/bin/env python3
"""flakepkgs: evaluate a project flake from the command line."""

import argparse
import json
import logging
import sys

from flakepkgs.config import load_config
from flakepkgs.errors import EvalError
from flakepkgs.flake import OUTPUTS, Flake
from flakepkgs.source import import_source
from flakepkgs.version import read_provenance
from flakestore.aterm import serialize

logger = logging.getLogger("flakepkgs")


def _flake(args) -> Flake:
    return Flake.from_config(load_config(args.config))


def _descriptor(args):
    flake = _flake(args)
    system = args.system or flake.systems[0]
    return flake.output(args.output)[system]


def cmd_show(args):
    json.dump(_flake(args).show(), sys.stdout, indent=2)
    print()


def cmd_version(args):
    print(read_provenance(args.path).version)


def cmd_eval(args):
    json.dump(_descriptor(args).to_dict(), sys.stdout, indent=2)
    print()


def cmd_drv(args):
    print(serialize(_descriptor(args).package.drv))


def cmd_check(args):
    flake = _flake(args)
    flake.check(max_workers=args.jobs)
    print(f"checked {len(flake.systems)} system(s): ok")


def cmd_store_path(args):
    name = args.name or "source"
    print(import_source(args.path, name))


def main(argv=None):
    parser = argparse.ArgumentParser(prog="flakepkgs", description="Evaluate a project flake")
    parser.add_argument("--config", help="flake.toml to use (default: ./flake.toml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log evaluation steps")
    sub = parser.add_subparsers(dest="command")

    # show
    p = sub.add_parser("show", help="List the flake outputs")
    p.set_defaults(func=cmd_show)

    # version
    p = sub.add_parser("version", help="Print the version derived from the checkout")
    p.add_argument("path", nargs="?", default=".")
    p.set_defaults(func=cmd_version)

    # eval
    p = sub.add_parser("eval", help="Show one output descriptor as JSON")
    p.add_argument("output", choices=list(OUTPUTS))
    p.add_argument("--system", help="Platform (default: first supported)")
    p.set_defaults(func=cmd_eval)

    # drv
    p = sub.add_parser("drv", help="Print the derivation of one output in ATerm form")
    p.add_argument("output", choices=list(OUTPUTS))
    p.add_argument("--system", help="Platform (default: first supported)")
    p.set_defaults(func=cmd_drv)

    # check
    p = sub.add_parser("check", help="Evaluate all outputs and verify their invariants")
    p.add_argument("-j", "--jobs", type=int, default=None, help="Evaluate platforms in parallel")
    p.set_defaults(func=cmd_check)

    # store-path
    p = sub.add_parser("store-path", help="Compute the store path of a source tree")
    p.add_argument("path")
    p.add_argument("--name", help="Store name (default: source)")
    p.set_defaults(func=cmd_store_path)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if not args.command:
        parser.print_help()
        sys.exit(1)
    try:
        args.func(args)
    except EvalError as e:
        logger.debug("evaluation failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

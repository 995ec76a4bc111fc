"""flakestore: content-addressing primitives for flake evaluation.

Everything here is a pure function of its inputs: hashing, the Nix
base32 alphabet, deterministic archives of source trees, store path
computation and the ATerm form of a derivation. Nothing talks to a
store or a daemon.
"""

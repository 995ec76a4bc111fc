"""Derivations and their ATerm serialization.

A derivation is what a package descriptor finally turns into: the exact
builder invocation, inputs and environment for one build. Nix writes
them as ``.drv`` files in ATerm syntax:

    Derive(
        [("out","/nix/store/...","",""), ...],     # outputs
        [("/nix/store/...drv",["out"]), ...],       # input derivations
        ["/nix/store/...", ...],                    # input sources
        "x86_64-linux",                             # system
        "/nix/store/...-bash/bin/bash",             # builder
        ["-e", ...],                                # args
        [("key","value"), ...]                      # env
    )

Outputs, input derivations, input sources and env are emitted in sorted
order; args keep their order.

See: nix/src/libstore/derivations.cc
"""

from dataclasses import dataclass, field

from flakestore.encoding import sha256


@dataclass
class DerivationOutput:
    path: str
    hash_algo: str = ""  # "sha256" or "r:sha256" for fixed outputs
    hash_value: str = ""  # hex digest for fixed outputs


@dataclass
class Derivation:
    outputs: dict[str, DerivationOutput] = field(default_factory=dict)
    input_drvs: dict[str, list[str]] = field(default_factory=dict)
    input_srcs: list[str] = field(default_factory=list)
    platform: str = ""
    builder: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    @property
    def is_fixed_output(self) -> bool:
        return list(self.outputs) == ["out"] and self.outputs["out"].hash_algo != ""


_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"})


def _q(s: str) -> str:
    return '"' + s.translate(_ESCAPES) + '"'


def _list(items) -> str:
    return "[" + ",".join(items) + "]"


def serialize(drv: Derivation) -> str:
    """Render ``drv`` as ATerm text."""
    outputs = _list(
        f"({_q(name)},{_q(o.path)},{_q(o.hash_algo)},{_q(o.hash_value)})"
        for name, o in sorted(drv.outputs.items())
    )
    inputs = _list(
        f"({_q(path)},{_list(_q(o) for o in sorted(outs))})"
        for path, outs in sorted(drv.input_drvs.items())
    )
    srcs = _list(_q(s) for s in sorted(drv.input_srcs))
    args = _list(_q(a) for a in drv.args)
    env = _list(f"({_q(k)},{_q(v)})" for k, v in sorted(drv.env.items()))
    return (
        f"Derive({outputs},{inputs},{srcs},{_q(drv.platform)},"
        f"{_q(drv.builder)},{args},{env})"
    )


def hash_derivation_modulo(
    drv: Derivation,
    input_hashes: dict[str, bytes] | None = None,
    mask_outputs: bool = True,
) -> bytes:
    """Hash a derivation with its self-references taken out.

    Output paths depend on this hash while the derivation also mentions
    its own output paths, so the hash is computed "modulo" them:

      - fixed outputs hash only what they promise to produce:
        ``fixed:out:<algo>:<hash>:<path>``
      - otherwise every input ``.drv`` path is replaced by that input's
        own modular hash, and with ``mask_outputs`` the derivation's
        output paths (and the env variables holding them) are blanked.

    ``input_hashes`` maps each input ``.drv`` path to its modular hash,
    computed with ``mask_outputs=False``.

    See: nix/src/libstore/derivations.cc, hashDerivationModulo()
    """
    if drv.is_fixed_output:
        o = drv.outputs["out"]
        return sha256(f"fixed:out:{o.hash_algo}:{o.hash_value}:{o.path}".encode())

    input_hashes = input_hashes or {}
    rewritten: dict[str, list[str]] = {}
    for path, outs in drv.input_drvs.items():
        if path not in input_hashes:
            raise ValueError(f"missing hash for input derivation: {path}")
        rewritten[input_hashes[path].hex()] = sorted(outs)

    env = dict(drv.env)
    outputs = dict(drv.outputs)
    if mask_outputs:
        outputs = {n: DerivationOutput("", o.hash_algo, o.hash_value) for n, o in outputs.items()}
        for name in outputs:
            if name in env:
                env[name] = ""

    masked = Derivation(
        outputs=outputs,
        input_drvs=rewritten,
        input_srcs=list(drv.input_srcs),
        platform=drv.platform,
        builder=drv.builder,
        args=list(drv.args),
        env=env,
    )
    return sha256(serialize(masked).encode())

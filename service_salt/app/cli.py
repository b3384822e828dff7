"""
Master seed tooling.

    salt-seed generate
    salt-seed shard <seed> <total> <threshold>
    salt-seed recover <index:hex> <index:hex> ...

Shards are printed as ``index:hex``; any ``threshold`` of them recover the
seed. Keep generated seeds and shards out of version control.
"""

import argparse
import secrets
import sys
from typing import Dict, List, Optional, Tuple

from shared.errors import SeedError
from .derivation.kdf import SEED_LENGTH
from .derivation.seed import parse_seed_hex
from .derivation.shamir import combine_shares, split_secret


def generate_seed() -> str:
    return "0x" + secrets.token_hex(SEED_LENGTH)


def parse_shard(value: str) -> Tuple[int, bytes]:
    index_text, sep, shard_hex = value.partition(":")
    if not sep or not index_text or not shard_hex:
        raise ValueError(f"Invalid shard format: {value} (expected index:hex)")
    try:
        index = int(index_text, 10)
    except ValueError:
        raise ValueError(f"Invalid shard index: {index_text}") from None
    if shard_hex.startswith(("0x", "0X")):
        shard_hex = shard_hex[2:]
    try:
        return index, bytes.fromhex(shard_hex)
    except ValueError:
        raise ValueError(f"Shard {index} is not valid hex") from None


def _cmd_generate(args: argparse.Namespace) -> int:
    print(generate_seed())
    print("Store this securely and never commit it to version control.", file=sys.stderr)
    return 0


def _cmd_shard(args: argparse.Namespace) -> int:
    if args.total < 2 or args.threshold < 2 or args.threshold > args.total or args.total > 255:
        print("Invalid shard configuration: require 2 <= threshold <= total <= 255", file=sys.stderr)
        return 1

    try:
        seed = parse_seed_hex(args.seed, "argument")
    except SeedError as e:
        print(e.message, file=sys.stderr)
        return 1

    shards = split_secret(bytes(seed), args.total, args.threshold)
    print(f"Seed split into {args.total} shards (threshold: {args.threshold}):", file=sys.stderr)
    for index, shard in shards.items():
        print(f"{index}:{shard.hex()}")
    return 0


def _cmd_recover(args: argparse.Namespace) -> int:
    shards: Dict[int, bytes] = {}
    try:
        for value in args.shards:
            index, shard = parse_shard(value)
            shards[index] = shard
        recovered = combine_shares(shards)
    except ValueError as e:
        print(f"Failed to recover seed: {e}", file=sys.stderr)
        return 1

    if len(recovered) != SEED_LENGTH:
        print(f"Recovered secret is {len(recovered)} bytes, expected {SEED_LENGTH}", file=sys.stderr)
        return 1

    print("0x" + recovered.hex())
    print("Verify this matches your expected seed before using it.", file=sys.stderr)
    return 0


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="salt-seed", description="Generate, shard and recover master seeds.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Print a new random 32-byte seed")
    generate.set_defaults(func=_cmd_generate)

    shard = subparsers.add_parser("shard", help="Split a seed into Shamir shards")
    shard.add_argument("seed", help="Hex seed, optional 0x prefix")
    shard.add_argument("total", type=int, help="Number of shards to create")
    shard.add_argument("threshold", type=int, help="Shards required to recover")
    shard.set_defaults(func=_cmd_shard)

    recover = subparsers.add_parser("recover", help="Recover a seed from shards")
    recover.add_argument("shards", nargs="+", help="Shards as index:hex")
    recover.set_defaults(func=_cmd_recover)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = _parse_args(argv)
    except SystemExit as e:
        # argparse exits with 2 on usage errors
        return 0 if e.code == 0 else 1
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())

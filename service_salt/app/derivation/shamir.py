"""
Shamir secret sharing over GF(2^8), byte-wise.

Used by the seed tooling to split a master seed between custodians. Shares
are indexed 1..255; any ``threshold`` of them reconstruct the secret.
"""

import secrets
from typing import Dict, Mapping

# AES reduction polynomial x^8 + x^4 + x^3 + x + 1
_POLY = 0x11B


def _gf_mul(a: int, b: int) -> int:
    result = 0
    while b:
        if b & 1:
            result ^= a
        a <<= 1
        if a & 0x100:
            a ^= _POLY
        b >>= 1
    return result


def _gf_inv(a: int) -> int:
    if a == 0:
        raise ZeroDivisionError("0 has no inverse in GF(256)")
    # a^254 == a^-1 since the multiplicative group has order 255
    result = 1
    power = a
    exponent = 254
    while exponent:
        if exponent & 1:
            result = _gf_mul(result, power)
        power = _gf_mul(power, power)
        exponent >>= 1
    return result


def _eval_poly(coefficients: bytes, x: int) -> int:
    # Horner, highest degree first
    result = 0
    for coefficient in reversed(coefficients):
        result = _gf_mul(result, x) ^ coefficient
    return result


def split_secret(secret: bytes, total: int, threshold: int) -> Dict[int, bytes]:
    """Split ``secret`` into ``total`` shares, any ``threshold`` of which recover it."""
    if not secret:
        raise ValueError("Secret must not be empty")
    if threshold < 2 or total < threshold or total > 255:
        raise ValueError("Require 2 <= threshold <= total <= 255")

    shares: Dict[int, bytearray] = {x: bytearray() for x in range(1, total + 1)}
    for byte in secret:
        coefficients = bytes([byte]) + secrets.token_bytes(threshold - 1)
        for x, share in shares.items():
            share.append(_eval_poly(coefficients, x))
    return {x: bytes(share) for x, share in shares.items()}


def combine_shares(shares: Mapping[int, bytes]) -> bytes:
    """Recover the secret from a set of shares by Lagrange interpolation at 0."""
    if len(shares) < 2:
        raise ValueError("At least two shares are required")
    lengths = {len(share) for share in shares.values()}
    if len(lengths) != 1:
        raise ValueError("Shares have different lengths")
    for x in shares:
        if not 1 <= x <= 255:
            raise ValueError(f"Invalid share index: {x}")

    xs = list(shares)
    basis = []
    for i, xi in enumerate(xs):
        numerator, denominator = 1, 1
        for j, xj in enumerate(xs):
            if i == j:
                continue
            numerator = _gf_mul(numerator, xj)
            denominator = _gf_mul(denominator, xj ^ xi)
        basis.append(_gf_mul(numerator, _gf_inv(denominator)))

    length = lengths.pop()
    secret = bytearray(length)
    for position in range(length):
        value = 0
        for weight, x in zip(basis, xs):
            value ^= _gf_mul(shares[x][position], weight)
        secret[position] = value
    return bytes(secret)

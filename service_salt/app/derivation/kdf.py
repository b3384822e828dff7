"""
Deterministic salt derivation.

salt = HKDF-SHA256(ikm=master_seed, salt=<absent>, info=b"<sub>:<aud>", length=32)

The separator, the raw UTF-8 (not hex) concatenation of subject and
audience, the hash function and the output length are a compatibility
contract shared with every other deployment holding the same seed.
"""

from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from shared.errors import InvariantViolation

SEED_LENGTH = 32
SALT_LENGTH = 32
INFO_SEPARATOR = ":"


def derive_salt(seed: Union[bytes, bytearray], subject: str, audience: str) -> bytes:
    """Derive the 32-byte salt for a (subject, audience) pair."""
    if len(seed) != SEED_LENGTH:
        raise ValueError(f"Master seed must be {SEED_LENGTH} bytes, got {len(seed)}")

    info = f"{subject}{INFO_SEPARATOR}{audience}".encode("utf-8")
    salt = HKDF(
        algorithm=hashes.SHA256(),
        length=SALT_LENGTH,
        salt=None,
        info=info,
    ).derive(seed)

    if len(salt) != SALT_LENGTH:
        raise InvariantViolation(f"Derived salt has length {len(salt)}")
    return salt


def salt_to_hex(salt: bytes) -> str:
    """External representation of a salt."""
    return "0x" + salt.hex()

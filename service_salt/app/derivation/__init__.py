"""
Salt derivation and master seed handling.
"""

from .kdf import SALT_LENGTH, SEED_LENGTH, derive_salt, salt_to_hex
from .seed import parse_seed_hex, resolve_seed

__all__ = ["SALT_LENGTH", "SEED_LENGTH", "derive_salt", "salt_to_hex", "parse_seed_hex", "resolve_seed"]

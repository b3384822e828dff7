"""
Unit tests for salt derivation.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_salt.app.derivation.kdf import SALT_LENGTH, derive_salt, salt_to_hex

FIXTURE_SEED = bytes([0x11] * 32)
FIXTURE_SALT = "0x1389a5174a0d9177754806109deeaa4cdbb5ca82daf61a715722ae0f31fa83dc"


class TestDeriveSalt:
    """Test cases for derive_salt."""

    def test_regression_fixture(self):
        """Known seed and identity produce the recorded salt."""
        assert salt_to_hex(derive_salt(FIXTURE_SEED, "user-1", "app-1")) == FIXTURE_SALT

    def test_deterministic(self):
        first = derive_salt(FIXTURE_SEED, "subject", "audience")
        second = derive_salt(FIXTURE_SEED, "subject", "audience")
        assert first == second
        assert len(first) == SALT_LENGTH

    def test_sensitive_to_subject_and_audience(self):
        base = derive_salt(FIXTURE_SEED, "a", "x")
        assert derive_salt(FIXTURE_SEED, "b", "x") != base
        assert derive_salt(FIXTURE_SEED, "a", "y") != base

    def test_distinct_inputs_do_not_collide(self):
        salts = {
            derive_salt(FIXTURE_SEED, f"user-{i}", f"app-{j}")
            for i in range(20)
            for j in range(5)
        }
        assert len(salts) == 100

    def test_seed_isolation(self):
        other_seed = bytes([0x22] * 32)
        assert derive_salt(FIXTURE_SEED, "user-1", "app-1") != derive_salt(other_seed, "user-1", "app-1")

    def test_accepts_mutable_seed(self):
        assert derive_salt(bytearray(FIXTURE_SEED), "user-1", "app-1") == derive_salt(FIXTURE_SEED, "user-1", "app-1")

    def test_unicode_identity(self):
        salt = derive_salt(FIXTURE_SEED, "üser", "äpp")
        assert len(salt) == SALT_LENGTH

    @pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
    def test_rejects_wrong_seed_length(self, length):
        with pytest.raises(ValueError):
            derive_salt(bytes(length), "user-1", "app-1")

    def test_salt_to_hex(self):
        assert salt_to_hex(bytes([0, 1, 255])) == "0x0001ff"

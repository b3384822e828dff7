"""
Unit tests for Shamir secret sharing.
"""

import itertools
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_salt.app.derivation.shamir import _gf_inv, _gf_mul, combine_shares, split_secret

SECRET = bytes(range(32))


class TestGaloisField:
    """Test cases for GF(256) arithmetic."""

    def test_known_product(self):
        # FIPS-197 worked example
        assert _gf_mul(0x57, 0x83) == 0xC1

    def test_inverse(self):
        for value in range(1, 256):
            assert _gf_mul(value, _gf_inv(value)) == 1

    def test_zero_has_no_inverse(self):
        with pytest.raises(ZeroDivisionError):
            _gf_inv(0)


class TestSecretSharing:
    """Test cases for split_secret / combine_shares."""

    def test_any_threshold_subset_recovers(self):
        shares = split_secret(SECRET, total=5, threshold=3)
        assert sorted(shares) == [1, 2, 3, 4, 5]
        for subset in itertools.combinations(shares, 3):
            assert combine_shares({x: shares[x] for x in subset}) == SECRET

    def test_more_than_threshold_recovers(self):
        shares = split_secret(SECRET, total=5, threshold=3)
        assert combine_shares(shares) == SECRET

    def test_below_threshold_does_not_recover(self):
        shares = split_secret(SECRET, total=5, threshold=3)
        assert combine_shares({1: shares[1], 2: shares[2]}) != SECRET

    def test_shares_have_secret_length(self):
        shares = split_secret(SECRET, total=3, threshold=2)
        assert all(len(share) == len(SECRET) for share in shares.values())

    @pytest.mark.parametrize("total,threshold", [(3, 1), (2, 3), (256, 2)])
    def test_invalid_configuration(self, total, threshold):
        with pytest.raises(ValueError):
            split_secret(SECRET, total=total, threshold=threshold)

    def test_mismatched_share_lengths(self):
        with pytest.raises(ValueError):
            combine_shares({1: b"\x01\x02", 2: b"\x03"})

    def test_single_share_rejected(self):
        with pytest.raises(ValueError):
            combine_shares({1: b"\x01"})

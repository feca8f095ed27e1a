"""BabyBear field arithmetic, transforms and limb decomposition."""

from __future__ import annotations

import numpy as np
import pytest
from hypothesis import given
from hypothesis import strategies as st

from quorumbridge.core.errors import SoundnessError
from quorumbridge.crypto import field
from quorumbridge.crypto.field import P


class TestScalars:
    def test_inverse(self):
        for a in (1, 2, 31, P - 1, 123456789):
            assert a * field.inv(a) % P == 1

    def test_inverse_of_zero(self):
        with pytest.raises(ZeroDivisionError):
            field.inv(P)

    def test_root_of_unity_order(self):
        w = field.root_of_unity(1 << 10)
        assert pow(w, 1 << 10, P) == 1
        assert pow(w, 1 << 9, P) == P - 1

    @pytest.mark.parametrize("n", [0, 3, 1 << 28])
    def test_no_subgroup(self, n):
        with pytest.raises(ValueError):
            field.root_of_unity(n)


class TestTransforms:
    def test_interpolate_then_evaluate(self):
        values = [5, 0, 17, P - 1, 2, 2, 9, 1]
        coeffs = field.interpolate(values)
        w = field.root_of_unity(len(values))
        assert [field.evaluate(coeffs, pow(w, i, P)) for i in range(8)] == values

    def test_ntt_matches_naive_evaluation(self):
        coeffs = field.as_field([3, 1, 4, 1, 5, 9, 2, 6])
        w = field.root_of_unity(8)
        expected = [field.evaluate([int(c) for c in coeffs], pow(w, i, P)) for i in range(8)]
        assert [int(v) for v in field.ntt(coeffs, w)] == expected

    def test_extension_agrees_on_trace_domain(self):
        column = field.as_field([7, 1, 0, 4, 4, 8, 100, P - 2])
        extended = field.low_degree_extend(column, 4, shift=1)[0]
        assert np.array_equal(extended[::4], column)

    def test_extension_stays_low_degree(self):
        column = field.as_field(list(range(16)))
        extended = field.low_degree_extend(column, 8)[0]
        coeffs = field.intt(extended, field.root_of_unity(len(extended)))
        assert not np.any(coeffs[16:])

    def test_inverse_vector(self):
        x = field.as_field([1, 2, 3, P - 1])
        assert np.all(field.inv_array(x) * x % P == 1)
        with pytest.raises(ZeroDivisionError):
            field.inv_array(field.as_field([1, 0]))


class TestDecompose:
    @given(st.integers(min_value=0, max_value=(1 << 384) - 1))
    def test_coordinate_limbs(self, value):
        limbs = field.decompose(value, 16, 24)
        assert all(0 <= limb < 1 << 16 for limb in limbs)
        assert field.recompose(limbs, 16) == value

    def test_limbs_must_stay_below_field_width(self):
        with pytest.raises(SoundnessError):
            field.decompose(5, 31, 2)

    def test_negative_value_cannot_wrap(self):
        with pytest.raises(SoundnessError):
            field.decompose(-1, 30, 1)

    def test_value_must_fit(self):
        with pytest.raises(SoundnessError):
            field.decompose(1 << 32, 16, 2)

"""
Tests for the scalar log-space helpers
"""

import math

import pytest

from gate_mp.math_helpers import (
    expit,
    log1m_exp,
    log1p_exp,
    log_add_exp,
    log_expit,
    log_sum_exp,
    logit,
)

NEG_INF = float("-inf")


class TestLogAddExp:
    """Tests for log_add_exp and log_sum_exp."""

    def test_probabilities_sum_to_one(self):
        assert log_add_exp(math.log(0.3), math.log(0.7)) == pytest.approx(0.0, abs=1e-15)

    def test_both_impossible(self):
        """(-inf) - (-inf) must not leak a NaN."""
        assert log_add_exp(NEG_INF, NEG_INF) == NEG_INF

    def test_one_impossible(self):
        assert log_add_exp(NEG_INF, -2.0) == -2.0
        assert log_add_exp(-2.0, NEG_INF) == -2.0

    def test_large_arguments(self):
        assert log_add_exp(1000.0, 1000.0) == pytest.approx(1000.0 + math.log(2.0))

    def test_sum_empty(self):
        assert log_sum_exp([]) == NEG_INF

    def test_sum_all_impossible(self):
        assert log_sum_exp([NEG_INF, NEG_INF, NEG_INF]) == NEG_INF

    def test_sum_generator(self):
        total = log_sum_exp(math.log(p) for p in [0.1, 0.2, 0.3, 0.4])
        assert total == pytest.approx(0.0, abs=1e-15)


class TestComplements:
    """Tests for log1m_exp."""

    def test_complement(self):
        assert log1m_exp(math.log(0.25)) == pytest.approx(math.log(0.75))

    def test_small_argument(self):
        x = -1e-10
        assert log1m_exp(x) == pytest.approx(math.log(-math.expm1(x)))

    def test_certain(self):
        assert log1m_exp(0.0) == NEG_INF

    def test_impossible(self):
        assert log1m_exp(NEG_INF) == 0.0

    def test_rounding_above_zero(self):
        """A log-sum of probabilities may land just above zero."""
        assert log1m_exp(1e-15) == NEG_INF

    def test_positive_rejected(self):
        with pytest.raises(ValueError):
            log1m_exp(0.1)


class TestLogistic:
    """Tests for the logistic helpers."""

    def test_log1p_exp(self):
        assert log1p_exp(0.0) == pytest.approx(math.log(2.0))
        assert log1p_exp(1000.0) == pytest.approx(1000.0)
        assert log1p_exp(-1000.0) == pytest.approx(0.0)

    def test_log_expit_limits(self):
        assert log_expit(math.inf) == 0.0
        assert log_expit(-math.inf) == NEG_INF

    def test_logit_expit_inverse(self):
        for p in [0.01, 0.25, 0.5, 0.9]:
            assert expit(logit(p)) == pytest.approx(p)

    def test_logit_endpoints(self):
        assert logit(0.0) == NEG_INF
        assert logit(1.0) == math.inf
        assert expit(math.inf) == 1.0
        assert expit(-math.inf) == 0.0

"""
Tests for the GateExit operators
"""

import math

import pytest
import torch

from gate_mp import (
    AllZeroException,
    Bernoulli,
    DimensionMismatchException,
    Discrete,
    Gaussian,
    ImproperMessageException,
)
from gate_mp.gates import cases as cases_ops
from gate_mp.gates import enter, exit

NEG_INF = float("-inf")


def _normalized(probs):
    probs = torch.as_tensor(probs, dtype=torch.float64)
    return probs / probs.sum()


class TestExitValue:
    """Tests for the messages to the exiting variable."""

    def test_mixture_moments(self):
        """Cases from a [0.3, 0.7] switch over two point masses."""
        cases = cases_ops.int_cases_average_conditional(Discrete([0.3, 0.7]))
        values = [Gaussian.point_mass([0.0]), Gaussian.point_mass([1.0])]
        result = exit.exit_value_bp(cases, values)
        mean, cov = result.mean_and_cov()
        assert float(mean[0]) == pytest.approx(0.7)
        assert float(cov[0, 0]) == pytest.approx(0.21)

    def test_mixture_discrete(self):
        cases = [Bernoulli(math.log(0.3)), Bernoulli(math.log(0.7))]
        values = [Discrete.point_mass(0, 2), Discrete.point_mass(1, 2)]
        result = exit.exit_value_bp(cases, values)
        torch.testing.assert_close(result.probs, torch.tensor([0.3, 0.7], dtype=torch.float64))

    def test_uniform_branch_discrete(self, half_cases):
        """An uninformative branch is mixed in with its own weight."""
        p = Discrete([0.7, 0.2, 0.1])
        result = exit.exit_value_bp(half_cases, [Discrete.uniform(3), p])
        torch.testing.assert_close(result.probs, 0.5 * p.probs + 0.5 / 3)

    def test_uniform_branch_gaussian(self, half_cases):
        """No numeric error, even though the mixture is uninformative."""
        values = [Gaussian.uniform(1), Gaussian.from_mean_and_variance(1.0, 2.0)]
        result = exit.exit_value_bp(half_cases, values)
        assert result.is_uniform()

    def test_single_branch_copy(self, discrete_branches):
        result = exit.exit_value_bp([Bernoulli(-5.0)], discrete_branches[:1])
        assert result is not discrete_branches[0]
        assert torch.equal(result.probs, discrete_branches[0].probs)

    def test_single_survivor_borrowed(self, discrete_branches):
        cases = [NEG_INF, -0.2, NEG_INF]
        assert exit.exit_value_bp(cases, discrete_branches) is discrete_branches[1]

    def test_three_branches(self, discrete_branches):
        log_probs = [math.log(0.2), math.log(0.5), math.log(0.3)]
        result = exit.exit_value_bp(log_probs, discrete_branches)
        expected = sum(math.exp(lp) * e.probs for lp, e in zip(log_probs, discrete_branches))
        torch.testing.assert_close(result.probs, expected)

    def test_order_invariance(self, discrete_branches):
        log_probs = [math.log(0.2), math.log(0.5), math.log(0.3)]
        forward = exit.exit_value_bp(log_probs, discrete_branches)
        backward = exit.exit_value_bp(log_probs[::-1], discrete_branches[::-1])
        torch.testing.assert_close(forward.probs, backward.probs)

    def test_all_impossible(self, discrete_branches):
        with pytest.raises(AllZeroException):
            exit.exit_value_bp([NEG_INF] * 3, discrete_branches)

    def test_nan_first_case(self, discrete_branches):
        with pytest.raises(AllZeroException):
            exit.exit_value_bp([math.nan, 0.0, 0.0], discrete_branches)

    def test_count_mismatch(self, discrete_branches):
        with pytest.raises(DimensionMismatchException):
            exit.exit_value_bp([0.0, 0.0], discrete_branches)
        with pytest.raises(DimensionMismatchException):
            exit.exit_value_bp([], [])

    def test_ep(self, discrete_branches):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        log_probs = [math.log(0.2), math.log(0.5), math.log(0.3)]
        result = exit.exit_value_ep(exit_msg, log_probs, discrete_branches)
        expected = sum(
            math.exp(lp) * e.probs * exit_msg.probs
            for lp, e in zip(log_probs, discrete_branches))
        torch.testing.assert_close(result.probs, _normalized(expected / exit_msg.probs))

    def test_ep_single_survivor_borrowed(self, discrete_branches):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        result = exit.exit_value_ep(exit_msg, [NEG_INF, 0.0, NEG_INF], discrete_branches)
        assert result is discrete_branches[1]

    def test_ep_incompatible_branch(self):
        exit_msg = Discrete([0.0, 1.0])
        values = [Discrete([1.0, 0.0]), Discrete([0.5, 0.5])]
        result = exit.exit_value_ep(exit_msg, [0.0, 0.0], values)
        assert result is values[1]

    def test_ep_gaussian(self, gaussian_branches):
        exit_msg = Gaussian.from_mean_and_variance(0.0, 4.0)
        result = exit.exit_value_ep(exit_msg, [math.log(0.3), math.log(0.7)], gaussian_branches)
        assert result.is_proper()

    def test_vmp(self, discrete_branches):
        log_probs = [math.log(0.2), math.log(0.5), math.log(0.3)]
        result = exit.exit_value_vmp(log_probs, discrete_branches)
        expected = exit.exit_value_bp(log_probs, discrete_branches)
        torch.testing.assert_close(result.probs, expected.probs)

    def test_vmp_improper(self, half_cases):
        values = [Gaussian.uniform(1), Gaussian.from_mean_and_variance(1.0, 2.0)]
        with pytest.raises(ImproperMessageException):
            exit.exit_value_vmp(half_cases, values)

    def test_observed(self, discrete_branches):
        result = exit.exit_value_observed([False, True, True], discrete_branches)
        torch.testing.assert_close(result.probs, discrete_branches[1].probs)
        with pytest.raises(AllZeroException):
            exit.exit_value_observed([False, False, False], discrete_branches)

    def test_from_points(self):
        exit_msg = Gaussian.uniform(1)
        result = exit.exit_value_from_points(
            exit_msg, [math.log(0.3), math.log(0.7)], [[0.0], [1.0]])
        assert float(result.mean()[0]) == pytest.approx(0.7)

    def test_from_points_bernoulli(self):
        result = exit.exit_value_from_points(
            Bernoulli(), [math.log(0.25), math.log(0.75)], [True, False])
        assert result.prob_true() == pytest.approx(0.25)

    def test_init(self, discrete_branches):
        assert exit.exit_value_init(discrete_branches).is_uniform()


class TestExitTwo:
    """Tests for the two-branch exit."""

    def test_bp(self):
        values = [Discrete.point_mass(0, 2), Discrete.point_mass(1, 2)]
        result = exit.exit_two_value_bp(math.log(0.3), math.log(0.7), values)
        torch.testing.assert_close(result.probs, torch.tensor([0.3, 0.7], dtype=torch.float64))

    def test_bp_wrong_count(self, discrete_branches):
        with pytest.raises(DimensionMismatchException):
            exit.exit_two_value_bp(0.0, 0.0, discrete_branches)

    def test_ep(self, discrete_branches):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        values = discrete_branches[:2]
        result = exit.exit_two_value_ep(exit_msg, math.log(0.4), math.log(0.6), values)
        mixture = (
            0.4 * _normalized(values[0].probs * exit_msg.probs)
            + 0.6 * _normalized(values[1].probs * exit_msg.probs))
        torch.testing.assert_close(result.probs, _normalized(mixture / exit_msg.probs))

    def test_both_impossible(self, discrete_branches):
        with pytest.raises(AllZeroException):
            exit.exit_two_value_ep(
                Discrete.uniform(3), NEG_INF, NEG_INF, discrete_branches[:2])

    def test_vmp(self, discrete_branches):
        values = discrete_branches[:2]
        result = exit.exit_two_value_vmp(math.log(0.4), math.log(0.6), values)
        torch.testing.assert_close(result.probs, 0.4 * values[0].probs + 0.6 * values[1].probs)


class TestExitMessages:
    """Tests for the messages to the cases and values."""

    def test_cases_ep(self, discrete_branches):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        result = exit.exit_cases_ep(exit_msg, discrete_branches)
        for case, value in zip(result, discrete_branches):
            assert case.log_odds == pytest.approx(
                math.log(float((exit_msg.probs * value.probs).sum())))

    def test_cases_vmp(self, discrete_branches):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        result = exit.exit_cases_vmp(exit_msg, discrete_branches)
        for case, value in zip(result, discrete_branches):
            assert case.log_odds == pytest.approx(
                float((value.probs * torch.log(exit_msg.probs)).sum()))

    def test_cases_from_points(self):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        result = exit.exit_cases_from_points(exit_msg, [0, 2])
        assert result[0].log_odds == pytest.approx(math.log(0.2))
        assert result[1].log_odds == pytest.approx(math.log(0.5))

    def test_cases_buffer_length(self, discrete_branches):
        with pytest.raises(DimensionMismatchException):
            exit.exit_cases_ep(Discrete.uniform(3), discrete_branches, [Bernoulli()])

    def test_values(self, discrete_value):
        messages = exit.exit_values_average_conditional(discrete_value, 2)
        assert all(m is discrete_value for m in messages)


class TestExitEvidence:
    """Tests for the evidence contributions."""

    def test_log_evidence(self, discrete_branches):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        log_probs = [math.log(0.2), math.log(0.5), math.log(0.3)]
        expected = math.log(sum(
            math.exp(lp) * float((exit_msg.probs * v.probs).sum())
            for lp, v in zip(log_probs, discrete_branches)))
        assert exit.exit_log_evidence(log_probs, discrete_branches, exit_msg) == pytest.approx(expected)

    def test_log_evidence_impossible(self):
        exit_msg = Discrete([0.0, 1.0])
        values = [Discrete([1.0, 0.0]), Discrete([0.5, 0.5])]
        assert exit.exit_log_evidence([0.0, NEG_INF], values, exit_msg) == NEG_INF

    def test_log_evidence_ratio(self, discrete_branches):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        to_exit = discrete_branches[0]
        assert exit.exit_log_evidence_ratio(exit_msg, to_exit) == pytest.approx(
            -math.log(float((exit_msg.probs * to_exit.probs).sum())))

    def test_average_log_factor(self, discrete_branches):
        exit_msg = Discrete([0.2, 0.3, 0.5])
        to_exit = discrete_branches[0]
        assert exit.exit_average_log_factor(exit_msg, to_exit) == pytest.approx(
            -float((to_exit.probs * torch.log(exit_msg.probs)).sum()))


class TestRoundTrip:
    """Exit(Enter(v)) with a known branch gives v back."""

    @pytest.mark.parametrize("k", [1, 2, 3, 5])
    @pytest.mark.parametrize("j", [0, -1])
    def test_point_mass_selector(self, k, j):
        j = j % k
        v = Gaussian.from_mean_and_variance(0.5, 2.0)
        selector = Discrete.point_mass(j, k)
        branches = enter.enter_average_conditional(v, k)
        cases = cases_ops.int_cases_average_conditional(selector)
        result = exit.exit_value_bp(cases, branches)
        assert torch.equal(result.eta, v.eta)
        assert torch.equal(result.lam, v.lam)

    def test_one_branch_identity(self, discrete_value):
        """With K = 1 Enter and Exit pass messages straight through."""
        branches = enter.enter_average_conditional(discrete_value, 1)
        assert branches[0] is discrete_value
        result = exit.exit_value_bp([0.0], branches)
        assert torch.equal(result.probs, discrete_value.probs)

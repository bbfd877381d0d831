"""
Cases operators: the bridge between a switch variable and the per-branch
case beliefs consumed by Enter and Exit.

Forward, a switch belief becomes one Bernoulli per branch whose log-odds is
the log-probability of that branch.
Backward, the case log-odds are treated as unnormalized log-probabilities
of the switch value.

Three flavours of switch:

* Cases: a boolean `b` and a pair of case beliefs, case 0 for b = true.
* CasesBool: the same with the two case beliefs as separate arguments.
* CasesInt: an integer `i` given as a `Discrete`, one case per value.
"""
import math

import torch

from .._base import NEG_INF, AllZeroException, DimensionMismatchException
from ..distributions import Bernoulli, Discrete
from ..math_helpers import log_add_exp, log_sum_exp
from ._base import case_log_odds, require_proper


def _case_pair(cases):
    if len(cases) != 2:
        raise DimensionMismatchException(f"Cases needs 2 case beliefs, got {len(cases)}")
    return case_log_odds(cases[0]), case_log_odds(cases[1])


def _b_from_log_odds(log_true, log_false):
    # avoid (-inf) - (-inf)
    if log_true == log_false:
        if log_true == NEG_INF:
            raise AllZeroException("both cases have zero probability")
        return Bernoulli.uniform()
    return Bernoulli(log_true - log_false)


def _expected_log_odds(prob_true, log_true, log_false):
    result = 0.0
    if prob_true > 0.0:
        result += prob_true * log_true
    if prob_true < 1.0:
        result += (1 - prob_true) * log_false
    return result


# Cases

def cases_average_conditional(b, result=None):
    """
    [log P(b=true), log P(b=false)] as case log-odds.
    """
    if result is None:
        result = [Bernoulli(), Bernoulli()]
    elif len(result) != 2:
        raise DimensionMismatchException(f"Cases needs 2 case buffers, got {len(result)}")
    result[0].log_odds = b.log_prob_true()
    result[1].log_odds = b.log_prob_false()
    return result


def cases_b_average_conditional(cases):
    return _b_from_log_odds(*_case_pair(cases))


def cases_log_evidence_ratio(cases, b) -> float:
    """
    log(P(b=true) exp(case_0) + P(b=false) exp(case_1)).

    Written as case_1 + log1p(P(b=true) expm1(case_0 - case_1)) so that
    equal case log-odds, the usual situation, come back without rounding.
    """
    log_true, log_false = _case_pair(cases)
    if b.is_point_mass():
        return log_true if b.point else log_false
    if log_true >= log_false:
        if log_false == NEG_INF:
            return log_true + b.log_prob_true()
        return log_false + math.log1p(b.prob_true() * math.expm1(log_true - log_false))
    if log_true == NEG_INF:
        return log_false + b.log_prob_false()
    return log_true + math.log1p(b.prob_false() * math.expm1(log_false - log_true))


def cases_average_log_factor(cases, b) -> float:
    return _expected_log_odds(b.prob_true(), *_case_pair(cases))


cases_average_logarithm = cases_average_conditional
cases_b_average_logarithm = cases_b_average_conditional


# CasesBool

def case0_average_conditional(b):
    return Bernoulli(b.log_prob_true())


def case1_average_conditional(b):
    return Bernoulli(b.log_prob_false())


def cases_bool_b_average_conditional(case0, case1):
    return _b_from_log_odds(case_log_odds(case0), case_log_odds(case1))


def cases_bool_log_evidence_ratio(case0, case1, b) -> float:
    log_true = case_log_odds(case0)
    log_false = case_log_odds(case1)
    if b.is_point_mass():
        return log_true if b.point else log_false
    return log_add_exp(log_true + b.log_prob_true(), log_false + b.log_prob_false())


def cases_bool_average_log_factor(case0, case1, b) -> float:
    return _expected_log_odds(
        b.prob_true(), case_log_odds(case0), case_log_odds(case1))


case0_average_logarithm = case0_average_conditional
case1_average_logarithm = case1_average_conditional
cases_bool_b_average_logarithm = cases_bool_b_average_conditional


# CasesInt

def int_cases_average_conditional(i, result=None):
    """
    One case belief per value of `i`, holding log P(i=j).
    """
    if result is None:
        result = [Bernoulli() for _ in range(i.dimension)]
    elif len(result) != i.dimension:
        raise DimensionMismatchException(
            f"{len(result)} case buffers for a switch of dimension {i.dimension}")
    for j, case in enumerate(result):
        case.log_odds = i.log_prob(j)
    return result


def _padded_log_odds(cases, dimension: int):
    """
    Case log-odds over all `dimension` switch values; untracked values
    count as log-odds 0.
    """
    if len(cases) > dimension:
        raise DimensionMismatchException(
            f"{len(cases)} case beliefs for a switch of dimension {dimension}")
    log_odds = [case_log_odds(case) for case in cases]
    return log_odds + [0.0] * (dimension - len(cases))


def int_cases_i_average_conditional(cases, dimension=None, result=None):
    """
    Belief over the switch value from its case beliefs.

    Values of the switch beyond the tracked cases count as log-odds 0.
    The dimension comes from `result` if it is given, else from
    `dimension`, else from the number of cases.
    """
    if result is not None:
        dimension = result.dimension
    elif dimension is None:
        dimension = len(cases)
    log_odds = _padded_log_odds(cases, dimension)
    shift = max(log_odds)
    # avoid (-inf) - (-inf)
    if shift == NEG_INF:
        raise AllZeroException("every case has zero probability")
    probs = torch.tensor([math.exp(lo - shift) for lo in log_odds], dtype=torch.float64)
    message = Discrete(probs)
    if result is None:
        return message
    return result.set_to(message)


def int_cases_log_evidence_ratio(cases, i) -> float:
    log_odds = _padded_log_odds(cases, i.dimension)
    if i.is_point_mass():
        return log_odds[i.point]
    return log_sum_exp(
        lo + i.log_prob(j) for j, lo in enumerate(log_odds) if i[j] > 0.0)


def int_cases_log_evidence_ratio_observed(cases, i: int) -> float:
    if i < 0:
        raise DimensionMismatchException(f"observed switch value {i} is negative")
    if i >= len(cases):
        return 0.0
    return case_log_odds(cases[i])


def int_cases_average_log_factor(cases, i) -> float:
    require_proper(i, "i")
    result = 0.0
    for j, lo in enumerate(_padded_log_odds(cases, i.dimension)):
        prob = i[j]
        if prob > 0.0:
            result += prob * lo
    return result


int_cases_average_logarithm = int_cases_average_conditional
int_cases_i_average_logarithm = int_cases_i_average_conditional

"""
GateExit operators: merge K per-branch messages into one message for the
variable leaving the gate, weighted by K case beliefs.

Case beliefs are Bernoullis (or floats) whose log-odds are log-probabilities
of the branch being active; they need not sum to one.

Unlike the Enter operators, the `exit_*` value operators may hand back one
of the `values` by reference when only that branch has non-zero weight.
Callers must not mutate what they get back in that case; compare with
`is` if it matters.
"""
import math

from .._base import NEG_INF, AllZeroException, DimensionMismatchException
from ..distributions import Bernoulli
from ..math_helpers import log_sum_exp
from ..mixture import MixtureAccumulator, combine
from ..settings import resolve_settings
from ._base import (
    case_log_odds,
    check_case_count,
    check_result,
    copy_into,
    require_proper,
)


# Messages to the exiting variable

def exit_value_bp(cases, values, result=None, settings=None):
    """
    sum_i exp(case_i) values[i], normalized.

    With one branch the result is an owned copy; with more it may be one
    of `values` by reference.
    """
    settings = resolve_settings(settings)
    check_case_count(cases, values)
    if len(values) == 1:
        return copy_into(result, values[0])
    if len(values) == 2:
        return exit_two_value_bp(cases[0], cases[1], values, result, settings)
    pairs = [(case_log_odds(case), value) for case, value in zip(cases, values)]
    return check_result(combine(pairs, result), settings, "exit_value_bp")


def exit_two_value_bp(case0, case1, values, result=None, settings=None):
    settings = resolve_settings(settings)
    if len(values) != 2:
        raise DimensionMismatchException(f"ExitTwo needs 2 branch messages, got {len(values)}")
    mixture = combine([
        (case_log_odds(case0), values[0]),
        (case_log_odds(case1), values[1]),
    ], result)
    return check_result(mixture, settings, "exit_two_value_bp")


def exit_value_ep(exit, cases, values, result=None, settings=None):
    """
    EP message to the exiting variable.

    Branch i is weighted by exp(case_i) <exit, values[i]>; the mixture of
    the products exit * values[i] is divided by `exit` again.
    """
    settings = resolve_settings(settings)
    check_case_count(cases, values)
    if len(values) == 1:
        return copy_into(result, values[0])
    acc = MixtureAccumulator(result)
    last = len(values) - 1
    for i, (case, value) in enumerate(zip(cases, values)):
        log_weight = exit.log_average_of(value) + case_log_odds(case)
        product = None
        if log_weight > NEG_INF:
            product = exit.clone().set_to_product(exit, value)
        acc.add(log_weight, product, fail_if_zero=(i == last))
    mixture = acc.value()
    if acc.is_borrowed():
        return values[acc.branch_index]
    mixture.set_to_ratio(mixture, exit, settings.force_proper)
    return check_result(mixture, settings, "exit_value_ep")


def exit_two_value_ep(exit_two, case0, case1, values, result=None, settings=None):
    """
    EP message to the exiting variable of a two-branch gate.
    The branches are weighted by their case beliefs alone.
    """
    settings = resolve_settings(settings)
    if len(values) != 2:
        raise DimensionMismatchException(f"ExitTwo needs 2 branch messages, got {len(values)}")
    acc = MixtureAccumulator(result)
    for i, (case, value) in enumerate(zip([case0, case1], values)):
        log_weight = case_log_odds(case)
        product = None
        if log_weight > NEG_INF:
            product = exit_two.clone().set_to_product(exit_two, value)
        acc.add(log_weight, product, fail_if_zero=(i == 1))
    mixture = acc.value()
    if acc.is_borrowed():
        return values[acc.branch_index]
    mixture.set_to_ratio(mixture, exit_two, settings.force_proper)
    return check_result(mixture, settings, "exit_two_value_ep")


def exit_value_vmp(cases, values, result=None, settings=None):
    """
    VMP message to the exiting variable.
    The same mixture as EP against a uniform `exit`; every branch message
    must be proper.
    """
    settings = resolve_settings(settings)
    check_case_count(cases, values)
    for i, value in enumerate(values):
        require_proper(value, f"values[{i}]")
    return exit_value_ep(values[0].uniform_like(), cases, values, result, settings)


def exit_two_value_vmp(case0, case1, values, result=None, settings=None):
    return exit_value_vmp([case0, case1], values, result, settings)


def exit_value_observed(cases, values, result=None, settings=None):
    """
    Cases known exactly: a copy of the first branch whose case is true.
    """
    check_case_count(cases, values)
    for case, value in zip(cases, values):
        if case:
            return copy_into(result, value)
    raise AllZeroException("no case is true")


def exit_value_from_points(exit, cases, points, result=None, settings=None):
    """
    Mixture of point masses at `points`, in the family of `exit`.
    """
    settings = resolve_settings(settings)
    check_case_count(cases, points)
    pairs = []
    for case, point in zip(cases, points):
        message = exit.clone()
        message.point = point
        pairs.append((case_log_odds(case), message))
    mixture = combine(pairs, result)
    return check_result(copy_into(result, mixture), settings, "exit_value_from_points")


def exit_value_init(values):
    return values[0].uniform_like()


# Messages to the cases and to the branch values

def exit_cases_ep(exit, values, result=None):
    """
    Case i learns log <exit, values[i]>.
    """
    if result is None:
        result = [Bernoulli() for _ in values]
    elif len(result) != len(values):
        raise DimensionMismatchException(
            f"{len(result)} case buffers for {len(values)} branch messages")
    for case, value in zip(result, values):
        case.log_odds = exit.log_average_of(value)
    return result


def exit_cases_vmp(exit, values, result=None):
    """
    Case i learns E_values[i][log exit].
    """
    if result is None:
        result = [Bernoulli() for _ in values]
    elif len(result) != len(values):
        raise DimensionMismatchException(
            f"{len(result)} case buffers for {len(values)} branch messages")
    for i, (case, value) in enumerate(zip(result, values)):
        require_proper(value, f"values[{i}]")
        case.log_odds = value.average_log(exit)
    return result


def exit_cases_from_points(exit, points, result=None):
    """
    Case i learns log exit(points[i]).
    """
    if result is None:
        result = [Bernoulli() for _ in points]
    elif len(result) != len(points):
        raise DimensionMismatchException(
            f"{len(result)} case buffers for {len(points)} branch values")
    for case, point in zip(result, points):
        case.log_odds = exit.log_prob(point)
    return result


def exit_values_average_conditional(exit, count: int):
    """
    Every branch value receives `exit` itself, by reference.
    """
    return [exit] * count


exit_values_average_logarithm = exit_values_average_conditional


# Evidence

def exit_log_evidence(cases, values, exit) -> float:
    """
    log sum_i exp(case_i) <exit, values[i]>.
    -inf when no branch can explain `exit`.
    """
    check_case_count(cases, values)
    terms = []
    for case, value in zip(cases, values):
        log_odds = case_log_odds(case)
        if math.isnan(log_odds):
            raise AllZeroException("case log-odds is NaN")
        if log_odds == NEG_INF:
            terms.append(NEG_INF)
        else:
            terms.append(log_odds + exit.log_average_of(value))
    return log_sum_exp(terms)


def exit_log_evidence_ratio(exit, to_exit) -> float:
    """
    Cancels the evidence the exiting variable's own factors already
    counted, given `to_exit`, the message this gate last sent to it.
    """
    return -to_exit.log_average_of(exit)


def exit_average_log_factor(exit, to_exit) -> float:
    return -to_exit.average_log(exit)

"""
GateEnter operators: messages between a shared variable `value` and its
per-branch copies inside a gate.

Towards the branches the shared value is simply broadcast.
Back towards `value` there is one operator per inference scheme:

* `*_bp`: belief propagation on unnormalized measures.
  Branch i enters the mixture with weight p_i / <enter_i, value>, and any
  selector mass not covered by the supplied branches enters as a uniform
  term weighted by its log normalizer.
* `*_ep`: expectation propagation.
  Mixes the products value * enter_i, with `value` itself standing in for
  uncovered mass, then divides `value` back out.
* `*_vmp`: variational message passing, prod_i enter_i ** p_i.
* `*_observed`: the selector is known, the message is a copy.

Value operators write into `result` when it is given, otherwise into a fresh
message, and return it; their inputs are never modified.
Forward operators return borrowed references to `value`.
"""
import math

from .._base import NEG_INF, AllZeroException, DimensionMismatchException
from ..math_helpers import log1m_exp, log_add_exp
from ..mixture import MixtureAccumulator, combine
from ..settings import resolve_settings
from ._base import (
    buffer_like,
    case_log_odds,
    check_branch_count,
    check_index_set,
    check_result,
    copy_into,
    observed_index,
    require_proper,
    selector_dimension,
    selector_log_prob,
    selector_log_probs,
    selector_point,
)


# Messages to the branch copies

def enter_average_conditional(value, count: int):
    """
    Message to each of `count` branch copies: the shared value itself.
    """
    return [value] * count


def enter_partial_average_conditional(value, indices):
    return [value for _ in indices]


def enter_one_average_conditional(value):
    return value


def enter_init(value, count: int):
    """
    Owned initial messages for the branch copies.
    """
    return [value.clone() for _ in range(count)]


def enter_selector_average_conditional(selector):
    """
    Enter sends no information to its selector.
    """
    return selector.uniform_like()


enter_average_logarithm = enter_average_conditional
enter_partial_average_logarithm = enter_partial_average_conditional
enter_one_average_logarithm = enter_one_average_conditional


# Helpers

def _product_with_value(value, message):
    """
    value * message, or None when the product is zero everywhere.
    """
    try:
        return value.clone().set_to_product(value, message)
    except AllZeroException:
        return None


def _ratio_to_value(acc, branches, value, result, settings):
    """
    Divide the accumulated EP mixture by `value`.
    A lone surviving branch is copied as-is, which is what the ratio would
    give up to rounding.
    """
    mixture = acc.value()
    if acc.is_borrowed() and acc.branch_index < len(branches):
        return copy_into(result, branches[acc.branch_index])
    result = buffer_like(result, value)
    return result.set_to_ratio(mixture, value, settings.force_proper)


def _powers(branches, probs, result):
    """
    prod_i branches[i] ** probs[i], starting from uniform.
    """
    result = buffer_like(result, branches[0]).set_to_uniform()
    power = branches[0].clone()
    for message, prob in zip(branches, probs):
        if prob == 0.0:
            continue
        power.set_to_power(message, prob)
        result.set_to_product(result, power)
    return result


def _bp_log_weight(log_prob, message, value):
    """
    log p - log <message, value>, the weight of a normalized branch message
    standing in for its unnormalized BP message.
    """
    if log_prob == NEG_INF:
        return NEG_INF
    log_average = message.log_average_of(value)
    if log_average == NEG_INF:
        raise AllZeroException(f"branch message {message} has no overlap with {value}")
    return log_prob - log_average


def _enter_one_bp(enter_one, log_prob, log_other_prob, value, result):
    if log_other_prob == NEG_INF:
        return copy_into(result, enter_one)
    result = buffer_like(result, enter_one)
    if log_prob == NEG_INF:
        return result.set_to_uniform()
    uniform = enter_one.uniform_like()
    mixture = combine([
        (_bp_log_weight(log_prob, enter_one, value), enter_one),
        (log_other_prob + uniform.log_normalizer(), uniform),
    ], result)
    return copy_into(result, mixture)


# EnterOne

def enter_one_value_bp(enter_one, selector, value, index: int, result=None, settings=None):
    settings = resolve_settings(settings)
    require_proper(selector, "selector")
    log_prob = selector_log_prob(selector, index)
    result = _enter_one_bp(enter_one, log_prob, log1m_exp(log_prob), value, result)
    return check_result(result, settings, "enter_one_value_bp")


def enter_one_value_ep(enter_one, selector, value, index: int, result=None, settings=None):
    settings = resolve_settings(settings)
    require_proper(selector, "selector")
    log_prob = selector_log_prob(selector, index)
    if log_prob == 0.0:
        return copy_into(result, enter_one)
    result = buffer_like(result, enter_one)
    if log_prob == NEG_INF:
        return result.set_to_uniform()
    product = value.clone().set_to_product(value, enter_one)
    mixture = combine([(log_prob, product), (log1m_exp(log_prob), value)], result)
    result.set_to_ratio(mixture, value, settings.force_proper)
    return check_result(result, settings, "enter_one_value_ep")


def enter_one_value_vmp(enter_one, selector, index: int, result=None, settings=None):
    settings = resolve_settings(settings)
    prob = math.exp(selector_log_prob(selector, index))
    result = buffer_like(result, enter_one).set_to_power(enter_one, prob)
    return check_result(result, settings, "enter_one_value_vmp")


def enter_one_value_observed(enter_one, selector, index: int, result=None, settings=None):
    if observed_index(selector) == index:
        return copy_into(result, enter_one)
    return buffer_like(result, enter_one).set_to_uniform()


# Enter

def enter_value_bp(enter, selector, value, result=None, settings=None):
    settings = resolve_settings(settings)
    require_proper(selector, "selector")
    dimension = selector_dimension(selector)
    check_branch_count(len(enter), dimension)
    if selector.is_point_mass():
        return enter_value_observed(enter, selector_point(selector), result, settings)
    result = buffer_like(result, enter[0])
    acc = MixtureAccumulator(result)
    for i, message in enumerate(enter):
        log_weight = _bp_log_weight(selector_log_prob(selector, i), message, value)
        acc.add(log_weight, message, fail_if_zero=(i == dimension - 1))
    return check_result(copy_into(result, acc.value()), settings, "enter_value_bp")


def enter_each_value_bp(enter, selector, value, results=None, settings=None):
    """
    For every branch i, the message EnterOne(i) would send to `value`.

    The complement mass of branch i is assembled from running prefix and
    suffix sums of the selector probabilities, so all K messages cost O(K)
    selector work rather than O(K^2).
    """
    settings = resolve_settings(settings)
    require_proper(selector, "selector")
    dimension = selector_dimension(selector)
    check_branch_count(len(enter), dimension)
    if results is not None and len(results) != dimension:
        raise DimensionMismatchException(
            f"{len(results)} result buffers for {dimension} branches")
    log_probs = selector_log_probs(selector)
    # suffix[i] = log sum_{j > i} p_j
    suffix = [NEG_INF] * dimension
    for i in range(dimension - 2, -1, -1):
        suffix[i] = log_add_exp(suffix[i + 1], log_probs[i + 1])
    prefix = NEG_INF
    outputs = []
    for i, message in enumerate(enter):
        result = None if results is None else results[i]
        outputs.append(_enter_one_bp(
            message, log_probs[i], log_add_exp(prefix, suffix[i]), value, result))
        prefix = log_add_exp(prefix, log_probs[i])
    return check_result(outputs, settings, "enter_each_value_bp")


def enter_value_ep(enter, selector, value, result=None, settings=None):
    settings = resolve_settings(settings)
    require_proper(selector, "selector")
    dimension = selector_dimension(selector)
    check_branch_count(len(enter), dimension)
    if selector.is_point_mass():
        return enter_value_observed(enter, selector_point(selector), result, settings)
    result = buffer_like(result, value)
    acc = MixtureAccumulator(result)
    for i, message in enumerate(enter):
        log_weight = selector_log_prob(selector, i)
        product = None
        if log_weight > NEG_INF:
            product = _product_with_value(value, message)
            if product is None:
                log_weight = NEG_INF
        acc.add(log_weight, product, fail_if_zero=(i == dimension - 1))
    result = _ratio_to_value(acc, enter, value, result, settings)
    return check_result(result, settings, "enter_value_ep")


def enter_value_vmp(enter, selector, result=None, settings=None):
    settings = resolve_settings(settings)
    dimension = selector_dimension(selector)
    check_branch_count(len(enter), dimension)
    probs = [math.exp(lp) for lp in selector_log_probs(selector)]
    return check_result(_powers(enter, probs, result), settings, "enter_value_vmp")


def enter_value_observed(enter, selector, result=None, settings=None):
    return copy_into(result, enter[observed_index(selector, len(enter))])


# EnterPartial

def enter_partial_value_bp(enter_partial, selector, value, indices, result=None, settings=None):
    """
    Message to `value` from the branches listed in `indices`.

    The selector mass outside `indices` is folded in as one uniform term.
    Only the branch at position K - 1 of a full index set may raise
    `AllZeroException` on its own; other impossible branches are skipped.
    """
    settings = resolve_settings(settings)
    require_proper(selector, "selector")
    dimension = selector_dimension(selector)
    indices = check_index_set(indices, len(enter_partial), dimension)
    if selector.is_point_mass():
        return enter_partial_value_observed(
            enter_partial, selector_point(selector), indices, result, settings)
    result = buffer_like(result, enter_partial[0])
    acc = MixtureAccumulator(result)
    covered = NEG_INF
    for i, (index, message) in enumerate(zip(indices, enter_partial)):
        log_weight = selector_log_prob(selector, index)
        covered = log_add_exp(covered, log_weight)
        log_weight = _bp_log_weight(log_weight, message, value)
        acc.add(log_weight, message, fail_if_zero=(i == dimension - 1))
    if len(indices) < dimension:
        uniform = enter_partial[0].uniform_like()
        acc.add(log1m_exp(covered) + uniform.log_normalizer(), uniform, fail_if_zero=True)
    return check_result(copy_into(result, acc.value()), settings, "enter_partial_value_bp")


def enter_partial_value_ep(enter_partial, selector, value, indices, result=None, settings=None):
    """
    EP message to `value` from the branches listed in `indices`.

    A branch whose product with `value` vanishes is dropped, and its
    selector mass goes to the uncovered term.
    """
    settings = resolve_settings(settings)
    require_proper(selector, "selector")
    dimension = selector_dimension(selector)
    indices = check_index_set(indices, len(enter_partial), dimension)
    if selector.is_point_mass():
        return enter_partial_value_observed(
            enter_partial, selector_point(selector), indices, result, settings)
    result = buffer_like(result, value)
    acc = MixtureAccumulator(result)
    covered = NEG_INF
    for i, (index, message) in enumerate(zip(indices, enter_partial)):
        log_weight = selector_log_prob(selector, index)
        product = None
        if log_weight > NEG_INF:
            product = _product_with_value(value, message)
            if product is None:
                log_weight = NEG_INF
        covered = log_add_exp(covered, log_weight)
        acc.add(log_weight, product, fail_if_zero=(i == dimension - 1))
    if len(indices) < dimension:
        acc.add(log1m_exp(covered), value, fail_if_zero=True)
    result = _ratio_to_value(acc, enter_partial, value, result, settings)
    return check_result(result, settings, "enter_partial_value_ep")


def enter_partial_value_vmp(enter_partial, selector, indices, result=None, settings=None):
    settings = resolve_settings(settings)
    indices = check_index_set(indices, len(enter_partial), selector_dimension(selector))
    probs = [math.exp(selector_log_prob(selector, index)) for index in indices]
    result = _powers(enter_partial, probs, result)
    return check_result(result, settings, "enter_partial_value_vmp")


def enter_partial_value_observed(enter_partial, selector, indices, result=None, settings=None):
    index = observed_index(selector)
    result = buffer_like(result, enter_partial[0]).set_to_uniform()
    for i, branch in enumerate(indices):
        if branch == index:
            result.set_to(enter_partial[i])
    return result


# EnterPartialTwo: the selector arrives as two independent case beliefs

def enter_partial_two_value_bp(
        enter_partial_two, case0, case1, value, indices, result=None, settings=None):
    settings = resolve_settings(settings)
    indices = check_index_set(indices, len(enter_partial_two), 2)
    cases = [case_log_odds(case0), case_log_odds(case1)]
    result = buffer_like(result, enter_partial_two[0])
    acc = MixtureAccumulator(result)
    for i, (index, message) in enumerate(zip(indices, enter_partial_two)):
        log_weight = _bp_log_weight(cases[index], message, value)
        acc.add(log_weight, message, fail_if_zero=(i == 1))
    if len(indices) == 1:
        uniform = enter_partial_two[0].uniform_like()
        acc.add(cases[1 - indices[0]] + uniform.log_normalizer(), uniform, fail_if_zero=True)
    result = copy_into(result, acc.value())
    return check_result(result, settings, "enter_partial_two_value_bp")


def enter_partial_two_value_ep(
        enter_partial_two, case0, case1, value, indices, result=None, settings=None):
    settings = resolve_settings(settings)
    indices = check_index_set(indices, len(enter_partial_two), 2)
    cases = [case_log_odds(case0), case_log_odds(case1)]
    result = buffer_like(result, value)
    acc = MixtureAccumulator(result)
    for i, (index, message) in enumerate(zip(indices, enter_partial_two)):
        log_weight = cases[index]
        product = None
        if log_weight > NEG_INF:
            product = _product_with_value(value, message)
            if product is None:
                log_weight = NEG_INF
        acc.add(log_weight, product, fail_if_zero=(i == 1))
    if len(indices) == 1:
        acc.add(cases[1 - indices[0]], value, fail_if_zero=True)
    result = _ratio_to_value(acc, enter_partial_two, value, result, settings)
    return check_result(result, settings, "enter_partial_two_value_ep")


def enter_partial_two_value_vmp(
        enter_partial_two, case0, case1, indices, result=None, settings=None):
    settings = resolve_settings(settings)
    indices = check_index_set(indices, len(enter_partial_two), 2)
    cases = [case_log_odds(case0), case_log_odds(case1)]
    probs = [math.exp(cases[index]) for index in indices]
    result = _powers(enter_partial_two, probs, result)
    return check_result(result, settings, "enter_partial_two_value_vmp")


def enter_partial_two_value_observed(
        enter_partial_two, case0: bool, case1: bool, indices, result=None, settings=None):
    indices = check_index_set(indices, len(enter_partial_two), 2)
    observed = [bool(case0), bool(case1)]
    result = buffer_like(result, enter_partial_two[0]).set_to_uniform()
    for i, index in enumerate(indices):
        if observed[index]:
            result.set_to(enter_partial_two[i])
    return result

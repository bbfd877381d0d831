"""
Selector access and argument checks shared by the gate operators.

A selector is either a `Discrete` over K branches or a `Bernoulli`, which
is a two-branch selector with case 0 = true and case 1 = false.
"""
from ..distributions import Bernoulli, Discrete
from .._base import (
    DimensionMismatchException,
    ImproperMessageException,
    NanError,
    UnsupportedConfigurationException,
)
from ..utils import as_float


def selector_dimension(selector) -> int:
    if isinstance(selector, Bernoulli):
        return 2
    if isinstance(selector, Discrete):
        return selector.dimension
    raise UnsupportedConfigurationException(
        f"unsupported selector type {type(selector).__name__}")


def selector_log_prob(selector, index: int) -> float:
    dimension = selector_dimension(selector)
    if not 0 <= index < dimension:
        raise DimensionMismatchException(
            f"branch {index} out of range for a selector of dimension {dimension}")
    if isinstance(selector, Bernoulli):
        return selector.log_prob_true() if index == 0 else selector.log_prob_false()
    return selector.log_prob(index)


def selector_log_probs(selector):
    return [selector_log_prob(selector, i) for i in range(selector_dimension(selector))]


def selector_point(selector) -> int:
    """
    Branch index of a point-mass selector.
    """
    if isinstance(selector, Bernoulli):
        return 0 if selector.point else 1
    return selector.point


def observed_index(selector, dimension=None) -> int:
    """
    Branch index from an observed selector value, an int or a bool.
    A bool follows the Bernoulli convention, True is branch 0.
    """
    if isinstance(selector, bool):
        index = 0 if selector else 1
    else:
        index = int(selector)
    if index < 0 or (dimension is not None and index >= dimension):
        raise DimensionMismatchException(
            f"observed branch {index} out of range for {dimension} branches")
    return index


def case_log_odds(case) -> float:
    """
    Log-odds of a case belief, given as a `Bernoulli` or a plain number.
    """
    if isinstance(case, Bernoulli):
        return case.log_odds
    return as_float(case)


def check_index_set(indices, n_messages: int, dimension: int):
    """
    Validate a branch index set against the branch messages and the selector.
    """
    indices = [int(i) for i in indices]
    if len(indices) == 0:
        raise DimensionMismatchException("empty branch index set")
    if len(indices) != n_messages:
        raise DimensionMismatchException(
            f"{len(indices)} branch indices for {n_messages} branch messages")
    if len(indices) > dimension:
        raise DimensionMismatchException(
            f"{len(indices)} branch indices for a selector of dimension {dimension}")
    if len(set(indices)) != len(indices):
        raise DimensionMismatchException(f"branch indices {indices} are not distinct")
    for i in indices:
        if not 0 <= i < dimension:
            raise DimensionMismatchException(
                f"branch {i} out of range for a selector of dimension {dimension}")
    return indices


def check_branch_count(n_messages: int, dimension: int):
    if n_messages != dimension:
        raise DimensionMismatchException(
            f"{n_messages} branch messages for a selector of dimension {dimension}")


def check_case_count(cases, values):
    if len(cases) != len(values):
        raise DimensionMismatchException(
            f"{len(cases)} cases for {len(values)} branch messages")
    if len(values) == 0:
        raise DimensionMismatchException("a gate needs at least one branch")


def require_proper(message, name: str):
    if not message.is_proper():
        raise ImproperMessageException(name, message)
    return message


def buffer_like(result, template):
    """
    The caller's output buffer, or a fresh one shaped like `template`.
    """
    if result is None:
        return template.clone()
    return result


def copy_into(result, message):
    """
    Owned copy of `message` in `result`.
    """
    if result is None:
        return message.clone()
    if message is not result:
        result.set_to(message)
    return result


def check_result(result, settings, name: str):
    """
    Look for NaNs in a produced message when DEBUG_MODE is on.
    """
    if settings.is_debug():
        messages = result if isinstance(result, (list, tuple)) else [result]
        for message in messages:
            if message.has_nan():
                raise NanError(f"{name} produced NaN: {message}")
    return result

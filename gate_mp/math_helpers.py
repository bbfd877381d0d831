"""
Scalar log-space helpers.

All of these take and return python floats and are careful about the
infinities, because -inf is how an impossible branch is spelled.
"""
import math

import torch

from ._base import NEG_INF


def log_add_exp(a, b):
    """
    log(exp(a) + exp(b)) without the (-inf) - (-inf) NaN.
    """
    shift = max(a, b)
    if math.isinf(shift):
        return shift
    return shift + math.log1p(math.exp(-abs(a - b)))


def log_sum_exp(xs):
    """
    log(sum(exp(x) for x in xs)), shifted by the max.
    An empty sequence sums to zero probability.
    """
    xs = list(xs)
    if len(xs) == 0:
        return NEG_INF
    shift = max(xs)
    if math.isinf(shift):
        return shift
    return shift + math.log(sum(math.exp(x - shift) for x in xs))


def log1m_exp(x, tol=None):
    """
    log(1 - exp(x)) for x <= 0, i.e. the log of a complement probability.

    Values marginally above zero, as produced by rounding in a log-sum-exp of
    probabilities that should sum to one, are treated as zero.
    """
    if tol is None:
        tol = 64 * torch.finfo(torch.float64).eps
    if x > 0.0:
        if x > tol:
            raise ValueError(f"log probability {x} is greater than zero")
        return NEG_INF
    if x == 0.0:
        return NEG_INF
    if x > -math.log(2.0):
        return math.log(-math.expm1(x))
    return math.log1p(-math.exp(x))


def log1p_exp(x):
    """
    log(1 + exp(x)), aka softplus.
    """
    if x > 0.0:
        return x + math.log1p(math.exp(-x))
    return math.log1p(math.exp(x))


def log_expit(x):
    """
    log of the logistic function, log(1 / (1 + exp(-x))).
    """
    return -log1p_exp(-x)


def logit(p):
    if p == 0.0:
        return NEG_INF
    if p == 1.0:
        return math.inf
    return math.log(p) - math.log1p(-p)


def expit(x):
    if x >= 0.0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)

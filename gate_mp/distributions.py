"""
Message families for the gate operators.

The gate operators never look inside a message; they only use the small set
of capabilities defined on `Distribution`.
Any family which implements them can pass through a gate.

Conventions:

1. `set_to_*` methods overwrite `self` and return it.
   Their arguments are allowed to alias `self`, so every new value is
   computed in full before it is assigned.
2. Log-domain quantities are python floats; -inf means impossible.
3. Vectors and matrices are float64 torch tensors.
4. Families raise `AllZeroException` when a product has no mass at all,
   and `ZeroDivisionError` when asked to divide by a point mass.
"""
import math
import warnings
from copy import deepcopy
from typing import Optional, Sequence, Union

import torch
from torch.distributions import MultivariateNormal
from torch.linalg import cholesky_ex, inv_ex, eigh

from ._base import (
    NEG_INF,
    AllZeroException,
    DimensionMismatchException,
    ImproperMessageException,
    UnsupportedConfigurationException,
)
from .math_helpers import log_add_exp, log1p_exp, log_expit, expit, logit
from .utils import DEFAULT_DTYPE, as_float, as_tensor

LOG_2PI = math.log(2 * math.pi)


class Distribution:
    """
    The capability contract for messages.

    Subclasses implement every method below; the base class only provides
    the conveniences which can be written in terms of the others.
    """

    def __repr__(self):
        return f"{self.__class__.__name__}()"

    def clone(self):
        return deepcopy(self)

    def uniform_like(self):
        """
        A fresh uniform distribution over the same domain as `self`.
        """
        return self.clone().set_to_uniform()

    def _check_family(self, other):
        if type(other) is not type(self):
            raise UnsupportedConfigurationException(
                f"cannot combine {type(self).__name__} with {type(other).__name__}")

    def set_to(self, other):
        raise NotImplementedError

    def set_to_uniform(self):
        raise NotImplementedError

    def is_uniform(self) -> bool:
        raise NotImplementedError

    def is_proper(self) -> bool:
        raise NotImplementedError

    def is_point_mass(self) -> bool:
        raise NotImplementedError

    @property
    def point(self):
        raise NotImplementedError

    def set_to_sum(self, weight1: float, a, weight2: float, b):
        """
        self = weight1 * a + weight2 * b, projected back into the family.
        `a` may be `self`.
        """
        raise NotImplementedError

    def set_to_product(self, a, b):
        raise NotImplementedError

    def set_to_ratio(self, numerator, denominator, force_proper=False):
        raise NotImplementedError

    def set_to_power(self, dist, exponent: float):
        raise NotImplementedError

    def log_average_of(self, other) -> float:
        """
        log of the overlap integral, log sum_x self(x) other(x).
        """
        raise NotImplementedError

    def average_log(self, other) -> float:
        """
        E_self[log other(x)].
        """
        raise NotImplementedError

    def log_normalizer(self) -> float:
        raise NotImplementedError

    def log_prob(self, x) -> float:
        raise NotImplementedError

    def max_diff(self, other) -> float:
        raise NotImplementedError

    def has_nan(self) -> bool:
        raise NotImplementedError


def _check_weights(weight1, weight2):
    if weight1 < 0 or weight2 < 0:
        raise ValueError(f"negative mixture weights {weight1}, {weight2}")
    if math.isnan(weight1) or math.isnan(weight2):
        raise ValueError(f"NaN mixture weights {weight1}, {weight2}")


class Bernoulli(Distribution):
    """
    A belief over a boolean, stored as log-odds log p(true)/p(false).
    +inf and -inf are the two point masses.

    Lists of Bernoullis also stand in for the per-case beliefs of a gate,
    where the log-odds hold (unnormalized) case log-probabilities.
    """

    def __init__(self, log_odds: float = 0.0) -> None:
        self.log_odds = as_float(log_odds)

    def __repr__(self):
        return f"{self.__class__.__name__}(log_odds={self.log_odds:.6g})"

    @classmethod
    def from_log_odds(cls, log_odds: float) -> "Bernoulli":
        return cls(log_odds)

    @classmethod
    def from_prob_true(cls, prob_true: float) -> "Bernoulli":
        prob_true = as_float(prob_true)
        if not 0.0 <= prob_true <= 1.0:
            raise ValueError(f"prob_true {prob_true} is not a probability")
        return cls(logit(prob_true))

    @classmethod
    def uniform(cls) -> "Bernoulli":
        return cls(0.0)

    @classmethod
    def point_mass(cls, value: bool) -> "Bernoulli":
        return cls(math.inf if value else -math.inf)

    def prob_true(self) -> float:
        return expit(self.log_odds)

    def prob_false(self) -> float:
        return expit(-self.log_odds)

    def log_prob_true(self) -> float:
        return log_expit(self.log_odds)

    def log_prob_false(self) -> float:
        return log_expit(-self.log_odds)

    def set_to(self, other):
        self._check_family(other)
        self.log_odds = other.log_odds
        return self

    def set_to_uniform(self):
        self.log_odds = 0.0
        return self

    def is_uniform(self) -> bool:
        return self.log_odds == 0.0

    def is_proper(self) -> bool:
        return not math.isnan(self.log_odds)

    def is_point_mass(self) -> bool:
        return math.isinf(self.log_odds)

    @property
    def point(self) -> bool:
        return self.log_odds > 0

    @point.setter
    def point(self, value: bool) -> None:
        self.log_odds = math.inf if value else -math.inf

    def set_to_sum(self, weight1, a, weight2, b):
        _check_weights(weight1, weight2)
        if weight1 == 0.0:
            return self.set_to(b)
        if weight2 == 0.0:
            return self.set_to(a)
        self._check_family(a)
        self._check_family(b)
        log_w1 = math.log(weight1)
        log_w2 = math.log(weight2)
        log_true = log_add_exp(
            log_w1 + a.log_prob_true(), log_w2 + b.log_prob_true())
        log_false = log_add_exp(
            log_w1 + a.log_prob_false(), log_w2 + b.log_prob_false())
        self.log_odds = log_true - log_false
        return self

    def set_to_product(self, a, b):
        self._check_family(a)
        self._check_family(b)
        log_odds = a.log_odds + b.log_odds
        if math.isnan(log_odds):
            raise AllZeroException(f"product of {a} and {b} is zero everywhere")
        self.log_odds = log_odds
        return self

    def set_to_ratio(self, numerator, denominator, force_proper=False):
        self._check_family(numerator)
        self._check_family(denominator)
        # avoid inf - inf
        if numerator.log_odds == denominator.log_odds:
            self.log_odds = 0.0
        else:
            self.log_odds = numerator.log_odds - denominator.log_odds
        return self

    def set_to_power(self, dist, exponent):
        self._check_family(dist)
        if exponent == 0.0:
            return self.set_to_uniform()
        if dist.is_point_mass() and exponent < 0:
            raise ZeroDivisionError(f"cannot raise point mass {dist} to a negative power")
        self.log_odds = dist.log_odds * exponent
        return self

    def log_average_of(self, other) -> float:
        self._check_family(other)
        return log_add_exp(
            self.log_prob_true() + other.log_prob_true(),
            self.log_prob_false() + other.log_prob_false())

    def average_log(self, other) -> float:
        self._check_family(other)
        result = 0.0
        prob_true = self.prob_true()
        prob_false = self.prob_false()
        if prob_true > 0.0:
            result += prob_true * other.log_prob_true()
        if prob_false > 0.0:
            result += prob_false * other.log_prob_false()
        return result

    def log_normalizer(self) -> float:
        # log(1 + e^theta), i.e. log 2 when uniform
        return log1p_exp(self.log_odds)

    def log_prob(self, x: bool) -> float:
        return self.log_prob_true() if x else self.log_prob_false()

    def max_diff(self, other) -> float:
        self._check_family(other)
        if self.log_odds == other.log_odds:
            return 0.0
        return abs(self.log_odds - other.log_odds)

    def has_nan(self) -> bool:
        return math.isnan(self.log_odds)


class Discrete(Distribution):
    """
    A categorical belief over {0, ..., K-1}, stored as a normalized
    probability vector.
    """

    def __init__(self, probs: Union[Sequence[float], torch.Tensor]) -> None:
        probs = as_tensor(probs)
        if probs.dim() != 1 or probs.shape[0] == 0:
            raise ValueError(f"probs must be a non-empty vector, got shape {tuple(probs.shape)}")
        if torch.any(probs < 0):
            raise ValueError("negative probabilities")
        total = probs.sum()
        if not total > 0:
            raise AllZeroException("Discrete probabilities sum to zero")
        self.probs = probs / total

    def __repr__(self):
        return f"{self.__class__.__name__}({self.probs.tolist()})"

    @classmethod
    def from_probs(cls, probs) -> "Discrete":
        return cls(probs)

    @classmethod
    def from_log_probs(cls, log_probs) -> "Discrete":
        """
        From unnormalized log-probabilities.
        """
        log_probs = as_tensor(log_probs)
        shift = log_probs.max()
        if torch.isneginf(shift):
            raise AllZeroException("all log probabilities are -inf")
        return cls(torch.exp(log_probs - shift))

    @classmethod
    def uniform(cls, dimension: int) -> "Discrete":
        return cls(torch.ones(dimension, dtype=DEFAULT_DTYPE))

    @classmethod
    def point_mass(cls, index: int, dimension: int) -> "Discrete":
        probs = torch.zeros(dimension, dtype=DEFAULT_DTYPE)
        probs[index] = 1.0
        return cls(probs)

    @property
    def dimension(self) -> int:
        return self.probs.shape[0]

    def __getitem__(self, index: int) -> float:
        return float(self.probs[index])

    def __len__(self):
        return self.dimension

    def _check_dims(self, other):
        self._check_family(other)
        if other.dimension != self.dimension:
            raise DimensionMismatchException(
                f"Discrete dimensions differ: {self.dimension} != {other.dimension}")

    def log_prob(self, index: int) -> float:
        p = float(self.probs[index])
        return math.log(p) if p > 0.0 else NEG_INF

    def log_probs(self) -> torch.Tensor:
        return torch.log(self.probs)

    def set_to(self, other):
        self._check_dims(other)
        self.probs = other.probs.clone()
        return self

    def set_to_uniform(self):
        self.probs = torch.full_like(self.probs, 1.0 / self.dimension)
        return self

    def is_uniform(self) -> bool:
        return bool(torch.all(self.probs == self.probs[0]))

    def is_proper(self) -> bool:
        return not self.has_nan()

    def is_point_mass(self) -> bool:
        return int(torch.count_nonzero(self.probs)) == 1

    @property
    def point(self) -> int:
        return int(torch.argmax(self.probs))

    @point.setter
    def point(self, index: int) -> None:
        probs = torch.zeros_like(self.probs)
        probs[index] = 1.0
        self.probs = probs

    def _set_unnormalized(self, probs):
        total = probs.sum()
        if not total > 0:
            raise AllZeroException("Discrete probabilities sum to zero")
        self.probs = probs / total
        return self

    def set_to_sum(self, weight1, a, weight2, b):
        _check_weights(weight1, weight2)
        if weight1 == 0.0:
            return self.set_to(b)
        if weight2 == 0.0:
            return self.set_to(a)
        self._check_dims(a)
        self._check_dims(b)
        return self._set_unnormalized(weight1 * a.probs + weight2 * b.probs)

    def set_to_product(self, a, b):
        self._check_dims(a)
        self._check_dims(b)
        return self._set_unnormalized(a.probs * b.probs)

    def set_to_ratio(self, numerator, denominator, force_proper=False):
        self._check_dims(numerator)
        self._check_dims(denominator)
        num = numerator.probs
        den = denominator.probs
        if torch.any((den == 0) & (num > 0)):
            raise ZeroDivisionError(f"{numerator} / {denominator} has zero denominator")
        # 0/0 is uninformative
        safe_den = torch.where(den > 0, den, torch.ones_like(den))
        ratio = torch.where(den > 0, num / safe_den, torch.ones_like(num))
        return self._set_unnormalized(ratio)

    def set_to_power(self, dist, exponent):
        self._check_dims(dist)
        if exponent == 0.0:
            return self.set_to_uniform()
        if exponent < 0 and torch.any(dist.probs == 0):
            raise ZeroDivisionError(f"cannot raise {dist} to a negative power")
        return self._set_unnormalized(dist.probs ** exponent)

    def log_average_of(self, other) -> float:
        self._check_dims(other)
        total = float((self.probs * other.probs).sum())
        return math.log(total) if total > 0.0 else NEG_INF

    def average_log(self, other) -> float:
        self._check_dims(other)
        support = self.probs > 0
        if torch.any(support & (other.probs == 0)):
            return NEG_INF
        return float(
            (self.probs[support] * torch.log(other.probs[support])).sum())

    def log_normalizer(self) -> float:
        # exponential family with the last category as reference,
        # A(theta) = -log p[K-1], i.e. log K when uniform
        p_last = float(self.probs[-1])
        return -math.log(p_last) if p_last > 0.0 else math.inf

    def max_diff(self, other) -> float:
        self._check_dims(other)
        return float((self.probs - other.probs).abs().max())

    def has_nan(self) -> bool:
        return bool(torch.isnan(self.probs).any())


class Gaussian(Distribution):
    """
    Multivariate Gaussian in information form, N^-1(eta, lam), with
    lam the precision and eta = lam @ mean.

    eta = 0, lam = 0 is the (improper) uniform distribution.
    Point masses are held separately in `point`, since their precision is
    infinite.
    """

    def __init__(
            self, dim: int, eta: Optional[torch.Tensor] = None,
            lam: Optional[torch.Tensor] = None,
            dtype: torch.dtype = DEFAULT_DTYPE) -> None:
        self.dim = dim
        self.dtype = dtype
        self._point = None

        if eta is not None:
            eta = as_tensor(eta, dtype).reshape(-1)
            if eta.shape != torch.Size([dim]):
                raise DimensionMismatchException(
                    f"eta has shape {tuple(eta.shape)}, expected ({dim},)")
            self.eta = eta
        else:
            self.eta = torch.zeros(dim, dtype=dtype)

        if lam is not None:
            lam = as_tensor(lam, dtype).reshape(dim, -1)
            if lam.shape != torch.Size([dim, dim]):
                raise DimensionMismatchException(
                    f"lam has shape {tuple(lam.shape)}, expected ({dim}, {dim})")
            self.lam = lam
        else:
            self.lam = torch.zeros([dim, dim], dtype=dtype)

    def __repr__(self):
        if self.is_point_mass():
            return f"{self.__class__.__name__}(point={self._point.tolist()})"
        return (
            f"{self.__class__.__name__}(dim={self.dim}, "
            f"eta={self.eta.tolist()}, lam={self.lam.tolist()})")

    @classmethod
    def from_mean_and_cov(cls, mean, cov) -> "Gaussian":
        mean = as_tensor(mean).reshape(-1)
        g = cls(mean.shape[0])
        g.set_with_cov_form(mean, as_tensor(cov).reshape(mean.shape[0], -1))
        return g

    @classmethod
    def from_mean_and_precision(cls, mean, precision) -> "Gaussian":
        mean = as_tensor(mean).reshape(-1)
        lam = as_tensor(precision).reshape(mean.shape[0], -1)
        return cls(mean.shape[0], eta=lam @ mean, lam=lam)

    @classmethod
    def from_mean_and_variance(cls, mean: float, variance: float) -> "Gaussian":
        """
        Univariate convenience constructor.
        """
        return cls.from_mean_and_cov([as_float(mean)], [[as_float(variance)]])

    @classmethod
    def uniform(cls, dim: int = 1) -> "Gaussian":
        return cls(dim)

    @classmethod
    def point_mass(cls, point) -> "Gaussian":
        point = as_tensor(point).reshape(-1)
        g = cls(point.shape[0])
        g.point = point
        return g

    def _check_dims(self, other):
        self._check_family(other)
        if other.dim != self.dim:
            raise DimensionMismatchException(
                f"Gaussian dimensions differ: {self.dim} != {other.dim}")

    def _require_proper(self):
        if not self.is_proper():
            raise ImproperMessageException(self.__class__.__name__, self)

    def mean(self) -> torch.Tensor:
        if self.is_point_mass():
            return self._point.clone()
        self._require_proper()
        return torch.linalg.solve(self.lam, self.eta)

    def cov(self) -> torch.Tensor:
        if self.is_point_mass():
            return torch.zeros([self.dim, self.dim], dtype=self.dtype)
        self._require_proper()
        return torch.inverse(self.lam)

    def mean_and_cov(self):
        cov = self.cov()
        if self.is_point_mass():
            return [self._point.clone(), cov]
        mean = torch.matmul(cov, self.eta)
        return [mean, cov]

    def set_with_cov_form(self, mean: torch.Tensor, cov: torch.Tensor) -> None:
        self._point = None
        self.lam = torch.inverse(cov)
        self.eta = self.lam @ mean

    @property
    def point(self) -> Optional[torch.Tensor]:
        return self._point

    @point.setter
    def point(self, value) -> None:
        value = as_tensor(value, self.dtype).reshape(-1)
        if value.shape != torch.Size([self.dim]):
            raise DimensionMismatchException(
                f"point has shape {tuple(value.shape)}, expected ({self.dim},)")
        self._point = value
        self.eta = torch.zeros(self.dim, dtype=self.dtype)
        self.lam = torch.zeros([self.dim, self.dim], dtype=self.dtype)

    def is_point_mass(self) -> bool:
        return self._point is not None

    def is_uniform(self) -> bool:
        return (
            not self.is_point_mass()
            and bool(torch.all(self.eta == 0))
            and bool(torch.all(self.lam == 0)))

    def is_proper(self) -> bool:
        if self.is_point_mass():
            return True
        _, info = cholesky_ex(self.lam)
        return int(info) == 0

    def _set_natural(self, eta, lam):
        self._point = None
        self.eta = eta
        self.lam = lam
        return self

    def set_to(self, other):
        self._check_dims(other)
        if other is self:
            return self
        self.eta = other.eta.clone()
        self.lam = other.lam.clone()
        self._point = None if other._point is None else other._point.clone()
        return self

    def set_to_uniform(self):
        return self._set_natural(
            torch.zeros(self.dim, dtype=self.dtype),
            torch.zeros([self.dim, self.dim], dtype=self.dtype))

    def set_to_product(self, a, b):
        self._check_dims(a)
        self._check_dims(b)
        if a.is_point_mass():
            if b.is_point_mass() and not torch.equal(a.point, b.point):
                raise AllZeroException(f"product of {a} and {b} is zero everywhere")
            self.point = a.point.clone()
        elif b.is_point_mass():
            self.point = b.point.clone()
        else:
            self._set_natural(a.eta + b.eta, a.lam + b.lam)
        return self

    def set_to_ratio(self, numerator, denominator, force_proper=False):
        self._check_dims(numerator)
        self._check_dims(denominator)
        if numerator.is_point_mass():
            if denominator.is_point_mass():
                if torch.equal(numerator.point, denominator.point):
                    return self.set_to_uniform()
                raise ZeroDivisionError(f"{numerator} / {denominator}")
            self.point = numerator.point.clone()
            return self
        if denominator.is_point_mass():
            raise ZeroDivisionError(f"cannot divide {numerator} by point mass {denominator}")
        eta = numerator.eta - denominator.eta
        lam = numerator.lam - denominator.lam
        if force_proper:
            eta, lam = _proper_projection(eta, lam)
        return self._set_natural(eta, lam)

    def set_to_power(self, dist, exponent):
        self._check_dims(dist)
        if exponent == 0.0:
            return self.set_to_uniform()
        if dist.is_point_mass():
            if exponent < 0:
                raise ZeroDivisionError(f"cannot raise point mass {dist} to a negative power")
            self.point = dist.point.clone()
            return self
        return self._set_natural(dist.eta * exponent, dist.lam * exponent)

    def set_to_sum(self, weight1, a, weight2, b):
        """
        Moment-matched mixture.
        A mixture with a uniform component is uniform.
        """
        _check_weights(weight1, weight2)
        if weight1 == 0.0:
            return self.set_to(b)
        if weight2 == 0.0:
            return self.set_to(a)
        self._check_dims(a)
        self._check_dims(b)
        if a.is_uniform() or b.is_uniform():
            return self.set_to_uniform()
        if (a.is_point_mass() and b.is_point_mass()
                and torch.equal(a.point, b.point)):
            self.point = a.point.clone()
            return self
        m_a, cov_a = a.mean_and_cov()
        m_b, cov_b = b.mean_and_cov()
        w = weight1 / (weight1 + weight2)
        m = w * m_a + (1 - w) * m_b
        d_a = m_a - m
        d_b = m_b - m
        cov = (
            w * (cov_a + torch.outer(d_a, d_a))
            + (1 - w) * (cov_b + torch.outer(d_b, d_b)))
        lam, info = inv_ex(cov)
        if int(info) != 0:
            raise UnsupportedConfigurationException(
                f"mixture of {a} and {b} has singular covariance")
        return self._set_natural(lam @ m, lam)

    def log_normalizer(self) -> float:
        if self.is_point_mass() or self.is_uniform():
            return 0.0
        chol, info = cholesky_ex(self.lam)
        if int(info) != 0:
            raise ImproperMessageException(self.__class__.__name__, self)
        logdet = 2 * torch.log(torch.diagonal(chol)).sum()
        alpha = torch.cholesky_solve(self.eta.reshape(-1, 1), chol).reshape(-1)
        return float(0.5 * (self.dim * LOG_2PI - logdet + self.eta @ alpha))

    def log_prob(self, x) -> float:
        x = as_tensor(x, self.dtype).reshape(-1)
        if self.is_point_mass():
            return 0.0 if torch.equal(x, self._point) else NEG_INF
        if self.is_uniform():
            return 0.0
        if self.is_proper():
            return float(MultivariateNormal(
                loc=self.mean(), precision_matrix=self.lam).log_prob(x))
        # improper: unnormalized density
        return float(self.eta @ x - 0.5 * x @ self.lam @ x)

    def log_average_of(self, other) -> float:
        self._check_dims(other)
        if self.is_point_mass():
            return other.log_prob(self.point)
        if other.is_point_mass():
            return self.log_prob(other.point)
        product = Gaussian(self.dim, dtype=self.dtype).set_to_product(self, other)
        return (
            product.log_normalizer()
            - self.log_normalizer()
            - other.log_normalizer())

    def average_log(self, other) -> float:
        self._check_dims(other)
        if other.is_uniform():
            return 0.0
        if self.is_point_mass():
            return other.log_prob(self.point)
        if other.is_point_mass():
            return NEG_INF
        m, cov = self.mean_and_cov()
        if other.is_proper():
            d = m - other.mean()
            _, logdet = torch.linalg.slogdet(other.lam)
            return float(
                -0.5 * torch.trace(other.lam @ (cov + torch.outer(d, d)))
                - 0.5 * self.dim * LOG_2PI
                + 0.5 * logdet)
        return float(
            other.eta @ m
            - 0.5 * torch.trace(other.lam @ (cov + torch.outer(m, m))))

    def max_diff(self, other) -> float:
        self._check_dims(other)
        if self.is_point_mass() != other.is_point_mass():
            return math.inf
        if self.is_point_mass():
            return float((self.point - other.point).abs().max())
        return float(max(
            (self.eta - other.eta).abs().max(),
            (self.lam - other.lam).abs().max()))

    def has_nan(self) -> bool:
        if self.is_point_mass():
            return bool(torch.isnan(self._point).any())
        return bool(torch.isnan(self.eta).any() or torch.isnan(self.lam).any())


def _proper_projection(eta, lam):
    """
    Clip non-positive precision directions to zero so that an EP ratio is
    uninformative along them instead of improper.
    """
    lam = 0.5 * (lam + lam.adjoint())
    evals, evecs = eigh(lam)
    keep = evals > 0
    if bool(torch.all(keep)):
        return eta, lam
    # zero precision is just an uninformative direction
    if bool(torch.any(evals < 0)):
        warnings.warn(
            f"improper ratio projected; clipped {int((evals < 0).sum())} precision directions")
    kept = evecs[:, keep]
    lam = kept @ torch.diag(evals[keep]) @ kept.adjoint()
    eta = kept @ (kept.adjoint() @ eta)
    return eta, lam

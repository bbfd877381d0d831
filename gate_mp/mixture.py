"""
Log-domain mixture combiner.

Forms a message proportional to sum_i exp(log_weight_i) * message_i, one
term at a time, never exponentiating an unshifted log weight.

The running state is one of

* NOT_STARTED: nothing with non-zero weight has been seen,
* EXACTLY_BRANCH: the running mixture *is* one of the inputs, held by
  reference and never copied,
* ACCUMULATED: the running mixture lives in the output buffer.

While only one term has non-zero weight the result is that input object,
untouched. Renormalizing a single component can introduce rounding, so the
borrowed reference is handed back as-is; callers must not mutate it.

Terms are accumulated strictly left to right.
When two weights are equal the earlier term seeds the running state.
A term whose weight and running weight are both zero is skipped, unless the
caller flags it as the last chance to find some mass, in which case
`AllZeroException` is raised.
"""
import math
from collections import namedtuple
from enum import Enum

from ._base import NEG_INF, AllZeroException
from .math_helpers import log_add_exp


class MixtureState(Enum):
    NOT_STARTED = 0
    EXACTLY_BRANCH = 1
    ACCUMULATED = 2


WeightedMessage = namedtuple('WeightedMessage', ['log_weight', 'message'])


class MixtureAccumulator:
    """
    Running state of one combiner call.
    `result` is an optional caller-owned buffer; if it is None a buffer is
    cloned from the first term that needs blending.
    """

    def __init__(self, result=None):
        self.result = result
        self.state = MixtureState.NOT_STARTED
        self.log_weight_sum = NEG_INF
        self.branch = None
        self.branch_index = None
        self.count = 0

    def __repr__(self):
        return (
            f"{type(self).__name__}({self.state.name}, "
            f"log_weight_sum={self.log_weight_sum}, "
            f"branch_index={self.branch_index})")

    def is_borrowed(self):
        return self.state is MixtureState.EXACTLY_BRANCH

    def _take_branch(self, log_weight, message, index):
        self.state = MixtureState.EXACTLY_BRANCH
        self.branch = message
        self.branch_index = index
        self.log_weight_sum = log_weight

    def _materialize(self):
        # copy the borrowed branch into the buffer; only ever happens once
        if self.state is not MixtureState.EXACTLY_BRANCH:
            return
        if self.result is None:
            self.result = self.branch.clone()
        else:
            self.result.set_to(self.branch)
        self.state = MixtureState.ACCUMULATED
        self.branch = None

    def add(self, log_weight, message, fail_if_zero=False):
        """
        Fold one term into the mixture.
        Returns the index assigned to the term.
        """
        index = self.count
        self.count += 1
        log_weight = float(log_weight)
        if math.isnan(log_weight):
            raise AllZeroException(f"log weight of term {index} is NaN")
        if log_weight == math.inf:
            raise ValueError(f"log weight of term {index} is +inf")
        if index == 0:
            if log_weight > NEG_INF:
                self._take_branch(log_weight, message, index)
            elif fail_if_zero:
                raise AllZeroException("the only mixture term has zero weight")
            return index

        shift = max(self.log_weight_sum, log_weight)
        # avoid (-inf) - (-inf)
        if shift == NEG_INF:
            if fail_if_zero:
                raise AllZeroException(
                    f"all {self.count} mixture terms have zero weight")
            return index
        weight1 = math.exp(self.log_weight_sum - shift)
        weight2 = math.exp(log_weight - shift)
        if weight2 > 0:
            if weight1 == 0:
                self._take_branch(log_weight, message, index)
            else:
                self._materialize()
                self.result.set_to_sum(weight1, self.result, weight2, message)
                self.log_weight_sum = log_add_exp(self.log_weight_sum, log_weight)
        return index

    def value(self):
        """
        The mixture: either a borrowed input or the buffer.
        """
        if self.state is MixtureState.NOT_STARTED:
            raise AllZeroException("all mixture terms have zero weight")
        if self.state is MixtureState.EXACTLY_BRANCH:
            return self.branch
        return self.result


def combine(pairs, result=None):
    """
    Normalized mixture of `(log_weight, message)` pairs.

    Zero weight on the final pair with nothing accumulated so far raises
    `AllZeroException`; zero weights before that are skipped.
    May return one of the input messages by reference.
    """
    pairs = [WeightedMessage(*pair) for pair in pairs]
    if len(pairs) == 0:
        raise ValueError("no terms to combine")
    acc = MixtureAccumulator(result)
    last = len(pairs) - 1
    for i, (log_weight, message) in enumerate(pairs):
        acc.add(log_weight, message, fail_if_zero=(i == last))
    return acc.value()

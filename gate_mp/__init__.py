"""
Gate message operators for EP, VMP and BP.

Built around one numeric routine, the log-domain mixture combiner in
`gate_mp.mixture`, which forms a normalized weighted sum of messages from
log weights without ever computing (-inf) - (-inf), and hands back an
input untouched when it is the only term with any weight.

There are several data structures of note:

1. messages are `Distribution`s (`Bernoulli`, `Discrete`, `Gaussian`), and
   the operators only use the methods on the base class
2. selectors are `Discrete` (K branches) or `Bernoulli` (2 branches, case 0
   is true)
3. case beliefs are lists of `Bernoulli`s whose log-odds hold unnormalized
   branch log-probabilities

Impossible combinations raise `AllZeroException`; they are a modelling
outcome and are never turned into NaN.
"""
from ._base import (
    AllZeroException,
    DimensionMismatchException,
    GateError,
    ImproperMessageException,
    NanError,
    UnsupportedConfigurationException,
)
from .distributions import Bernoulli, Discrete, Distribution, Gaussian
from .mixture import MixtureAccumulator, MixtureState, combine
from .settings import DEFAULT_SETTINGS, GateSettings
from . import gates

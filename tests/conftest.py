"""
Pytest configuration and fixtures
"""

import math
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from gate_mp import Bernoulli, Discrete, Gaussian, GateSettings  # noqa: E402


@pytest.fixture
def gaussian_branches():
    """Two distinct proper univariate branch messages."""
    return [
        Gaussian.from_mean_and_variance(-1.0, 0.5),
        Gaussian.from_mean_and_variance(2.0, 1.5),
    ]


@pytest.fixture
def discrete_branches():
    """Three branch messages over a 3-valued variable."""
    return [
        Discrete([0.7, 0.2, 0.1]),
        Discrete([0.1, 0.3, 0.6]),
        Discrete([0.25, 0.25, 0.5]),
    ]


@pytest.fixture
def discrete_value():
    """Incoming message for the shared variable."""
    return Discrete([0.5, 0.3, 0.2])


@pytest.fixture
def selector3():
    """Uncertain selector over three branches."""
    return Discrete([0.2, 0.5, 0.3])


@pytest.fixture
def half_cases():
    """Two equally likely cases."""
    return [Bernoulli(math.log(0.5)), Bernoulli(math.log(0.5))]


@pytest.fixture
def debug_settings():
    return GateSettings(DEBUG_MODE=True)

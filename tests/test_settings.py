"""
Tests for GateSettings
"""

import pytest

from gate_mp import DEFAULT_SETTINGS, Discrete, Gaussian, GateSettings
from gate_mp.gates import exit
from gate_mp.settings import resolve_settings


class TestGateSettings:
    """Tests for the settings dict wrapper."""

    def test_defaults(self):
        settings = GateSettings()
        assert settings.force_proper is True
        assert not settings.is_debug()

    def test_unknown_keys_kept(self):
        settings = GateSettings(tolerance=1e-3)
        assert settings.get_setting("tolerance") == 1e-3
        assert settings.get_setting("missing", 7) == 7

    def test_set_setting(self):
        settings = GateSettings()
        settings.set_setting("DEBUG_MODE", True)
        assert settings.is_debug()

    def test_updated_is_a_copy(self):
        settings = GateSettings(force_proper=False)
        debug = settings.updated(DEBUG_MODE=True)
        assert debug.is_debug()
        assert debug.force_proper is False
        assert not settings.is_debug()

    def test_resolve(self):
        settings = GateSettings()
        assert resolve_settings(None) is DEFAULT_SETTINGS
        assert resolve_settings(settings) is settings

    def test_force_proper_off(self):
        """An improper EP ratio is returned as is when projection is off."""
        exit_msg = Gaussian.from_mean_and_variance(0.0, 1.0)
        values = [
            Gaussian.from_mean_and_variance(-3.0, 1.0),
            Gaussian.from_mean_and_variance(3.0, 1.0),
        ]
        settings = GateSettings(force_proper=False)
        result = exit.exit_value_ep(exit_msg, [0.0, 0.0], values, settings=settings)
        assert float(result.lam[0, 0]) < 0.0

    def test_debug_mode_passes_clean_results(self, discrete_branches):
        settings = GateSettings(DEBUG_MODE=True)
        result = exit.exit_value_bp([0.0, 0.0, 0.0], discrete_branches, settings=settings)
        assert isinstance(result, Discrete)
        assert result.probs.sum().item() == pytest.approx(1.0)

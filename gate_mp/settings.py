"""
Settings for the gate operators.

Settings live in a plain dict with defaults filled in by `setdefault`, so
unknown keys are carried along untouched.
"""


class GateSettings:
    def __init__(self, **settings):
        self._settings = settings
        # project EP ratios onto proper distributions
        self._settings.setdefault("force_proper", True)
        # check every produced message for NaNs
        self._settings.setdefault("DEBUG_MODE", False)

    def __repr__(self):
        return f"{type(self).__name__}({self._settings})"

    def get_setting(self, key, default=None):
        return self._settings.get(key, default)

    def set_setting(self, key, value):
        self._settings[key] = value

    def updated(self, **settings):
        """
        Copy with some settings replaced.
        """
        return type(self)(**{**self._settings, **settings})

    def is_debug(self):
        return self.get_setting('DEBUG_MODE', False)

    @property
    def force_proper(self):
        return self.get_setting('force_proper', True)


DEFAULT_SETTINGS = GateSettings()


def resolve_settings(settings=None):
    if settings is None:
        return DEFAULT_SETTINGS
    return settings

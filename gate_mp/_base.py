"""
Exceptions and constants shared by the distributions, the combiner and the
gate operators.
"""
NEG_INF = float("-inf")


class GateError(Exception):
    pass


class AllZeroException(GateError):
    """
    Every contributing weight is zero probability, i.e. the branches are
    jointly inconsistent with the evidence.
    This is a modelling outcome, not a numerical bug.
    """
    pass


class ImproperMessageException(GateError):
    """
    An input which must be a normalizable distribution is not.
    """
    def __init__(self, message_name, dist=None):
        self.message_name = message_name
        self.dist = dist
        super().__init__(f"{message_name} is not a proper distribution: {dist!r}")


class DimensionMismatchException(GateError, ValueError):
    pass


class UnsupportedConfigurationException(GateError, NotImplementedError):
    pass


class NanError(GateError):
    pass

"""Exceptions raised by the calculation core."""


class KilnCostError(Exception):
    """Base class for calculation failures."""


class ConfigurationError(KilnCostError):
    """Rate settings cannot produce a meaningful cost."""


class InvariantViolation(KilnCostError):
    """An internal contract of the calculations was broken."""

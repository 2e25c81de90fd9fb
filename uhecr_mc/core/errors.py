"""
Exception taxonomy.

Setup-time problems (configuration, data files, table contents) abort the
run. NumericalExhaustion marks a per-call sampling miss that callers treat
as "no interaction this attempt". InternalConsistencyFault signals a logic
defect and is never caught inside the package.
"""


class UHECRError(Exception):
    """Base class for all uhecr_mc errors."""


class ConfigurationError(UHECRError, ValueError):
    """Unknown selector, invalid setting, or use before configuration."""


class DataFileError(UHECRError, OSError):
    """Missing, unreadable, or malformed data file."""


class DataValidationError(UHECRError, ValueError):
    """Table contents violate an invariant (monotonicity, sign, conservation)."""


class NumericalExhaustion(UHECRError):
    """Rejection sampling hit its retry cap."""


class InternalConsistencyFault(UHECRError):
    """A piecewise function was evaluated outside its declared domain."""

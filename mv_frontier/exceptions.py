"""Error types raised by the frontier engine."""


class FrontierError(Exception):
    """Base class for all frontier engine errors."""


class InsufficientDataError(FrontierError):
    """Too few assets or return rows survived returns-matrix construction."""


class InvalidConfigurationError(FrontierError, ValueError):
    """Frontier parameters are malformed (detected before any solve)."""


class FrontierUnsolvableError(FrontierError):
    """The bounding maximum-return problem could not be solved."""


class NoSolvedPointsError(FrontierError):
    """Best-point selection was requested but no point is eligible."""


class DataSourceError(FrontierError):
    """A price source could not supply the requested asset."""

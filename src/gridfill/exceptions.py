"""Exception hierarchy for gridfill."""


class GridError(Exception):
    """Base class for every error raised by gridfill."""


class ConfigurationError(GridError):
    """The grid was configured with something the pipeline cannot use.

    Raised when a datasource that was classified as queryable turns out
    not to accept predicates, or when a grid definition is missing a
    required piece.  These are not retried.
    """


class CacheError(GridError):
    """The cache backend could not be read or written.

    Recoverable: the pipeline logs it and resolves the datasource live
    for that call.
    """


class PresetError(GridError):
    """A saved filter/sort preset could not be parsed."""

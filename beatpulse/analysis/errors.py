"""Exceptions raised by the analysis layer."""


class InvalidArgumentError(ValueError):
    """A parameter is outside its valid domain (non-positive tempo, bad range...).

    Raised before any work is done; callers should not retry with the same
    arguments.
    """

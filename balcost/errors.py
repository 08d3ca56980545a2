"""Exceptions raised by balcost."""


class InvalidInput(ValueError):
    """
    Raised when caller-supplied data cannot be processed.

    Examples: an empty or negative label sequence, an interpolation factor
    outside ``[0, 1]``, or a cost matrix that does not match the training set.
    """


class PreconditionViolation(RuntimeError):
    """
    Raised when a balanced weight is requested for a class with no samples.

    The builder never triggers this itself: it only evaluates weights for
    labels that occur. Seeing it means a direct caller broke the contract.
    """

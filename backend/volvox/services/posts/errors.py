"""Errors raised by the posts domain."""


class PostValidationError(ValueError):
    """Rejected input. Raised before any record or blob store call."""
    pass


class MutationInProgressError(RuntimeError):
    """Another post submission is still running in this process."""
    pass

"""
Error hierarchy for rate limit decisions.

Callers can catch RateLimitError for everything raised by this package,
or the narrower classes below:

- InvalidArgument: the request itself is malformed. Raised before the
  store is touched, so retrying the same request is pointless.
- StoreUnavailable / StoreTimeout: the shared store could not be reached
  or the atomic script failed. Nothing is retried internally.
- ProtocolError: the store answered with something that is not a
  decision. Usually a script/store version mismatch.
"""


class RateLimitError(Exception):
    """Base class for all rate limiting failures."""


class InvalidArgument(RateLimitError, ValueError):
    """A request field failed validation."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class StoreUnavailable(RateLimitError):
    """The shared store is unreachable or rejected the atomic evaluation."""


class StoreTimeout(StoreUnavailable):
    """The shared store did not answer within the client timeout."""


class ProtocolError(RateLimitError):
    """The atomic evaluation returned a reply that cannot be parsed."""

    def __init__(self, raw: object, reason: str):
        super().__init__(f"unexpected rate limit reply {raw!r}: {reason}")
        self.raw = raw

"""
GotoStar Exception Hierarchy

Errors raised by the GotoStar serial core. Every failure reaches the caller
as one of these; nothing is retried internally and there is no shared
"last error" slot to poll.
"""


class GotoStarError(Exception):
    """Base exception for all GotoStar mount errors.

    Callers that only need to know "the operation failed" can catch this
    single class.
    """
    pass


class TransportError(GotoStarError):
    """Raised when the serial channel itself fails.

    Environment-level problem (missing port, unplugged adapter, driver
    error). Not retried by the core.
    """
    pass


class OpenFailedError(TransportError):
    """Raised when the serial port cannot be opened or configured."""
    pass


class WriteFailedError(TransportError):
    """Raised when writing a command to the serial port fails."""
    pass


class NotConnectedError(TransportError):
    """Raised when a command is issued while no port is open."""
    pass


class ReplyTimeoutError(GotoStarError, TimeoutError):
    """Raised when the controller does not answer within the reply timeout.

    The command may or may not have been executed by the controller, so
    the core never repeats it on its own.
    """
    pass


class ProtocolError(GotoStarError):
    """Raised when a reply arrives but cannot be used.

    Possible causes:
    - Reply does not match the fixed-width format of the command
    - Controller answered something other than the expected "1" confirmation
    - Unknown enumeration code (tracking rate, guide rate, pier side)
    """
    pass


class InvalidArgumentError(GotoStarError, ValueError):
    """Raised when a value is rejected before anything is sent.

    Examples: latitude outside [-90, 90], an unsupported tracking rate,
    a negative pulse duration.
    """
    pass


class QueryFailedError(GotoStarError):
    """Raised when a guide pulse cannot determine whether the mount is slewing.

    The underlying transport, timeout or protocol error is chained as
    ``__cause__``.
    """
    pass

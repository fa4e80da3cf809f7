"""
Error taxonomy for the slot machine.

Every error here is recoverable: the spin machine returns to idle and a new
spin can be requested.
"""


class SlotError(Exception):
    """Base class for all slot machine errors."""

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else {}


class AuthorityUnreachable(SlotError):
    """Network failure, timeout or non-success status from the outcome authority."""

    def __init__(self, message="The game server could not be reached", details=None):
        super().__init__(message, details)


class SessionLost(AuthorityUnreachable):
    """The authority cleared the session cookie we were relaying."""

    def __init__(self, message="The game session was lost", details=None):
        super().__init__(message, details)


class MalformedResponse(SlotError):
    """The authority answered, but not with the shape we expect."""

    def __init__(self, message="The game server sent an invalid response", details=None):
        super().__init__(message, details)


class InsufficientSymbols(SlotError):
    """Grid synthesis cannot satisfy a no-repeat constraint with the catalog."""

    def __init__(self, message="Not enough unique symbols", details=None):
        super().__init__(message, details)


class GuardRejection(SlotError):
    """A request was refused without touching state or the network."""

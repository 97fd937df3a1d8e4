"""
Errors raised by the bingo core.

Handlers decide what each one means on the wire: auth failures close the
socket, malformed messages get an ERROR reply, everything else is logged
and dropped.
"""


class BingoError(Exception):
    """Base exception for the application."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class AuthFailure(BingoError):
    """Raised when an admin handshake presents the wrong token."""
    pass


class ValidationFailure(BingoError):
    """Raised when a command carries a value the game state rejects."""
    pass


class OutOfRange(ValidationFailure):
    """Raised when the auto-call interval is outside the allowed bounds."""
    pass


class TooShort(ValidationFailure):
    """Raised when a new admin secret is too short."""
    pass


class MalformedMessage(BingoError):
    """Raised when an inbound payload cannot be parsed into an envelope."""
    pass


class ExhaustedPool(BingoError):
    """Raised when every number in the domain has already been called."""
    pass


class UnknownCommand(BingoError):
    """Raised for message types or admin commands nobody handles."""
    pass

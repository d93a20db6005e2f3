"""Domain errors shared across the ticketing, scanning and auth modules"""


class TransitError(Exception):
    """Base class for errors surfaced to a human operator as a short message"""

    default_message = "Something went wrong"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationRequired(TransitError):
    default_message = "Not authenticated"


class PersistenceError(TransitError):
    """The backing store rejected a read or write. Never retried automatically."""

    default_message = "The ticket store rejected the request"


class DeviceError(TransitError):
    """The capture device could not be acquired, restarted or driven"""

    default_message = "Failed to start camera. Please ensure camera permissions are granted."

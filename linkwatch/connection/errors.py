# Link Errors - Failure kinds reported to callers

"""
Errors raised by SerialDevice operations.

Transport write failures are not wrapped: send_data() lets the
transport's own exception propagate unchanged.
"""


class LinkError(Exception):
    """Base class for link errors"""


class OpenFailedError(LinkError):
    """Transport could not be opened"""


class VerificationTimeoutError(LinkError):
    """No pong received within the timeout after the initial ping"""

    def __init__(self, message: str = "Could not establish connection"):
        super().__init__(message)


class NotConnectedError(LinkError):
    """Send attempted while the link is not verified or the transport is closed"""

    def __init__(self, message: str = "Device not connected"):
        super().__init__(message)


class LineTooLongError(LinkError):
    """Received data exceeded the line length limit without a terminator"""

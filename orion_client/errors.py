from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """
    Categories of failure reported by the streaming session.
    """

    CONNECTION_FAILED = 'connection_failed'
    SEND_FAILED = 'send_failed'
    INVALID_DATA = 'invalid_data'
    SERVER_ERROR = 'server_error'
    INVALID_URL = 'invalid_url'


class SessionError(Exception):
    """
    Base class for every error surfaced by the Orion client session.

    Attributes:
        kind (ErrorKind): The taxonomy bucket this error belongs to.
    """

    kind: ErrorKind = ErrorKind.CONNECTION_FAILED

    def __init__(self, message: str = '') -> None:
        super().__init__(message or self.kind.value)


class ConnectionFailedError(SessionError):
    """The transport could not be established or was lost."""

    kind = ErrorKind.CONNECTION_FAILED


class ConnectionNotReadyError(ConnectionFailedError):
    """A send was attempted while the session was not connected."""


class SendFailedError(SessionError):
    """Writing to an established transport failed."""

    kind = ErrorKind.SEND_FAILED


class InvalidDataError(SessionError):
    """An inbound payload could not be decoded."""

    kind = ErrorKind.INVALID_DATA


class MessageEncodeError(InvalidDataError):
    """An outbound message could not be serialised."""


class ServerError(SessionError):
    """
    The server reported a failure in an explicit error frame.

    Attributes:
        message (str): The free-text message supplied by the server.
    """

    kind = ErrorKind.SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidURLError(SessionError):
    """The configured host and port do not form a valid endpoint."""

    kind = ErrorKind.INVALID_URL

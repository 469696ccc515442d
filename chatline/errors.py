"""Error taxonomy shared by the websocket engine and the HTTP routes.

Every error here is local to the caller: it is reported back on the connection
(or HTTP response) that triggered it and never fans out to other users.
"""


class ChatError(Exception):
    """Base class. ``status_code`` is used when the error surfaces over HTTP."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(ChatError):
    """Missing, undecodable or expired credential, or unknown user."""

    status_code = 401


class ValidationError(ChatError):
    """Malformed request: missing ids, empty message, bad message id list."""

    status_code = 422


class AuthorizationError(ChatError):
    """Caller is not a participant of the target conversation."""

    status_code = 403


class NotFoundError(ChatError):
    status_code = 404


class StorageError(ChatError):
    """The durable store failed; nothing was applied."""

    status_code = 503

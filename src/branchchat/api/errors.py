"""Error hierarchy of the backend client.

Every failure of a backend call surfaces as a BackendError subclass;
transport-level exceptions of the HTTP library never escape the client.
"""


class BackendError(Exception):
    """Base class for backend errors."""


class AuthNotReadyError(BackendError):
    """No bearer token is available yet."""

    def __init__(self, message: str = "Authentication is not ready"):
        super().__init__(message)


class BackendNetworkError(BackendError):
    """Network or connection error, including timeouts."""

    def __init__(self, message: str):
        super().__init__(f"Network error: {message}")


class BackendHTTPError(BackendError):
    """The backend answered with a non-success status code."""

    def __init__(self, status_code: int, message: str = ""):
        msg = f"Backend returned HTTP {status_code}"
        if message:
            msg += f": {message}"
        super().__init__(msg)
        self.status_code = status_code


class StreamUnavailableError(BackendError):
    """A message send returned no readable stream body."""

    def __init__(self, message: str = "No stream"):
        super().__init__(message)


class MalformedPayloadError(BackendError):
    """The backend returned JSON that does not match the expected shape."""

    def __init__(self, message: str):
        super().__init__(f"Malformed payload: {message}")

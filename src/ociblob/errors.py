"""Error definitions for the ociblob backend."""


class BackendError(Exception):
    """Base class for every error raised by the backend.

    Attributes:
        message: Human-readable error description.
        operation: The backend or remote operation that failed, if known.
    """

    def __init__(self, message: str, operation: str = "") -> None:
        """Initialize the backend error.

        Args:
            message: Error description.
            operation: Name of the failing operation (e.g. "Stat").
        """
        super().__init__(f"{operation}: {message}" if operation else message)
        self.message = message
        self.operation = operation


# -- Configuration ------------------------------------------------------------


class ConfigurationError(BackendError):
    """The connection configuration is malformed or incomplete."""


class MissingFieldError(ConfigurationError):
    """A field required by the selected authentication mode is empty."""

    def __init__(self, field: str, env_var: str = "") -> None:
        hint = f" (${env_var})" if env_var else ""
        super().__init__(f"required field {field}{hint} is empty")
        self.field = field
        self.env_var = env_var


# -- Addressing ---------------------------------------------------------------


class InvalidHandleError(BackendError):
    """The handle cannot be mapped to an object key."""


class InvalidRangeError(BackendError):
    """A byte range that cannot be expressed on the wire."""

    def __init__(self, start: int, end: int) -> None:
        super().__init__(f"invalid range specified: start={start} end={end}")
        self.start = start
        self.end = end


# -- Remote -------------------------------------------------------------------


class ObjectNotFoundError(BackendError):
    """The remote store answered 404 for the requested object or bucket."""

    def __init__(self, name: str = "", operation: str = "") -> None:
        super().__init__(f"object not found: {name}" if name else "not found", operation)
        self.name = name


class SizeMismatchError(BackendError):
    """The stored object size differs from the number of bytes written."""

    def __init__(self, expected: int, actual: int, operation: str = "Save") -> None:
        super().__init__(
            f"wrote {actual} bytes instead of the expected {expected} bytes",
            operation,
        )
        self.expected = expected
        self.actual = actual


class RemoteError(BackendError):
    """Any other failure reported by the object store or its transport.

    Attributes:
        status: HTTP status returned by the service (0 when not available).
        code: Service error code string (e.g. "BucketNotFound").
    """

    def __init__(
        self,
        operation: str,
        message: str,
        status: int = 0,
        code: str = "",
    ) -> None:
        super().__init__(message, operation)
        self.status = status
        self.code = code


class OperationCancelledError(BackendError):
    """The caller cancelled a running operation."""

    def __init__(self, operation: str = "") -> None:
        super().__init__("operation cancelled", operation)


def is_not_exist(err: BaseException | None) -> bool:
    """Return True if *err* reports a missing object."""
    return isinstance(err, ObjectNotFoundError)

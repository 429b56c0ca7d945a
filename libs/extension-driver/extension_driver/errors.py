"""Errors raised by the extension driver."""

from typing import Any, Optional

from .models import LastError


class ExtensionDriverError(Exception):
    """Base class for all extension driver errors."""

    pass


class NotFoundError(ExtensionDriverError):
    """Raised when an extension resource that must exist is absent."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class ReconcileError(ExtensionDriverError):
    """An extension controller reported an error for a resource."""

    def __init__(self, message: str, last_error: Optional[LastError] = None):
        self.last_error = last_error
        super().__init__(message)

    @property
    def codes(self) -> list[str]:
        if self.last_error is None:
            return []
        return list(self.last_error.codes)


class RetryableReconcileError(ReconcileError):
    """The reported error is younger than the severe threshold."""

    pass


class SevereReconcileError(ReconcileError):
    """
    The reported error persisted past the severe threshold.

    Callers should give up and report rather than retry.
    """

    pass


class MigrationFailedError(ReconcileError):
    """The extension controller reported a failed migration."""

    pass


class WaitTimeoutError(ExtensionDriverError, TimeoutError):
    """A wait did not reach a terminal state before its deadline."""

    def __init__(
        self,
        message: str,
        last_status: Any = None,
        last_error: Optional[LastError] = None,
    ):
        self.last_status = last_status
        self.last_error = last_error
        super().__init__(message)


class TypeMismatchError(ExtensionDriverError):
    """A fetched object is not of the expected kind."""

    def __init__(self, expected: str, actual: Any):
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected object of kind {expected} but got {actual!r}")


class FanOutError(ExtensionDriverError):
    """Aggregates the failures of a best-effort fan-out."""

    def __init__(self, errors: list[tuple[str, BaseException]]):
        self.errors = errors
        details = "; ".join(f"{key}: {error}" for key, error in errors)
        super().__init__(f"{len(errors)} task(s) failed: {details}")

    @property
    def keys(self) -> list[str]:
        return [key for key, _ in self.errors]

    @property
    def first(self) -> BaseException:
        return self.errors[0][1]

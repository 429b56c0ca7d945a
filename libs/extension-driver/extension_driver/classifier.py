"""Status classification for extension resources."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from threading import Lock
from typing import Callable, Optional

from .models import (
    OPERATION_ANNOTATION,
    ExtensionResource,
    LastError,
    LastOperationState,
    LastOperationType,
    utc_now,
)


class ResourceState(str, Enum):
    """Classified state of an extension resource."""

    ABSENT = "absent"
    READY = "ready"
    PROCESSING = "processing"
    RETRYABLE_ERROR = "retryable_error"
    SEVERE_ERROR = "severe_error"
    MIGRATION_SUCCEEDED = "migration_succeeded"
    MIGRATION_FAILED = "migration_failed"


@dataclass(frozen=True)
class Classification:
    """Result of classifying a resource."""

    state: ResourceState
    message: str
    last_error: Optional[LastError] = None

    def __str__(self) -> str:
        return f"{self.state.value}: {self.message}"


_MIGRATION_FAILURE_STATES = {LastOperationState.ERROR, LastOperationState.FAILED}
_ERROR_STATES = {
    LastOperationState.ERROR,
    LastOperationState.FAILED,
    LastOperationState.ABORTED,
}


class StatusClassifier:
    """
    Classifies the status block of an extension resource.

    Evaluates, in order:
    - Absence (not found)
    - Migration outcome
    - Reported errors, escalated to severe once older than the threshold
    - Outdated observed generation and unprocessed operation annotations
    - The last operation state

    The age of an error is taken from ``lastError.firstObservedAt`` when the
    extension controller reports it. Otherwise the classifier remembers when
    it first saw a given error on a given resource. That memory does not
    depend on the timestamp annotation, so re-annotating an erroring resource
    never resets the escalation clock.
    """

    def __init__(
        self,
        severe_threshold: timedelta,
        clock: Callable[[], datetime] = utc_now,
        operation_annotation: str = OPERATION_ANNOTATION,
    ):
        """
        Initialize status classifier.

        Args:
            severe_threshold: Age after which a reported error becomes severe
            clock: Source of the current time
            operation_annotation: Annotation key of the operation protocol
        """
        self.severe_threshold = severe_threshold
        self.clock = clock
        self.operation_annotation = operation_annotation
        self._first_seen: dict[tuple[str, str, str], tuple[str, datetime]] = {}
        self._lock = Lock()

    def classify(self, resource: Optional[ExtensionResource]) -> Classification:
        """
        Classify a freshly fetched resource.

        Args:
            resource: Fetched resource, or None if it was not found

        Returns:
            Classification with exactly one ResourceState
        """
        if resource is None:
            return Classification(ResourceState.ABSENT, "resource not found")

        status = resource.status
        last_operation = status.last_operation
        last_error = status.last_error

        if last_operation is not None and last_operation.type == LastOperationType.MIGRATE:
            if last_operation.state == LastOperationState.SUCCEEDED:
                return Classification(
                    ResourceState.MIGRATION_SUCCEEDED, "migration succeeded"
                )
            if last_operation.state in _MIGRATION_FAILURE_STATES:
                description = last_error.description if last_error else last_operation.description
                return Classification(
                    ResourceState.MIGRATION_FAILED,
                    f"migration failed: {description}",
                    last_error,
                )

        if last_error is not None:
            return self._classify_error(resource, last_error)
        self._forget(resource)

        if status.observed_generation != resource.metadata.generation:
            return Classification(
                ResourceState.PROCESSING,
                f"observed generation outdated "
                f"({status.observed_generation}/{resource.metadata.generation})",
            )

        operation = resource.operation(self.operation_annotation)
        if operation is not None:
            return Classification(
                ResourceState.PROCESSING,
                f"operation {operation!r} is not yet picked up by controller",
            )

        if last_operation is None:
            return Classification(
                ResourceState.RETRYABLE_ERROR,
                "extension did not record a last operation yet",
            )

        if last_operation.state == LastOperationState.SUCCEEDED:
            return Classification(ResourceState.READY, "extension is ready")
        if last_operation.state in _ERROR_STATES:
            return Classification(
                ResourceState.RETRYABLE_ERROR,
                f"extension state is not succeeded but {last_operation.state.value}",
            )
        return Classification(
            ResourceState.PROCESSING,
            f"extension state is {last_operation.state.value}",
        )

    def _classify_error(
        self, resource: ExtensionResource, last_error: LastError
    ) -> Classification:
        first_observed = self._first_observed(resource, last_error)
        age = self.clock() - first_observed
        message = (
            f"extension encountered error during reconciliation: "
            f"{last_error.description}"
        )
        if age >= self.severe_threshold:
            return Classification(ResourceState.SEVERE_ERROR, message, last_error)
        return Classification(ResourceState.RETRYABLE_ERROR, message, last_error)

    def _first_observed(
        self, resource: ExtensionResource, last_error: LastError
    ) -> datetime:
        if last_error.first_observed_at is not None:
            return _as_utc(last_error.first_observed_at)

        key = _resource_key(resource)
        with self._lock:
            seen = self._first_seen.get(key)
            if seen is None or seen[0] != last_error.description:
                seen = (last_error.description, self.clock())
                self._first_seen[key] = seen
        return seen[1]

    def _forget(self, resource: ExtensionResource) -> None:
        with self._lock:
            self._first_seen.pop(_resource_key(resource), None)


def _resource_key(resource: ExtensionResource) -> tuple[str, str, str]:
    return (resource.kind, resource.namespace, resource.name)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

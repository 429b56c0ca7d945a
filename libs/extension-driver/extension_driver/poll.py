"""Poll-until-converged wait engine for extension resources."""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_before_delay,
    wait_fixed,
)

from .classifier import Classification, ResourceState, StatusClassifier
from .errors import (
    MigrationFailedError,
    NotFoundError,
    RetryableReconcileError,
    SevereReconcileError,
    WaitTimeoutError,
)
from .models import ExtensionResource

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Optional[ExtensionResource]]]
ReadyFn = Callable[[ExtensionResource], Any]


class WaitMode(str, Enum):
    """What a wait considers to be a successful terminal state."""

    READY = "ready"
    CLEANUP = "cleanup"
    MIGRATE = "migrate"


class _NotConverged(Exception):
    """Signals tenacity that another poll is needed."""

    def __init__(self, classification: Classification):
        self.classification = classification
        super().__init__(str(classification))


async def wait_until(
    fetch: FetchFn,
    classifier: StatusClassifier,
    *,
    interval: float,
    timeout: float,
    kind: str,
    namespace: str,
    name: str,
    mode: WaitMode = WaitMode.READY,
    on_ready: Optional[ReadyFn] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Optional[ExtensionResource]:
    """
    Poll a resource until it reaches a terminal state for the given mode.

    Args:
        fetch: Coroutine function returning the resource or None if not found
        classifier: Status classifier
        interval: Seconds between polls
        timeout: Overall deadline in seconds
        kind: Resource kind
        namespace: Resource namespace
        name: Resource name
        mode: READY, CLEANUP or MIGRATE
        on_ready: Callback invoked with the resource once it is ready
        sleep: Sleep coroutine, replaceable in tests

    Returns:
        The last fetched resource (None if it is gone)

    Raises:
        NotFoundError: Resource absent while waiting for readiness
        SevereReconcileError: Reported error persisted past the severe threshold
        MigrationFailedError: Extension controller reported a failed migration
        WaitTimeoutError: Deadline exceeded in a non-terminal state, chained from a
            RetryableReconcileError if the last poll saw a reported error
        ApiException: Store errors from ``fetch`` are propagated unchanged
    """
    description = f"{kind} {namespace}/{name}"
    last: Optional[Classification] = None
    retrying = AsyncRetrying(
        stop=stop_before_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(_NotConverged),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        sleep=sleep,
    )

    try:
        async for attempt in retrying:
            with attempt:
                resource = await fetch()
                last = classifier.classify(resource)
                if _evaluate(mode, last, kind, namespace, name):
                    if resource is not None and on_ready is not None:
                        result = on_ready(resource)
                        if asyncio.iscoroutine(result):
                            await result
                    return resource
    except RetryError as e:
        error = _timeout_error(mode, description, last)
        if last is not None and last.state == ResourceState.RETRYABLE_ERROR:
            raise error from RetryableReconcileError(last.message, last.last_error)
        raise error from e

    # AsyncRetrying only exits without returning or raising if it never ran.
    raise _timeout_error(mode, description, last)


def _evaluate(
    mode: WaitMode, result: Classification, kind: str, namespace: str, name: str
) -> bool:
    """Return True on success, raise on terminal failure or to keep polling."""
    description = f"{kind} {namespace}/{name}"
    state = result.state

    if mode == WaitMode.CLEANUP:
        if state == ResourceState.ABSENT:
            return True
        logger.debug(f"{description} is still present: {result.message}")
        raise _NotConverged(result)

    if mode == WaitMode.MIGRATE:
        if state in (ResourceState.MIGRATION_SUCCEEDED, ResourceState.ABSENT):
            return True
        if state == ResourceState.MIGRATION_FAILED:
            raise MigrationFailedError(
                f"Error while waiting for {description} to be migrated: {result.message}",
                result.last_error,
            )
        raise _NotConverged(result)

    if state == ResourceState.ABSENT:
        raise NotFoundError(kind, namespace, name)
    if state == ResourceState.READY:
        return True
    if state == ResourceState.SEVERE_ERROR:
        raise SevereReconcileError(
            f"Error while waiting for {description} to become ready: {result.message}",
            result.last_error,
        )
    if state == ResourceState.MIGRATION_FAILED:
        raise MigrationFailedError(
            f"Error while waiting for {description} to become ready: {result.message}",
            result.last_error,
        )
    logger.debug(f"{description} did not get ready yet: {result.message}")
    raise _NotConverged(result)


def _timeout_error(
    mode: WaitMode, description: str, last: Optional[Classification]
) -> WaitTimeoutError:
    if mode == WaitMode.CLEANUP:
        message = f"Failed to delete {description}"
    elif mode == WaitMode.MIGRATE:
        message = f"Error while waiting for {description} to be migrated"
    else:
        message = f"Error while waiting for {description} to become ready"
    if last is not None:
        message = f"{message}: {last.message}"
    return WaitTimeoutError(
        message,
        last_status=last,
        last_error=last.last_error if last is not None else None,
    )

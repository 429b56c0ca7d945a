"""Pruning of extension resources that are no longer configured."""

import logging
from functools import partial
from typing import Callable, Iterable, Optional

from .classifier import StatusClassifier
from .client import ExtensionResourceClient
from .config import DriverSettings, WaitTimings, get_settings
from .errors import FanOutError
from .fanout import run_best_effort, run_exit_on_first_error
from .migration import Clock, delete_resource
from .models import ExtensionResource, utc_now
from .poll import WaitMode, wait_until

logger = logging.getLogger(__name__)

KeyFn = Callable[[ExtensionResource], str]


class StaleResourceReconciler:
    """
    Deletes resources of one kind whose key is not in the wanted set.

    The wanted set is passed on every call; nothing is cached between calls.
    """

    def __init__(
        self,
        client: ExtensionResourceClient,
        kind: str,
        plural: str,
        namespace: str,
        key_fn: KeyFn,
        settings: Optional[DriverSettings] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize stale resource reconciler.

        Args:
            client: Extension resource client
            kind: Resource kind
            plural: Resource plural
            namespace: Namespace to prune
            key_fn: Computes the desired-set key of an existing resource
            settings: Driver settings
            clock: Source of the current time
        """
        self.client = client
        self.kind = kind
        self.plural = plural
        self.namespace = namespace
        self.key_fn = key_fn
        self.settings = settings or get_settings()
        self.clock = clock

    async def stale_resources(self, wanted_keys: Iterable[str]) -> list[ExtensionResource]:
        """List the resources whose key is not wanted, in listing order."""
        wanted = set(wanted_keys)
        resources = await self.client.list(self.kind, self.plural, self.namespace)
        return [r for r in resources if self.key_fn(r) not in wanted]

    async def delete_stale_resources(self, wanted_keys: Iterable[str]) -> list[str]:
        """
        Delete every resource whose key is not wanted.

        All deletions are attempted even if some of them fail.

        Args:
            wanted_keys: Keys of the currently configured units

        Returns:
            Names of the deleted resources

        Raises:
            Exception: The first deletion error, in listing order
        """
        stale = await self.stale_resources(wanted_keys)
        if not stale:
            return []

        logger.info(
            f"Deleting {len(stale)} stale {self.kind}(s) in {self.namespace}: "
            f"{', '.join(r.name for r in stale)}"
        )
        tasks = {
            r.name: partial(
                delete_resource, self.client, self.plural, r, self.clock, self.settings
            )
            for r in stale
        }
        try:
            await run_best_effort(tasks)
        except FanOutError as e:
            raise e.first from e
        return [r.name for r in stale]

    async def wait_cleanup_stale_resources(
        self, wanted_keys: Iterable[str], timings: Optional[WaitTimings] = None
    ) -> None:
        """
        Wait until stale resources that are being deleted are gone.

        Args:
            wanted_keys: Keys of the currently configured units
            timings: Wait timings (defaults to the kind's configured timings)
        """
        timings = timings or self.settings.timings_for(self.kind)
        stale = await self.stale_resources(wanted_keys)
        deleting = [r for r in stale if r.metadata.deletion_timestamp is not None]
        await wait_for_all(
            self.client, self.plural, deleting, WaitMode.CLEANUP, timings, self.clock, self.settings
        )


async def wait_for_all(
    client: ExtensionResourceClient,
    plural: str,
    resources: list[ExtensionResource],
    mode: WaitMode,
    timings: WaitTimings,
    clock: Clock = utc_now,
    settings: Optional[DriverSettings] = None,
) -> None:
    """
    Wait for each listed resource concurrently, stopping at the first failure.

    Args:
        client: Extension resource client
        plural: Resource plural
        resources: Resources to wait for
        mode: Wait mode
        timings: Wait timings
        clock: Source of the current time
        settings: Driver settings
    """
    settings = settings or get_settings()
    classifier = StatusClassifier(
        timings.severe_threshold,
        clock=clock,
        operation_annotation=settings.operation_annotation,
    )

    def waiter(resource: ExtensionResource):
        return partial(
            wait_until,
            partial(client.get, resource.kind, plural, resource.namespace, resource.name),
            classifier,
            interval=timings.interval_seconds,
            timeout=timings.timeout_seconds,
            kind=resource.kind,
            namespace=resource.namespace,
            name=resource.name,
            mode=mode,
        )

    await run_exit_on_first_error({r.name: waiter(r) for r in resources})

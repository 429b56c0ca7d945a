"""Pytest configuration and fixtures for extension driver tests."""

import copy
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from extension_driver import (
    DriverSettings,
    ExtensionResourceClient,
    WaitTimings,
)
from extension_driver.models import OPERATION_ANNOTATION

GROUP = "extensions.gardener.cloud"
VERSION = "v1alpha1"
NAMESPACE = "shoot--dev--test"


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch (RFC 7386)."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), value)
    return result


class FakeCustomObjectsApi:
    """
    In-memory stand-in for ``CustomObjectsApi``.

    Objects are stored per (namespace, plural, name) in creation order. Writes
    use merge-patch semantics, missing objects raise 404 ``ApiException`` and
    every call is recorded as ``(verb, plural, name, body)``.
    """

    def __init__(self):
        self.objects: dict[tuple[str, str, str], dict] = {}
        self.calls: list[tuple[str, str, Optional[str], Any]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self._lock = threading.Lock()
        self._resource_version = 0

    # API surface

    def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        with self._lock:
            self._record("get", plural, name)
            return copy.deepcopy(self._require(namespace, plural, name))

    def create_namespaced_custom_object(self, group, version, namespace, plural, body):
        with self._lock:
            name = body["metadata"]["name"]
            self._record("create", plural, name, body)
            if (namespace, plural, name) in self.objects:
                raise ApiException(status=409, reason="AlreadyExists")
            obj = copy.deepcopy(body)
            metadata = obj["metadata"]
            metadata["generation"] = 1
            metadata["uid"] = f"uid-{name}"
            metadata["resourceVersion"] = self._next_version()
            self.objects[(namespace, plural, name)] = obj
            return copy.deepcopy(obj)

    def patch_namespaced_custom_object(self, group, version, namespace, plural, name, body):
        with self._lock:
            self._record("patch", plural, name, body)
            obj = self._require(namespace, plural, name)
            patched = apply_merge_patch(obj, {k: v for k, v in body.items() if k != "status"})
            if "spec" in body and patched.get("spec") != obj.get("spec"):
                patched["metadata"]["generation"] = obj["metadata"].get("generation", 0) + 1
            patched["metadata"]["resourceVersion"] = self._next_version()
            self.objects[(namespace, plural, name)] = patched
            return copy.deepcopy(patched)

    def patch_namespaced_custom_object_status(self, group, version, namespace, plural, name, body):
        with self._lock:
            self._record("patch_status", plural, name, body)
            obj = self._require(namespace, plural, name)
            obj["status"] = apply_merge_patch(obj.get("status") or {}, body.get("status") or {})
            obj["metadata"]["resourceVersion"] = self._next_version()
            return copy.deepcopy(obj)

    def delete_namespaced_custom_object(self, group, version, namespace, plural, name):
        with self._lock:
            self._record("delete", plural, name)
            obj = self._require(namespace, plural, name)
            if obj["metadata"].get("finalizers"):
                obj["metadata"]["deletionTimestamp"] = "2026-01-01T00:00:00Z"
            else:
                del self.objects[(namespace, plural, name)]
            return {"kind": "Status", "status": "Success"}

    def list_namespaced_custom_object(self, group, version, namespace, plural, label_selector=None):
        with self._lock:
            self._record("list", plural, None)
            selector = dict(
                part.split("=", 1) for part in label_selector.split(",")
            ) if label_selector else {}
            items = [
                copy.deepcopy(obj)
                for (ns, pl, _), obj in self.objects.items()
                if ns == namespace
                and pl == plural
                and all(obj["metadata"].get("labels", {}).get(k) == v for k, v in selector.items())
            ]
            return {"kind": "List", "items": items}

    # Test helpers

    def add(self, plural: str, obj: dict) -> dict:
        """Store an object directly, bypassing call recording."""
        obj = copy.deepcopy(obj)
        metadata = obj.setdefault("metadata", {})
        metadata.setdefault("generation", 1)
        self.objects[(metadata["namespace"], plural, metadata["name"])] = obj
        return obj

    def object(self, plural: str, name: str, namespace: str = NAMESPACE) -> Optional[dict]:
        return self.objects.get((namespace, plural, name))

    def names(self, plural: str, namespace: str = NAMESPACE) -> set[str]:
        return {n for (ns, pl, n) in self.objects if ns == namespace and pl == plural}

    def verbs(self, plural: Optional[str] = None) -> list[str]:
        """Recorded verbs, excluding reads."""
        return [
            verb
            for verb, pl, _, _ in self.calls
            if verb not in ("get", "list") and (plural is None or pl == plural)
        ]

    def succeed(self, plural: str, name: str, operation_type: str = "Reconcile", namespace: str = NAMESPACE):
        """Act like an extension controller that finished an operation."""
        with self._lock:
            obj = self._require(namespace, plural, name)
            obj["metadata"].get("annotations", {}).pop(OPERATION_ANNOTATION, None)
            status = obj.setdefault("status", {})
            status.pop("lastError", None)
            status["observedGeneration"] = obj["metadata"]["generation"]
            status["lastOperation"] = {"type": operation_type, "state": "Succeeded"}

    def report_error(
        self,
        plural: str,
        name: str,
        description: str,
        first_observed_at: Optional[str] = None,
        namespace: str = NAMESPACE,
    ):
        """Act like an extension controller that failed to reconcile."""
        with self._lock:
            obj = self._require(namespace, plural, name)
            status = obj.setdefault("status", {})
            status["observedGeneration"] = obj["metadata"]["generation"]
            status["lastOperation"] = {"type": "Reconcile", "state": "Error"}
            last_error = {"description": description}
            if first_observed_at is not None:
                last_error["firstObservedAt"] = first_observed_at
            status["lastError"] = last_error

    def fail(self, verb: str, name: str, error: Exception):
        """Make every ``verb`` call for ``name`` raise ``error``."""
        self.failures[(verb, name)] = error

    def _record(self, verb, plural, name, body=None):
        self.calls.append((verb, plural, name, copy.deepcopy(body)))
        error = self.failures.get((verb, name))
        if error is not None:
            raise error

    def _require(self, namespace, plural, name) -> dict:
        obj = self.objects.get((namespace, plural, name))
        if obj is None:
            raise ApiException(status=404, reason="Not Found")
        return obj

    def _next_version(self) -> str:
        self._resource_version += 1
        return str(self._resource_version)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def extension_object(
    kind: str,
    name: str,
    spec: Optional[dict] = None,
    status: Optional[dict] = None,
    annotations: Optional[dict] = None,
    generation: int = 1,
    namespace: str = NAMESPACE,
) -> dict:
    """Build an extension resource in wire form."""
    obj = {
        "apiVersion": f"{GROUP}/{VERSION}",
        "kind": kind,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "generation": generation,
            "annotations": dict(annotations or {}),
        },
        "spec": spec or {"type": "test"},
    }
    if status is not None:
        obj["status"] = status
    return obj


@pytest.fixture
def fake_api():
    """In-memory custom objects API."""
    return FakeCustomObjectsApi()


@pytest.fixture
def mock_custom_objects():
    """Mock custom objects API for call shape assertions."""
    return MagicMock(spec=client.CustomObjectsApi)


@pytest.fixture
def ext_client(fake_api):
    """Extension resource client backed by the in-memory API."""
    return ExtensionResourceClient(fake_api, GROUP, VERSION)


@pytest.fixture
def fast_timings():
    """Timings that keep waits in the millisecond range."""
    return WaitTimings(
        interval_seconds=0.01,
        severe_threshold_seconds=30.0,
        timeout_seconds=0.3,
    )


@pytest.fixture
def settings(fast_timings):
    """Driver settings with fast timings for every kind."""
    return DriverSettings(_env_file=None, default_timings=fast_timings, kind_timings={})


@pytest.fixture
def clock():
    """Frozen clock."""
    return FrozenClock()

"""Readiness, revision and ownership helpers for pods."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .client import Selector
from .constants import CONTROLLER_REVISION_HASH_LABEL_KEY, DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY
from .parse import get_selector
from .workloads import is_owned_by

POD_READY = "Ready"
CONDITION_TRUE = "True"
POD_FAILED = "Failed"
POD_SUCCEEDED = "Succeeded"


def _labels(pod: Mapping[str, Any]) -> Mapping[str, str]:
    return (pod.get("metadata") or {}).get("labels") or {}


def get_pod_condition(
    status: Mapping[str, Any] | None, condition_type: str
) -> tuple[int, Mapping[str, Any] | None]:
    """The index and value of the condition of the given type, or (-1, None)."""
    if status is None:
        return -1, None
    for index, condition in enumerate(status.get("conditions") or []):
        if condition.get("type") == condition_type:
            return index, condition
    return -1, None


def get_pod_ready_condition(status: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    """The Ready condition of a pod status, or None."""
    _, condition = get_pod_condition(status, POD_READY)
    return condition


def is_pod_ready(pod: Mapping[str, Any]) -> bool:
    """Whether the pod's Ready condition is True."""
    condition = get_pod_ready_condition(pod.get("status") or {})
    return condition is not None and condition.get("status") == CONDITION_TRUE


def is_consistent_with_revision(pod: Mapping[str, Any], revision: str) -> bool:
    """Whether the pod's revision label is a suffix of ``revision``."""
    labels = _labels(pod)
    for key in (DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY, CONTROLLER_REVISION_HASH_LABEL_KEY):
        value = labels.get(key, "")
        if value and revision.endswith(value):
            return True
    return False


def is_equal_revision(a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
    """Whether two pods carry the same non-empty revision label."""
    labels_a, labels_b = _labels(a), _labels(b)
    for key in (DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY, CONTROLLER_REVISION_HASH_LABEL_KEY):
        value = labels_a.get(key, "")
        if value and value == labels_b.get(key, ""):
            return True
    return False


def filter_active_pods(pods: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Drop pods that are terminating."""
    return [pod for pod in pods if not (pod.get("metadata") or {}).get("deletionTimestamp")]


def is_completed_pod(pod: Mapping[str, Any]) -> bool:
    """Whether the pod has reached the Failed or Succeeded phase."""
    return (pod.get("status") or {}).get("phase") in (POD_FAILED, POD_SUCCEEDED)


def list_owned_pods(client: Any, workload: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Pods selected by the workload and owned by it, terminating ones included.

    Completed pods are left out; ownership may be indirect (pod -> replica
    set -> deployment). A workload without a selector owns no pods.
    """
    selector = get_selector(workload)
    if selector is None:
        selector = Selector.from_label_selector(None)
    namespace = (workload.get("metadata") or {}).get("namespace", "")
    candidates = client.list("v1", "Pod", namespace, selector)
    return [
        pod
        for pod in candidates
        if not is_completed_pod(pod) and is_owned_by(client, pod, workload)
    ]
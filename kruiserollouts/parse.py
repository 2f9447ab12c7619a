"""Read replicas, selectors, status and update strategy from workload objects.

Workload objects are plain mappings in their JSON form (``apiVersion``,
``kind``, ``metadata``, ``spec``, ``status``). Missing fields take the same
defaults for every kind: replicas default to 1, counters to 0 and revisions
to the empty string.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from .client import Selector
from .constants import from_api_version_and_kind

logger = logging.getLogger(__name__)

ROLLING_UPDATE_STATEFULSET_STRATEGY_TYPE = "RollingUpdate"


@dataclass
class WorkloadStatus:
    """Replica counters and revisions read from a workload's status."""

    replicas: int = 0
    ready_replicas: int = 0
    updated_replicas: int = 0
    updated_ready_replicas: int = 0
    available_replicas: int = 0
    observed_generation: int = 0
    update_revision: str = ""
    stable_revision: str = ""


@dataclass
class WorkloadInfo:
    """What the rollout controllers need to know about a workload."""

    metadata: dict[str, Any] = field(default_factory=dict)
    paused: bool = False
    replicas: int | None = None
    gvk_with_name: str = ""
    selector: Selector | None = None
    max_unavailable: int | str | None = None
    status: WorkloadStatus = field(default_factory=WorkloadStatus)

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def generation(self) -> int:
        return self.metadata.get("generation", 0) or 0

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.get("labels") or {}

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.get("annotations") or {}


class _FieldError(ValueError):
    """A nested field could not be read with the expected type."""


def _require_mapping(obj: Any, function: str) -> Mapping[str, Any]:
    if not isinstance(obj, Mapping):
        raise TypeError(f"unsupported workload type to {function} function: {type(obj).__name__}")
    return obj


def _nested(obj: Mapping[str, Any], *fields: str) -> tuple[Any, bool]:
    current: Any = obj
    for depth, name in enumerate(fields):
        if not isinstance(current, Mapping):
            path = ".".join(fields[:depth])
            raise _FieldError(
                f"{path} accessor error: {current!r} is of the type {type(current).__name__}, expected map"
            )
        if name not in current:
            return None, False
        current = current[name]
    return current, True


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _nested_int(obj: Mapping[str, Any], *fields: str) -> tuple[int, bool]:
    value, found = _nested(obj, *fields)
    if found and not _is_int(value):
        raise _FieldError(f"{'.'.join(fields)} accessor error: {value!r} is not an integer")
    return (value if found else 0), found


def _nested_string(obj: Mapping[str, Any], *fields: str) -> tuple[str, bool]:
    value, found = _nested(obj, *fields)
    if found and not isinstance(value, str):
        raise _FieldError(f"{'.'.join(fields)} accessor error: {value!r} is not a string")
    return (value if found else ""), found


def parse_statefulset_info(obj: Mapping[str, Any], namespace: str, name: str) -> WorkloadInfo:
    """Collect metadata, replicas, selector, status and maxUnavailable of a workload."""
    obj = _require_mapping(obj, "parse_statefulset_info")
    gvk = from_api_version_and_kind(obj.get("apiVersion", ""), obj.get("kind", ""))
    gvk_with_name = f"{gvk}({namespace}/{name})"
    try:
        selector = get_selector(obj)
    except ValueError:
        logger.error("Failed to parse selector for workload(%s)", gvk_with_name)
        selector = None
    metadata = get_metadata(obj)
    if metadata is None:
        raise ValueError(f"workload {gvk_with_name} has no metadata")
    return WorkloadInfo(
        metadata=metadata,
        max_unavailable=get_statefulset_max_unavailable(obj),
        replicas=get_replicas(obj),
        status=parse_workload_status(obj),
        selector=selector,
        gvk_with_name=gvk_with_name,
    )


def is_statefulset_rolling_update(obj: Mapping[str, Any]) -> bool:
    """Whether the update strategy is RollingUpdate (the default when unset)."""
    obj = _require_mapping(obj, "is_statefulset_rolling_update")
    try:
        strategy, _ = _nested_string(obj, "spec", "updateStrategy", "type")
    except _FieldError:
        return False
    return strategy in ("", ROLLING_UPDATE_STATEFULSET_STRATEGY_TYPE)


def set_statefulset_partition(obj: dict[str, Any], partition: int) -> None:
    """Set ``spec.updateStrategy.rollingUpdate.partition`` in place."""
    obj = _require_mapping(obj, "set_statefulset_partition")
    spec = obj.get("spec")
    if not isinstance(spec, dict):
        return
    update_strategy = spec.get("updateStrategy")
    if not isinstance(update_strategy, dict):
        spec["updateStrategy"] = {
            "type": ROLLING_UPDATE_STATEFULSET_STRATEGY_TYPE,
            "rollingUpdate": {"partition": int(partition)},
        }
        return
    rolling_update = update_strategy.get("rollingUpdate")
    if not isinstance(rolling_update, dict):
        update_strategy["rollingUpdate"] = {"partition": int(partition)}
    else:
        rolling_update["partition"] = int(partition)


def get_statefulset_partition(obj: Mapping[str, Any]) -> int:
    """The rolling-update partition, 0 when unset or malformed."""
    obj = _require_mapping(obj, "get_statefulset_partition")
    try:
        value, found = _nested_int(obj, "spec", "updateStrategy", "rollingUpdate", "partition")
    except _FieldError:
        return 0
    return value if found else 0


def is_statefulset_unordered_update(obj: Mapping[str, Any]) -> bool:
    """Whether the rolling update carries an unorderedUpdate strategy."""
    obj = _require_mapping(obj, "is_statefulset_unordered_update")
    try:
        value, found = _nested(obj, "spec", "updateStrategy", "rollingUpdate", "unorderedUpdate")
    except _FieldError:
        return False
    return found and value is not None


def _int_or_string(value: Any) -> int | str:
    if isinstance(value, str):
        return value
    if _is_int(value):
        return value
    return 0


def get_statefulset_max_unavailable(obj: Mapping[str, Any]) -> int | str | None:
    """The rolling update's maxUnavailable as an int or a percentage string."""
    obj = _require_mapping(obj, "get_statefulset_max_unavailable")
    try:
        value, found = _nested(obj, "spec", "updateStrategy", "rollingUpdate", "maxUnavailable")
    except _FieldError:
        return None
    if not found:
        return None
    return _int_or_string(copy.deepcopy(value))


def _status_int(obj: Mapping[str, Any], name: str) -> int:
    try:
        value, found = _nested_int(obj, "status", name)
    except _FieldError:
        return 0
    return value if found else 0


def _status_string(obj: Mapping[str, Any], name: str) -> str:
    try:
        value, found = _nested(obj, "status", name)
    except _FieldError:
        return ""
    if not found:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"status.{name} must be a string, got {type(value).__name__}")
    return value


def parse_workload_status(obj: Mapping[str, Any]) -> WorkloadStatus:
    """Read replica counters and revisions from ``status``."""
    obj = _require_mapping(obj, "parse_workload_status")
    return WorkloadStatus(
        observed_generation=_status_int(obj, "observedGeneration"),
        replicas=_status_int(obj, "replicas"),
        ready_replicas=_status_int(obj, "readyReplicas"),
        updated_replicas=_status_int(obj, "updatedReplicas"),
        available_replicas=_status_int(obj, "availableReplicas"),
        updated_ready_replicas=_status_int(obj, "updatedReadyReplicas"),
        update_revision=_status_string(obj, "updateRevision"),
        stable_revision=_status_string(obj, "currentRevision"),
    )


def get_replicas(obj: Mapping[str, Any]) -> int:
    """``spec.replicas``, defaulting to 1."""
    obj = _require_mapping(obj, "get_replicas")
    try:
        value, found = _nested_int(obj, "spec", "replicas")
    except _FieldError:
        return 1
    return value if found else 1


def get_template(obj: Mapping[str, Any]) -> dict[str, Any] | None:
    """A copy of the pod template, or None when absent."""
    obj = _require_mapping(obj, "get_template")
    try:
        value, found = _nested(obj, "spec", "template")
    except _FieldError:
        return None
    if not found:
        return None
    return copy.deepcopy(value) if isinstance(value, Mapping) else {}


def get_selector(obj: Mapping[str, Any]) -> Selector | None:
    """The workload's label selector; None when ``spec.selector`` is absent.

    Raises ValueError when the object or the selector is malformed.
    """
    obj = _require_mapping(obj, "get_selector")
    value, found = _nested(obj, "spec", "selector")
    if not found:
        return None
    if not isinstance(value, Mapping):
        value = {}
    return Selector.from_label_selector(value)


def get_metadata(obj: Mapping[str, Any]) -> dict[str, Any] | None:
    """A copy of ``metadata``, or None when absent or not a mapping."""
    obj = _require_mapping(obj, "get_metadata")
    value = obj.get("metadata")
    if not isinstance(value, Mapping):
        return None
    return copy.deepcopy(dict(value))
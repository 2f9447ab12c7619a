"""Helpers that read rollout objects and their annotations."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Mapping

from .constants import (
    CONTROLLER_KIND_STS,
    CONTROLLER_KRUISE_KIND_CS,
    IN_ROLLOUT_PROGRESSING_ANNOTATION,
    ROLLBACK_IN_BATCH_ANNOTATION,
    WORKLOAD_TYPE_LABEL,
    GroupVersionKind,
    from_api_version_and_kind,
)


@dataclass
class RolloutState:
    """Value of the in-progressing annotation on a workload."""

    rollout_name: str = ""

    def to_json_dict(self) -> dict[str, Any]:
        return {"rolloutName": self.rollout_name}


def get_rollout_state(annotations: Mapping[str, str] | None) -> RolloutState | None:
    """Decode the in-progressing annotation; None when absent or empty."""
    value = (annotations or {}).get(IN_ROLLOUT_PROGRESSING_ANNOTATION)
    if not value:
        return None
    data = json.loads(value)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"cannot decode rollout state from {value!r}")
    name = data.get("rolloutName", "")
    if not isinstance(name, str):
        raise ValueError(f"rolloutName must be a string, got {name!r}")
    return RolloutState(rollout_name=name)


def is_rollback_in_batch_policy(rollout: Mapping[str, Any], labels: Mapping[str, str] | None) -> bool:
    """Whether the rollout asks to roll back batch by batch."""
    spec = rollout.get("spec") or {}
    canary = (spec.get("strategy") or {}).get("canary") or {}
    if canary.get("trafficRoutings"):
        return False
    workload_ref = (spec.get("objectRef") or {}).get("workloadRef") or {}
    kind = workload_ref.get("kind", "")
    label_kind = (labels or {}).get(WORKLOAD_TYPE_LABEL, "")
    if (
        kind == CONTROLLER_KIND_STS.kind
        or kind == CONTROLLER_KRUISE_KIND_CS.kind
        or label_kind.casefold() == CONTROLLER_KIND_STS.kind.casefold()
    ):
        annotations = (rollout.get("metadata") or {}).get("annotations") or {}
        return annotations.get(ROLLBACK_IN_BATCH_ANNOTATION) == "true"
    return False


def get_gvk_from(workload_ref: Mapping[str, Any] | None) -> GroupVersionKind:
    """The GroupVersionKind a workload reference points at."""
    if workload_ref is None:
        return GroupVersionKind()
    return from_api_version_and_kind(workload_ref.get("apiVersion", ""), workload_ref.get("kind", ""))


def _json_default(obj: Any) -> Any:
    to_json = getattr(obj, "to_json_dict", None)
    if callable(to_json):
        return to_json()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    raise TypeError(f"object of type {type(obj).__name__} is not JSON serializable")


_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def dump_json(obj: Any) -> str:
    """Compact JSON with sorted keys and HTML-safe escaping."""
    text = json.dumps(obj, default=_json_default, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


def hash_release_plan_batches(release_plan: Any) -> str:
    """Hex SHA-256 of the release plan's JSON form."""
    return hashlib.sha256(dump_json(release_plan).encode("utf-8")).hexdigest()
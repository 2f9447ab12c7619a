"""Hashing, ownership and finalizer helpers for workload objects.

Objects are plain mappings in their JSON form, read and written through a
client such as :class:`kruiserollouts.client.InMemoryClient`.
"""

from __future__ import annotations

import copy
import json
import random
import secrets
import struct
import time
from typing import Any, Iterable, Mapping

from .client import ConflictError, NotFoundError
from .constants import (
    ALPHANUMS,
    DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY,
    IN_ROLLOUT_PROGRESSING_ANNOTATION,
    KNOWN_WORKLOAD_GVKS,
    WORKLOAD_TYPE_LABEL,
    FinalizerOpType,
    GroupVersionKind,
    WorkloadType,
    from_api_version_and_kind,
)
from .features import need_filter_workload_type

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193

_RETRY_STEPS = 5
_RETRY_DELAY = 0.01
_RETRY_JITTER = 0.1


def _fnv32a(data: bytes, state: int = _FNV32_OFFSET) -> int:
    for byte in data:
        state ^= byte
        state = (state * _FNV32_PRIME) & 0xFFFFFFFF
    return state


def _canonical_bytes(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def compute_hash(template: Mapping[str, Any], collision_count: int | None = None) -> str:
    """A safe-encoded FNV-32a hash of a pod template and optional collision count."""
    digest = _fnv32a(_canonical_bytes(template))
    if collision_count is not None:
        digest = _fnv32a(struct.pack("<I", collision_count & 0xFFFFFFFF) + bytes(4), digest)
    return safe_encode_string(str(digest))


def safe_encode_string(text: str) -> str:
    """Map every character onto the vowel-free alphabet used for generated names."""
    return "".join(ALPHANUMS[ord(char) % len(ALPHANUMS)] for char in text)


def _semantic(value: Any) -> Any:
    """Normalise so that absent, null, empty maps and empty lists compare equal."""
    if isinstance(value, Mapping):
        result = {}
        for key, item in value.items():
            normalised = _semantic(item)
            if normalised is not None:
                result[key] = normalised
        return result or None
    if isinstance(value, (list, tuple)):
        items = [_semantic(item) for item in value]
        return items or None
    return value


def _without_hash_label(template: Mapping[str, Any] | None) -> Any:
    result = copy.deepcopy(dict(template or {}))
    labels = (result.get("metadata") or {}).get("labels")
    if isinstance(labels, dict):
        labels.pop(DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY, None)
    return _semantic(result)


def equal_ignore_hash(template1: Mapping[str, Any] | None, template2: Mapping[str, Any] | None) -> bool:
    """Compare two pod templates, ignoring the pod-template-hash label."""
    return _without_hash_label(template1) == _without_hash_label(template2)


def _address(obj: Mapping[str, Any]) -> tuple[str, str, str, str]:
    metadata = obj.get("metadata") or {}
    return obj.get("apiVersion", ""), obj.get("kind", ""), metadata.get("namespace", ""), metadata.get("name", "")


def update_finalizer(client: Any, obj: Mapping[str, Any], op: FinalizerOpType | str, finalizer: str) -> None:
    """Add or remove a finalizer on the stored object, retrying on conflicts.

    Removing a finalizer leaves the remaining ones sorted and de-duplicated.
    """
    try:
        op = FinalizerOpType(op)
    except ValueError as exc:
        raise ValueError("finalizer op must be 'Add' or 'Remove'") from exc

    api_version, kind, namespace, name = _address(obj)
    last_error: ConflictError | None = None
    for attempt in range(_RETRY_STEPS):
        if attempt:
            time.sleep(_RETRY_DELAY * (1 + random.random() * _RETRY_JITTER))
        fetched = client.get(api_version, kind, namespace, name)
        metadata = fetched.setdefault("metadata", {})
        finalizers = list(metadata.get("finalizers") or [])
        if op is FinalizerOpType.ADD:
            if finalizer in finalizers:
                return
            finalizers.append(finalizer)
        else:
            if finalizer not in finalizers:
                return
            finalizers = sorted(set(finalizers) - {finalizer})
        metadata["finalizers"] = finalizers
        try:
            client.update(fetched)
            return
        except ConflictError as exc:
            last_error = exc
    assert last_error is not None
    raise last_error


def is_supported_workload(gvk: GroupVersionKind) -> bool:
    """Whether rollouts handle this kind (always true when filtering is off)."""
    if not need_filter_workload_type():
        return True
    return any(gvk.group == known.group and gvk.kind == known.kind for known in KNOWN_WORKLOAD_GVKS)


def get_controller_of(obj: Mapping[str, Any]) -> dict[str, Any] | None:
    """A copy of the owner reference marked as controller, or None."""
    for ref in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("controller"):
            return copy.deepcopy(dict(ref))
    return None


def filter_active_deployments(deployments: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Drop deployments that are being deleted."""
    return [d for d in deployments if (d.get("metadata") or {}).get("deletionTimestamp") is None]


def get_owner_workload(client: Any, obj: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    """Climb controller references to the top-level workload.

    Stops at an object with no controller or one marked as in rollout
    progress. Returns None for an unsupported owner kind; a missing owner
    yields an empty object of the owner's kind.
    """
    current = obj
    while current is not None:
        owner = get_controller_of(current)
        metadata = current.get("metadata") or {}
        annotations = metadata.get("annotations") or {}
        if owner is None or annotations.get(IN_ROLLOUT_PROGRESSING_ANNOTATION):
            return current
        api_version, kind = owner.get("apiVersion", ""), owner.get("kind", "")
        if not is_supported_workload(from_api_version_and_kind(api_version, kind)):
            return None
        try:
            current = client.get(api_version, kind, metadata.get("namespace", ""), owner.get("name", ""))
        except NotFoundError:
            current = {"apiVersion": api_version, "kind": kind, "metadata": {}}
    return None


def is_owned_by(client: Any, child: Mapping[str, Any] | None, parent: Mapping[str, Any]) -> bool:
    """Whether ``child`` is controlled by ``parent`` directly or through a chain."""
    parent_uid = (parent.get("metadata") or {}).get("uid", "")
    current = child
    while current is not None:
        owner = get_controller_of(current)
        if owner is None:
            return False
        if owner.get("uid", "") == parent_uid:
            return True
        api_version, kind = owner.get("apiVersion", ""), owner.get("kind", "")
        if not is_supported_workload(from_api_version_and_kind(api_version, kind)):
            return False
        namespace = (current.get("metadata") or {}).get("namespace", "")
        try:
            current = client.get(api_version, kind, namespace, owner.get("name", ""))
        except NotFoundError:
            return False
    return False


def is_workload_type(obj: Mapping[str, Any], workload_type: WorkloadType | str) -> bool:
    """Whether the workload-type label (case-insensitive) names this type."""
    labels = (obj.get("metadata") or {}).get("labels") or {}
    return (labels.get(WORKLOAD_TYPE_LABEL) or "").lower() == workload_type


def gen_random_str(length: int) -> str:
    """A random safe-encoded string of the given length."""
    if length < 0:
        raise ValueError("length must not be negative")
    raw = "".join(secrets.choice(ALPHANUMS) for _ in range(length))
    return safe_encode_string(raw)
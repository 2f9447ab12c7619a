"""Look up the workload referenced by a rollout for its history record."""

from __future__ import annotations

import copy
import secrets
from typing import Any, Mapping

from .client import NotFoundError
from .constants import (
    CONTROLLER_KIND_DEP,
    CONTROLLER_KIND_STS,
    CONTROLLER_KRUISE_KIND_CS,
    CONTROLLER_KRUISE_KIND_STS,
    GroupVersionKind,
)
from .finder import verify_group_kind

ROLLOUT_ID_LABEL = "rollouts.kruise.io/rollout-id"
ROLLOUT_NAME_LABEL = "rollouts.kruise.io/rollout-name"

_CHARS = "abcdefghijklmnopqrstuvwxyz1234567890"

# Advanced StatefulSet, CloneSet, Deployment, native StatefulSet, in lookup order.
_HISTORY_KINDS: tuple[GroupVersionKind, ...] = (
    CONTROLLER_KRUISE_KIND_STS,
    CONTROLLER_KRUISE_KIND_CS,
    CONTROLLER_KIND_DEP,
    CONTROLLER_KIND_STS,
)


class HistoryFinder:
    """Fetch workload spec and selector for rollout-history records."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def _fetch(self, gvk: GroupVersionKind, namespace: str, ref: Mapping[str, Any] | None) -> dict[str, Any] | None:
        if ref is None:
            return None
        try:
            if not verify_group_kind(ref, gvk.kind, [gvk.group]):
                return None
        except ValueError:
            return None
        try:
            return self.client.get(gvk.group_version(), gvk.kind, namespace, ref.get("name", ""))
        except NotFoundError:
            return None

    def get_workload_info_for_ref(self, namespace: str, ref: Mapping[str, Any] | None) -> dict[str, Any] | None:
        """``{apiVersion, kind, name, data}`` of the workload, ``data`` holding its spec."""
        for gvk in _HISTORY_KINDS:
            workload = self._fetch(gvk, namespace, ref)
            if workload is not None:
                return {
                    "apiVersion": workload.get("apiVersion", ""),
                    "kind": workload.get("kind", ""),
                    "name": (workload.get("metadata") or {}).get("name", ""),
                    "data": copy.deepcopy(workload.get("spec") or {}),
                }
        return None

    def get_label_selector_for_ref(self, namespace: str, ref: Mapping[str, Any] | None) -> dict[str, Any] | None:
        """A copy of the workload's ``spec.selector``, or None."""
        for gvk in _HISTORY_KINDS:
            workload = self._fetch(gvk, namespace, ref)
            if workload is None:
                continue
            selector = (workload.get("spec") or {}).get("selector")
            if selector is not None:
                return copy.deepcopy(selector)
        return None


def rand_all_string(length: int) -> str:
    """A random string of lower-case letters and digits."""
    return "".join(secrets.choice(_CHARS) for _ in range(length))
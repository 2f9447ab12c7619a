"""Locate the workload a rollout refers to and summarise its revisions."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from .client import NotFoundError, Selector
from .constants import (
    CANARY_DEPLOYMENT_LABEL,
    CONTROLLER_KIND_DEP,
    CONTROLLER_KRUISE_KIND_CS,
    CONTROLLER_REVISION_HASH_LABEL_KEY,
    DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY,
    IN_ROLLOUT_PROGRESSING_ANNOTATION,
    GroupVersionKind,
    from_api_version_and_kind,
    parse_group_version,
)
from .parse import get_replicas, parse_statefulset_info, parse_workload_status
from .workloads import compute_hash, equal_ignore_hash, get_controller_of, is_supported_workload

logger = logging.getLogger(__name__)


@dataclass
class Workload:
    """Replica counts and revisions of a workload under rollout."""

    metadata: dict[str, Any] = field(default_factory=dict)
    replicas: int = 0
    stable_revision: str = ""
    canary_revision: str = ""
    pod_template_hash: str = ""
    canary_replicas: int = 0
    canary_ready_replicas: int = 0
    revision_label_key: str = ""
    is_in_rollback: bool = False
    in_rollout_progressing: bool = False
    is_status_consistent: bool = False

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.get("labels") or {}

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.get("annotations") or {}


def verify_group_kind(ref: Mapping[str, Any], expected_kind: str, expected_groups: Iterable[str]) -> bool:
    """Whether the reference names ``expected_kind`` in one of the groups.

    Raises ValueError when the reference's apiVersion cannot be parsed.
    """
    group, _ = parse_group_version(ref.get("apiVersion", ""))
    if ref.get("kind", "") != expected_kind:
        return False
    return group in expected_groups


def _ref_matches(ref: Mapping[str, Any] | None, gvk: GroupVersionKind) -> bool:
    if ref is None:
        return False
    try:
        return verify_group_kind(ref, gvk.kind, [gvk.group])
    except ValueError:
        return False


def _metadata(obj: Mapping[str, Any]) -> dict[str, Any]:
    return obj.get("metadata") or {}


def _creation(obj: Mapping[str, Any]) -> str:
    return _metadata(obj).get("creationTimestamp") or ""


def _is_deleting(obj: Mapping[str, Any]) -> bool:
    return bool(_metadata(obj).get("deletionTimestamp"))


def _status_consistent(obj: Mapping[str, Any]) -> bool:
    generation = _metadata(obj).get("generation", 0) or 0
    observed = (obj.get("status") or {}).get("observedGeneration", 0) or 0
    return generation == observed


def _after_last_dash(revision: str) -> str:
    return revision[revision.rfind("-") + 1:]


class ControllerFinder:
    """Find the workload behind a rollout's workload reference."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def _finders(self) -> tuple[Callable[[str, Mapping[str, Any] | None], Workload | None], ...]:
        return (self._get_kruise_cloneset, self._get_deployment, self._get_statefulset_like_workload)

    def get_workload_for_ref(self, namespace: str, ref: Mapping[str, Any] | None) -> Workload | None:
        """The first finder's result for the reference, or None when nothing matches."""
        for finder in self._finders():
            workload = finder(namespace, ref)
            if workload is not None:
                return workload
        return None

    def _fetch(self, api_version: str, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            return self.client.get(api_version, kind, namespace, name)
        except NotFoundError:
            return None

    def _get_kruise_cloneset(self, namespace: str, ref: Mapping[str, Any] | None) -> Workload | None:
        if not _ref_matches(ref, CONTROLLER_KRUISE_KIND_CS):
            return None
        cloneset = self._fetch(
            CONTROLLER_KRUISE_KIND_CS.group_version(), CONTROLLER_KRUISE_KIND_CS.kind, namespace, ref.get("name", "")
        )
        if cloneset is None:
            return None
        if not _status_consistent(cloneset):
            return Workload(is_status_consistent=False)
        status = parse_workload_status(cloneset)
        workload = Workload(
            revision_label_key=DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY,
            stable_revision=_after_last_dash(status.stable_revision),
            canary_revision=_after_last_dash(status.update_revision),
            canary_replicas=status.updated_replicas,
            canary_ready_replicas=status.updated_ready_replicas,
            metadata=copy.deepcopy(_metadata(cloneset)),
            replicas=get_replicas(cloneset),
            pod_template_hash=_after_last_dash(status.update_revision),
            is_status_consistent=True,
        )
        if IN_ROLLOUT_PROGRESSING_ANNOTATION not in workload.annotations:
            return workload
        workload.in_rollout_progressing = True
        if status.stable_revision == status.update_revision and status.updated_replicas != status.replicas:
            workload.is_in_rollback = True
        return workload

    def _get_deployment(self, namespace: str, ref: Mapping[str, Any] | None) -> Workload | None:
        if not _ref_matches(ref, CONTROLLER_KIND_DEP):
            return None
        stable = self._fetch(CONTROLLER_KIND_DEP.group_version(), CONTROLLER_KIND_DEP.kind, namespace, ref.get("name", ""))
        if stable is None:
            return None
        if not _status_consistent(stable):
            return Workload(is_status_consistent=False)
        stable_rs = self._get_deployment_stable_rs(stable)
        if stable_rs is None:
            return Workload(is_status_consistent=False)

        template = (stable.get("spec") or {}).get("template") or {}
        workload = Workload(
            metadata=copy.deepcopy(_metadata(stable)),
            replicas=get_replicas(stable),
            is_status_consistent=True,
            stable_revision=(_metadata(stable_rs).get("labels") or {}).get(DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY, ""),
            canary_revision=compute_hash(template, None),
            revision_label_key=DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY,
        )
        if IN_ROLLOUT_PROGRESSING_ANNOTATION not in workload.annotations:
            return workload

        workload.in_rollout_progressing = True
        rs_template = (stable_rs.get("spec") or {}).get("template") or {}
        # Back to the stable template (v1 -> v2 -> v1) means a rollback.
        if equal_ignore_hash(rs_template, template):
            workload.is_in_rollback = True
            return workload

        canary = self._get_latest_canary_deployment(stable)
        if canary is None:
            return workload
        canary_status = canary.get("status") or {}
        workload.canary_replicas = canary_status.get("replicas", 0) or 0
        workload.canary_ready_replicas = canary_status.get("readyReplicas", 0) or 0
        canary_rs = self._get_deployment_stable_rs(canary)
        if canary_rs is None:
            return workload
        workload.pod_template_hash = (_metadata(canary_rs).get("labels") or {}).get(
            DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY, ""
        )
        return workload

    def _get_statefulset_like_workload(self, namespace: str, ref: Mapping[str, Any] | None) -> Workload | None:
        if ref is None:
            return None
        api_version, kind, name = ref.get("apiVersion", ""), ref.get("kind", ""), ref.get("name", "")
        if not is_supported_workload(from_api_version_and_kind(api_version, kind)):
            return None
        obj = self._fetch(api_version, kind, namespace, name)
        if obj is None:
            return None

        info = parse_statefulset_info(obj, namespace, name)
        if info.generation != info.status.observed_generation:
            return Workload(is_status_consistent=False)
        workload = Workload(
            revision_label_key=CONTROLLER_REVISION_HASH_LABEL_KEY,
            stable_revision=info.status.stable_revision,
            canary_revision=info.status.update_revision,
            canary_replicas=info.status.updated_replicas,
            canary_ready_replicas=info.status.updated_ready_replicas,
            metadata=info.metadata,
            replicas=info.replicas if info.replicas is not None else 0,
            pod_template_hash=info.status.update_revision,
            is_status_consistent=True,
        )
        if IN_ROLLOUT_PROGRESSING_ANNOTATION not in workload.annotations:
            return workload
        workload.in_rollout_progressing = True
        if (
            info.status.update_revision == info.status.stable_revision
            and info.status.updated_replicas != info.status.replicas
        ):
            workload.is_in_rollback = True
        return workload

    def _get_latest_canary_deployment(self, stable: Mapping[str, Any]) -> dict[str, Any] | None:
        metadata = _metadata(stable)
        canaries = self.client.list(
            CONTROLLER_KIND_DEP.group_version(),
            CONTROLLER_KIND_DEP.kind,
            metadata.get("namespace", ""),
            {"matchLabels": {CANARY_DEPLOYMENT_LABEL: metadata.get("name", "")}},
        )
        for canary in sorted(canaries, key=_creation, reverse=True):
            if not _is_deleting(canary):
                return canary
        return None

    def get_replica_sets_for_deployment(self, deployment: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Live, non-empty replica sets controlled by the deployment."""
        metadata = _metadata(deployment)
        try:
            selector = Selector.from_label_selector((deployment.get("spec") or {}).get("selector"))
        except ValueError as exc:
            logger.error(
                "Deployment (%s/%s) get labelSelector failed: %s",
                metadata.get("namespace", ""),
                metadata.get("name", ""),
                exc,
            )
            return []
        candidates = self.client.list("apps/v1", "ReplicaSet", metadata.get("namespace", ""), selector)
        owned = []
        for rs in candidates:
            if _is_deleting(rs):
                continue
            replicas = (rs.get("spec") or {}).get("replicas")
            if replicas is not None and replicas == 0:
                continue
            owner = get_controller_of(rs)
            if owner is not None and owner.get("uid", "") == metadata.get("uid", ""):
                owned.append(rs)
        return owned

    def _get_deployment_stable_rs(self, deployment: Mapping[str, Any]) -> dict[str, Any] | None:
        replica_sets = self.get_replica_sets_for_deployment(deployment)
        if not replica_sets:
            return None
        return min(replica_sets, key=_creation)
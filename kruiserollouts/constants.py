"""Annotation, label and kind constants shared by rollout components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# For Rollout and BatchRelease
BATCH_RELEASE_CONTROL_ANNOTATION = "batchrelease.rollouts.kruise.io/control-info"
IN_ROLLOUT_PROGRESSING_ANNOTATION = "rollouts.kruise.io/in-progressing"
ROLLOUT_HASH_ANNOTATION = "rollouts.kruise.io/hash"
ROLLBACK_IN_BATCH_ANNOTATION = "rollouts.kruise.io/rollback-in-batch"

# For workloads
CANARY_DEPLOYMENT_LABEL = "rollouts.kruise.io/canary-deployment"
CANARY_DEPLOYMENT_FINALIZER = "finalizer.rollouts.kruise.io/batch-release"
KRUISE_ROLLOUT_FINALIZER = "rollouts.kruise.io/rollout"
WORKLOAD_TYPE_LABEL = "rollouts.kruise.io/workload-type"

# For pods
ROLLOUT_ID_LABEL = "rollouts.kruise.io/rollout-id"
ROLLOUT_BATCH_ID_LABEL = "rollouts.kruise.io/rollout-batch-id"
NO_NEED_UPDATE_POD_LABEL = "rollouts.kruise.io/no-need-update"

# Well-known workload labels
DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY = "pod-template-hash"
CONTROLLER_REVISION_HASH_LABEL_KEY = "controller-revision-hash"

# Vowels are omitted to reduce the chance of forming words.
ALPHANUMS = "bcdfghjklmnpqrstvwxz2456789"


class WorkloadType(str, Enum):
    """Values of the workload-type label."""

    CLONESET = "cloneset"
    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"


class FinalizerOpType(str, Enum):
    """Operation applied to an object's finalizers."""

    ADD = "Add"
    REMOVE = "Remove"


def parse_group_version(api_version: str) -> tuple[str, str]:
    """Split an apiVersion into (group, version)."""
    if not api_version or api_version == "/":
        return "", ""
    parts = api_version.split("/")
    if len(parts) == 1:
        return "", api_version
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected GroupVersion string: {api_version}")


@dataclass(frozen=True)
class GroupVersionKind:
    """An API group, version and kind."""

    group: str = ""
    version: str = ""
    kind: str = ""

    def group_version(self) -> str:
        """The apiVersion string for this kind."""
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    def __str__(self) -> str:
        return f"{self.group}/{self.version}, Kind={self.kind}"


def from_api_version_and_kind(api_version: str, kind: str) -> GroupVersionKind:
    """Build a GroupVersionKind; an unparsable apiVersion yields only the kind."""
    try:
        group, version = parse_group_version(api_version)
    except ValueError:
        return GroupVersionKind(kind=kind)
    return GroupVersionKind(group, version, kind)


CONTROLLER_KIND_RS = GroupVersionKind("apps", "v1", "ReplicaSet")
CONTROLLER_KIND_DEP = GroupVersionKind("apps", "v1", "Deployment")
CONTROLLER_KIND_STS = GroupVersionKind("apps", "v1", "StatefulSet")
CONTROLLER_KRUISE_KIND_CS = GroupVersionKind("apps.kruise.io", "v1alpha1", "CloneSet")
CONTROLLER_KRUISE_KIND_STS = GroupVersionKind("apps.kruise.io", "v1beta1", "StatefulSet")
CONTROLLER_KRUISE_OLD_KIND_STS = GroupVersionKind("apps.kruise.io", "v1alpha1", "StatefulSet")

KNOWN_WORKLOAD_GVKS = (
    CONTROLLER_KIND_RS,
    CONTROLLER_KIND_DEP,
    CONTROLLER_KIND_STS,
    CONTROLLER_KRUISE_KIND_CS,
    CONTROLLER_KRUISE_KIND_STS,
    CONTROLLER_KRUISE_OLD_KIND_STS,
)
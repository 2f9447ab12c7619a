import pytest

from kruiserollouts.client import InMemoryClient
from kruiserollouts.constants import CONTROLLER_REVISION_HASH_LABEL_KEY, DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY
from kruiserollouts.pods import (
    filter_active_pods,
    get_pod_condition,
    get_pod_ready_condition,
    is_completed_pod,
    is_consistent_with_revision,
    is_equal_revision,
    is_pod_ready,
    list_owned_pods,
)


def _pod(name, labels=None, conditions=None, phase="Running", owner=None, deleting=False):
    metadata = {"namespace": "unit-test", "name": name, "labels": dict(labels or {})}
    if owner is not None:
        metadata["ownerReferences"] = [
            {
                "apiVersion": owner["apiVersion"],
                "kind": owner["kind"],
                "name": owner["metadata"]["name"],
                "uid": owner["metadata"]["uid"],
                "controller": True,
            }
        ]
    if deleting:
        metadata["deletionTimestamp"] = "2022-01-01T00:00:00Z"
    status = {"phase": phase}
    if conditions is not None:
        status["conditions"] = conditions
    return {"apiVersion": "v1", "kind": "Pod", "metadata": metadata, "status": status}


def test_is_pod_ready():
    ready = _pod("a", conditions=[{"type": "Ready", "status": "True"}])
    not_ready = _pod("b", conditions=[{"type": "Ready", "status": "False"}])
    assert is_pod_ready(ready) is True
    assert is_pod_ready(not_ready) is False
    assert is_pod_ready(_pod("c")) is False


def test_get_pod_condition():
    conditions = [{"type": "Initialized", "status": "True"}, {"type": "Ready", "status": "False"}]
    status = {"conditions": conditions}
    index, condition = get_pod_condition(status, "Ready")
    assert index == 1
    assert condition == conditions[1]
    assert get_pod_condition(status, "PodScheduled") == (-1, None)
    assert get_pod_condition(None, "Ready") == (-1, None)
    assert get_pod_condition({}, "Ready") == (-1, None)


def test_get_pod_ready_condition():
    conditions = [{"type": "Ready", "status": "True"}]
    assert get_pod_ready_condition({"conditions": conditions}) == conditions[0]
    assert get_pod_ready_condition({}) is None


def test_is_consistent_with_revision():
    rs_pod = _pod("a", labels={DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY: "abc"})
    assert is_consistent_with_revision(rs_pod, "demo-abc") is True
    assert is_consistent_with_revision(rs_pod, "demo-xyz") is False
    sts_pod = _pod("b", labels={CONTROLLER_REVISION_HASH_LABEL_KEY: "sts-version2"})
    assert is_consistent_with_revision(sts_pod, "sts-version2") is True
    assert is_consistent_with_revision(sts_pod, "sts-version1") is False
    assert is_consistent_with_revision(_pod("c"), "anything") is False


def test_is_equal_revision():
    a = _pod("a", labels={DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY: "abc"})
    b = _pod("b", labels={DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY: "abc"})
    c = _pod("c", labels={DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY: "xyz"})
    d = _pod("d", labels={CONTROLLER_REVISION_HASH_LABEL_KEY: "rev"})
    e = _pod("e", labels={CONTROLLER_REVISION_HASH_LABEL_KEY: "rev"})
    assert is_equal_revision(a, b) is True
    assert is_equal_revision(a, c) is False
    assert is_equal_revision(d, e) is True
    assert is_equal_revision(_pod("x"), _pod("y")) is False


def test_filter_active_pods():
    live = _pod("live")
    gone = _pod("gone", deleting=True)
    assert filter_active_pods([live, gone]) == [live]
    assert filter_active_pods([]) == []


@pytest.mark.parametrize(
    "phase, expected",
    [("Failed", True), ("Succeeded", True), ("Running", False), ("Pending", False)],
)
def test_is_completed_pod(phase, expected):
    assert is_completed_pod(_pod("a", phase=phase)) is expected


def _deployment(name, uid, selector):
    spec = {"replicas": 3}
    if selector is not None:
        spec["selector"] = selector
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"namespace": "unit-test", "name": name, "uid": uid},
        "spec": spec,
    }


def _replica_set(name, uid, owner):
    return {
        "apiVersion": "apps/v1",
        "kind": "ReplicaSet",
        "metadata": {
            "namespace": "unit-test",
            "name": name,
            "uid": uid,
            "ownerReferences": [
                {
                    "apiVersion": owner["apiVersion"],
                    "kind": owner["kind"],
                    "name": owner["metadata"]["name"],
                    "uid": owner["metadata"]["uid"],
                    "controller": True,
                }
            ],
        },
    }


def test_list_owned_pods():
    deploy = _deployment("demo", "uid-deploy", {"matchLabels": {"app": "demo"}})
    other = _deployment("other", "uid-other", {"matchLabels": {"app": "demo"}})
    rs = _replica_set("demo-rs", "uid-rs", deploy)
    other_rs = _replica_set("other-rs", "uid-other-rs", other)
    labels = {"app": "demo"}
    objects = [
        deploy,
        other,
        rs,
        other_rs,
        _pod("p-running", labels=labels, owner=rs),
        _pod("p-terminating", labels=labels, owner=rs, deleting=True),
        _pod("p-done", labels=labels, owner=rs, phase="Succeeded"),
        _pod("p-other", labels=labels, owner=other_rs),
        _pod("p-unlabelled", labels={"app": "else"}, owner=rs),
        _pod("p-orphan", labels=labels),
    ]
    cli = InMemoryClient(objects=objects)
    names = [pod["metadata"]["name"] for pod in list_owned_pods(cli, deploy)]
    assert names == ["p-running", "p-terminating"]


def test_list_owned_pods_without_selector():
    deploy = _deployment("demo", "uid-deploy", None)
    rs = _replica_set("demo-rs", "uid-rs", deploy)
    cli = InMemoryClient(objects=[deploy, rs, _pod("p", labels={"app": "demo"}, owner=rs)])
    assert list_owned_pods(cli, deploy) == []
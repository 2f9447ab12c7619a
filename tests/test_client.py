import pytest

from kruiserollouts.client import (
    ConflictError,
    InMemoryClient,
    NotFoundError,
    Selector,
    field_index_name,
    key_to_namespaced_key,
    requires_exact_match,
)


def _pod(name, namespace="default", labels=None, status=None):
    obj = {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
        "spec": {"nodeName": "local"},
    }
    if status is not None:
        obj["status"] = status
    return obj


def test_selector_string_is_sorted_by_key():
    assert str(Selector.parse("b=2,a=1")) == "a=1,b=2"


def test_selector_round_trip_through_string():
    text = "app=demo,tier in (web,api),!legacy,env!=prod,track"
    selector = Selector.parse(text)
    assert Selector.parse(str(selector)) == selector


def test_selector_set_values_sorted():
    assert str(Selector.parse("x in (q,p)")) == "x in (p,q)"


def test_selector_matching():
    selector = Selector.parse("app=demo,tier in (web,api),!legacy")
    assert selector.matches({"app": "demo", "tier": "web"})
    assert not selector.matches({"app": "demo", "tier": "db"})
    assert not selector.matches({"app": "demo", "tier": "api", "legacy": "yes"})
    assert not selector.matches({"tier": "web"})


def test_selector_not_equals_and_notin_match_missing_key():
    assert Selector.parse("env!=prod").matches({})
    assert Selector.parse("env notin (prod)").matches({"env": "dev"})
    assert not Selector.parse("env notin (prod)").matches({"env": "prod"})


def test_empty_selector_matches_everything():
    selector = Selector.parse("")
    assert selector.is_empty()
    assert selector.matches({"anything": "goes"})


@pytest.mark.parametrize("text", ["a=1,", "a in ()", "a in (x", "=b", "a=1 b=2"])
def test_selector_parse_errors(text):
    with pytest.raises(ValueError):
        Selector.parse(text)


def test_from_label_selector_none_matches_nothing():
    selector = Selector.from_label_selector(None)
    assert not selector.matches({})
    assert str(selector) == ""


def test_from_label_selector_empty_matches_everything():
    assert Selector.from_label_selector({}).matches({"a": "b"})


def test_from_label_selector_agrees_with_parse():
    selector = Selector.from_label_selector(
        {
            "matchLabels": {"app": "demo"},
            "matchExpressions": [{"key": "tier", "operator": "In", "values": ["web"]}],
        }
    )
    assert str(selector) == str(Selector.parse("app=demo,tier in (web)"))
    assert selector.matches({"app": "demo", "tier": "web"})
    assert not selector.matches({"app": "demo"})


def test_from_label_selector_bad_operator():
    with pytest.raises(ValueError):
        Selector.from_label_selector({"matchExpressions": [{"key": "a", "operator": "Like"}]})


def test_requires_exact_match():
    assert requires_exact_match("spec.nodeName=local") == ("spec.nodeName", "local", True)
    assert requires_exact_match("spec.nodeName==local") == ("spec.nodeName", "local", True)
    assert requires_exact_match("spec.nodeName!=local") == ("", "", False)
    assert requires_exact_match("a=1,b=2") == ("", "", False)


def test_index_key_helpers():
    assert field_index_name("spec.nodeName") == "field:spec.nodeName"
    assert key_to_namespaced_key("default", "local") == "default/local"
    assert key_to_namespaced_key("", "local") == "__all_namespaces/local"


def test_create_then_get_round_trip():
    client = InMemoryClient()
    client.create(_pod("pod1", labels={"app": "demo"}))
    got = client.get("v1", "Pod", "default", "pod1")
    assert got["metadata"]["labels"] == {"app": "demo"}
    assert got["spec"] == {"nodeName": "local"}


def test_get_missing_raises_not_found():
    client = InMemoryClient()
    with pytest.raises(NotFoundError):
        client.get("v1", "Pod", "default", "absent")


def test_create_duplicate_raises_conflict():
    client = InMemoryClient([_pod("pod1")])
    with pytest.raises(ConflictError):
        client.create(_pod("pod1"))


def test_get_returns_independent_copy():
    client = InMemoryClient([_pod("pod1", labels={"app": "demo"})])
    got = client.get("v1", "Pod", "default", "pod1")
    got["metadata"]["labels"]["app"] = "changed"
    assert client.get("v1", "Pod", "default", "pod1")["metadata"]["labels"]["app"] == "demo"


def test_lookup_ignores_version_within_group():
    obj = {
        "apiVersion": "apps.kruise.io/v1beta1",
        "kind": "StatefulSet",
        "metadata": {"name": "sts", "namespace": "ns"},
    }
    client = InMemoryClient([obj])
    assert client.get("apps.kruise.io/v1alpha1", "StatefulSet", "ns", "sts")["metadata"]["name"] == "sts"
    with pytest.raises(NotFoundError):
        client.get("apps/v1", "StatefulSet", "ns", "sts")


def test_list_filters_namespace_selector_and_limit():
    client = InMemoryClient(
        [
            _pod("b", labels={"app": "demo"}),
            _pod("a", labels={"app": "demo"}),
            _pod("c", labels={"app": "other"}),
            _pod("d", namespace="other", labels={"app": "demo"}),
        ]
    )
    names = [p["metadata"]["name"] for p in client.list("v1", "Pod", "default", "app=demo")]
    assert names == ["a", "b"]
    all_demo = client.list("v1", "Pod", label_selector={"matchLabels": {"app": "demo"}})
    assert {p["metadata"]["name"] for p in all_demo} == {"a", "b", "d"}
    assert len(client.list("v1", "Pod", "default", limit=2)) == 2
    assert client.list("v1", "Pod", "default", Selector.from_label_selector(None)) == []


def test_update_keeps_status_and_update_status_keeps_spec():
    client = InMemoryClient([_pod("pod1", status={"podIP": "1.2.3.1"})])
    current = client.get("v1", "Pod", "default", "pod1")
    current["spec"]["nodeName"] = "other"
    current["status"] = {"podIP": "9.9.9.9"}
    client.update(current)
    after = client.get("v1", "Pod", "default", "pod1")
    assert after["spec"]["nodeName"] == "other"
    assert after["status"] == {"podIP": "1.2.3.1"}

    after["spec"]["nodeName"] = "ignored"
    after["status"] = {"podIP": "1.2.3.2"}
    client.update_status(after)
    final = client.get("v1", "Pod", "default", "pod1")
    assert final["spec"]["nodeName"] == "other"
    assert final["status"] == {"podIP": "1.2.3.2"}


def test_update_with_stale_version_conflicts():
    client = InMemoryClient([_pod("pod1")])
    first = client.get("v1", "Pod", "default", "pod1")
    stale = client.get("v1", "Pod", "default", "pod1")
    client.update(first)
    with pytest.raises(ConflictError):
        client.update(stale)


def test_update_missing_raises_not_found():
    client = InMemoryClient()
    with pytest.raises(NotFoundError):
        client.update(_pod("ghost"))


def test_delete_removes_object():
    client = InMemoryClient([_pod("pod1")])
    client.delete(_pod("pod1"))
    with pytest.raises(NotFoundError):
        client.get("v1", "Pod", "default", "pod1")
    with pytest.raises(NotFoundError):
        client.delete(_pod("pod1"))
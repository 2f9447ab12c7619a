import pytest

from kruiserollouts.constants import (
    CONTROLLER_KIND_DEP,
    CONTROLLER_KRUISE_KIND_CS,
    KNOWN_WORKLOAD_GVKS,
    FinalizerOpType,
    GroupVersionKind,
    WorkloadType,
    from_api_version_and_kind,
    parse_group_version,
)


def test_parse_group_version_with_group():
    assert parse_group_version("apps.kruise.io/v1alpha1") == ("apps.kruise.io", "v1alpha1")


def test_parse_group_version_core():
    assert parse_group_version("v1") == ("", "v1")


def test_parse_group_version_empty():
    assert parse_group_version("") == ("", "")


def test_parse_group_version_too_many_parts():
    with pytest.raises(ValueError):
        parse_group_version("a/b/c")


def test_from_api_version_and_kind_bad_version_keeps_kind():
    assert from_api_version_and_kind("a/b/c", "CloneSet") == GroupVersionKind(kind="CloneSet")


def test_from_api_version_and_kind_cloneset():
    assert from_api_version_and_kind("apps.kruise.io/v1alpha1", "CloneSet") == CONTROLLER_KRUISE_KIND_CS


@pytest.mark.parametrize("gvk", KNOWN_WORKLOAD_GVKS)
def test_group_version_round_trip(gvk):
    assert from_api_version_and_kind(gvk.group_version(), gvk.kind) == gvk


def test_group_version_string():
    assert CONTROLLER_KIND_DEP.group_version() == "apps/v1"
    assert GroupVersionKind("", "v1", "Pod").group_version() == "v1"


def test_enum_values():
    assert WorkloadType("statefulset") is WorkloadType.STATEFULSET
    assert FinalizerOpType.ADD.value == "Add"
    assert FinalizerOpType.REMOVE.value == "Remove"
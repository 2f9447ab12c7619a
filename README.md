# kruiserollouts

Helpers for progressive delivery of workloads described as plain
Kubernetes-style dictionaries (`apiVersion`, `kind`, `metadata`, `spec`,
`status`): Deployments, ReplicaSets, native and advanced StatefulSets, and
CloneSets.

## What is in the package

- `kruiserollouts.features`: `FeatureGate` and `FeatureSpec` for named
  on/off features (`add`, `enabled`, `set`, `set_from_map`), the shared
  `DEFAULT_FEATURE_GATE` with the `RolloutHistoryGate` feature (off by
  default), and the workload-kind filter switch `need_filter_workload_type()` /
  `set_filter_workload_type()` (on by default).
- `kruiserollouts.constants`: annotation and label keys, `WorkloadType`,
  `FinalizerOpType`, `GroupVersionKind`, `parse_group_version()` and
  `from_api_version_and_kind()`, and the known workload kinds.
- `kruiserollouts.conditions`: `new_rollout_condition()`,
  `get_rollout_condition()`, `set_rollout_condition()` and
  `remove_rollout_condition()` on a rollout's `status` mapping.
- `kruiserollouts.rollouts`: `RolloutState` and `get_rollout_state()` for the
  in-progressing annotation, `is_rollback_in_batch_policy()`,
  `get_gvk_from()`, `dump_json()` and `hash_release_plan_batches()`.
- `kruiserollouts.client`: `InMemoryClient`, an in-memory object store with
  `get`, `list`, `create`, `update`, `update_status` and `delete`; label
  `Selector` parsing (`Selector.parse`, `Selector.from_label_selector`) and
  matching; `NotFoundError` and `ConflictError`; and the field-selector helpers
  `requires_exact_match()`, `field_index_name()` and `key_to_namespaced_key()`.
- `kruiserollouts.parse`: replicas, pod template, selector, metadata and
  status of a workload, StatefulSet partition, unordered update and
  maxUnavailable, gathered by `parse_statefulset_info()` into `WorkloadInfo`
  and `WorkloadStatus`.
- `kruiserollouts.workloads`: `compute_hash()` and `safe_encode_string()` for
  pod templates, `equal_ignore_hash()`, `update_finalizer()` (retries on
  conflicts), `is_supported_workload()`, `get_controller_of()`,
  `is_owned_by()`, `get_owner_workload()`, `filter_active_deployments()`,
  `is_workload_type()` and `gen_random_str()`.
- `kruiserollouts.pods`: `is_pod_ready()`, `get_pod_condition()`,
  `is_consistent_with_revision()`, `is_equal_revision()`,
  `filter_active_pods()`, `is_completed_pod()` and `list_owned_pods()`.
- `kruiserollouts.finder`: `ControllerFinder.get_workload_for_ref()` returns a
  `Workload` summary (replicas, stable and canary revisions, rollback and
  progressing flags) for a CloneSet, Deployment or StatefulSet-like workload.
- `kruiserollouts.history_finder`: `HistoryFinder` returns a workload's spec
  and label selector for history records; `rand_all_string()`.
- `kruiserollouts.history`: `RolloutHistoryReconciler.reconcile(Request(...))`
  creates one RolloutHistory per observed rollout ID while the rollout is
  `Progressing`, and once it is `Healthy` records its spec (rollout, workload,
  service, ingress and HTTPRoute) and then marks it `completed` with the pods
  released in each canary step.

## Installation

```
pip install kruiserollouts
```

## Example

```python
from kruiserollouts.client import InMemoryClient
from kruiserollouts.history import Request, RolloutHistoryReconciler

client = InMemoryClient()
client.create({
    "apiVersion": "rollouts.kruise.io/v1alpha1",
    "kind": "Rollout",
    "metadata": {"name": "rollout-demo", "namespace": "default"},
    "spec": {"objectRef": {"workloadRef": {
        "apiVersion": "apps.kruise.io/v1alpha1",
        "kind": "CloneSet",
        "name": "workload-demo",
    }}},
    "status": {"phase": "Progressing", "canaryStatus": {"observedRolloutID": "1"}},
})

reconciler = RolloutHistoryReconciler(client)
reconciler.reconcile(Request(namespace="default", name="rollout-demo"))

histories = client.list("rollouts.kruise.io/v1alpha1", "RolloutHistory", "default")
print(histories[0]["metadata"]["labels"])
```

For the record to be completed once the rollout is `Healthy`, the referenced
workload, the service named in the first traffic routing, and any ingress or
HTTPRoute it names must also be in the store.

## What the package does not do

- It does not talk to a real cluster: objects live in `InMemoryClient`, or in
  any object with the same `get`/`list`/`create`/`update`/`update_status`
  methods.
- It has no watch loop, work queue or event handlers; callers decide when to
  call `RolloutHistoryReconciler.reconcile`.
- The reconciler does not consult `RolloutHistoryGate`; checking
  `DEFAULT_FEATURE_GATE.enabled("RolloutHistoryGate")` is left to the caller.
- There is no command-line program.

## Tests

```
pip install -e .[test]
pytest
```
# workloadkit

A library for working with Kubernetes objects held as plain Python
dictionaries, in the same shape as the API's JSON (`kind`, `metadata`,
`spec`, `status`). It has no runtime dependencies.

## Modules

- `workloadkit.kinds`: the `Kind` enumeration, a `str` enum whose members
  compare and hash like their plain names, so `"Pod"` and `Kind.POD` can be
  used in each other's place. It also has the predicates `is_workload`,
  `is_built_in_workload`, `is_cluster_scoped_kind`, `is_role_types`,
  `is_role_related_namespace_scope` and `is_valid_k8s_kind`.
  `is_built_in_workload` takes an owner reference mapping.
- `workloadkit.hashing`: `compute_hash(obj)` renders the object as canonical
  JSON with sorted keys and hashes it with 32-bit FNV-1a. It then returns the
  decimal digest encoded by `safe_encode_string`, using an alphabet without
  vowels. `deep_hash_object(obj)` returns the integer digest. Dataclasses,
  enums, sets, `timedelta` and bytes are supported. Any other type that JSON
  cannot represent raises `TypeError`.
- `workloadkit.objects`:
  - `ObjectRef(kind, name, namespace="")` is a frozen dataclass.
  - `ContainerImages` is a `dict` of container name to image, with
    `as_json()` and `from_json(value)`. `from_json` merges the decoded
    mapping into the dict.
  - `ScannerOpts(scan_job_timeout, delete_scan_job)` holds scanner settings.
  - `object_ref_to_labels`, `object_to_object_meta` and
    `object_ref_from_object_meta` encode and decode an object's identity in
    `trivy-operator.resource.*` labels. A name that is not a valid label
    value (see `is_valid_label_value`) is stored as a hash label.
    `object_to_object_meta` also keeps the full name in an annotation, and
    returns new metadata rather than changing its argument.
  - `object_ref_from_kind_and_key(kind, namespace, name)` builds an
    `ObjectRef`.
  - `get_pod_spec(obj)` returns the pod spec of a Pod, Deployment,
    ReplicaSet, ReplicationController, StatefulSet, DaemonSet, Job or
    CronJob. Other kinds raise `ValueError`.
  - `compute_spec_hash(obj)` hashes the pod spec of a workload, or the whole
    object for other supported kinds.
  - `get_container_images_from_pod_spec(spec)` collects regular, init and
    ephemeral containers.
  - `get_container_images_from_job(job)` reads the
    `trivy-operator.container-images` annotation. It raises `ValueError` if
    the annotation is missing or malformed.
  - `get_active_deadline_seconds(timeout)` returns whole seconds for a
    positive `timedelta`, and `None` otherwise.
- `workloadkit.client`:
  - `InMemoryClient` stores manifests. Use `add(*objects)`,
    `get(kind, namespace, name)` and `list(kind, namespace="",
    match_labels=None)`. Objects are deep-copied on the way in and out.
    `list` sorts results by namespace and name. An empty namespace lists
    across all namespaces.
  - `get` raises `NotFoundError` when the object does not exist.
  - `matches_labels(labels, selector)` is the selector test that `list`
    uses.
- `workloadkit.resolver`: `ObjectResolver(client)` finds related objects:
  - `report_owner`: the object a security report should belong to.
  - `replica_set_by_deployment` and `replica_set_by_deployment_ref`: the
    ReplicaSet whose revision annotation matches the Deployment's.
  - `replica_set_by_pod`, `replica_set_by_pod_ref`, `job_by_pod` and
    `cron_job_by_job`: look up a controller.
  - `related_replica_set_name`.
  - `get_node_name`: the node of the first matching pod.
  - `is_active_replica_set` and `get_pods_by_label_selector`.
  - `object_from_object_ref`.

  It raises `ReplicaSetNotFoundError`, `NoRunningPodsError`,
  `UnsupportedKindError`, `NotFoundError` or `ValueError` where a lookup
  cannot succeed. `get_controller_of(obj)` returns the controlling owner
  reference, if any.
- `workloadkit.logs`:
  - `LogsReader(client).pod_by_job(job)` finds the first pod carrying the
    job's `controller-uid` selector. It raises `PodForJobNotFoundError` if
    there is none.
  - `terminated_container_statuses_by_job(job)` returns that pod's
    terminated container states, or an empty dict.
  - `get_terminated_containers_statuses_by_pod(pod)` does the same for a
    pod manifest.
- `workloadkit.metrics`:
  - `ResourcesMetricsCollector(client, target_namespaces="")` reads
    `VulnerabilityReport`, `ExposedSecretReport` and `ConfigAuditReport`
    objects through `client.list(kind, namespace)`. It yields one gauge
    `Sample` per report and severity from `collect()`.
  - `target_namespaces` is a comma-separated list of namespaces. When it is
    empty, reports in all namespaces are used.
  - `describe()` returns the three `MetricDesc` values.
  - `exposition(*names)` renders the Prometheus text format, optionally for
    the named metrics only. `render_exposition(descs, samples)` is the
    renderer it uses.

## Installation

```
pip install .
```

## Examples

```python
from workloadkit.kinds import Kind
from workloadkit.objects import ObjectRef, object_ref_to_labels, object_ref_from_object_meta

ref = ObjectRef(kind=Kind.POD, name="my-pod", namespace="production")
labels = object_ref_to_labels(ref)
assert object_ref_from_object_meta({"labels": labels}) == ref
```

```python
from workloadkit.client import InMemoryClient
from workloadkit.resolver import ObjectResolver

replica_set = {
    "kind": "ReplicaSet",
    "metadata": {"name": "nginx-6d4cf56db6", "namespace": "default"},
}
pod = {
    "kind": "Pod",
    "metadata": {
        "name": "nginx-6d4cf56db6-4kw2v",
        "namespace": "default",
        "ownerReferences": [
            {"kind": "ReplicaSet", "name": "nginx-6d4cf56db6", "controller": True}
        ],
    },
}
client = InMemoryClient(replica_set, pod)
owner = ObjectResolver(client).report_owner(pod)
assert owner["metadata"]["name"] == "nginx-6d4cf56db6"
```

```python
from workloadkit.client import InMemoryClient
from workloadkit.metrics import ResourcesMetricsCollector

client = InMemoryClient({
    "kind": "ConfigAuditReport",
    "metadata": {"name": "configmap-test", "namespace": "some-ns"},
    "report": {"summary": {"lowCount": 1}},
})
print(ResourcesMetricsCollector(client).exposition("trivy_resource_configaudits"))
```

## What it does not do

The package does not connect to a Kubernetes API server. All lookups go
through `InMemoryClient` or any object with the same `get` and `list`
methods.

It also does not do the following:

- create or run jobs and secrets, or watch them;
- stream container logs;
- serve metrics over HTTP or register them with a Prometheus registry.

`exposition()` only returns the text.

## Running the tests

```
pip install .[test]
pytest
```
"""Resolution of related Kubernetes objects: owners, replica sets and nodes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from workloadkit.client import InMemoryClient, NotFoundError
from workloadkit.kinds import Kind
from workloadkit.objects import ObjectRef

DEPLOYMENT_REVISION_ANNOTATION = "deployment.kubernetes.io/revision"

_API_VERSIONS = {
    Kind.POD: "v1",
    Kind.REPLICA_SET: "apps/v1",
    Kind.REPLICATION_CONTROLLER: "v1",
    Kind.DEPLOYMENT: "apps/v1",
    Kind.STATEFUL_SET: "apps/v1",
    Kind.DAEMON_SET: "apps/v1",
    Kind.CRON_JOB: "batch/v1beta1",
    Kind.JOB: "batch/v1",
    Kind.SERVICE: "v1",
    Kind.CONFIG_MAP: "v1",
    Kind.ROLE: "rbac.authorization.k8s.io/v1",
    Kind.ROLE_BINDING: "rbac.authorization.k8s.io/v1",
    Kind.NETWORK_POLICY: "networking.k8s.io/v1",
    Kind.INGRESS: "networking.k8s.io/v1",
    Kind.RESOURCE_QUOTA: "v1",
    Kind.LIMIT_RANGE: "v1",
    Kind.CLUSTER_ROLE: "rbac.authorization.k8s.io/v1",
    Kind.CLUSTER_ROLE_BINDING: "rbac.authorization.k8s.io/v1",
    Kind.CUSTOM_RESOURCE_DEFINITION: "apiextensions.k8s.io/v1",
    Kind.POD_SECURITY_POLICY: "policy/v1beta1",
}

_SELECTOR_WORKLOADS = frozenset(
    {Kind.REPLICA_SET, Kind.STATEFUL_SET, Kind.DAEMON_SET, Kind.JOB}
)


class ReplicaSetNotFoundError(LookupError):
    """Raised when the current ReplicaSet of a Deployment cannot be found."""

    def __init__(self, message: str = "replicaset not found") -> None:
        super().__init__(message)


class NoRunningPodsError(LookupError):
    """Raised when a workload has no pods."""

    def __init__(self, message: str = "no active pods for controller") -> None:
        super().__init__(message)


class UnsupportedKindError(ValueError):
    """Raised for a workload kind that cannot be handled."""

    def __init__(self, message: str = "unsupported workload kind") -> None:
        super().__init__(message)


def _meta(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def _namespace(obj: Mapping[str, Any]) -> str:
    return _meta(obj).get("namespace", "")


def _name(obj: Mapping[str, Any]) -> str:
    return _meta(obj).get("name", "")


def _revision(obj: Mapping[str, Any]) -> str:
    return (_meta(obj).get("annotations") or {}).get(DEPLOYMENT_REVISION_ANNOTATION, "")


def _selector_match_labels(obj: Mapping[str, Any]) -> dict[str, str]:
    selector = (obj.get("spec") or {}).get("selector") or {}
    return dict(selector.get("matchLabels") or {})


def get_controller_of(obj: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """Return the owner reference marked as controller, if there is one."""
    for ref in _meta(obj).get("ownerReferences") or []:
        if ref.get("controller"):
            return dict(ref)
    return None


class ObjectResolver:
    """Finds objects related to a given object through a client."""

    def __init__(self, client: InMemoryClient) -> None:
        self.client = client

    def _with_gvk(self, obj: dict[str, Any]) -> dict[str, Any]:
        kind = obj.get("kind")
        api_version = _API_VERSIONS.get(kind)
        if api_version is not None:
            obj["apiVersion"] = api_version
            obj["kind"] = str(kind)
        return obj

    def object_from_object_ref(self, ref: ObjectRef) -> dict[str, Any]:
        """Fetch the object the reference points at.

        Raises ValueError for an unknown kind and NotFoundError if it is absent.
        """
        if ref.kind not in _API_VERSIONS:
            raise ValueError(f"unknown kind: {ref.kind}")
        return self._with_gvk(self.client.get(ref.kind, ref.namespace, ref.name))

    def report_owner(self, obj: Mapping[str, Any]) -> Mapping[str, Any]:
        """Return the object that should own a security report for obj."""
        kind = obj.get("kind")
        if kind == Kind.DEPLOYMENT:
            return self.replica_set_by_deployment(obj)
        if kind == Kind.JOB:
            controller = get_controller_of(obj)
            if controller is not None and controller.get("kind") == Kind.CRON_JOB:
                return self.cron_job_by_job(obj)
            return obj
        if kind == Kind.POD:
            controller = get_controller_of(obj)
            if controller is None:
                return obj
            if controller.get("kind") == Kind.REPLICA_SET:
                return self.replica_set_by_pod(obj)
            if controller.get("kind") == Kind.JOB:
                return self.report_owner(self.job_by_pod(obj))
            return obj
        return obj

    def replica_set_by_deployment_ref(self, ref: ObjectRef) -> dict[str, Any]:
        """Return the current ReplicaSet of the referenced Deployment."""
        try:
            deployment = self.client.get(Kind.DEPLOYMENT, ref.namespace, ref.name)
        except NotFoundError as err:
            raise NotFoundError(
                f'getting deployment "{ref.namespace}/{ref.name}": {err}'
            ) from err
        return self.replica_set_by_deployment(deployment)

    def replica_set_by_deployment(self, deployment: Mapping[str, Any]) -> dict[str, Any]:
        """Return the ReplicaSet whose revision matches the Deployment's.

        Raises ReplicaSetNotFoundError if there is none.
        """
        replica_sets = self.client.list(
            Kind.REPLICA_SET, _namespace(deployment), _selector_match_labels(deployment)
        )
        revision = _revision(deployment)
        for rs in replica_sets:
            if _revision(rs) == revision:
                return self._with_gvk(rs)
        raise ReplicaSetNotFoundError()

    def replica_set_by_pod_ref(self, ref: ObjectRef) -> dict[str, Any]:
        """Return the controlling ReplicaSet of the referenced Pod."""
        pod = self.client.get(Kind.POD, ref.namespace, ref.name)
        return self.replica_set_by_pod(pod)

    def replica_set_by_pod(self, pod: Mapping[str, Any]) -> dict[str, Any]:
        """Return the controlling ReplicaSet of the Pod."""
        controller = get_controller_of(pod)
        if controller is None:
            raise ValueError(
                f'did not find a controller for pod "{_namespace(pod)}/{_name(pod)}"'
            )
        if controller.get("kind") != Kind.REPLICA_SET:
            raise ValueError(
                f'pod "{_name(pod)}" is controlled by a "{controller.get("kind")}", '
                "want replicaset"
            )
        rs = self.client.get(Kind.REPLICA_SET, _namespace(pod), controller.get("name", ""))
        return self._with_gvk(rs)

    def cron_job_by_job(self, job: Mapping[str, Any]) -> dict[str, Any]:
        """Return the controlling CronJob of the Job."""
        controller = get_controller_of(job)
        if controller is None:
            raise ValueError(f'did not find a controller for job "{_name(job)}"')
        if controller.get("kind") != Kind.CRON_JOB:
            raise ValueError(
                f'pod "{_name(job)}" is controlled by a "{controller.get("kind")}", '
                "want CronJob"
            )
        cron_job = self.client.get(Kind.CRON_JOB, _namespace(job), controller.get("name", ""))
        return self._with_gvk(cron_job)

    def job_by_pod(self, pod: Mapping[str, Any]) -> dict[str, Any]:
        """Return the controlling Job of the Pod."""
        controller = get_controller_of(pod)
        if controller is None:
            raise ValueError(f'did not find a controller for pod "{_name(pod)}"')
        if controller.get("kind") != Kind.JOB:
            raise ValueError(
                f'pod "{_name(pod)}" is controlled by a "{controller.get("kind")}", '
                "want replicaset"
            )
        job = self.client.get(Kind.JOB, _namespace(pod), controller.get("name", ""))
        return self._with_gvk(job)

    def related_replica_set_name(self, ref: ObjectRef) -> str:
        """Return the name of the ReplicaSet related to a Deployment or Pod."""
        if ref.kind == Kind.DEPLOYMENT:
            return _name(self.replica_set_by_deployment_ref(ref))
        if ref.kind == Kind.POD:
            return _name(self.replica_set_by_pod_ref(ref))
        raise ValueError(
            f'can only get related ReplicaSet for Deployment or Pod, not "{ref.kind}"'
        )

    def get_node_name(self, obj: Mapping[str, Any]) -> str:
        """Return the node on which the workload runs.

        Raises NoRunningPodsError, ReplicaSetNotFoundError or
        UnsupportedKindError when it cannot be told.
        """
        kind = obj.get("kind")
        if kind == Kind.POD:
            return (obj.get("spec") or {}).get("nodeName", "")
        if kind == Kind.DEPLOYMENT:
            selector = _selector_match_labels(self.replica_set_by_deployment(obj))
        elif kind == Kind.REPLICATION_CONTROLLER:
            selector = dict((obj.get("spec") or {}).get("selector") or {})
        elif kind in _SELECTOR_WORKLOADS:
            selector = _selector_match_labels(obj)
        else:
            raise UnsupportedKindError()
        pods = self._active_pods_by_label_selector(_namespace(obj), selector)
        return (pods[0].get("spec") or {}).get("nodeName", "")

    def is_active_replica_set(
        self, workload: Mapping[str, Any], controller: Optional[Mapping[str, Any]]
    ) -> bool:
        """Tell whether a ReplicaSet is the current revision of its Deployment.

        A ReplicaSet not controlled by a Deployment is always active.
        """
        if controller is not None and controller.get("kind") == Kind.DEPLOYMENT:
            deployment = self.client.get(
                Kind.DEPLOYMENT, _namespace(workload), controller.get("name", "")
            )
            return _revision(workload) == _revision(deployment)
        return True

    def get_pods_by_label_selector(
        self, namespace: str, selector: Mapping[str, str]
    ) -> list[dict[str, Any]]:
        """Return the pods in the namespace whose labels match the selector."""
        return self.client.list(Kind.POD, namespace, selector)

    def _active_pods_by_label_selector(
        self, namespace: str, selector: Mapping[str, str]
    ) -> list[dict[str, Any]]:
        pods = self.get_pods_by_label_selector(namespace, selector)
        if not pods:
            raise NoRunningPodsError()
        return pods
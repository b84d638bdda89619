import pytest

from workloadkit.client import InMemoryClient, NotFoundError
from workloadkit.kinds import Kind
from workloadkit.objects import ObjectRef
from workloadkit.resolver import (
    NoRunningPodsError,
    ObjectResolver,
    ReplicaSetNotFoundError,
    UnsupportedKindError,
    get_controller_of,
)

REVISION = "deployment.kubernetes.io/revision"


def _related_resolver():
    return ObjectResolver(
        InMemoryClient(
            {
                "kind": "Deployment",
                "metadata": {
                    "name": "nginx",
                    "namespace": "default",
                    "labels": {"app": "nginx"},
                    "annotations": {REVISION: "2"},
                },
                "spec": {"selector": {"matchLabels": {"app": "nginx"}}},
            },
            {
                "kind": "ReplicaSet",
                "metadata": {
                    "name": "nginx-7ff78f74b9",
                    "namespace": "default",
                    "labels": {"app": "nginx", "pod-template-hash": "7ff78f74b9"},
                    "annotations": {REVISION: "1"},
                },
                "spec": {
                    "selector": {
                        "matchLabels": {"app": "nginx", "pod-template-hash": "7ff78f74b9"}
                    }
                },
            },
            {
                "kind": "ReplicaSet",
                "metadata": {
                    "name": "nginx-549f5fcb58",
                    "namespace": "default",
                    "labels": {"app": "nginx", "pod-template-hash": "549f5fcb58"},
                    "annotations": {REVISION: "2"},
                },
                "spec": {
                    "selector": {
                        "matchLabels": {"app": "nginx", "pod-template-hash": "549f5fcb58"}
                    }
                },
            },
            {
                "kind": "Pod",
                "metadata": {
                    "name": "nginx-549f5fcb58-7cr5b",
                    "namespace": "default",
                    "labels": {"app": "nginx", "pod-hash-template": "549f5fcb58"},
                    "ownerReferences": [
                        {
                            "apiVersion": "apps/v1",
                            "kind": "ReplicaSet",
                            "name": "nginx-549f5fcb58",
                            "controller": True,
                            "blockOwnerDeletion": True,
                        }
                    ],
                },
                "spec": {"nodeName": "node-a"},
            },
        )
    )


def test_related_replica_set_name_unsupported_kind():
    with pytest.raises(ValueError) as excinfo:
        _related_resolver().related_replica_set_name(
            ObjectRef(Kind.STATEFUL_SET, "statefulapp", "default")
        )
    assert str(excinfo.value) == (
        'can only get related ReplicaSet for Deployment or Pod, not "StatefulSet"'
    )


def test_related_replica_set_name_for_deployment():
    name = _related_resolver().related_replica_set_name(
        ObjectRef(Kind.DEPLOYMENT, "nginx", "default")
    )
    assert name == "nginx-549f5fcb58"


def test_related_replica_set_name_for_pod():
    name = _related_resolver().related_replica_set_name(
        ObjectRef(Kind.POD, "nginx-549f5fcb58-7cr5b", "default")
    )
    assert name == "nginx-549f5fcb58"


def test_related_replica_set_name_missing_deployment():
    with pytest.raises(NotFoundError):
        _related_resolver().related_replica_set_name(
            ObjectRef(Kind.DEPLOYMENT, "absent", "default")
        )


NGINX_DEPLOY = {
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {
        "namespace": "default",
        "name": "nginx",
        "labels": {"app": "nginx"},
        "annotations": {REVISION: "1"},
        "uid": "734c1370-2281-4946-9b5f-940b33f3e4b8",
    },
    "spec": {
        "replicas": 1,
        "selector": {"matchLabels": {"app": "nginx"}},
        "template": {
            "metadata": {
                "namespace": "default",
                "name": "nginx",
                "labels": {"app": "nginx"},
                "annotations": {REVISION: "1"},
            }
        },
    },
}

NGINX_RS = {
    "apiVersion": "apps/v1",
    "kind": "ReplicaSet",
    "metadata": {
        "namespace": "default",
        "name": "nginx-6d4cf56db6",
        "labels": {"app": "nginx", "pod-template-hash": "6d4cf56db6"},
        "annotations": {
            "deployment.kubernetes.io/desired-replicas": "1",
            "deployment.kubernetes.io/max-replicas": "4",
            REVISION: "1",
        },
        "uid": "ecfff877-784c-4f05-8b70-abe441ca1976",
        "ownerReferences": [
            {
                "apiVersion": "apps/v1",
                "kind": "Deployment",
                "name": "nginx",
                "uid": "734c1370-2281-4946-9b5f-940b33f3e4b8",
                "controller": True,
                "blockOwnerDeletion": True,
            }
        ],
    },
    "spec": {
        "replicas": 1,
        "selector": {"matchLabels": {"app": "nginx", "pod-template-hash": "6d4cf56db6"}},
    },
}

NOT_ACTIVE_RS = {
    "apiVersion": "apps/v1",
    "kind": "ReplicaSet",
    "metadata": {
        "namespace": "default",
        "name": "nginx-f88799b98",
        "labels": {"app": "nginx", "pod-template-hash": "f88799b98"},
        "annotations": {
            "deployment.kubernetes.io/desired-replicas": "1",
            "deployment.kubernetes.io/max-replicas": "4",
            REVISION: "2",
        },
        "uid": "6fd87db4-d557-4b84-92b7-653c3f4e5c7d",
        "ownerReferences": [
            {
                "apiVersion": "apps/v1",
                "kind": "Deployment",
                "name": "nginx",
                "uid": "734c1370-2281-4946-9b5f-940b33f3e4b8",
                "controller": True,
                "blockOwnerDeletion": True,
            }
        ],
    },
    "spec": {
        "replicas": 1,
        "selector": {"matchLabels": {"app": "nginx", "pod-template-hash": "f88799b98"}},
    },
}

STANDALONE_RS = {
    "apiVersion": "apps/v1",
    "kind": "ReplicaSet",
    "metadata": {
        "namespace": "default",
        "name": "nginx-d54df7dc7",
        "labels": {"app": "nginx", "pod-template-hash": "d54df7dc7"},
        "annotations": {
            "deployment.kubernetes.io/desired-replicas": "1",
            "deployment.kubernetes.io/max-replicas": "4",
        },
        "uid": "0eed5ccf-4518-4ae7-933e-cafded6cf356",
    },
    "spec": {
        "replicas": 1,
        "selector": {"matchLabels": {"app": "nginx", "pod-template-hash": "d54df7dc7"}},
    },
}

NGINX_POD = {
    "apiVersion": "v1",
    "kind": "Pod",
    "metadata": {
        "namespace": "default",
        "name": "nginx-6d4cf56db6-4kw2v",
        "labels": {"app": "nginx", "pod-template-hash": "6d4cf56db6"},
        "uid": "44ca7a2a-29c5-4510-b503-0218bc9d3308",
        "ownerReferences": [
            {
                "apiVersion": "apps/v1",
                "kind": "ReplicaSet",
                "name": "nginx-6d4cf56db6",
                "uid": "ecfff877-784c-4f05-8b70-abe441ca1976",
                "controller": True,
                "blockOwnerDeletion": True,
            }
        ],
    },
    "spec": {"nodeName": "kind-worker"},
}

UNMANAGED_POD = {
    "apiVersion": "v1",
    "kind": "Pod",
    "metadata": {
        "namespace": "default",
        "name": "unmanaged",
        "labels": {"run": "unmanaged"},
        "uid": "10641566-209e-4e4d-ac58-a3f3895e0045",
    },
}

PI_JOB = {
    "apiVersion": "batch/v1",
    "kind": "Job",
    "metadata": {
        "namespace": "default",
        "name": "pi",
        "uid": "ef340242-b677-485e-b506-2ac1dde48bca",
        "labels": {
            "controller-uid": "ef340242-b677-485e-b506-2ac1dde48bca",
            "job-name": "pi",
        },
    },
    "spec": {
        "selector": {
            "matchLabels": {"controller-uid": "ef340242 - b677 - 485e-b506-2ac1dde48bca"}
        }
    },
}

PI_POD = {
    "apiVersion": "v1",
    "kind": "Pod",
    "metadata": {
        "namespace": "default",
        "name": "pi-wnbbm",
        "labels": {
            "controller-uid": "ef340242-b677-485e-b506-2ac1dde48bca",
            "job-name": "pi",
        },
        "uid": "3921e0cd-1852-4c1d-ab0a-9721f3f28276",
        "ownerReferences": [
            {
                "apiVersion": "batch/v1",
                "kind": "Job",
                "name": "pi",
                "uid": "ef340242-b677-485e-b506-2ac1dde48bca",
                "controller": True,
                "blockOwnerDeletion": True,
            }
        ],
    },
}

CONFIG_MAP = {
    "kind": "ConfigMap",
    "metadata": {"namespace": "default", "name": "test-config"},
    "data": {"foo": "bar"},
}


def _owner_resolver():
    return ObjectResolver(
        InMemoryClient(
            NGINX_DEPLOY, NGINX_RS, NGINX_POD, UNMANAGED_POD, PI_JOB, PI_POD, CONFIG_MAP
        )
    )


@pytest.mark.parametrize(
    "resource, owner",
    [
        (NGINX_DEPLOY, NGINX_RS),
        (NGINX_RS, NGINX_RS),
        (NGINX_POD, NGINX_RS),
        (UNMANAGED_POD, UNMANAGED_POD),
        (PI_JOB, PI_JOB),
        (PI_POD, PI_JOB),
        (CONFIG_MAP, CONFIG_MAP),
    ],
    ids=[
        "replicaset-for-deployment",
        "replicaset-for-replicaset",
        "replicaset-for-pod",
        "pod-for-unmanaged-pod",
        "job-for-unmanaged-job",
        "job-for-pod",
        "configmap-for-configmap",
    ],
)
def test_report_owner(resource, owner):
    assert _owner_resolver().report_owner(resource) == owner


def test_report_owner_cron_job_for_job():
    cron_job = {
        "apiVersion": "batch/v1beta1",
        "kind": "CronJob",
        "metadata": {"namespace": "default", "name": "hello"},
    }
    job = {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {
            "namespace": "default",
            "name": "hello-1",
            "ownerReferences": [{"kind": "CronJob", "name": "hello", "controller": True}],
        },
    }
    resolver = ObjectResolver(InMemoryClient(cron_job, job))
    assert resolver.report_owner(job) == cron_job


@pytest.mark.parametrize(
    "resource, active",
    [(NGINX_RS, True), (NOT_ACTIVE_RS, False), (STANDALONE_RS, True)],
    ids=["activeReplicaset", "noneActiveReplicaset", "standAloneReplicaset"],
)
def test_is_active_replica_set(resource, active):
    resolver = ObjectResolver(InMemoryClient(NGINX_DEPLOY, NGINX_RS, NOT_ACTIVE_RS))
    assert resolver.is_active_replica_set(resource, get_controller_of(resource)) is active


def test_get_controller_of():
    assert get_controller_of(NGINX_POD)["name"] == "nginx-6d4cf56db6"
    assert get_controller_of(UNMANAGED_POD) is None
    non_controlling = {"metadata": {"ownerReferences": [{"kind": "Job", "name": "x"}]}}
    assert get_controller_of(non_controlling) is None


def test_replica_set_by_pod_errors():
    resolver = _owner_resolver()
    with pytest.raises(ValueError, match="did not find a controller for pod"):
        resolver.replica_set_by_pod(UNMANAGED_POD)
    with pytest.raises(ValueError, match="want replicaset"):
        resolver.replica_set_by_pod(PI_POD)


def test_replica_set_by_deployment_not_found():
    deploy = dict(NGINX_DEPLOY, metadata=dict(NGINX_DEPLOY["metadata"], annotations={REVISION: "7"}))
    resolver = ObjectResolver(InMemoryClient(deploy, NGINX_RS))
    with pytest.raises(ReplicaSetNotFoundError):
        resolver.replica_set_by_deployment(deploy)
    empty = ObjectResolver(InMemoryClient(NGINX_DEPLOY))
    with pytest.raises(ReplicaSetNotFoundError):
        empty.replica_set_by_deployment(NGINX_DEPLOY)


def test_cron_job_by_job_errors():
    with pytest.raises(ValueError, match="did not find a controller for job"):
        _owner_resolver().cron_job_by_job(PI_JOB)


def test_object_from_object_ref():
    resolver = _owner_resolver()
    cm = resolver.object_from_object_ref(ObjectRef(Kind.CONFIG_MAP, "test-config", "default"))
    assert cm["apiVersion"] == "v1"
    assert cm["data"] == {"foo": "bar"}
    with pytest.raises(ValueError, match="unknown kind: Widget"):
        resolver.object_from_object_ref(ObjectRef("Widget", "w", "default"))
    with pytest.raises(NotFoundError):
        resolver.object_from_object_ref(ObjectRef(Kind.POD, "absent", "default"))


def test_get_node_name():
    resolver = _owner_resolver()
    assert resolver.get_node_name(NGINX_POD) == "kind-worker"
    assert resolver.get_node_name(NGINX_DEPLOY) == "kind-worker"
    assert resolver.get_node_name(NGINX_RS) == "kind-worker"


def test_get_node_name_replication_controller():
    rc = {
        "kind": "ReplicationController",
        "metadata": {"namespace": "default", "name": "rc"},
        "spec": {"selector": {"app": "nginx"}},
    }
    resolver = _owner_resolver()
    assert resolver.get_node_name(rc) == "kind-worker"


def test_get_node_name_errors():
    resolver = _owner_resolver()
    with pytest.raises(UnsupportedKindError):
        resolver.get_node_name({"kind": "CronJob", "metadata": {"name": "c"}})
    with pytest.raises(UnsupportedKindError):
        resolver.get_node_name(CONFIG_MAP)
    with pytest.raises(NoRunningPodsError):
        resolver.get_node_name(PI_JOB)


def test_get_pods_by_label_selector():
    pods = _owner_resolver().get_pods_by_label_selector("default", {"job-name": "pi"})
    assert [p["metadata"]["name"] for p in pods] == ["pi-wnbbm"]
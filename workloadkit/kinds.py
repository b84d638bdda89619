"""Kinds of Kubernetes objects and predicates over them."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional


class Kind(str, Enum):
    """The type of a Kubernetes object."""

    UNKNOWN = "Unknown"

    NODE = "Node"
    NAMESPACE = "Namespace"

    POD = "Pod"
    REPLICA_SET = "ReplicaSet"
    REPLICATION_CONTROLLER = "ReplicationController"
    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"
    DAEMON_SET = "DaemonSet"
    CRON_JOB = "CronJob"
    JOB = "Job"
    SERVICE = "Service"
    CONFIG_MAP = "ConfigMap"
    ROLE = "Role"
    ROLE_BINDING = "RoleBinding"
    NETWORK_POLICY = "NetworkPolicy"
    INGRESS = "Ingress"
    RESOURCE_QUOTA = "ResourceQuota"
    LIMIT_RANGE = "LimitRange"

    CLUSTER_ROLE = "ClusterRole"
    CLUSTER_ROLE_BINDING = "ClusterRoleBinding"
    CUSTOM_RESOURCE_DEFINITION = "CustomResourceDefinition"
    POD_SECURITY_POLICY = "PodSecurityPolicy"

    # Hash like the plain string so that "Pod" and Kind.POD are interchangeable
    # as dictionary keys and set members.
    __hash__ = str.__hash__

    def __str__(self) -> str:
        return self.value


_BUILT_IN_WORKLOADS = frozenset(
    {
        Kind.REPLICA_SET,
        Kind.REPLICATION_CONTROLLER,
        Kind.STATEFUL_SET,
        Kind.DAEMON_SET,
        Kind.JOB,
    }
)

_WORKLOADS = frozenset(
    {
        Kind.POD,
        Kind.DEPLOYMENT,
        Kind.REPLICA_SET,
        Kind.REPLICATION_CONTROLLER,
        Kind.STATEFUL_SET,
        Kind.DAEMON_SET,
        Kind.JOB,
        Kind.CRON_JOB,
    }
)

_CLUSTER_SCOPED = frozenset(
    {
        Kind.CLUSTER_ROLE,
        Kind.CLUSTER_ROLE_BINDING,
        Kind.CUSTOM_RESOURCE_DEFINITION,
        Kind.POD_SECURITY_POLICY,
    }
)

_ROLE_RELATED_NAMESPACE_SCOPE = frozenset({Kind.ROLE, Kind.ROLE_BINDING})

_ROLE_TYPES = frozenset({Kind.ROLE, Kind.CLUSTER_ROLE})

_NAMESPACE_RESOURCES = frozenset(
    {
        Kind.CONFIG_MAP,
        Kind.NETWORK_POLICY,
        Kind.INGRESS,
        Kind.RESOURCE_QUOTA,
        Kind.LIMIT_RANGE,
    }
)


def is_built_in_workload(controller: Optional[Mapping[str, Any]]) -> bool:
    """Tell whether an owner reference points at a built-in workload controller."""
    return controller is not None and controller.get("kind") in _BUILT_IN_WORKLOADS


def is_workload(kind: str) -> bool:
    """Tell whether the kind is a Kubernetes workload."""
    return kind in _WORKLOADS


def is_cluster_scoped_kind(kind: str) -> bool:
    """Tell whether the kind is one of the known cluster-scoped kinds."""
    return kind in _CLUSTER_SCOPED


def is_role_related_namespace_scope(kind: str) -> bool:
    """Tell whether the kind is a namespaced Role or RoleBinding."""
    return kind in _ROLE_RELATED_NAMESPACE_SCOPE


def is_role_types(kind: str) -> bool:
    """Tell whether the kind is Role or ClusterRole."""
    return kind in _ROLE_TYPES


def is_valid_k8s_kind(kind: str) -> bool:
    """Tell whether the kind is one that can be scanned."""
    return (
        is_workload(kind)
        or is_cluster_scoped_kind(kind)
        or is_role_related_namespace_scope(kind)
        or kind in _NAMESPACE_RESOURCES
        or kind == "Workload"
    )
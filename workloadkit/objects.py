"""References to Kubernetes objects, their labels, pod specs and container images.

Objects are handled as plain manifests: mappings with ``kind``,
``metadata`` and ``spec`` keys, as found in Kubernetes JSON and YAML.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from workloadkit.hashing import compute_hash
from workloadkit.kinds import Kind

LABEL_RESOURCE_KIND = "trivy-operator.resource.kind"
LABEL_RESOURCE_NAME = "trivy-operator.resource.name"
LABEL_RESOURCE_NAME_HASH = "trivy-operator.resource.name-hash"
LABEL_RESOURCE_NAMESPACE = "trivy-operator.resource.namespace"
ANNOTATION_CONTAINER_IMAGES = "trivy-operator.container-images"

_LABEL_VALUE_MAX_LENGTH = 63
_LABEL_VALUE_RE = re.compile(r"(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?")

_TEMPLATED_WORKLOADS = frozenset(
    {
        Kind.DEPLOYMENT,
        Kind.REPLICA_SET,
        Kind.REPLICATION_CONTROLLER,
        Kind.STATEFUL_SET,
        Kind.DAEMON_SET,
        Kind.JOB,
    }
)

_WHOLE_OBJECT_HASHED = frozenset(
    {
        Kind.SERVICE,
        Kind.CONFIG_MAP,
        Kind.ROLE,
        Kind.ROLE_BINDING,
        Kind.NETWORK_POLICY,
        Kind.INGRESS,
        Kind.RESOURCE_QUOTA,
        Kind.LIMIT_RANGE,
        Kind.CLUSTER_ROLE,
        Kind.CLUSTER_ROLE_BINDING,
        Kind.CUSTOM_RESOURCE_DEFINITION,
        Kind.POD_SECURITY_POLICY,
    }
)


def _as_kind(value: str) -> str:
    try:
        return Kind(value)
    except ValueError:
        return value


@dataclass(frozen=True)
class ObjectRef:
    """A simplified reference to a Kubernetes object."""

    kind: str
    name: str
    namespace: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _as_kind(self.kind))


@dataclass
class ScannerOpts:
    """Configuration of the vulnerability scanner."""

    scan_job_timeout: timedelta = timedelta(0)
    delete_scan_job: bool = False


def _go_json(value: Any) -> str:
    text = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    for char, escape in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escape)
    return text


class ContainerImages(dict):
    """Mapping of container names to image references."""

    def as_json(self) -> str:
        """Return the mapping as compact JSON with sorted keys."""
        return _go_json(dict(self))

    def from_json(self, value: str) -> None:
        """Merge the mapping encoded in the JSON value into this one.

        Raises ValueError if the value is not a JSON object of strings.
        """
        decoded = json.loads(value)
        if decoded is None:
            return
        if not isinstance(decoded, dict) or not all(
            isinstance(v, str) for v in decoded.values()
        ):
            raise ValueError("expected a JSON object mapping strings to strings")
        self.update(decoded)


def is_valid_label_value(value: str) -> bool:
    """Tell whether the value may be used as a Kubernetes label value."""
    return (
        len(value) <= _LABEL_VALUE_MAX_LENGTH
        and _LABEL_VALUE_RE.fullmatch(value) is not None
    )


def object_ref_to_labels(ref: ObjectRef) -> dict[str, str]:
    """Encode the reference as labels.

    A name that is not a valid label value is replaced by its hash.
    """
    labels = {
        LABEL_RESOURCE_KIND: str(ref.kind),
        LABEL_RESOURCE_NAMESPACE: ref.namespace,
    }
    if is_valid_label_value(ref.name):
        labels[LABEL_RESOURCE_NAME] = ref.name
    else:
        labels[LABEL_RESOURCE_NAME_HASH] = compute_hash(ref.name)
    return labels


def object_to_object_meta(
    obj: Mapping[str, Any], meta: Mapping[str, Any]
) -> dict[str, Any]:
    """Return a copy of the metadata with labels and annotations describing obj.

    A name that is not a valid label value is stored as its hash in the labels
    and in full in the annotations.
    """
    metadata = obj.get("metadata") or {}
    name = metadata.get("name", "")

    result = dict(meta)
    labels = dict(meta.get("labels") or {})
    labels[LABEL_RESOURCE_KIND] = obj.get("kind", "")
    labels[LABEL_RESOURCE_NAMESPACE] = metadata.get("namespace", "")
    if is_valid_label_value(name):
        labels[LABEL_RESOURCE_NAME] = name
    else:
        labels[LABEL_RESOURCE_NAME_HASH] = compute_hash(name)
        annotations = dict(meta.get("annotations") or {})
        annotations[LABEL_RESOURCE_NAME] = name
        result["annotations"] = annotations
    result["labels"] = labels
    return result


def object_ref_from_object_meta(meta: Mapping[str, Any]) -> ObjectRef:
    """Decode an object reference from labels and annotations.

    Raises ValueError when the kind or name cannot be found.
    """
    labels = meta.get("labels") or {}
    annotations = meta.get("annotations") or {}
    if LABEL_RESOURCE_KIND not in labels:
        raise ValueError(f"required label does not exist: {LABEL_RESOURCE_KIND}")
    if LABEL_RESOURCE_NAME in labels:
        name = labels[LABEL_RESOURCE_NAME]
    elif LABEL_RESOURCE_NAME in annotations:
        name = annotations[LABEL_RESOURCE_NAME]
    else:
        raise ValueError(f"required label does not exist: {LABEL_RESOURCE_NAME}")
    return ObjectRef(
        kind=labels[LABEL_RESOURCE_KIND],
        name=name,
        namespace=labels.get(LABEL_RESOURCE_NAMESPACE, ""),
    )


def object_ref_from_kind_and_key(kind: str, namespace: str, name: str) -> ObjectRef:
    """Build a reference from a kind and a namespaced name."""
    return ObjectRef(kind=kind, name=name, namespace=namespace)


def _dig(mapping: Mapping[str, Any], *keys: str) -> dict[str, Any]:
    current: Any = mapping
    for key in keys:
        current = (current or {}).get(key)
    return current or {}


def get_pod_spec(obj: Mapping[str, Any]) -> dict[str, Any]:
    """Return the pod spec of a workload.

    Raises ValueError if the object is not a workload.
    """
    kind = obj.get("kind")
    spec = obj.get("spec") or {}
    if kind == Kind.POD:
        return spec
    if kind in _TEMPLATED_WORKLOADS:
        return _dig(spec, "template", "spec")
    if kind == Kind.CRON_JOB:
        return _dig(spec, "jobTemplate", "spec", "template", "spec")
    raise ValueError(f"unsupported workload: {kind}")


def compute_spec_hash(obj: Mapping[str, Any]) -> str:
    """Hash the part of the object whose change calls for a new scan.

    Workloads are hashed by their pod spec, other supported kinds whole.
    Raises ValueError for unsupported kinds.
    """
    kind = obj.get("kind")
    if kind == Kind.POD or kind in _TEMPLATED_WORKLOADS or kind == Kind.CRON_JOB:
        return compute_hash(get_pod_spec(obj))
    if kind in _WHOLE_OBJECT_HASHED:
        return compute_hash(obj)
    raise ValueError(f"computing spec hash of unsupported object: {kind}")


def get_container_images_from_pod_spec(spec: Mapping[str, Any]) -> ContainerImages:
    """Map container names to images for regular, init and ephemeral containers."""
    images = ContainerImages()
    for group in ("containers", "initContainers", "ephemeralContainers"):
        for container in spec.get(group) or []:
            images[container.get("name", "")] = container.get("image", "")
    return images


def get_container_images_from_job(job: Mapping[str, Any]) -> ContainerImages:
    """Read the container images recorded in a job's annotation.

    Raises ValueError if the annotation is missing or malformed.
    """
    annotations = (job.get("metadata") or {}).get("annotations") or {}
    if ANNOTATION_CONTAINER_IMAGES not in annotations:
        raise ValueError(f"required annotation not set: {ANNOTATION_CONTAINER_IMAGES}")
    images = ContainerImages()
    try:
        images.from_json(annotations[ANNOTATION_CONTAINER_IMAGES])
    except ValueError as err:
        raise ValueError(
            f"parsing annotation: {ANNOTATION_CONTAINER_IMAGES}: {err}"
        ) from err
    return images


def get_active_deadline_seconds(timeout: timedelta) -> Optional[int]:
    """Return the timeout in whole seconds, or None if it is not positive."""
    if timeout > timedelta(0):
        return int(timeout.total_seconds())
    return None
"""Metrics on security reports, rendered in the Prometheus text format.

The collector reads vulnerability, exposed secret and configuration audit
reports through a client when it is asked for metrics. The metrics are
therefore never stale, and nothing has to be removed when a report is deleted.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

_LOG = logging.getLogger(__name__)

NAMESPACE = "namespace"
NAME = "name"
IMAGE_REGISTRY = "image_registry"
IMAGE_REPOSITORY = "image_repository"
IMAGE_TAG = "image_tag"
IMAGE_DIGEST = "image_digest"
SEVERITY = "severity"


@dataclass(frozen=True)
class MetricDesc:
    """Describes a metric family: its name, help text, labels and type."""

    name: str
    help: str
    label_names: tuple[str, ...]
    type: str = "gauge"


@dataclass(frozen=True)
class Sample:
    """One value of a metric with its label values."""

    name: str
    labels: Mapping[str, str]
    value: float


IMAGE_VULNERABILITIES = MetricDesc(
    name="trivy_image_vulnerabilities",
    help="Number of container image vulnerabilities",
    label_names=(
        NAMESPACE,
        NAME,
        IMAGE_REGISTRY,
        IMAGE_REPOSITORY,
        IMAGE_TAG,
        IMAGE_DIGEST,
        SEVERITY,
    ),
)

IMAGE_EXPOSED_SECRETS = MetricDesc(
    name="trivy_image_exposedsecrets",
    help="Number of image exposed secrets",
    label_names=(
        NAMESPACE,
        NAME,
        IMAGE_REGISTRY,
        IMAGE_REPOSITORY,
        IMAGE_TAG,
        IMAGE_DIGEST,
        SEVERITY,
    ),
)

RESOURCE_CONFIG_AUDITS = MetricDesc(
    name="trivy_resource_configaudits",
    help="Number of failing resource configuration auditing checks",
    label_names=(NAMESPACE, NAME, SEVERITY),
)


def _meta(report: Mapping[str, Any]) -> Mapping[str, Any]:
    return report.get("metadata") or {}


def _section(report: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    current: Any = report.get("report") or {}
    for key in keys:
        current = (current or {}).get(key)
    return current or {}


def _image_labels(report: Mapping[str, Any]) -> dict[str, str]:
    artifact = _section(report, "artifact")
    return {
        NAMESPACE: _meta(report).get("namespace", ""),
        NAME: _meta(report).get("name", ""),
        IMAGE_REGISTRY: _section(report, "registry").get("server", ""),
        IMAGE_REPOSITORY: artifact.get("repository", ""),
        IMAGE_TAG: artifact.get("tag", ""),
        IMAGE_DIGEST: artifact.get("digest", ""),
    }


def _resource_labels(report: Mapping[str, Any]) -> dict[str, str]:
    return {
        NAMESPACE: _meta(report).get("namespace", ""),
        NAME: _meta(report).get("name", ""),
    }


@dataclass(frozen=True)
class _ReportFamily:
    desc: MetricDesc
    kind: str
    plural: str
    labels: Callable[[Mapping[str, Any]], dict[str, str]]
    severities: tuple[str, ...]


_FAMILIES = (
    _ReportFamily(
        desc=IMAGE_VULNERABILITIES,
        kind="VulnerabilityReport",
        plural="vulnerabilityreports",
        labels=_image_labels,
        severities=("Critical", "High", "Medium", "Low", "Unknown"),
    ),
    _ReportFamily(
        desc=IMAGE_EXPOSED_SECRETS,
        kind="ExposedSecretReport",
        plural="exposedsecretreports",
        labels=_image_labels,
        severities=("Critical", "High", "Medium", "Low"),
    ),
    _ReportFamily(
        desc=RESOURCE_CONFIG_AUDITS,
        kind="ConfigAuditReport",
        plural="configauditreports",
        labels=_resource_labels,
        severities=("Critical", "High", "Medium", "Low"),
    ),
)


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(float(value))


def _render_sample(sample: Sample) -> str:
    if not sample.labels:
        return f"{sample.name} {_format_value(sample.value)}"
    pairs = ",".join(
        f'{key}="{_escape_label_value(sample.labels[key])}"'
        for key in sorted(sample.labels)
    )
    return f"{sample.name}{{{pairs}}} {_format_value(sample.value)}"


def render_exposition(descs: Iterable[MetricDesc], samples: Iterable[Sample]) -> str:
    """Render samples as Prometheus text, families and samples in sorted order.

    Families without samples are left out. Raises ValueError for a sample
    without a description or with labels other than those described.
    """
    by_name = {desc.name: desc for desc in descs}
    grouped: dict[str, list[Sample]] = {name: [] for name in by_name}
    for sample in samples:
        desc = by_name.get(sample.name)
        if desc is None:
            raise ValueError(f"no description for metric {sample.name}")
        if set(sample.labels) != set(desc.label_names):
            raise ValueError(
                f"inconsistent label names for metric {sample.name}: "
                f"got {sorted(sample.labels)}, want {sorted(desc.label_names)}"
            )
        grouped[sample.name].append(sample)

    lines: list[str] = []
    for name in sorted(grouped):
        family = grouped[name]
        if not family:
            continue
        desc = by_name[name]
        lines.append(f"# HELP {name} {_escape_help(desc.help)}")
        lines.append(f"# TYPE {name} {desc.type}")
        family.sort(key=lambda s: [(k, s.labels[k]) for k in sorted(s.labels)])
        lines.extend(_render_sample(sample) for sample in family)
    return "\n".join(lines) + "\n" if lines else ""


@dataclass
class ResourcesMetricsCollector:
    """Produces metrics on demand from the security reports a client holds.

    ``target_namespaces`` is a comma-separated list of namespaces; when empty,
    reports in all namespaces are counted.
    """

    client: Any
    target_namespaces: str = ""
    logger: logging.Logger = field(default=_LOG)

    def _namespaces(self) -> list[str]:
        namespaces = self.target_namespaces.strip()
        return namespaces.split(",") if namespaces else [""]

    def collect(self) -> Iterator[Sample]:
        """Yield one sample per report and severity.

        A namespace whose reports cannot be listed is logged and skipped.
        """
        namespaces = self._namespaces()
        for family in _FAMILIES:
            for namespace in namespaces:
                try:
                    reports = self.client.list(family.kind, namespace)
                except Exception:
                    self.logger.exception(
                        "failed to list %s from API, namespace %r",
                        family.plural,
                        namespace,
                    )
                    continue
                for report in reports:
                    base = family.labels(report)
                    summary = _section(report, "summary")
                    for severity in family.severities:
                        count = summary.get(f"{severity.lower()}Count", 0) or 0
                        yield Sample(
                            name=family.desc.name,
                            labels={**base, SEVERITY: severity},
                            value=float(count),
                        )

    def describe(self) -> list[MetricDesc]:
        """Return the descriptions of every metric the collector produces."""
        return [IMAGE_VULNERABILITIES, RESOURCE_CONFIG_AUDITS, IMAGE_EXPOSED_SECRETS]

    def exposition(self, *args: str) -> str:
        """Render the current metrics; if names are given, only those metrics."""
        wanted = set(args)
        descs = [d for d in self.describe() if not wanted or d.name in wanted]
        names = {d.name for d in descs}
        samples = [s for s in self.collect() if s.name in names]
        return render_exposition(descs, samples)
"""Lookup of the pod behind a Job and of its terminated container states."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from workloadkit.client import InMemoryClient
from workloadkit.kinds import Kind


class PodForJobNotFoundError(LookupError):
    """Raised when no pod controlled by a job exists."""


def get_terminated_containers_statuses_by_pod(
    pod: Optional[Mapping[str, Any]],
) -> dict[str, dict[str, Any]]:
    """Map container names to their terminated states.

    Init containers come first, so a regular container with the same name
    takes precedence.
    """
    states: dict[str, dict[str, Any]] = {}
    if pod is None:
        return states
    status = pod.get("status") or {}
    for group in ("initContainerStatuses", "containerStatuses"):
        for container in status.get(group) or []:
            terminated = (container.get("state") or {}).get("terminated")
            if terminated is not None:
                states[container.get("name", "")] = terminated
    return states


class LogsReader:
    """Reads the state of pods that run jobs."""

    def __init__(self, client: InMemoryClient) -> None:
        self.client = client

    def pod_by_job(self, job: Mapping[str, Any]) -> dict[str, Any]:
        """Return the first pod controlled by the job.

        Raises PodForJobNotFoundError if the job has no pod.
        """
        metadata = job.get("metadata") or {}
        namespace = metadata.get("namespace", "")
        name = metadata.get("name", "")
        refreshed = self.client.get(Kind.JOB, namespace, name)
        match_labels = ((refreshed.get("spec") or {}).get("selector") or {}).get(
            "matchLabels"
        ) or {}
        selector = {"controller-uid": match_labels.get("controller-uid", "")}
        pods = self.client.list(Kind.POD, namespace, selector)
        if not pods:
            raise PodForJobNotFoundError(
                f'getting pod controlled by job: "{namespace}/{name}": '
                "pod for job not found"
            )
        return pods[0]

    def terminated_container_statuses_by_job(
        self, job: Mapping[str, Any]
    ) -> dict[str, dict[str, Any]]:
        """Return the terminated container states of the job's pod, if any."""
        try:
            pod = self.pod_by_job(job)
        except PodForJobNotFoundError:
            pod = None
        return get_terminated_containers_statuses_by_pod(pod)
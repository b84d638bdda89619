"""An in-memory store of Kubernetes manifests with get and list by labels."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, Optional


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""


def matches_labels(
    labels: Optional[Mapping[str, str]], selector: Optional[Mapping[str, str]]
) -> bool:
    """Tell whether the labels carry every key and value of the selector.

    An empty selector matches any set of labels.
    """
    labels = labels or {}
    return all(key in labels and labels[key] == value for key, value in (selector or {}).items())


def _key(kind: Any, namespace: str, name: str) -> tuple[str, str, str]:
    return (str(kind), namespace or "", name)


class InMemoryClient:
    """Holds manifests keyed by kind, namespace and name.

    Objects are copied on the way in and on the way out, so callers never
    share state with the store.
    """

    def __init__(self, *objects: Mapping[str, Any]) -> None:
        self._objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.add(*objects)

    def add(self, *args: Mapping[str, Any]) -> None:
        """Store the given manifests, replacing any with the same identity."""
        for obj in args:
            kind = obj.get("kind")
            metadata = obj.get("metadata") or {}
            name = metadata.get("name")
            if not kind or not name:
                raise ValueError("object must have a kind and a metadata.name")
            self._objects[_key(kind, metadata.get("namespace", ""), name)] = (
                copy.deepcopy(dict(obj))
            )

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        """Return a copy of the named object.

        Raises NotFoundError if there is no such object.
        """
        try:
            return copy.deepcopy(self._objects[_key(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(f'{kind} "{name}" not found') from None

    def list(
        self,
        kind: str,
        namespace: str = "",
        match_labels: Optional[Mapping[str, str]] = None,
    ) -> list[dict[str, Any]]:
        """Return copies of the objects of a kind whose labels match.

        An empty namespace lists across all namespaces. Results are ordered
        by namespace, then name.
        """
        found = [
            copy.deepcopy(obj)
            for (obj_kind, obj_namespace, _), obj in self._objects.items()
            if obj_kind == str(kind)
            and (not namespace or obj_namespace == namespace)
            and matches_labels((obj.get("metadata") or {}).get("labels"), match_labels)
        ]
        found.sort(
            key=lambda o: (
                (o.get("metadata") or {}).get("namespace", ""),
                (o.get("metadata") or {}).get("name", ""),
            )
        )
        return found
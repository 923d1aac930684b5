"""
Identity types for Kubernetes resources.

A GKNN (group, kind, namespace, name) identifies any resource uniquely and is
totally ordered, so every externally visible enumeration can be sorted on it.
"""

from dataclasses import dataclass
from typing import Any, Dict

from gwinspect.resource_utils import is_cluster_scoped


@dataclass(frozen=True, order=True)
class GroupKind:
    """API group and kind pair. The core group is the empty string."""

    group: str
    kind: str

    def __str__(self) -> str:
        if not self.group:
            return self.kind
        return f"{self.kind}.{self.group}"


@dataclass(frozen=True, order=True)
class GKNN:
    """Group, kind, namespace and name of a resource."""

    group: str
    kind: str
    namespace: str
    name: str

    @property
    def group_kind(self) -> GroupKind:
        return GroupKind(self.group, self.kind)

    @property
    def namespaced_name(self) -> tuple:
        return (self.namespace, self.name)

    def __str__(self) -> str:
        if not self.namespace:
            return f"{self.group_kind}/{self.name}"
        return f"{self.group_kind}/{self.namespace}/{self.name}"


def group_from_api_version(api_version: str) -> str:
    """
    Extract the API group from an apiVersion string.

    Args:
        api_version: Value such as "gateway.networking.k8s.io/v1" or "v1"

    Returns:
        The group, or "" for the core group
    """
    if "/" not in api_version:
        return ""
    return api_version.split("/", 1)[0]


def gknn_of(obj: Dict[str, Any]) -> GKNN:
    """
    Derive the GKNN of a raw resource object.

    The namespace is dropped for cluster-scoped kinds so that a stray
    metadata.namespace on e.g. a GatewayClass never splits its identity.

    Raises:
        ValueError: If the object has no kind or no name
    """
    kind = obj.get("kind") or ""
    metadata = obj.get("metadata") or {}
    name = metadata.get("name") or ""
    if not kind or not name:
        raise ValueError(f"Resource is missing kind or metadata.name: {obj!r:.120}")

    group = group_from_api_version(obj.get("apiVersion") or "")
    namespace = "" if is_cluster_scoped(kind) else (metadata.get("namespace") or "")
    return GKNN(group, kind, namespace, name)

"""
Utility functions and constants for Gateway API resource classification.
"""

from datetime import datetime, timezone
from typing import Dict, Optional, Tuple, Union

GATEWAY_API_GROUP = "gateway.networking.k8s.io"
APIEXTENSIONS_GROUP = "apiextensions.k8s.io"

# Policy CRDs carry this label; its value is "inherited" or "direct"
POLICY_LABEL = "gateway.networking.k8s.io/policy"

# Cluster-scoped resource kinds that don't belong to a namespace
CLUSTER_SCOPED_KINDS = [
    "CustomResourceDefinition",
    "ClusterRole",
    "ClusterRoleBinding",
    "GatewayClass",
    "Namespace",
    "PersistentVolume",
    "StorageClass",
]

# Resource type arguments accepted on the command line, mapped to (group, kind)
RESOURCE_ALIASES: Dict[str, Tuple[str, str]] = {
    "gatewayclass": (GATEWAY_API_GROUP, "GatewayClass"),
    "gatewayclasses": (GATEWAY_API_GROUP, "GatewayClass"),
    "gc": (GATEWAY_API_GROUP, "GatewayClass"),
    "gateway": (GATEWAY_API_GROUP, "Gateway"),
    "gateways": (GATEWAY_API_GROUP, "Gateway"),
    "gtw": (GATEWAY_API_GROUP, "Gateway"),
    "httproute": (GATEWAY_API_GROUP, "HTTPRoute"),
    "httproutes": (GATEWAY_API_GROUP, "HTTPRoute"),
    "referencegrant": (GATEWAY_API_GROUP, "ReferenceGrant"),
    "referencegrants": (GATEWAY_API_GROUP, "ReferenceGrant"),
    "service": ("", "Service"),
    "services": ("", "Service"),
    "svc": ("", "Service"),
    "backend": ("", "Service"),
    "backends": ("", "Service"),
    "namespace": ("", "Namespace"),
    "namespaces": ("", "Namespace"),
    "ns": ("", "Namespace"),
}

POLICY_TYPES = ("policy", "policies")
POLICY_CRD_TYPES = ("policycrd", "policycrds")


def is_cluster_scoped(kind: str) -> bool:
    """
    Check if a Kubernetes resource kind is cluster-scoped.

    Args:
        kind: The Kubernetes resource kind (e.g., "Gateway", "Namespace")

    Returns:
        True if the resource is cluster-scoped, False otherwise
    """
    return kind in CLUSTER_SCOPED_KINDS


def resolve_resource_type(resource_type: str) -> Tuple[str, str]:
    """
    Resolve a command-line resource type to its (group, kind).

    Raises:
        ValueError: If the type is not known
    """
    key = resource_type.strip().lower()
    if key not in RESOURCE_ALIASES:
        known = ", ".join(sorted(set(RESOURCE_ALIASES) | set(POLICY_TYPES) | set(POLICY_CRD_TYPES)))
        raise ValueError(f"Unknown resource type: {resource_type}. Must be one of: {known}")
    return RESOURCE_ALIASES[key]


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a Kubernetes RFC 3339 timestamp such as "2024-01-02T03:04:05Z".

    YAML manifests may already carry a datetime, since PyYAML decodes
    unquoted timestamps itself.

    Returns:
        A timezone-aware datetime, or None if the value is empty or malformed
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

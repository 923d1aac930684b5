"""
Gateway API relations used to build the topology graph.

Each relation extracts, from one object of its source kind, the identities of
the objects it references. Extractors are pure and tolerate missing fields.
"""

from typing import Any, Dict, List

from gwinspect.gknn import GKNN, GroupKind
from gwinspect.resource_utils import GATEWAY_API_GROUP
from gwinspect.topology import Relation

GATEWAY_CLASS_GK = GroupKind(GATEWAY_API_GROUP, "GatewayClass")
GATEWAY_GK = GroupKind(GATEWAY_API_GROUP, "Gateway")
HTTPROUTE_GK = GroupKind(GATEWAY_API_GROUP, "HTTPRoute")
REFERENCE_GRANT_GK = GroupKind(GATEWAY_API_GROUP, "ReferenceGrant")
SERVICE_GK = GroupKind("", "Service")
NAMESPACE_GK = GroupKind("", "Namespace")

GATEWAY_CLASS = "GatewayClass"
PARENT_REF = "ParentRef"
BACKEND_REF = "BackendRef"
NAMESPACE = "Namespace"


def _namespace_of(obj: Dict[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("namespace") or ""


def _unique(refs: List[GKNN]) -> List[GKNN]:
    seen = set()
    result = []
    for ref in refs:
        if ref not in seen:
            seen.add(ref)
            result.append(ref)
    return result


def gateway_class_of_gateway(gateway: Dict[str, Any]) -> List[GKNN]:
    name = (gateway.get("spec") or {}).get("gatewayClassName")
    if not name:
        return []
    return [GKNN(GATEWAY_API_GROUP, "GatewayClass", "", name)]


def parent_refs_of_httproute(route: Dict[str, Any]) -> List[GKNN]:
    namespace = _namespace_of(route)
    refs = []
    for parent in (route.get("spec") or {}).get("parentRefs") or []:
        if not isinstance(parent, dict) or not parent.get("name"):
            continue
        refs.append(
            GKNN(
                parent.get("group", GATEWAY_API_GROUP) or "",
                parent.get("kind") or "Gateway",
                parent.get("namespace") or namespace,
                parent["name"],
            )
        )
    return _unique(refs)


def backend_refs_of_httproute(route: Dict[str, Any]) -> List[GKNN]:
    """BackendRefs of every rule; a group or kind left out means a core Service."""
    namespace = _namespace_of(route)
    refs = []
    for rule in (route.get("spec") or {}).get("rules") or []:
        if not isinstance(rule, dict):
            continue
        for backend in rule.get("backendRefs") or []:
            if not isinstance(backend, dict) or not backend.get("name"):
                continue
            refs.append(
                GKNN(
                    backend.get("group") or "",
                    backend.get("kind") or "Service",
                    backend.get("namespace") or namespace,
                    backend["name"],
                )
            )
    return _unique(refs)


def namespace_of(obj: Dict[str, Any]) -> List[GKNN]:
    namespace = _namespace_of(obj)
    if not namespace:
        return []
    return [GKNN("", "Namespace", "", namespace)]


GATEWAY_GATEWAY_CLASS_RELATION = Relation(
    GATEWAY_CLASS, GATEWAY_GK, gateway_class_of_gateway, target=GATEWAY_CLASS_GK
)
HTTPROUTE_PARENT_REFS_RELATION = Relation(PARENT_REF, HTTPROUTE_GK, parent_refs_of_httproute, target=GATEWAY_GK)
HTTPROUTE_BACKEND_REFS_RELATION = Relation(BACKEND_REF, HTTPROUTE_GK, backend_refs_of_httproute, target=SERVICE_GK)

# Namespace membership is optional and only walked forward.
GATEWAY_NAMESPACE_RELATION = Relation(NAMESPACE, GATEWAY_GK, namespace_of, optional=True)
HTTPROUTE_NAMESPACE_RELATION = Relation(NAMESPACE, HTTPROUTE_GK, namespace_of, optional=True)
BACKEND_NAMESPACE_RELATION = Relation(NAMESPACE, SERVICE_GK, namespace_of, optional=True)

ALL_RELATIONS = (
    GATEWAY_GATEWAY_CLASS_RELATION,
    HTTPROUTE_PARENT_REFS_RELATION,
    HTTPROUTE_BACKEND_REFS_RELATION,
    GATEWAY_NAMESPACE_RELATION,
    HTTPROUTE_NAMESPACE_RELATION,
    BACKEND_NAMESPACE_RELATION,
)

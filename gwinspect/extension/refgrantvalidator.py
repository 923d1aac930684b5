"""ReferenceGrant validation of cross-namespace references."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from gwinspect.extension.base import Extension
from gwinspect.fetcher import GroupKindFetcher
from gwinspect.gknn import GKNN
from gwinspect.relations import BACKEND_REF, REFERENCE_GRANT_GK
from gwinspect.topology import Graph, ReferenceFromTo


def grant_allows(grant: Dict[str, Any], source: GKNN, target: GKNN) -> bool:
    """
    Check whether one ReferenceGrant permits a reference.

    The grant must live in the target's namespace, list the source's group,
    kind and namespace under spec.from, and list the target's group and kind
    (and name, when the entry names one) under spec.to.
    """
    if ((grant.get("metadata") or {}).get("namespace") or "") != target.namespace:
        return False
    spec = grant.get("spec") or {}

    from_ok = any(
        isinstance(entry, dict)
        and (entry.get("group") or "") == source.group
        and entry.get("kind") == source.kind
        and entry.get("namespace") == source.namespace
        for entry in spec.get("from") or []
    )
    if not from_ok:
        return False

    return any(
        isinstance(entry, dict)
        and (entry.get("group") or "") == target.group
        and entry.get("kind") == target.kind
        and (not entry.get("name") or entry.get("name") == target.name)
        for entry in spec.get("to") or []
    )


class ReferenceGrantValidatorExtension(Extension):
    """
    Flag cross-namespace references that no ReferenceGrant authorizes.

    Only relations listed in `relations` are checked. An unauthorized edge is
    kept in the graph and recorded on its source node.
    """

    name = "ReferenceGrantValidator"

    def __init__(
        self,
        fetcher: GroupKindFetcher,
        relations: Iterable[str] = (BACKEND_REF,),
        logger: Optional[logging.Logger] = None,
    ):
        self.fetcher = fetcher
        self.relations = frozenset(relations)
        self.logger = logger or logging.getLogger(__name__)
        self._grants: Dict[str, List[Dict[str, Any]]] = {}

    def _grants_in(self, namespace: str) -> List[Dict[str, Any]]:
        if namespace not in self._grants:
            self._grants[namespace] = self.fetcher.list_objects(REFERENCE_GRANT_GK, namespace=namespace)
        return self._grants[namespace]

    def execute(self, graph: Graph) -> None:
        for node in graph.iter_nodes():
            source = node.gknn
            for relation in sorted(node.out_neighbors, key=lambda r: r.name):
                if relation.name not in self.relations:
                    continue
                for target in sorted(node.out_neighbors[relation]):
                    if not target.namespace or target.namespace == source.namespace:
                        continue
                    grants = self._grants_in(target.namespace)
                    if any(grant_allows(grant, source, target) for grant in grants):
                        continue
                    self.logger.debug(f"{source}: {relation.name} to {target} is not permitted")
                    reference = ReferenceFromTo(relation=relation.name, source=source, target=target)
                    if reference not in node.metadata.unauthorized_refs:
                        node.metadata.unauthorized_refs.append(reference)

"""
Topology graph of Kubernetes resources.

Nodes are keyed by GKNN and connected by named, directed relations. The graph
is built by closure: starting from a set of source objects, every registered
relation is applied to every node, and referenced objects that are not in the
graph yet are fetched and expanded in turn. The graph is append-only; passes
that run after the build only add metadata.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from gwinspect.fetcher import GroupKindFetcher
from gwinspect.gknn import GKNN, GroupKind, gknn_of
from gwinspect.policymanager import EffectivePolicy, Policy, PolicyCRD


@dataclass(frozen=True, eq=False)
class Relation:
    """
    A named, directed edge type.

    The extractor is applied to objects of the source group/kind and returns
    the identities of the objects they reference. When target is set, the
    builder also walks the relation backward: a node of the target kind pulls
    in every object of the source kind that references it. A missing target of
    an optional relation is dropped instead of being recorded as not found.
    """

    name: str
    source: GroupKind
    extractor: Callable[[Dict[str, Any]], List[GKNN]]
    target: Optional[GroupKind] = None
    optional: bool = False

    def neighbors(self, obj: Dict[str, Any]) -> List[GKNN]:
        return self.extractor(obj)

    def __repr__(self) -> str:
        return f"Relation({self.name} from {self.source})"


@dataclass(frozen=True, order=True)
class ReferenceFromTo:
    """A reference from one object to another through a relation."""

    relation: str
    source: GKNN
    target: GKNN


@dataclass(frozen=True, order=True)
class ReferenceNotFound:
    """A reference whose target does not exist."""

    relation: str
    target: GKNN


@dataclass
class NodeMetadata:
    """Data attached to a node by the policy manager and the graph extensions."""

    policy: Optional[Policy] = None
    policy_crd: Optional[PolicyCRD] = None
    direct_policies: Dict[GroupKind, List[Policy]] = field(default_factory=dict)
    effective_policies: Dict[GroupKind, EffectivePolicy] = field(default_factory=dict)
    unauthorized_refs: List[ReferenceFromTo] = field(default_factory=list)
    not_found_refs: List[ReferenceNotFound] = field(default_factory=list)

    def all_direct_policies(self) -> List[Policy]:
        """Direct policies of every kind, sorted by GKNN."""
        policies = [p for group in self.direct_policies.values() for p in group]
        return sorted(policies, key=lambda p: p.gknn)


class Node:
    """A resource in the topology graph."""

    def __init__(
        self,
        obj: Dict[str, Any],
        gknn: Optional[GKNN] = None,
        metadata: Optional[NodeMetadata] = None,
    ):
        self.object = obj
        self.gknn = gknn or gknn_of(obj)
        self.out_neighbors: Dict[Relation, Set[GKNN]] = {}
        self.in_neighbors: Dict[Relation, Set[GKNN]] = {}
        # References whose target could not be found; never stored as edges
        self.missing_refs: Dict[Relation, Set[GKNN]] = {}
        self.metadata = metadata or NodeMetadata()

    @property
    def group_kind(self) -> GroupKind:
        return self.gknn.group_kind

    def out_neighbors_named(self, relation_name: str) -> Set[GKNN]:
        """Targets of all outgoing relations with the given name."""
        result: Set[GKNN] = set()
        for relation, targets in self.out_neighbors.items():
            if relation.name == relation_name:
                result |= targets
        return result

    def in_neighbors_named(self, relation_name: str) -> Set[GKNN]:
        """Sources of all incoming relations with the given name."""
        result: Set[GKNN] = set()
        for relation, sources in self.in_neighbors.items():
            if relation.name == relation_name:
                result |= sources
        return result

    def __repr__(self) -> str:
        return f"Node({self.gknn})"


class Graph:
    """Nodes indexed by group/kind and then by (namespace, name)."""

    def __init__(self, relations: Sequence[Relation] = ()):
        self.nodes: Dict[GroupKind, Dict[Tuple[str, str], Node]] = {}
        self.sources: List[Node] = []
        self.relations: Tuple[Relation, ...] = tuple(relations)

    def get(self, gknn: GKNN) -> Optional[Node]:
        return self.nodes.get(gknn.group_kind, {}).get(gknn.namespaced_name)

    def __contains__(self, gknn: GKNN) -> bool:
        return self.get(gknn) is not None

    def __len__(self) -> int:
        return sum(len(by_name) for by_name in self.nodes.values())

    def add_node(self, node: Node) -> Node:
        """Add a node, or return the existing node with the same identity."""
        existing = self.get(node.gknn)
        if existing is not None:
            return existing
        self.nodes.setdefault(node.gknn.group_kind, {})[node.gknn.namespaced_name] = node
        return node

    def add_edge(self, source: Node, relation: Relation, target: Node) -> None:
        source.out_neighbors.setdefault(relation, set()).add(target.gknn)
        target.in_neighbors.setdefault(relation, set()).add(source.gknn)

    def iter_nodes(self) -> Iterator[Node]:
        """Iterate all nodes in GKNN order."""
        for group_kind in sorted(self.nodes):
            by_name = self.nodes[group_kind]
            for namespaced_name in sorted(by_name):
                yield by_name[namespaced_name]


def sorted_nodes(nodes: Iterable[Node]) -> List[Node]:
    """Return nodes sorted by GKNN."""
    return sorted(nodes, key=lambda node: node.gknn)


class GraphBuilder:
    """
    Builds a Graph from a set of source objects.

    Without relations the graph only holds the sources, which is enough for
    plain listing. With relations the builder expands breadth-first until no
    node is left unexpanded, following references forward and, for relations
    with a target kind, discovering the objects that reference a node. Each
    referencing kind is listed at most once per build. A referenced object
    that the fetcher reports as missing is recorded on the referencing node
    instead of becoming an edge. Any FetchError aborts the build.
    """

    def __init__(self, fetcher: GroupKindFetcher, logger: Optional[logging.Logger] = None):
        self.fetcher = fetcher
        self.logger = logger or logging.getLogger(__name__)

    def build(
        self,
        sources: Iterable[Dict[str, Any]],
        relations: Optional[Sequence[Relation]] = None,
    ) -> Graph:
        graph = Graph(relations or ())
        for obj in sources:
            node = Node(obj)
            if node.gknn in graph:
                continue
            graph.sources.append(graph.add_node(node))

        if not relations:
            return graph

        queue = deque(graph.sources)
        expanded: Set[GKNN] = set()
        not_found: Set[GKNN] = set()
        referrers: Dict[Relation, Dict[GKNN, List[Dict[str, Any]]]] = {}
        listed: Dict[GroupKind, List[Dict[str, Any]]] = {}

        while queue:
            node = queue.popleft()
            if node.gknn in expanded:
                continue
            expanded.add(node.gknn)

            for relation in relations:
                if relation.source == node.group_kind:
                    for target in relation.neighbors(node.object):
                        target_node = graph.get(target)
                        if target_node is None:
                            obj = None if target in not_found else self.fetcher.fetch(target)
                            if obj is None:
                                not_found.add(target)
                                self.logger.debug(f"{node.gknn}: {relation.name} {target} not found")
                                if not relation.optional:
                                    node.missing_refs.setdefault(relation, set()).add(target)
                                continue
                            target_node = graph.add_node(Node(obj, target))
                            queue.append(target_node)
                        graph.add_edge(node, relation, target_node)

                if relation.target == node.group_kind:
                    index = self._referrer_index(relation, referrers, listed)
                    for obj in index.get(node.gknn, []):
                        referrer = graph.get(gknn_of(obj))
                        if referrer is None:
                            referrer = graph.add_node(Node(obj))
                            queue.append(referrer)
                        graph.add_edge(referrer, relation, node)

        self.logger.debug(f"Built graph with {len(graph)} node(s) from {len(graph.sources)} source(s)")
        return graph

    def _referrer_index(
        self,
        relation: Relation,
        referrers: Dict[Relation, Dict[GKNN, List[Dict[str, Any]]]],
        listed: Dict[GroupKind, List[Dict[str, Any]]],
    ) -> Dict[GKNN, List[Dict[str, Any]]]:
        """Objects of the relation's source kind, indexed by what they reference."""
        if relation not in referrers:
            if relation.source not in listed:
                listed[relation.source] = self.fetcher.list_objects(relation.source)
                self.logger.debug(f"Listed {len(listed[relation.source])} {relation.source} object(s)")
            index: Dict[GKNN, List[Dict[str, Any]]] = {}
            for obj in listed[relation.source]:
                for target in relation.neighbors(obj):
                    index.setdefault(target, []).append(obj)
            referrers[relation] = index
        return referrers[relation]

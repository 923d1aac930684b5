"""
Visualization module for generating Graphviz DOT diagrams of a topology graph.

Output is deterministic: namespaces, nodes, relations and edge targets are all
emitted in sorted order, so the same graph always renders to the same text.
Namespace nodes are never drawn; namespace membership is shown by placing
nodes in a dashed "cluster_<namespace>" subgraph.
"""

import re
from typing import Dict, List

from gwinspect.gknn import GKNN, GroupKind
from gwinspect.relations import (
    GATEWAY_CLASS_GK,
    GATEWAY_GK,
    HTTPROUTE_GK,
    NAMESPACE_GK,
    SERVICE_GK,
)
from gwinspect.resource_utils import GATEWAY_API_GROUP
from gwinspect.topology import Graph, Node

_PLAIN_ID = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_id(value: str) -> str:
    """Return a DOT identifier, quoting it unless it is a plain identifier."""
    if _PLAIN_ID.match(value):
        return value
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _attrs(attributes: Dict[str, str]) -> str:
    return ",".join(f"{key}={_quote_value(attributes[key])}" for key in sorted(attributes))


def _quote_value(value: str) -> str:
    # Values may carry DOT escapes such as \n, so only quotes are escaped
    return '"' + value.replace('"', '\\"') + '"'


class DOTGenerator:
    """Generates Graphviz DOT format from a topology graph."""

    # Fill color for each resource kind
    KIND_COLORS: Dict[GroupKind, str] = {
        GATEWAY_CLASS_GK: "#e5e9f0",
        GATEWAY_GK: "#ebcb8b",
        HTTPROUTE_GK: "#a3be8c",
        SERVICE_GK: "#88c0d0",
    }
    DEFAULT_COLOR = "#d8dee9"

    # Edges between these kinds are drawn target-to-source with dir="back", so
    # the arrow still points from source to target while the target is ranked
    # below the source instead of above it.
    REVERSED_EDGES = frozenset({(HTTPROUTE_GK, SERVICE_GK)})

    def __init__(self, graph: Graph):
        self.graph = graph

    def generate(self) -> str:
        """Generate Graphviz DOT format string."""
        nodes = self._rendered_nodes()
        namespaces = sorted({node.gknn.namespace for node in nodes if node.gknn.namespace})

        clustered: Dict[str, List[str]] = {namespace: [] for namespace in namespaces}
        top_level: List[str] = []
        for node in nodes:
            statement = self._node_statement(node)
            if node.gknn.namespace:
                clustered[node.gknn.namespace].append(statement)
            else:
                top_level.append(statement)

        lines = ["digraph {", '\trankdir="BT";', '\tcompound="true";']
        for namespace in namespaces:
            lines.append(f"\tsubgraph {quote_id('cluster_' + namespace)} {{")
            lines.append(f'\t\tlabel="Namespace: {namespace}";')
            lines.append('\t\tstyle="dashed";')
            lines.append('\t\tcolor="black";')
            lines.extend(f"\t\t{statement}" for statement in clustered[namespace])
            lines.append("\t}")
        lines.extend(f"\t{statement}" for statement in top_level)
        lines.extend(f"\t{statement}" for statement in self._edge_statements(nodes))
        lines.append("}")
        return "\n".join(lines)

    def _rendered_nodes(self) -> List[Node]:
        """All nodes except Namespaces, in (group, kind, namespace, name) order."""
        nodes = []
        for group_kind in sorted(self.graph.nodes):
            if group_kind == NAMESPACE_GK:
                continue
            by_name = self.graph.nodes[group_kind]
            for namespaced_name in sorted(by_name):
                nodes.append(by_name[namespaced_name])
        return nodes

    def _node_statement(self, node: Node) -> str:
        group_kind = node.group_kind
        kind_label = group_kind.kind if group_kind.group == GATEWAY_API_GROUP else str(group_kind)
        attributes = {
            "color": self.KIND_COLORS.get(group_kind, self.DEFAULT_COLOR),
            "label": f"{kind_label}\\n{node.gknn.name}",
            "style": "filled",
        }
        return f"{quote_id(str(node.gknn))}[{_attrs(attributes)}]"

    def _edge_statements(self, nodes: List[Node]) -> List[str]:
        statements = []
        rendered = {node.gknn for node in nodes}
        for node in sorted(nodes, key=lambda n: n.gknn):
            for relation in sorted(node.out_neighbors, key=lambda r: r.name):
                for target in sorted(node.out_neighbors[relation]):
                    if target.group_kind == NAMESPACE_GK or target not in rendered:
                        continue
                    statements.append(self._edge_statement(node.gknn, relation.name, target))
        return statements

    def _edge_statement(self, source: GKNN, relation: str, target: GKNN) -> str:
        attributes = {"label": relation}
        start, end = source, target
        if (source.group_kind, target.group_kind) in self.REVERSED_EDGES:
            start, end = target, source
            attributes["dir"] = "back"
        return f"{quote_id(str(start))}->{quote_id(str(end))}[{_attrs(attributes)}]"


def to_dot(graph: Graph) -> str:
    """
    Render a topology graph as a Graphviz DOT diagram.

    Args:
        graph: A built (and optionally extended) topology graph

    Returns:
        Graphviz DOT format string, without a trailing newline
    """
    return DOTGenerator(graph).generate()

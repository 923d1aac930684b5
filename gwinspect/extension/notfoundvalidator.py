"""Diagnose references whose target does not exist."""

from gwinspect.extension.base import Extension
from gwinspect.topology import Graph, ReferenceNotFound


class NotFoundRefValidatorExtension(Extension):
    """Record a ReferenceNotFound on every node with a reference the builder could not resolve."""

    name = "NotFoundRefValidator"

    def execute(self, graph: Graph) -> None:
        for node in graph.iter_nodes():
            found = set(node.metadata.not_found_refs)
            for relation, targets in node.missing_refs.items():
                for target in targets:
                    found.add(ReferenceNotFound(relation=relation.name, target=target))
            node.metadata.not_found_refs = sorted(found)

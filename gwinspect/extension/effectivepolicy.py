"""
Effective policy computation.

A node's effective policies are the policies that apply to it once inherited
policies from its ancestors are merged in. Ancestry is configurable: each
InheritanceRule names a relation to follow (forward, or backward when reverse
is set) and the distance one step along it adds. For every policy kind the
candidate at the smallest distance wins:

* distance 0 holds the node's own direct policies, inheritable or not;
* any larger distance only contributes inheritable policies.

Ties at equal distance are broken by the oldest creation timestamp, then by
namespace/name.
"""

import heapq
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import yaml

from gwinspect.extension.base import Extension
from gwinspect.gknn import GKNN, GroupKind
from gwinspect.policymanager import EffectivePolicy
from gwinspect.relations import BACKEND_REF, GATEWAY_CLASS, NAMESPACE, PARENT_REF
from gwinspect.topology import Graph, Node


@dataclass(frozen=True)
class InheritanceRule:
    """Follow `relation` to find ancestors; each step adds `weight` to the distance."""

    relation: str
    reverse: bool = False
    weight: int = 2


# A namespace sits between an object and its parents: an HTTPRoute's namespace
# is closer than its Gateway, which is closer than the Gateway's namespace and
# then the GatewayClass. Backends inherit from the routes that reference them.
DEFAULT_HIERARCHY: Tuple[InheritanceRule, ...] = (
    InheritanceRule(NAMESPACE, weight=1),
    InheritanceRule(PARENT_REF),
    InheritanceRule(GATEWAY_CLASS),
    InheritanceRule(BACKEND_REF, reverse=True),
)


def load_hierarchy(path: Path) -> Tuple[InheritanceRule, ...]:
    """
    Load inheritance rules from a YAML file.

    The file holds either a list of rules or a mapping with a "rules" list;
    each rule has "relation" and optional "reverse" and "weight" keys:

        rules:
          - relation: Namespace
            weight: 1
          - relation: ParentRef
          - relation: BackendRef
            reverse: true

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a valid hierarchy
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Hierarchy file not found: {path}")
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Could not parse hierarchy file {path}: {e}") from e

    raw_rules = data.get("rules") if isinstance(data, dict) else data
    if not isinstance(raw_rules, list):
        raise ValueError(f"Hierarchy file {path} must contain a list of rules")

    rules: List[InheritanceRule] = []
    for raw in raw_rules:
        if not isinstance(raw, dict) or not isinstance(raw.get("relation"), str) or not raw["relation"]:
            raise ValueError(f"Invalid inheritance rule in {path}: {raw!r}")
        weight = raw.get("weight", 2)
        if isinstance(weight, bool) or not isinstance(weight, int) or weight <= 0:
            raise ValueError(f"Inheritance rule weight must be a positive integer: {raw!r}")
        rules.append(InheritanceRule(raw["relation"], bool(raw.get("reverse", False)), weight))
    return tuple(rules)


class EffectivePolicyExtension(Extension):
    """Compute every node's effective policies under closer-wins precedence."""

    name = "EffectivePolicy"

    def __init__(
        self,
        hierarchy: Sequence[InheritanceRule] = DEFAULT_HIERARCHY,
        logger: Optional[logging.Logger] = None,
    ):
        self.hierarchy = tuple(hierarchy)
        self.logger = logger or logging.getLogger(__name__)

    def ancestor_distances(self, graph: Graph, node: Node) -> Dict[GKNN, int]:
        """Shortest hierarchy distance from the node to each of its ancestors, itself at 0."""
        distances: Dict[GKNN, int] = {node.gknn: 0}
        heap: List[Tuple[int, GKNN]] = [(0, node.gknn)]
        while heap:
            distance, gknn = heapq.heappop(heap)
            if distance > distances.get(gknn, distance):
                continue
            current = graph.get(gknn)
            if current is None:
                continue
            for rule in self.hierarchy:
                if rule.reverse:
                    neighbors = current.in_neighbors_named(rule.relation)
                else:
                    neighbors = current.out_neighbors_named(rule.relation)
                for neighbor in neighbors:
                    candidate = distance + rule.weight
                    if candidate < distances.get(neighbor, candidate + 1):
                        distances[neighbor] = candidate
                        heapq.heappush(heap, (candidate, neighbor))
        return distances

    def execute(self, graph: Graph) -> None:
        for node in graph.iter_nodes():
            winners: Dict[GroupKind, Tuple[tuple, EffectivePolicy]] = {}
            for ancestor_gknn, distance in self.ancestor_distances(graph, node).items():
                ancestor = graph.get(ancestor_gknn)
                for policy in ancestor.metadata.all_direct_policies():
                    if distance > 0 and not policy.inheritable:
                        continue
                    rank = (distance, policy.conflict_key(), policy.gknn)
                    current = winners.get(policy.group_kind)
                    if current is None or rank < current[0]:
                        winners[policy.group_kind] = (
                            rank,
                            EffectivePolicy(policy=policy, source=ancestor_gknn, distance=distance),
                        )

            node.metadata.effective_policies = {
                group_kind: winners[group_kind][1] for group_kind in sorted(winners)
            }
            if winners:
                self.logger.debug(f"{node.gknn}: {len(winners)} effective policy kind(s)")

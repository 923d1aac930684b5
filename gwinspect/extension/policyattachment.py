"""Attach policies to the graph nodes they target directly."""

import logging
from typing import Optional

from gwinspect.extension.base import Extension
from gwinspect.policymanager import PolicyManager
from gwinspect.topology import Graph


class PolicyAttachmentExtension(Extension):
    """
    Record every policy on each node named by one of its target refs.

    Targets that are not part of the graph are ignored. The policy object is
    shared, never copied.
    """

    name = "PolicyAttachment"

    def __init__(self, policy_manager: PolicyManager, logger: Optional[logging.Logger] = None):
        self.policy_manager = policy_manager
        self.logger = logger or logging.getLogger(__name__)

    def execute(self, graph: Graph) -> None:
        for policy in self.policy_manager.get_policies():
            for target in policy.target_refs:
                node = graph.get(target)
                if node is None:
                    self.logger.debug(f"{policy.gknn}: target {target} is not in the graph")
                    continue
                attached = node.metadata.direct_policies.setdefault(policy.group_kind, [])
                if policy not in attached:
                    attached.append(policy)

"""
gwinspect - Inspect Gateway API resources, the policies attached to them and
the topology that connects them.
"""

from gwinspect.gknn import GKNN, GroupKind, gknn_of
from gwinspect.errors import ExtensionError, FetchError, GwInspectError, PolicyManagerError
from gwinspect.fetcher import GroupKindFetcher, KubectlFetcher, ManifestFetcher
from gwinspect.executor import CommandExecutor, get_executor
from gwinspect.config import Config, config
from gwinspect.policymanager import AcceptedStatus, Policy, PolicyCRD, PolicyManager
from gwinspect.topology import Graph, GraphBuilder, Node, NodeMetadata, Relation
from gwinspect.relations import ALL_RELATIONS
from gwinspect.visualize import to_dot

__all__ = [
    "GKNN",
    "GroupKind",
    "gknn_of",
    "GwInspectError",
    "FetchError",
    "PolicyManagerError",
    "ExtensionError",
    "GroupKindFetcher",
    "ManifestFetcher",
    "KubectlFetcher",
    "CommandExecutor",
    "get_executor",
    "Config",
    "config",
    "AcceptedStatus",
    "Policy",
    "PolicyCRD",
    "PolicyManager",
    "Graph",
    "GraphBuilder",
    "Node",
    "NodeMetadata",
    "Relation",
    "ALL_RELATIONS",
    "to_dot",
]

__version__ = "0.1.0"

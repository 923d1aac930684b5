#!/usr/bin/env python3
"""
Command-line interface for gwinspect.

Provides get and describe commands that list Gateway API resources and
policies, either from rendered manifests (-f) or from a live cluster through
kubectl, and can render the resource topology as a Graphviz DOT diagram.
"""

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from gwinspect.config import Config
from gwinspect.errors import ExtensionError
from gwinspect.extension import (
    DEFAULT_HIERARCHY,
    EffectivePolicyExtension,
    NotFoundRefValidatorExtension,
    PolicyAttachmentExtension,
    ReferenceGrantValidatorExtension,
    execute_all,
    load_hierarchy,
)
from gwinspect.fetcher import GroupKindFetcher, KubectlFetcher, ManifestFetcher, labels_match, parse_label_selector
from gwinspect.gknn import GroupKind
from gwinspect.output import OutputManager, Verbosity, get_output, set_output, setup_logging
from gwinspect.policymanager import PolicyManager
from gwinspect.printer import ALLOWED_OUTPUT_FORMATS, OUTPUT_FORMAT_GRAPH, new_printer
from gwinspect.relations import ALL_RELATIONS
from gwinspect.resource_utils import POLICY_CRD_TYPES, POLICY_TYPES, is_cluster_scoped, resolve_resource_type
from gwinspect.topology import Graph, GraphBuilder, Node, NodeMetadata, sorted_nodes
from gwinspect.visualize import to_dot

POLICY = "policy"
POLICY_CRD = "policycrd"


def parse_types(types_arg: str) -> List[str]:
    """
    Split a comma separated TYPE argument into canonical type keys.

    Resource types resolve to "Kind.group" strings; policy and policy CRD
    aliases collapse to "policy" and "policycrd". Duplicates are dropped,
    keeping the first occurrence.

    Raises:
        ValueError: If any type is unknown
    """
    result: List[str] = []
    for raw in types_arg.split(","):
        raw = raw.strip().lower()
        if not raw:
            continue
        if raw in POLICY_TYPES:
            key = POLICY
        elif raw in POLICY_CRD_TYPES:
            key = POLICY_CRD
        else:
            key = str(GroupKind(*resolve_resource_type(raw)))
        if key not in result:
            result.append(key)
    if not result:
        raise ValueError("No resource type given")
    return result


def _kind_for(type_key: str) -> GroupKind:
    kind, _, group = type_key.partition(".")
    return GroupKind(group, kind)


def scope_namespace(args: argparse.Namespace) -> Optional[str]:
    """Namespace to list from, or None for all namespaces."""
    if getattr(args, "all_namespaces", False):
        return None
    return args.namespace or Config.default_namespace()


def make_fetcher(args: argparse.Namespace) -> GroupKindFetcher:
    """Build a manifest fetcher when -f is given, otherwise a kubectl fetcher."""
    if args.filename:
        default_namespace = args.namespace or Config.default_namespace()
        return ManifestFetcher([Path(p) for p in args.filename], default_namespace=default_namespace)
    return KubectlFetcher(context=args.context, kubeconfig=args.kubeconfig)


def _hierarchy(args: argparse.Namespace):
    path = args.hierarchy or Config.hierarchy_file()
    if path:
        return load_hierarchy(Path(path))
    return DEFAULT_HIERARCHY


def build_graph(
    fetcher: GroupKindFetcher,
    type_keys: List[str],
    args: argparse.Namespace,
    closure: bool,
) -> Graph:
    """List the requested resources and build the topology graph from them."""
    namespace = scope_namespace(args)
    names = [args.name] if args.name else None
    sources = []
    for type_key in type_keys:
        if type_key in (POLICY, POLICY_CRD):
            continue
        group_kind = _kind_for(type_key)
        sources.extend(
            fetcher.list_objects(
                group_kind,
                namespace=None if is_cluster_scoped(group_kind.kind) else namespace,
                label_selector=args.selector,
                names=names,
            )
        )
    return GraphBuilder(fetcher).build(sources, ALL_RELATIONS if closure else None)


def run_extensions(
    graph: Graph,
    fetcher: GroupKindFetcher,
    policy_manager: PolicyManager,
    args: argparse.Namespace,
    output: OutputManager,
) -> None:
    """Run the extension pipeline, reporting a failure but keeping the partial graph."""
    try:
        execute_all(
            graph,
            PolicyAttachmentExtension(policy_manager),
            EffectivePolicyExtension(_hierarchy(args)),
            ReferenceGrantValidatorExtension(fetcher),
            NotFoundRefValidatorExtension(),
        )
    except ExtensionError as e:
        output.error(f"Error: {e}", suggestion="Results below may be incomplete")


def policy_nodes(policy_manager: PolicyManager, args: argparse.Namespace) -> List[Node]:
    """Policies matching the namespace, name and label selector, as nodes."""
    namespace = scope_namespace(args)
    requirements = parse_label_selector(args.selector)
    nodes = []
    for policy in policy_manager.get_policies():
        if namespace is not None and policy.gknn.namespace and policy.gknn.namespace != namespace:
            continue
        if args.name and policy.gknn.name != args.name:
            continue
        labels = (policy.object.get("metadata") or {}).get("labels") or {}
        if not labels_match(requirements, labels):
            continue
        nodes.append(Node(policy.object, policy.gknn, NodeMetadata(policy=policy)))
    return nodes


def policy_crd_nodes(policy_manager: PolicyManager, args: argparse.Namespace) -> List[Node]:
    """Policy CRDs matching the name and label selector, as nodes."""
    requirements = parse_label_selector(args.selector)
    nodes = []
    for crd in policy_manager.get_crds():
        if args.name and crd.name != args.name:
            continue
        labels = (crd.object.get("metadata") or {}).get("labels") or {}
        if not labels_match(requirements, labels):
            continue
        nodes.append(Node(crd.object, crd.gknn, NodeMetadata(policy_crd=crd)))
    return nodes


def inspect(args: argparse.Namespace, describe: bool) -> None:
    """Fetch, build, extend and print the requested resources."""
    output = get_output()
    type_keys = parse_types(args.types)
    output_format = getattr(args, "output", None)
    wants_policies = POLICY in type_keys or POLICY_CRD in type_keys
    closure = describe or output_format is not None

    if output_format == OUTPUT_FORMAT_GRAPH and wants_policies:
        raise ValueError("Output format graph is not supported for policies or policy CRDs")

    fetcher = make_fetcher(args)
    with output.spinner("Fetching resources..."):
        graph = build_graph(fetcher, type_keys, args, closure)

        policy_manager = None
        if closure or wants_policies:
            policy_manager = PolicyManager(fetcher)
            policy_manager.init()

    if closure:
        output.verbose(f"Running extensions on {len(graph)} node(s)")
        run_extensions(graph, fetcher, policy_manager, args, output)

    if output_format == OUTPUT_FORMAT_GRAPH:
        output.raw(to_dot(graph) + "\n")
        return

    groups: Dict[str, List[Node]] = {}
    for type_key in type_keys:
        if type_key == POLICY:
            groups[type_key] = sorted_nodes(policy_nodes(policy_manager, args))
        elif type_key == POLICY_CRD:
            groups[type_key] = sorted_nodes(policy_crd_nodes(policy_manager, args))
        else:
            group_kind = _kind_for(type_key)
            groups[type_key] = sorted_nodes(n for n in graph.sources if n.group_kind == group_kind)

    printer = new_printer(output.console, output_format, description=describe)
    printed = 0
    for type_key in type_keys:
        for node in groups[type_key]:
            printer.print_node(node)
            printed += 1
    printer.flush()

    if not printed:
        namespace = scope_namespace(args)
        where = f" in {namespace} namespace" if namespace else ""
        output.info(f"No resources found{where}.")


def _run(args: argparse.Namespace, describe: bool) -> None:
    output = get_output()
    try:
        inspect(args, describe)
    except FileNotFoundError as e:
        output.error(f"Error: {e}")
        sys.exit(1)
    except (ValueError, RuntimeError) as e:
        output.error(f"Error: {e}")
        sys.exit(1)


def cmd_get(args: argparse.Namespace) -> None:
    """List resources as a table, or render them as a DOT graph."""
    _run(args, describe=False)


def cmd_describe(args: argparse.Namespace) -> None:
    """Show details, attached policies and diagnostics for resources."""
    _run(args, describe=True)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "types",
        metavar="TYPE[,TYPE...]",
        help="Resource types, e.g. gateway, httproute, service, policy, policycrd",
    )
    parser.add_argument(
        "name",
        nargs="?",
        help="Only show the resource with this name",
    )
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument(
        "-n",
        "--namespace",
        help="Namespace to list from (defaults to GWINSPECT_NAMESPACE or 'default')",
    )
    scope.add_argument(
        "-A",
        "--all-namespaces",
        action="store_true",
        help="List from all namespaces",
    )
    parser.add_argument(
        "-l",
        "--selector",
        help="Label selector, e.g. app=web,tier!=db",
    )
    parser.add_argument(
        "-f",
        "--filename",
        action="append",
        help="Read resources from manifest files or directories instead of the cluster (repeatable)",
    )
    parser.add_argument(
        "--context",
        help="kubeconfig context (defaults to GWINSPECT_CONTEXT)",
    )
    parser.add_argument(
        "--kubeconfig",
        help="Path to the kubeconfig file (defaults to KUBECONFIG)",
    )
    parser.add_argument(
        "--hierarchy",
        help="YAML file with policy inheritance rules (defaults to GWINSPECT_HIERARCHY_FILE)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "--quiet",
        action="store_true",
        help="Only show errors and final results",
    )
    verbosity.add_argument(
        "--verbose",
        action="store_true",
        help="Show detailed output including fetches and extension runs",
    )


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for gwinspect CLI."""
    parser = argparse.ArgumentParser(
        description="gwinspect - Inspect Gateway API resources, policies and their topology",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gwinspect get gateways -A
  gwinspect get httproute,service -n shop -o wide
  gwinspect get gateway demo-gateway -f manifests/ -o graph | dot -Tsvg > topology.svg
  gwinspect get policies -A
  gwinspect describe httproute checkout -n shop
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    # Get subcommand
    get_parser = subparsers.add_parser(
        "get",
        help="List resources, policies or policy CRDs",
    )
    _add_common_arguments(get_parser)
    get_parser.add_argument(
        "-o",
        "--output",
        choices=ALLOWED_OUTPUT_FORMATS,
        help="Output format: wide adds policy columns, graph prints a Graphviz DOT diagram",
    )
    get_parser.set_defaults(func=cmd_get)

    # Describe subcommand
    describe_parser = subparsers.add_parser(
        "describe",
        help="Show details of resources including effective policies and analysis",
    )
    _add_common_arguments(describe_parser)
    describe_parser.set_defaults(func=cmd_describe)

    args = parser.parse_args(argv)

    if args.quiet:
        verbosity = Verbosity.QUIET
    elif args.verbose:
        verbosity = Verbosity.VERBOSE
    else:
        verbosity = Verbosity.NORMAL

    setup_logging(verbosity)
    set_output(OutputManager(verbosity=verbosity))

    args.func(args)


if __name__ == "__main__":
    main()

"""
Table and description printers for topology nodes.

TablePrinter prints one borderless table per run of nodes of the same type,
kubectl style. DescriptionPrinter prints a "Key: value" block per node with
structured values rendered as YAML, including the policies and diagnostics
the graph extensions attached.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import yaml
from rich.console import Console
from rich.measure import Measurement
from rich.table import Table
from rich.text import Text

from gwinspect.gknn import GKNN
from gwinspect.relations import (
    BACKEND_REF,
    GATEWAY_CLASS_GK,
    GATEWAY_GK,
    HTTPROUTE_GK,
    NAMESPACE_GK,
    PARENT_REF,
    SERVICE_GK,
)
from gwinspect.resource_utils import parse_timestamp
from gwinspect.topology import Node

OUTPUT_FORMAT_WIDE = "wide"
OUTPUT_FORMAT_GRAPH = "graph"
ALLOWED_OUTPUT_FORMATS = (OUTPUT_FORMAT_WIDE, OUTPUT_FORMAT_GRAPH)

_UNBOUNDED = 10_000


def human_duration(delta: timedelta) -> str:
    """Format a duration the way kubectl prints resource ages."""
    seconds = int(delta.total_seconds())
    if seconds < -1:
        return "<invalid>"
    if seconds < 0:
        return "0s"
    if seconds < 60 * 2:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 10:
        s = seconds % 60
        return f"{minutes}m" if s == 0 else f"{minutes}m{s}s"
    if minutes < 60 * 3:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 8:
        m = minutes % 60
        return f"{hours}h" if m == 0 else f"{hours}h{m}m"
    if hours < 48:
        return f"{hours}h"
    if hours < 24 * 8:
        h = hours % 24
        return f"{hours // 24}d" if h == 0 else f"{hours // 24}d{h}h"
    if hours < 24 * 365 * 2:
        return f"{hours // 24}d"
    if hours < 24 * 365 * 8:
        d = (hours // 24) % 365
        return f"{hours // 24 // 365}y" if d == 0 else f"{hours // 24 // 365}y{d}d"
    return f"{hours // 24 // 365}y"


def generate_policy_targets(target_refs: Sequence[GKNN]) -> str:
    """Show at most two targets, then an ellipsis."""
    if not target_refs:
        return ""
    shown = ", ".join(str(ref) for ref in target_refs[:2])
    return shown + ", ..." if len(target_refs) > 2 else shown


def _condition_status(obj: Dict[str, Any], condition_type: str) -> str:
    for condition in (obj.get("status") or {}).get("conditions") or []:
        if isinstance(condition, dict) and condition.get("type") == condition_type:
            return str(condition.get("status", "Unknown"))
    return "Unknown"


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.get("metadata") or {}


def _port_sort_key(port: str) -> Tuple[int, int, str]:
    if port.isdigit():
        return (0, int(port), port)
    return (1, 0, port)


class TablePrinter:
    """Prints nodes as tables, starting a new table whenever the node type changes."""

    def __init__(
        self,
        console: Console,
        wide: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.console = console
        self.wide = wide
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._table_type: Optional[str] = None
        self._columns: List[str] = []
        self._rows: List[List[str]] = []
        self._tables_printed = 0

    def print_node(self, node: Node) -> None:
        table_type, columns, row = self._row_for(node)
        if table_type != self._table_type:
            self.flush()
            self._table_type = table_type
            self._columns = columns
        self._rows.append(row)

    def flush(self) -> None:
        """Print the pending table, if any."""
        if not self._rows:
            return
        if self._tables_printed:
            self.console.print()
        table = Table(
            box=None,
            show_edge=False,
            pad_edge=False,
            padding=(0, 3, 0, 0),
            header_style="bold",
        )
        for column in self._columns:
            table.add_column(column, no_wrap=True)
        for row in self._rows:
            table.add_row(*(Text(cell) for cell in row))
        # Rows are never truncated; a table wider than the console renders at its own width
        needed = Measurement.get(self.console, self.console.options.update(max_width=_UNBOUNDED), table).maximum
        if needed <= self.console.width:
            self.console.print(table, crop=False)
        else:
            Console(
                file=self.console.file,
                width=needed,
                color_system=self.console.color_system,
                force_terminal=self.console.is_terminal,
            ).print(table, crop=False)
        self._tables_printed += 1
        self._rows = []
        self._table_type = None

    def age(self, obj: Dict[str, Any]) -> str:
        created = parse_timestamp(_metadata(obj).get("creationTimestamp"))
        if created is None:
            return "<unknown>"
        return human_duration(self.clock() - created)

    def _row_for(self, node: Node) -> Tuple[str, List[str], List[str]]:
        if node.metadata.policy is not None:
            return self._policy_row(node)
        if node.metadata.policy_crd is not None:
            return self._policy_crd_row(node)

        obj = node.object
        gknn = node.gknn
        policies = str(len(node.metadata.all_direct_policies()))
        group_kind = node.group_kind

        if group_kind == GATEWAY_CLASS_GK:
            columns = ["NAME", "CONTROLLER", "ACCEPTED", "AGE"]
            row = [
                gknn.name,
                (obj.get("spec") or {}).get("controllerName", ""),
                _condition_status(obj, "Accepted"),
                self.age(obj),
            ]
            if self.wide:
                columns.append("POLICIES")
                row.append(policies)
        elif group_kind == GATEWAY_GK:
            status = obj.get("status") or {}
            addresses = [str(a.get("value")) for a in status.get("addresses") or [] if isinstance(a, dict)]
            listeners = (obj.get("spec") or {}).get("listeners") or []
            ports = sorted(
                {str(l["port"]) for l in listeners if isinstance(l, dict) and "port" in l},
                key=_port_sort_key,
            )
            columns = ["NAMESPACE", "NAME", "CLASS", "ADDRESSES", "PORTS", "PROGRAMMED", "AGE"]
            row = [
                gknn.namespace,
                gknn.name,
                (obj.get("spec") or {}).get("gatewayClassName", ""),
                ",".join(addresses),
                ",".join(ports),
                _condition_status(obj, "Programmed"),
                self.age(obj),
            ]
            if self.wide:
                columns += ["POLICIES", "HTTPROUTES"]
                row += [policies, str(len(node.in_neighbors_named(PARENT_REF)))]
        elif group_kind == HTTPROUTE_GK:
            spec = obj.get("spec") or {}
            hostnames = [str(h) for h in spec.get("hostnames") or []]
            shown = ",".join(hostnames[:2])
            if len(hostnames) > 2:
                shown += f" + {len(hostnames) - 2} more"
            columns = ["NAMESPACE", "NAME", "HOSTNAMES", "PARENT REFS", "AGE"]
            row = [gknn.namespace, gknn.name, shown, str(len(spec.get("parentRefs") or [])), self.age(obj)]
            if self.wide:
                columns.append("POLICIES")
                row.append(policies)
        elif group_kind == SERVICE_GK:
            columns = ["NAMESPACE", "NAME", "TYPE", "AGE"]
            row = [gknn.namespace, gknn.name, (obj.get("spec") or {}).get("type", "ClusterIP"), self.age(obj)]
            if self.wide:
                columns += ["POLICIES", "REFERRED BY ROUTES"]
                row += [policies, str(len(node.in_neighbors_named(BACKEND_REF)))]
        elif group_kind == NAMESPACE_GK:
            columns = ["NAME", "STATUS", "AGE"]
            row = [gknn.name, (obj.get("status") or {}).get("phase", "Active"), self.age(obj)]
            if self.wide:
                columns.append("POLICIES")
                row.append(policies)
        else:
            columns = ["NAMESPACE", "NAME", "KIND", "AGE"]
            row = [gknn.namespace, gknn.name, str(group_kind), self.age(obj)]

        return str(group_kind), columns, row

    def _policy_row(self, node: Node) -> Tuple[str, List[str], List[str]]:
        policy = node.metadata.policy
        columns = ["NAMESPACE", "NAME", "KIND", "TARGET(S)", "POLICY TYPE", "ACCEPTED", "AGE"]
        row = [
            policy.gknn.namespace,
            policy.gknn.name,
            str(policy.group_kind),
            generate_policy_targets(policy.target_refs),
            "Inherited" if policy.inheritable else "Direct",
            policy.accepted_status().value,
            self.age(policy.object),
        ]
        return "Policy", columns, row

    def _policy_crd_row(self, node: Node) -> Tuple[str, List[str], List[str]]:
        crd = node.metadata.policy_crd
        columns = ["NAME", "POLICY TYPE", "SCOPE", "AGE"]
        row = [crd.name, "Inherited" if crd.inheritable else "Direct", crd.scope, self.age(crd.object)]
        return "PolicyCRD", columns, row


class DescriptionPrinter:
    """Prints a detailed description of each node, separated by blank lines."""

    def __init__(self, console: Console):
        self.console = console
        self._printed = 0

    def print_node(self, node: Node) -> None:
        if node.metadata.policy is not None:
            pairs = self._policy_pairs(node)
        elif node.metadata.policy_crd is not None:
            pairs = self._policy_crd_pairs(node)
        else:
            pairs = self._resource_pairs(node)

        if self._printed:
            self.console.print("\n", end="")
        self.console.print(describe(pairs), markup=False, emoji=False, highlight=False, soft_wrap=True, end="")
        self._printed += 1

    def flush(self) -> None:
        """Descriptions are printed immediately; nothing is buffered."""

    def _resource_pairs(self, node: Node) -> List[Tuple[str, Any]]:
        obj = node.object
        metadata = dict(_metadata(obj))
        for key in ("name", "namespace", "labels", "annotations", "managedFields"):
            metadata.pop(key, None)

        pairs: List[Tuple[str, Any]] = [
            ("Name", node.gknn.name),
            ("Namespace", node.gknn.namespace),
            ("Labels", _metadata(obj).get("labels")),
            ("Annotations", _metadata(obj).get("annotations")),
            ("APIVersion", obj.get("apiVersion", "")),
            ("Kind", obj.get("kind", "")),
            ("Metadata", metadata),
            ("Spec", obj.get("spec")),
            ("Status", obj.get("status")),
        ]

        direct = [{"Kind": str(p.group_kind), "Name": _namespaced(p.gknn)} for p in node.metadata.all_direct_policies()]
        pairs.append(("DirectlyAttachedPolicies", direct or None))

        effective = {}
        for group_kind, effective_policy in node.metadata.effective_policies.items():
            entry: Dict[str, Any] = {"Name": _namespaced(effective_policy.policy.gknn)}
            if effective_policy.inherited:
                entry["InheritedFrom"] = str(effective_policy.source)
            entry["Spec"] = effective_policy.policy.spec()
            effective[str(group_kind)] = entry
        pairs.append(("EffectivePolicies", effective or None))

        analysis = [
            f"{ref.relation} to {ref.target} is not permitted by any ReferenceGrant"
            for ref in node.metadata.unauthorized_refs
        ] + [f"{ref.relation} {ref.target} not found" for ref in node.metadata.not_found_refs]
        pairs.append(("Analysis", analysis or None))
        return pairs

    def _policy_pairs(self, node: Node) -> List[Tuple[str, Any]]:
        policy = node.metadata.policy
        return [
            ("Name", policy.gknn.name),
            ("Namespace", policy.gknn.namespace),
            ("Group", policy.gknn.group),
            ("Kind", policy.gknn.kind),
            ("Inherited", str(policy.inheritable).lower()),
            ("Spec", policy.spec()),
        ]

    def _policy_crd_pairs(self, node: Node) -> List[Tuple[str, Any]]:
        crd = node.metadata.policy_crd
        obj = crd.object
        metadata = dict(_metadata(obj))
        for key in ("name", "namespace", "labels", "annotations", "managedFields"):
            metadata.pop(key, None)
        return [
            ("Name", crd.name),
            ("APIVersion", obj.get("apiVersion", "")),
            ("Kind", obj.get("kind", "")),
            ("Labels", _metadata(obj).get("labels")),
            ("Annotations", _metadata(obj).get("annotations")),
            ("Metadata", metadata),
            ("Spec", obj.get("spec")),
            ("Status", obj.get("status")),
        ]


def _namespaced(gknn: GKNN) -> str:
    return f"{gknn.namespace}/{gknn.name}" if gknn.namespace else gknn.name


def describe(pairs: Sequence[Tuple[str, Any]]) -> str:
    """Render key/value pairs; mappings and lists become indented YAML."""
    lines = []
    for key, value in pairs:
        if value is None or value == "" or value == {} or value == []:
            lines.append(f"{key}: <none>")
        elif isinstance(value, (dict, list)):
            rendered = yaml.safe_dump(value, default_flow_style=False, sort_keys=False).rstrip("\n")
            lines.append(f"{key}:")
            lines.extend(f"  {line}" for line in rendered.splitlines())
        else:
            lines.append(f"{key}: {value}")
    return "\n".join(lines) + "\n"


def new_printer(console: Console, output_format: Optional[str] = None, description: bool = False):
    """Return the printer matching the requested output."""
    if description:
        return DescriptionPrinter(console)
    return TablePrinter(console, wide=output_format == OUTPUT_FORMAT_WIDE)

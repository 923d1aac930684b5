"""Pytest configuration and shared fixtures."""
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Sequence

import pytest
import yaml

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from gwinspect.fetcher import GroupKindFetcher, labels_match, parse_label_selector  # noqa: E402
from gwinspect.gknn import GKNN, GroupKind, gknn_of  # noqa: E402
from gwinspect.output import OutputManager, set_output  # noqa: E402

# DOT rendering of the gateway, class, route and service scenario
EXPECTED_SCENARIO_DOT = "\n".join(
    [
        "digraph {",
        '\trankdir="BT";',
        '\tcompound="true";',
        "\tsubgraph cluster_default {",
        '\t\tlabel="Namespace: default";',
        '\t\tstyle="dashed";',
        '\t\tcolor="black";',
        '\t\t"Service/default/demo-svc"[color="#88c0d0",label="Service\\ndemo-svc",style="filled"]',
        '\t\t"Gateway.gateway.networking.k8s.io/default/demo-gateway"'
        '[color="#ebcb8b",label="Gateway\\ndemo-gateway",style="filled"]',
        '\t\t"HTTPRoute.gateway.networking.k8s.io/default/demo-httproute"'
        '[color="#a3be8c",label="HTTPRoute\\ndemo-httproute",style="filled"]',
        "\t}",
        '\t"GatewayClass.gateway.networking.k8s.io/demo-gateway-class"'
        '[color="#e5e9f0",label="GatewayClass\\ndemo-gateway-class",style="filled"]',
        '\t"Gateway.gateway.networking.k8s.io/default/demo-gateway"'
        '->"GatewayClass.gateway.networking.k8s.io/demo-gateway-class"[label="GatewayClass"]',
        '\t"Service/default/demo-svc"'
        '->"HTTPRoute.gateway.networking.k8s.io/default/demo-httproute"[dir="back",label="BackendRef"]',
        '\t"HTTPRoute.gateway.networking.k8s.io/default/demo-httproute"'
        '->"Gateway.gateway.networking.k8s.io/default/demo-gateway"[label="ParentRef"]',
        "}",
    ]
)


class InMemoryFetcher(GroupKindFetcher):
    """Fetcher over a fixed list of objects that records every fetch."""

    def __init__(self, objects: Sequence[Dict[str, Any]] = ()):
        self.objects = {gknn_of(obj): obj for obj in objects}
        self.fetched: List[GKNN] = []

    def fetch(self, gknn: GKNN) -> Optional[Dict[str, Any]]:
        self.fetched.append(gknn)
        return self.objects.get(gknn)

    def list_objects(
        self,
        group_kind: GroupKind,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        names: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        requirements = parse_label_selector(label_selector)
        return [
            obj
            for gknn, obj in sorted(self.objects.items())
            if gknn.group_kind == group_kind
            and (namespace is None or not gknn.namespace or gknn.namespace == namespace)
            and (not names or gknn.name in names)
            and labels_match(requirements, (obj.get("metadata") or {}).get("labels") or {})
        ]


def gateway_class(name="demo-gateway-class", **metadata):
    return {
        "apiVersion": "gateway.networking.k8s.io/v1",
        "kind": "GatewayClass",
        "metadata": {"name": name, **metadata},
        "spec": {"controllerName": "example.net/gateway-controller"},
    }


def gateway(name="demo-gateway", namespace="default", class_name="demo-gateway-class", **metadata):
    return {
        "apiVersion": "gateway.networking.k8s.io/v1",
        "kind": "Gateway",
        "metadata": {"name": name, "namespace": namespace, **metadata},
        "spec": {
            "gatewayClassName": class_name,
            "listeners": [{"name": "http", "protocol": "HTTP", "port": 80}],
        },
    }


def httproute(name="demo-httproute", namespace="default", parents=("demo-gateway",), backends=("demo-svc",)):
    return {
        "apiVersion": "gateway.networking.k8s.io/v1",
        "kind": "HTTPRoute",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "parentRefs": [{"name": parent} for parent in parents],
            "rules": [{"backendRefs": [backend if isinstance(backend, dict) else {"name": backend, "port": 80} for backend in backends]}],
        },
    }


def service(name="demo-svc", namespace="default"):
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"ports": [{"port": 80}]},
    }


def namespace(name):
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}, "status": {"phase": "Active"}}


def policy_crd(kind="HealthCheckPolicy", group="foo.com", scope="Namespaced", policy_type="direct"):
    plural = kind.lower() + "s"
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {
            "name": f"{plural}.{group}",
            "labels": {"gateway.networking.k8s.io/policy": policy_type},
        },
        "spec": {
            "group": group,
            "scope": scope,
            "names": {"kind": kind, "plural": plural},
            "versions": [{"name": "v1", "served": True, "storage": True}],
        },
    }


def policy(
    name,
    target,
    kind="HealthCheckPolicy",
    group="foo.com",
    namespace="default",
    spec=None,
    created=None,
    ancestors=None,
):
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    if created:
        metadata["creationTimestamp"] = created
    obj = {
        "apiVersion": f"{group}/v1",
        "kind": kind,
        "metadata": metadata,
        "spec": dict(spec or {}, targetRef=target),
    }
    if ancestors is not None:
        obj["status"] = {"ancestors": ancestors}
    return obj


@pytest.fixture
def scenario_objects():
    """Gateway, GatewayClass, HTTPRoute and Service wired together in namespace default."""
    return [gateway(), gateway_class(), httproute(), service()]


@pytest.fixture
def scenario_fetcher(scenario_objects):
    return InMemoryFetcher(scenario_objects)


@pytest.fixture
def manifest_dir(tmp_path, scenario_objects):
    """Directory holding the scenario as a multi-document YAML file."""
    manifests = tmp_path / "manifests"
    manifests.mkdir()
    with open(manifests / "scenario.yaml", "w") as f:
        yaml.safe_dump_all(scenario_objects, f)
    return manifests


@pytest.fixture(autouse=True)
def reset_logging_and_output():
    """Undo the logger and output manager changes made by cli.main()."""
    yield
    gwinspect_logger = logging.getLogger("gwinspect")
    gwinspect_logger.handlers = []
    gwinspect_logger.setLevel(logging.NOTSET)
    gwinspect_logger.propagate = True
    set_output(OutputManager())

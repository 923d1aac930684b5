"""Unit tests for the topology graph and its builder."""

from unittest.mock import Mock

import pytest

from conftest import InMemoryFetcher, gateway, gateway_class, httproute, namespace, service
from gwinspect.errors import FetchError
from gwinspect.gknn import GKNN
from gwinspect.relations import (
    ALL_RELATIONS,
    BACKEND_REF,
    GATEWAY_CLASS,
    NAMESPACE,
    PARENT_REF,
    backend_refs_of_httproute,
    parent_refs_of_httproute,
)
from gwinspect.topology import Graph, GraphBuilder, Node, sorted_nodes

GW_GROUP = "gateway.networking.k8s.io"
GATEWAY = GKNN(GW_GROUP, "Gateway", "default", "demo-gateway")
GATEWAY_CLASS_ID = GKNN(GW_GROUP, "GatewayClass", "", "demo-gateway-class")
ROUTE = GKNN(GW_GROUP, "HTTPRoute", "default", "demo-httproute")
SERVICE = GKNN("", "Service", "default", "demo-svc")
DEFAULT_NS = GKNN("", "Namespace", "", "default")


class TestRelations:
    """Test cases for the relation extractors."""

    def test_parent_refs_default_to_gateway_in_route_namespace(self):
        """Test that a bare parentRef points at a Gateway in the route's namespace."""
        assert parent_refs_of_httproute(httproute()) == [GATEWAY]

    def test_parent_refs_explicit_namespace(self):
        """Test a parentRef into another namespace."""
        route = httproute(parents=())
        route["spec"]["parentRefs"] = [{"name": "shared", "namespace": "infra"}]
        assert parent_refs_of_httproute(route) == [GKNN(GW_GROUP, "Gateway", "infra", "shared")]

    def test_backend_refs_default_to_service(self):
        """Test that backendRefs without a kind are core Services and deduplicated."""
        route = httproute(backends=("a", "a", {"name": "b", "namespace": "other"}))
        assert backend_refs_of_httproute(route) == [
            GKNN("", "Service", "default", "a"),
            GKNN("", "Service", "other", "b"),
        ]

    def test_extractors_tolerate_missing_fields(self):
        """Test that objects without a spec produce no references."""
        route = {"kind": "HTTPRoute", "metadata": {"name": "r", "namespace": "default"}}
        assert parent_refs_of_httproute(route) == []
        assert backend_refs_of_httproute(route) == []


class TestGraph:
    """Test cases for the Graph container."""

    def test_add_node_is_idempotent(self):
        """Test that adding the same identity twice keeps the first node."""
        graph = Graph()
        first = graph.add_node(Node(service()))
        second = graph.add_node(Node(service()))
        assert first is second
        assert len(graph) == 1

    def test_add_edge_updates_both_ends(self):
        """Test that an edge is visible from the source and the target."""
        graph = Graph(ALL_RELATIONS)
        relation = ALL_RELATIONS[0]
        gw = graph.add_node(Node(gateway()))
        gc = graph.add_node(Node(gateway_class()))
        graph.add_edge(gw, relation, gc)
        assert gw.out_neighbors_named(GATEWAY_CLASS) == {GATEWAY_CLASS_ID}
        assert gc.in_neighbors_named(GATEWAY_CLASS) == {GATEWAY}

    def test_iter_nodes_sorted(self):
        """Test that nodes iterate in GKNN order regardless of insertion order."""
        graph = Graph()
        for obj in [httproute(), service(), gateway_class(), gateway()]:
            graph.add_node(Node(obj))
        assert [n.gknn for n in graph.iter_nodes()] == [SERVICE, GATEWAY, GATEWAY_CLASS_ID, ROUTE]

    def test_sorted_nodes(self):
        """Test stable GKNN sort helper."""
        nodes = [Node(httproute()), Node(service())]
        assert [n.gknn for n in sorted_nodes(nodes)] == [SERVICE, ROUTE]


class TestGraphBuilder:
    """Test cases for GraphBuilder."""

    def test_identity_only_without_relations(self, scenario_fetcher):
        """Test that without relations only the sources become nodes."""
        graph = GraphBuilder(scenario_fetcher).build([gateway()])
        assert len(graph) == 1
        assert graph.get(GATEWAY).out_neighbors == {}
        assert scenario_fetcher.fetched == []

    def test_closure_from_single_route(self, scenario_fetcher):
        """Test that the closure pulls in parents, backends and the class."""
        graph = GraphBuilder(scenario_fetcher).build([httproute()], ALL_RELATIONS)

        assert {n.gknn for n in graph.iter_nodes()} == {GATEWAY, GATEWAY_CLASS_ID, ROUTE, SERVICE}
        assert [n.gknn for n in graph.sources] == [ROUTE]
        route = graph.get(ROUTE)
        assert route.out_neighbors_named(PARENT_REF) == {GATEWAY}
        assert route.out_neighbors_named(BACKEND_REF) == {SERVICE}
        assert graph.get(GATEWAY).out_neighbors_named(GATEWAY_CLASS) == {GATEWAY_CLASS_ID}
        assert graph.get(SERVICE).in_neighbors_named(BACKEND_REF) == {ROUTE}

    def test_closure_independent_of_source_order(self, scenario_objects):
        """Test that the same objects in any order build the same edges."""
        forward = GraphBuilder(InMemoryFetcher(scenario_objects)).build(scenario_objects, ALL_RELATIONS)
        backward = GraphBuilder(InMemoryFetcher(scenario_objects)).build(
            list(reversed(scenario_objects)), ALL_RELATIONS
        )

        def edges(graph):
            return {
                (n.gknn, relation.name, target)
                for n in graph.iter_nodes()
                for relation, targets in n.out_neighbors.items()
                for target in targets
            }

        assert edges(forward) == edges(backward)
        assert len(forward) == len(backward) == 4

    def test_missing_references_are_not_edges(self, scenario_fetcher):
        """Test that not-found targets are recorded apart from edges."""
        graph = GraphBuilder(scenario_fetcher).build([httproute(backends=("ghost",))], ALL_RELATIONS)
        route = graph.get(ROUTE)

        ghost = GKNN("", "Service", "default", "ghost")
        assert ghost not in graph
        assert route.out_neighbors_named(BACKEND_REF) == set()
        missing = {relation.name: targets for relation, targets in route.missing_refs.items()}
        assert missing == {BACKEND_REF: {ghost}}

    def test_not_found_is_fetched_once(self, scenario_fetcher):
        """Test that a missing target shared by several nodes is fetched only once."""
        GraphBuilder(scenario_fetcher).build([gateway(), httproute(), service()], ALL_RELATIONS)
        assert scenario_fetcher.fetched.count(DEFAULT_NS) == 1

    def test_namespace_node_resolves(self, scenario_objects):
        """Test that an existing Namespace becomes a node with membership edges."""
        fetcher = InMemoryFetcher(scenario_objects + [namespace("default")])
        graph = GraphBuilder(fetcher).build([httproute()], ALL_RELATIONS)

        ns = graph.get(DEFAULT_NS)
        assert ns is not None
        assert ns.in_neighbors_named(NAMESPACE) == {ROUTE, GATEWAY, SERVICE}

    def test_duplicate_sources(self, scenario_fetcher):
        """Test that a source listed twice is one node and one source."""
        graph = GraphBuilder(scenario_fetcher).build([service(), service()])
        assert len(graph.sources) == 1

    def test_fetch_error_aborts_build(self):
        """Test that a fetch failure other than not-found propagates."""
        fetcher = Mock()
        fetcher.fetch.side_effect = FetchError("connection refused")
        with pytest.raises(FetchError, match="connection refused"):
            GraphBuilder(fetcher).build([gateway()], ALL_RELATIONS)

    def test_missing_namespace_is_not_recorded(self, scenario_fetcher):
        """Test that an absent Namespace object leaves no missing reference."""
        graph = GraphBuilder(scenario_fetcher).build([service()], ALL_RELATIONS)
        assert DEFAULT_NS not in graph
        assert graph.get(SERVICE).missing_refs == {}


class TestReferrerDiscovery:
    """Test cases for discovering the objects that reference a node."""

    def test_gateway_pulls_in_its_routes(self, scenario_fetcher):
        """Test that a gateway source brings in the routes attached to it and their backends."""
        graph = GraphBuilder(scenario_fetcher).build([gateway()], ALL_RELATIONS)

        assert {n.gknn for n in graph.iter_nodes()} == {GATEWAY, GATEWAY_CLASS_ID, ROUTE, SERVICE}
        assert [n.gknn for n in graph.sources] == [GATEWAY]
        assert graph.get(GATEWAY).in_neighbors_named(PARENT_REF) == {ROUTE}
        assert graph.get(ROUTE).out_neighbors_named(BACKEND_REF) == {SERVICE}

    def test_service_pulls_in_referencing_routes(self, scenario_fetcher):
        """Test that a backend source brings in the routes that reference it."""
        graph = GraphBuilder(scenario_fetcher).build([service()], ALL_RELATIONS)
        assert graph.get(SERVICE).in_neighbors_named(BACKEND_REF) == {ROUTE}
        assert GATEWAY in graph

    def test_unrelated_objects_stay_out(self, scenario_objects):
        """Test that routes attached to another gateway are not discovered."""
        other = httproute("other-route", parents=("other-gateway",), backends=("other-svc",))
        fetcher = InMemoryFetcher(scenario_objects + [other, service("other-svc")])
        graph = GraphBuilder(fetcher).build([gateway()], ALL_RELATIONS)

        assert GKNN(GW_GROUP, "HTTPRoute", "default", "other-route") not in graph
        assert GKNN("", "Service", "default", "other-svc") not in graph

    def test_cross_namespace_referrer(self, scenario_objects):
        """Test that a route in another namespace attaching to the gateway is found."""
        remote = httproute("remote", namespace="apps", backends=())
        remote["spec"]["parentRefs"] = [{"name": "demo-gateway", "namespace": "default"}]
        fetcher = InMemoryFetcher(scenario_objects + [remote])
        graph = GraphBuilder(fetcher).build([gateway()], ALL_RELATIONS)
        remote_id = GKNN(GW_GROUP, "HTTPRoute", "apps", "remote")
        assert graph.get(GATEWAY).in_neighbors_named(PARENT_REF) == {ROUTE, remote_id}

    def test_each_kind_listed_once(self, scenario_objects):
        """Test that referencing kinds are listed at most once per build."""
        fetcher = Mock(wraps=InMemoryFetcher(scenario_objects))
        GraphBuilder(fetcher).build([gateway(), service(), gateway_class()], ALL_RELATIONS)
        listed = [c.args[0] for c in fetcher.list_objects.call_args_list]
        assert len(listed) == len(set(listed))
        assert {str(gk) for gk in listed} == {f"Gateway.{GW_GROUP}", f"HTTPRoute.{GW_GROUP}"}

    def test_identity_mode_lists_nothing(self, scenario_objects):
        """Test that without relations no listing happens."""
        fetcher = Mock(wraps=InMemoryFetcher(scenario_objects))
        GraphBuilder(fetcher).build([gateway()])
        fetcher.list_objects.assert_not_called()

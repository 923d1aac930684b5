"""
Policy discovery and indexing.

Policy CRDs are recognized by the gateway.networking.k8s.io/policy label. The
label value classifies every instance of that CRD as inheritable ("inherited")
or direct-only. The manager lists every instance of every discovered policy
kind, parses its target references and ancestor status, and indexes policies
by GKNN for later attachment to the topology graph.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from gwinspect.config import Config
from gwinspect.errors import FetchError, PolicyManagerError
from gwinspect.fetcher import GroupKindFetcher
from gwinspect.gknn import GKNN, GroupKind
from gwinspect.resource_utils import (
    APIEXTENSIONS_GROUP,
    GATEWAY_API_GROUP,
    is_cluster_scoped,
    parse_timestamp,
)

CRD_GROUP_KIND = GroupKind(APIEXTENSIONS_GROUP, "CustomResourceDefinition")

_DISTANT_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


class AcceptedStatus(str, Enum):
    """Aggregated Accepted condition across all ancestors of a policy."""

    UNKNOWN = "Unknown"
    TRUE = "True"
    PARTIAL = "Partial"
    FALSE = "False"


@dataclass(frozen=True)
class Condition:
    type: str
    status: str


@dataclass(frozen=True)
class AncestorStatus:
    """Status reported by one ancestor (usually a Gateway) that processed the policy."""

    ancestor_ref: Optional[GKNN]
    conditions: Tuple[Condition, ...] = ()

    def is_accepted(self) -> bool:
        return any(c.type == "Accepted" and c.status == "True" for c in self.conditions)


@dataclass(frozen=True)
class PolicyCRD:
    """A CustomResourceDefinition that defines a policy kind."""

    name: str
    group: str
    kind: str
    scope: str
    inheritable: bool
    object: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def group_kind(self) -> GroupKind:
        return GroupKind(self.group, self.kind)

    @property
    def gknn(self) -> GKNN:
        return GKNN(APIEXTENSIONS_GROUP, "CustomResourceDefinition", "", self.name)


@dataclass(frozen=True)
class Policy:
    """A policy instance together with the data parsed out of it."""

    gknn: GKNN
    target_refs: Tuple[GKNN, ...]
    inheritable: bool
    ancestors: Tuple[AncestorStatus, ...] = ()
    creation_timestamp: Optional[datetime] = field(default=None, compare=False)
    object: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def group_kind(self) -> GroupKind:
        return self.gknn.group_kind

    def spec(self) -> Dict[str, Any]:
        """Return the policy spec without its target references."""
        spec = copy.deepcopy(self.object.get("spec") or {})
        spec.pop("targetRef", None)
        spec.pop("targetRefs", None)
        return spec

    def accepted_status(self) -> AcceptedStatus:
        """
        Aggregate the Accepted condition over all ancestors.

        No ancestors means Unknown; every ancestor accepted means True; some
        but not all means Partial; none means False.
        """
        total = len(self.ancestors)
        if total == 0:
            return AcceptedStatus.UNKNOWN
        accepted = sum(1 for ancestor in self.ancestors if ancestor.is_accepted())
        if accepted == total:
            return AcceptedStatus.TRUE
        if accepted > 0:
            return AcceptedStatus.PARTIAL
        return AcceptedStatus.FALSE

    def conflict_key(self) -> Tuple[datetime, str, str]:
        """Sort key among competing policies of one kind: oldest first, then namespace/name."""
        return (
            self.creation_timestamp or _DISTANT_FUTURE,
            self.gknn.namespace,
            self.gknn.name,
        )


@dataclass(frozen=True)
class EffectivePolicy:
    """The policy that applies to a node for one policy kind."""

    policy: Policy
    source: GKNN
    distance: int

    @property
    def inherited(self) -> bool:
        return self.distance > 0


class MalformedPolicyError(ValueError):
    """A policy instance or CRD could not be parsed."""


class PolicyManager:
    """
    Index of policy CRDs and policy instances.

    init() is all-or-nothing: either every CRD and instance list was read and
    the manager is populated, or PolicyManagerError is raised and the manager
    stays empty. Individual malformed CRDs or policies are skipped with a
    warning.
    """

    def __init__(
        self,
        fetcher: GroupKindFetcher,
        logger: Optional[logging.Logger] = None,
        policy_label: Optional[str] = None,
    ):
        self.fetcher = fetcher
        self.logger = logger or logging.getLogger(__name__)
        self.policy_label = policy_label or Config.policy_label()
        self._crds: Dict[GroupKind, PolicyCRD] = {}
        self._policies: Dict[GKNN, Policy] = {}

    def init(self) -> None:
        """
        Discover policy CRDs and load all of their instances.

        Raises:
            PolicyManagerError: If CRD discovery or instance listing fails
        """
        crds: Dict[GroupKind, PolicyCRD] = {}
        policies: Dict[GKNN, Policy] = {}

        try:
            crd_objects = self.fetcher.list_objects(CRD_GROUP_KIND, label_selector=self.policy_label)
        except FetchError as e:
            raise PolicyManagerError(f"failed to discover policy CRDs: {e}") from e

        for obj in crd_objects:
            try:
                crd = self._parse_crd(obj)
            except MalformedPolicyError as e:
                self.logger.warning(f"Skipping policy CRD: {e}")
                continue
            crds[crd.group_kind] = crd

        for group_kind in sorted(crds):
            crd = crds[group_kind]
            try:
                instances = self.fetcher.list_objects(group_kind)
            except FetchError as e:
                raise PolicyManagerError(f"failed to list {group_kind} policies: {e}") from e

            for obj in instances:
                try:
                    policy = self._parse_policy(obj, crd)
                except MalformedPolicyError as e:
                    self.logger.warning(f"Skipping {group_kind} policy: {e}")
                    continue
                policies[policy.gknn] = policy

        self.logger.debug(f"Discovered {len(crds)} policy CRD(s) and {len(policies)} policies")
        self._crds = crds
        self._policies = policies

    def get_policies(self) -> List[Policy]:
        """Return all policies sorted by GKNN."""
        return [self._policies[gknn] for gknn in sorted(self._policies)]

    def get_crds(self) -> List[PolicyCRD]:
        """Return all policy CRDs sorted by group and kind."""
        return [self._crds[gk] for gk in sorted(self._crds)]

    def get_policy(self, gknn: GKNN) -> Optional[Policy]:
        return self._policies.get(gknn)

    def get_crd(self, group_kind: GroupKind) -> Optional[PolicyCRD]:
        return self._crds.get(group_kind)

    def policies_targeting(self, gknn: GKNN) -> List[Policy]:
        """Return the policies with a target ref naming gknn, sorted by GKNN."""
        return [policy for policy in self.get_policies() if gknn in policy.target_refs]

    def _parse_crd(self, obj: Dict[str, Any]) -> PolicyCRD:
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        name = metadata.get("name") or ""
        group = spec.get("group") or ""
        kind = (spec.get("names") or {}).get("kind") or ""
        scope = spec.get("scope") or ""

        if not name or not group or not kind:
            raise MalformedPolicyError(f"CRD {name or '<unnamed>'} has no group or kind")
        if scope not in ("Namespaced", "Cluster"):
            raise MalformedPolicyError(f"CRD {name} has unknown scope {scope!r}")

        labels = metadata.get("labels") or {}
        inheritable = str(labels.get(self.policy_label, "")).lower() == "inherited"
        return PolicyCRD(
            name=name,
            group=group,
            kind=kind,
            scope=scope,
            inheritable=inheritable,
            object=obj,
        )

    def _parse_policy(self, obj: Dict[str, Any], crd: PolicyCRD) -> Policy:
        metadata = obj.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise MalformedPolicyError("policy has no metadata.name")
        namespace = "" if crd.scope == "Cluster" else (metadata.get("namespace") or "")
        gknn = GKNN(crd.group, crd.kind, namespace, name)

        spec = obj.get("spec") or {}
        raw_refs = list(spec.get("targetRefs") or [])
        if spec.get("targetRef") is not None:
            raw_refs.append(spec["targetRef"])
        target_refs = tuple(self._parse_target_ref(ref, namespace, gknn) for ref in raw_refs)

        status = obj.get("status") or {}
        ancestors = tuple(
            self._parse_ancestor(ancestor, namespace)
            for ancestor in status.get("ancestors") or []
            if isinstance(ancestor, dict)
        )

        return Policy(
            gknn=gknn,
            target_refs=target_refs,
            inheritable=crd.inheritable,
            ancestors=ancestors,
            creation_timestamp=parse_timestamp(metadata.get("creationTimestamp")),
            object=obj,
        )

    @staticmethod
    def _parse_target_ref(ref: Any, policy_namespace: str, policy: GKNN) -> GKNN:
        if not isinstance(ref, dict) or not ref.get("kind") or not ref.get("name"):
            raise MalformedPolicyError(f"{policy} has an invalid target ref: {ref!r}")
        kind = ref["kind"]
        namespace = "" if is_cluster_scoped(kind) else (ref.get("namespace") or policy_namespace)
        return GKNN(ref.get("group") or "", kind, namespace, ref["name"])

    @staticmethod
    def _parse_ancestor(ancestor: Dict[str, Any], policy_namespace: str) -> AncestorStatus:
        ref = ancestor.get("ancestorRef") or {}
        ancestor_ref = None
        if isinstance(ref, dict) and ref.get("name"):
            kind = ref.get("kind") or "Gateway"
            group = ref.get("group", GATEWAY_API_GROUP)
            namespace = "" if is_cluster_scoped(kind) else (ref.get("namespace") or policy_namespace)
            ancestor_ref = GKNN(group or "", kind, namespace, ref["name"])

        conditions = tuple(
            Condition(type=str(c.get("type", "")), status=str(c.get("status", "")))
            for c in ancestor.get("conditions") or []
            if isinstance(c, dict)
        )
        return AncestorStatus(ancestor_ref=ancestor_ref, conditions=conditions)

"""
Resource acquisition: fetch and list Kubernetes objects by group and kind.

Two sources are supported: rendered YAML manifests on disk, and a live cluster
reached through kubectl. Objects are plain dictionaries as decoded from YAML or
JSON. A fetch that finds nothing returns None; any other failure raises
FetchError.
"""

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from gwinspect.config import Config
from gwinspect.errors import FetchError
from gwinspect.executor import CommandExecutor, get_executor
from gwinspect.gknn import GKNN, GroupKind, gknn_of
from gwinspect.resource_utils import is_cluster_scoped

logger = logging.getLogger(__name__)


class GroupKindFetcher(ABC):
    """Group-kind aware object access used by the graph builder and policy manager."""

    @abstractmethod
    def fetch(self, gknn: GKNN) -> Optional[Dict[str, Any]]:
        """
        Fetch a single object.

        Returns:
            The object, or None if it does not exist

        Raises:
            FetchError: If the object could not be read
        """

    @abstractmethod
    def list_objects(
        self,
        group_kind: GroupKind,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        names: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        List objects of one group and kind.

        Args:
            group_kind: Group and kind to list
            namespace: Namespace to list from, or None for all namespaces
            label_selector: Optional kubectl-style label selector
            names: If given, only objects with these names

        Raises:
            FetchError: If the objects could not be listed
        """


def parse_label_selector(selector: Optional[str]) -> List[Tuple[str, str, str]]:
    """
    Parse an equality-based label selector into (operator, key, value) tuples.

    Supports "k=v", "k==v", "k!=v", "k" (exists) and "!k" (does not exist),
    joined by commas.
    """
    requirements: List[Tuple[str, str, str]] = []
    if not selector:
        return requirements
    for term in selector.split(","):
        term = term.strip()
        if not term:
            continue
        if "!=" in term:
            key, value = term.split("!=", 1)
            requirements.append(("!=", key.strip(), value.strip()))
        elif "==" in term:
            key, value = term.split("==", 1)
            requirements.append(("=", key.strip(), value.strip()))
        elif "=" in term:
            key, value = term.split("=", 1)
            requirements.append(("=", key.strip(), value.strip()))
        elif term.startswith("!"):
            requirements.append(("!", term[1:].strip(), ""))
        else:
            requirements.append(("exists", term, ""))
    return requirements


def labels_match(requirements: Iterable[Tuple[str, str, str]], labels: Dict[str, str]) -> bool:
    """Check if labels satisfy every parsed selector requirement."""
    for op, key, value in requirements:
        if op == "=" and labels.get(key) != value:
            return False
        if op == "!=" and labels.get(key) == value:
            return False
        if op == "exists" and key not in labels:
            return False
        if op == "!" and key in labels:
            return False
    return True


class ManifestFetcher(GroupKindFetcher):
    """
    Serves objects loaded from YAML manifest files.

    Directories are searched recursively for *.yaml and *.yml files. When the
    same object is defined more than once, the last definition wins.
    """

    def __init__(self, paths: Sequence[Path], default_namespace: str = "default"):
        """
        Load all manifests under the given paths.

        Args:
            paths: Files or directories to load
            default_namespace: Namespace assigned to namespaced objects that have none

        Raises:
            FetchError: If a path does not exist or a file cannot be parsed
        """
        self.default_namespace = default_namespace
        self._objects: Dict[GKNN, Dict[str, Any]] = {}
        for path in paths:
            for yaml_file in self._yaml_files(Path(path)):
                self._load_file(yaml_file)

    @staticmethod
    def _yaml_files(path: Path) -> List[Path]:
        if not path.exists():
            raise FetchError(f"Manifest path not found: {path}")
        if path.is_file():
            return [path]
        return sorted(list(path.rglob("*.yaml")) + list(path.rglob("*.yml")))

    def _load_file(self, yaml_file: Path) -> None:
        try:
            with open(yaml_file, "r") as f:
                documents = list(yaml.safe_load_all(f))
        except (yaml.YAMLError, IOError, OSError) as e:
            raise FetchError(f"Could not parse {yaml_file}: {e}") from e

        for doc in documents:
            if doc is None or not isinstance(doc, dict):
                continue
            items = doc.get("items") if doc.get("kind") == "List" else [doc]
            for item in items or []:
                if isinstance(item, dict):
                    self._add(item, yaml_file)

    def _add(self, obj: Dict[str, Any], source: Path) -> None:
        kind = obj.get("kind", "")
        metadata = obj.get("metadata") or {}
        if not is_cluster_scoped(kind) and not metadata.get("namespace"):
            obj = dict(obj)
            obj["metadata"] = dict(metadata, namespace=self.default_namespace)
        try:
            gknn = gknn_of(obj)
        except ValueError as e:
            logger.warning(f"Skipping object in {source}: {e}")
            return
        self._objects[gknn] = obj

    def fetch(self, gknn: GKNN) -> Optional[Dict[str, Any]]:
        return self._objects.get(gknn)

    def list_objects(
        self,
        group_kind: GroupKind,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        names: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        requirements = parse_label_selector(label_selector)
        result = []
        for gknn, obj in self._objects.items():
            if gknn.group_kind != group_kind:
                continue
            if namespace is not None and gknn.namespace and gknn.namespace != namespace:
                continue
            if names and gknn.name not in names:
                continue
            labels = (obj.get("metadata") or {}).get("labels") or {}
            if not labels_match(requirements, labels):
                continue
            result.append(obj)
        return result


class KubectlFetcher(GroupKindFetcher):
    """Reads objects from a live cluster by running kubectl."""

    def __init__(
        self,
        executor: Optional[CommandExecutor] = None,
        context: Optional[str] = None,
        kubeconfig: Optional[str] = None,
        kubectl: Optional[str] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            executor: CommandExecutor instance (defaults to global executor)
            context: kubeconfig context (defaults to GWINSPECT_CONTEXT)
            kubeconfig: kubeconfig path (defaults to KUBECONFIG)
            kubectl: kubectl binary (defaults to GWINSPECT_KUBECTL)
        """
        self.executor = executor or get_executor()
        self.context = context or Config.kube_context()
        self.kubeconfig = kubeconfig or Config.kubeconfig()
        self.kubectl = kubectl or Config.kubectl()

    def _base_cmd(self) -> List[str]:
        cmd = [self.kubectl]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        if self.context:
            cmd += ["--context", self.context]
        return cmd

    @staticmethod
    def _resource_arg(group_kind: GroupKind) -> str:
        if not group_kind.group:
            return group_kind.kind.lower()
        return f"{group_kind.kind.lower()}.{group_kind.group}"

    def _run(self, cmd: List[str]):
        try:
            return self.executor.run_silent(cmd)
        except FileNotFoundError as e:
            raise FetchError(f"kubectl not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise FetchError(f"kubectl timed out after {e.timeout}s: {' '.join(cmd)}") from e

    @staticmethod
    def _decode(stdout: str) -> Dict[str, Any]:
        try:
            return json.loads(stdout or "{}")
        except json.JSONDecodeError as e:
            raise FetchError(f"Invalid JSON from kubectl: {e}") from e

    def fetch(self, gknn: GKNN) -> Optional[Dict[str, Any]]:
        cmd = self._base_cmd() + ["get", self._resource_arg(gknn.group_kind), gknn.name]
        if gknn.namespace:
            cmd += ["-n", gknn.namespace]
        cmd += ["-o", "json"]

        result = self._run(cmd)
        if result.returncode != 0:
            stderr = result.stderr or ""
            # A referenced kind that is not served by the cluster cannot resolve either
            if "NotFound" in stderr or "doesn't have a resource type" in stderr:
                logger.debug(f"{gknn} not found")
                return None
            raise FetchError(f"kubectl get {gknn} failed: {stderr.strip()}")
        return self._decode(result.stdout)

    def list_objects(
        self,
        group_kind: GroupKind,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        names: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        all_namespaces = namespace is None and not is_cluster_scoped(group_kind.kind)
        cmd = self._base_cmd() + ["get", self._resource_arg(group_kind)]
        # kubectl refuses names together with -A, so those are filtered here
        if names and not all_namespaces:
            cmd += list(names)
        if all_namespaces:
            cmd += ["-A"]
        elif not is_cluster_scoped(group_kind.kind):
            cmd += ["-n", namespace]
        if label_selector:
            cmd += ["-l", label_selector]
        cmd += ["-o", "json"]

        result = self._run(cmd)
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            # Named objects that do not exist are reported after the ones that do
            if not (names and "NotFound" in stderr):
                raise FetchError(f"kubectl get {group_kind} failed: {stderr}")
            logger.debug(f"Some of {', '.join(names)} ({group_kind}) not found")

        data = self._decode(result.stdout)
        items = list(data.get("items") or []) if "items" in data else ([data] if data else [])
        if names and all_namespaces:
            items = [obj for obj in items if (obj.get("metadata") or {}).get("name") in names]
        return items

"""
Graph extensions: ordered passes that annotate a built topology graph.

Extensions run strictly in the order given. The first failure stops the
pipeline; whatever earlier passes (and the failing one) already attached to
the graph stays in place, so callers must treat the results as incomplete.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from gwinspect.errors import ExtensionError
from gwinspect.topology import Graph


class Extension(ABC):
    """A pass that reads and annotates the topology graph."""

    name: str = "extension"

    @abstractmethod
    def execute(self, graph: Graph) -> None:
        """Annotate the graph in place."""


def execute_all(graph: Graph, *extensions: Extension, logger: Optional[logging.Logger] = None) -> None:
    """
    Run extensions in order, stopping at the first failure.

    Raises:
        ExtensionError: Naming the extension that failed, chained to the cause
    """
    logger = logger or logging.getLogger(__name__)
    for extension in extensions:
        logger.debug(f"Running extension {extension.name}")
        try:
            extension.execute(graph)
        except ExtensionError:
            raise
        except Exception as e:
            raise ExtensionError(extension.name, str(e)) from e

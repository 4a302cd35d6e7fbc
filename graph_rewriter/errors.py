"""Exception hierarchy for the rewrite engine.

Graph errors, rewrite refusals and pipeline configuration problems share the
``GraphRewriterError`` base. ``LayoutError`` belongs to the layout
collaborator and is not a ``GraphError``.
"""

from typing import Iterable, Optional


class GraphRewriterError(Exception):
    """Base class for all errors raised by graph_rewriter."""


class GraphError(GraphRewriterError):
    """Illegal graph lookup or mutation (unknown node, live node removal...)."""

    def __init__(self, message: str, node_ids: Optional[Iterable[int]] = None):
        super().__init__(message)
        self.node_ids = sorted(node_ids) if node_ids is not None else []


class CycleError(GraphError):
    """The dependency relation of the graph is not acyclic."""


class ShapeInferenceError(GraphRewriterError):
    """Output types of a node cannot be derived from its inputs."""


class RewriteError(GraphRewriterError):
    """Raised by a replacement callback to refuse a rewrite it cannot perform."""


class PipelineError(GraphRewriterError):
    """Invalid pass pipeline configuration."""


class LayoutError(Exception):
    """Layout/orientation lookup failed for a named graph input or output."""

"""
Graph invariant checks.

``validate_graph`` never raises for an invalid graph; it returns the list of
violations found so the PassManager can report them at the pipeline boundary.
"""

import collections
import enum
from typing import List

from .errors import CycleError, ShapeInferenceError
from .ir import Graph
from .ops import OpKind


class ViolationKind(enum.Enum):
    DANGLING_INPUT = "dangling_input"
    CYCLE = "cycle"
    TYPE_MISMATCH = "type_mismatch"
    BOUNDARY = "boundary"
    DEAD_NODE = "dead_node"
    PASS_FAILURE = "pass_failure"


class Violation(collections.namedtuple("Violation", ["kind", "node_id", "message"])):
    __slots__ = ()

    def __str__(self):
        where = f"node {self.node_id}" if self.node_id is not None else "graph"
        return f"{self.kind.value} at {where}: {self.message}"


def _check_boundary(graph: Graph) -> List[Violation]:
    violations = []
    for node_id in graph.parameters:
        if node_id not in graph:
            violations.append(Violation(ViolationKind.BOUNDARY, node_id, "parameter does not exist"))
        elif graph.get_node(node_id).kind != OpKind.PARAMETER:
            violations.append(
                Violation(ViolationKind.BOUNDARY, node_id, "parameter list entry is not a Parameter")
            )
    for node_id in graph.results:
        if node_id not in graph:
            violations.append(Violation(ViolationKind.BOUNDARY, node_id, "result does not exist"))
            continue
        node = graph.get_node(node_id)
        if node.kind != OpKind.RESULT or len(node.inputs) != 1:
            violations.append(
                Violation(ViolationKind.BOUNDARY, node_id, "result must be a Result with one input")
            )
        elif graph.consumer_count(node_id):
            violations.append(Violation(ViolationKind.BOUNDARY, node_id, "result has consumers"))
    for node in graph:
        if node.kind == OpKind.PARAMETER and node.id not in graph.parameters:
            violations.append(
                Violation(ViolationKind.BOUNDARY, node.id, "Parameter is not registered as graph input")
            )
        if node.kind == OpKind.RESULT and node.id not in graph.results:
            violations.append(
                Violation(ViolationKind.BOUNDARY, node.id, "Result is not registered as graph output")
            )
    return violations


def _check_inputs(graph: Graph) -> List[Violation]:
    violations = []
    for node in graph:
        for index, ref in enumerate(node.inputs):
            if ref.node_id not in graph:
                violations.append(
                    Violation(
                        ViolationKind.DANGLING_INPUT,
                        node.id,
                        f"input {index} references missing node {ref.node_id}",
                    )
                )
            elif not 0 <= ref.index < len(graph.get_node(ref.node_id).outputs):
                violations.append(
                    Violation(
                        ViolationKind.DANGLING_INPUT,
                        node.id,
                        f"input {index} references missing output {ref}",
                    )
                )
    return violations


def _check_types(graph: Graph, order: List[int]) -> List[Violation]:
    violations = []
    for node_id in order:
        node = graph.get_node(node_id)
        try:
            inferred = graph.infer_outputs(node.kind, node.inputs, node.attrs)
        except ShapeInferenceError as e:
            violations.append(Violation(ViolationKind.TYPE_MISMATCH, node_id, str(e)))
            continue
        if inferred is None:
            continue
        if list(inferred) != list(node.outputs):
            declared = ", ".join(str(t) for t in node.outputs)
            expected = ", ".join(str(t) for t in inferred)
            violations.append(
                Violation(
                    ViolationKind.TYPE_MISMATCH,
                    node_id,
                    f"{node.kind.value} '{node.name}' declares [{declared}] but its inputs give [{expected}]",
                )
            )
    return violations


def _check_dead_nodes(graph: Graph) -> List[Violation]:
    return [
        Violation(ViolationKind.DEAD_NODE, node.id, f"{node.kind.value} '{node.name}' has no consumers")
        for node in graph
        if not graph.is_boundary(node.id) and graph.consumer_count(node.id) == 0
    ]


def validate_graph(graph: Graph, allow_dead_nodes: bool = False) -> List[Violation]:
    """
    Checks the graph invariants.

    Args:
        graph: Graph to check
        allow_dead_nodes: Do not report non-boundary nodes without consumers

    Returns:
        List of violations; empty when the graph is valid.
    """
    violations = _check_boundary(graph)
    dangling = _check_inputs(graph)
    violations.extend(dangling)
    if dangling:
        # Ordering and typing need resolvable references
        return violations

    try:
        order = graph.topological_order()
    except CycleError as e:
        violations.extend(
            Violation(ViolationKind.CYCLE, node_id, "node lies on or behind a dependency cycle")
            for node_id in e.node_ids
        )
        return violations

    violations.extend(_check_types(graph, order))
    if not allow_dead_nodes:
        violations.extend(_check_dead_nodes(graph))
    return violations

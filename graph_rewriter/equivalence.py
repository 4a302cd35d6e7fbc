"""
Structural equivalence of two graphs.

This is the oracle used by the pass tests: build the input graph, run the
pass, build the expected graph by hand and compare. A mismatch is returned as
a ``Comparison`` carrying the path to the first divergence; it is never
raised.
"""

import collections
from typing import Dict, List

from .ir import Graph, Node
from .ops import OpKind
from .utils.graph_utils import values_equal


class Comparison(collections.namedtuple("Comparison", ["equivalent", "message"])):
    __slots__ = ()

    def __bool__(self):
        return self.equivalent


def _describe(node: Node) -> str:
    return f"{node.kind.value}#{node.id}"


class _GraphComparator:
    def __init__(self, actual: Graph, reference: Graph, compare_names: bool, compare_attributes: bool):
        self.actual = actual
        self.reference = reference
        self.compare_names = compare_names
        self.compare_attributes = compare_attributes
        self.forward: Dict[int, int] = {}
        self.backward: Dict[int, int] = {}

    def compare(self) -> Comparison:
        a, b = self.actual, self.reference
        if len(a.parameters) != len(b.parameters):
            return Comparison(
                False, f"parameter count differs: {len(a.parameters)} vs {len(b.parameters)}"
            )
        if len(a.results) != len(b.results):
            return Comparison(False, f"result count differs: {len(a.results)} vs {len(b.results)}")

        # Parameters correspond by position, not by name
        for position, (a_id, b_id) in enumerate(zip(a.parameters, b.parameters)):
            mismatch = self._compare_nodes(a.get_node(a_id), b.get_node(b_id))
            if mismatch:
                return Comparison(False, f"Parameter[{position}]: {mismatch}")
            self.forward[a_id] = b_id
            self.backward[b_id] = a_id

        stack = [
            (a_id, b_id, [f"Result[{position}]"])
            for position, (a_id, b_id) in enumerate(zip(a.results, b.results))
        ]
        stack.reverse()
        while stack:
            a_id, b_id, path = stack.pop()
            mismatch = self._visit(a_id, b_id, path, stack)
            if mismatch:
                return Comparison(False, f"{' <- '.join(path)}: {mismatch}")
        return Comparison(True, "graphs are equivalent")

    def _visit(self, a_id, b_id, path: List[str], stack) -> str:
        if a_id in self.forward or b_id in self.backward:
            if self.forward.get(a_id) != b_id or self.backward.get(b_id) != a_id:
                return "node sharing differs between graphs"
            return ""

        a_node = self.actual.get_node(a_id)
        b_node = self.reference.get_node(b_id)
        if (a_node.kind == OpKind.PARAMETER) != (b_node.kind == OpKind.PARAMETER):
            return f"{_describe(a_node)} vs {_describe(b_node)}: parameter position differs"
        mismatch = self._compare_nodes(a_node, b_node)
        if mismatch:
            return mismatch

        self.forward[a_id] = b_id
        self.backward[b_id] = a_id
        pending = []
        for index, (a_ref, b_ref) in enumerate(zip(a_node.inputs, b_node.inputs)):
            if a_ref.index != b_ref.index:
                return f"input {index} reads output {a_ref.index} vs {b_ref.index}"
            step = f"{_describe(a_node)}[in {index}]"
            pending.append((a_ref.node_id, b_ref.node_id, path + [step]))
        stack.extend(reversed(pending))
        return ""

    def _compare_nodes(self, a_node: Node, b_node: Node) -> str:
        label = f"{_describe(a_node)} vs {_describe(b_node)}"
        if a_node.kind != b_node.kind:
            return f"kind differs: {a_node.kind.value} vs {b_node.kind.value}"
        if len(a_node.outputs) != len(b_node.outputs):
            return f"{label}: output count differs ({len(a_node.outputs)} vs {len(b_node.outputs)})"
        for index, (a_type, b_type) in enumerate(zip(a_node.outputs, b_node.outputs)):
            if a_type.element_type != b_type.element_type:
                return f"{label}: output {index} element type differs ({a_type.element_type} vs {b_type.element_type})"
            if a_type.shape != b_type.shape:
                return f"{label}: output {index} shape differs ({a_type.shape} vs {b_type.shape})"
        if len(a_node.inputs) != len(b_node.inputs):
            return f"{label}: input count differs ({len(a_node.inputs)} vs {len(b_node.inputs)})"
        if self.compare_attributes:
            a_keys = set(a_node.attrs)
            b_keys = set(b_node.attrs)
            if a_keys != b_keys:
                return f"{label}: attribute names differ ({sorted(a_keys)} vs {sorted(b_keys)})"
            for key in sorted(a_keys):
                if not values_equal(a_node.attrs[key], b_node.attrs[key]):
                    return f"{label}: attribute '{key}' differs ({a_node.attrs[key]!r} vs {b_node.attrs[key]!r})"
        if self.compare_names and a_node.name != b_node.name:
            return f"{label}: name differs ({a_node.name!r} vs {b_node.name!r})"
        return ""


def compare_graphs(
    actual: Graph,
    reference: Graph,
    compare_names: bool = False,
    compare_attributes: bool = True,
) -> Comparison:
    """
    Walks both graphs from their results in lockstep.

    Args:
        actual: Graph produced by the rewrite
        reference: Hand-built expected graph
        compare_names: Also require equal friendly names
        compare_attributes: Compare attribute maps (on by default)

    Returns:
        Comparison(equivalent, message); the message locates the first
        divergence as a path from a result towards the parameters.
    """
    return _GraphComparator(actual, reference, compare_names, compare_attributes).compare()


def equivalent(actual: Graph, reference: Graph, **kwargs) -> bool:
    return compare_graphs(actual, reference, **kwargs).equivalent

"""
Graph IR: an arena of nodes keyed by stable integer ids.

Nodes never hold pointers to each other. Inputs are ``OutputRef`` values
(producer id + output index) resolved through the owning ``Graph``, which also
keeps the reverse consumer index used for splicing and reference counting.
"""

import collections
import copy
import heapq
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from .errors import CycleError, GraphError
from .ops import OpKind, TensorType, infer_output_types


class OutputRef(collections.namedtuple("OutputRef", ["node_id", "index"])):
    """Reference to output ``index`` of node ``node_id``."""

    __slots__ = ()

    def __str__(self):
        return f"{self.node_id}:{self.index}"


class Node:
    """A single operation instance inside a Graph."""

    def __init__(
        self,
        node_id: int,
        kind: OpKind,
        inputs: Sequence[OutputRef],
        outputs: Sequence[TensorType],
        attrs: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
    ):
        self.id = node_id
        self.kind = kind
        self.inputs: List[OutputRef] = list(inputs)
        self.outputs: List[TensorType] = list(outputs)
        self.attrs: Dict[str, Any] = dict(attrs or {})
        self.name = name if name is not None else f"{kind.value}_{node_id}"

    def output(self, index: int = 0) -> OutputRef:
        if not 0 <= index < len(self.outputs):
            raise GraphError(
                f"Node {self.id} ({self.kind.value}) has no output {index}", [self.id]
            )
        return OutputRef(self.id, index)

    @property
    def output_refs(self) -> List[OutputRef]:
        return [OutputRef(self.id, i) for i in range(len(self.outputs))]

    def __repr__(self):
        ins = ", ".join(str(ref) for ref in self.inputs)
        outs = ", ".join(str(t) for t in self.outputs)
        return f"Node(#{self.id} {self.name!r}: {self.kind.value}({ins}) -> [{outs}])"


ValueLike = Union[Node, OutputRef]


class Graph:
    """
    Owns every node of one computation graph.

    Parameters (graph inputs) and results (graph outputs) are kept as ordered
    id lists. A node is live until no other node consumes any of its outputs,
    at which point garbage collection may remove it unless it is a boundary
    node.
    """

    def __init__(self, name: str = "graph"):
        self.name = name
        self._nodes: Dict[int, Node] = {}
        self._next_id = 0
        self.parameters: List[int] = []
        self.results: List[int] = []
        self._consumers: Dict[OutputRef, List[Tuple[int, int]]] = collections.defaultdict(list)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    @property
    def next_id(self) -> int:
        return self._next_id

    def get_node(self, node_id: int) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise GraphError(f"Node {node_id} does not exist in graph '{self.name}'", [node_id]) from None

    def find_nodes(self, name: str) -> List[Node]:
        """Returns all nodes carrying the given friendly name."""
        return [node for node in self._nodes.values() if node.name == name]

    def parameter_nodes(self) -> List[Node]:
        return [self._nodes[i] for i in self.parameters]

    def result_nodes(self) -> List[Node]:
        return [self._nodes[i] for i in self.results]

    def is_boundary(self, node_id: int) -> bool:
        return node_id in self.parameters or node_id in self.results

    def _resolve(self, value: ValueLike) -> OutputRef:
        if isinstance(value, Node):
            if len(value.outputs) != 1:
                raise GraphError(
                    f"Node {value.id} has {len(value.outputs)} outputs; pass an OutputRef",
                    [value.id],
                )
            return OutputRef(value.id, 0)
        if isinstance(value, tuple) and len(value) == 2:
            return OutputRef(*value)
        raise GraphError(f"Cannot use {value!r} as a node input")

    def tensor_type(self, value: ValueLike) -> TensorType:
        ref = self._resolve(value)
        producer = self.get_node(ref.node_id)
        if not 0 <= ref.index < len(producer.outputs):
            raise GraphError(
                f"Node {producer.id} ({producer.kind.value}) has no output {ref.index}",
                [producer.id],
            )
        return producer.outputs[ref.index]

    def constant_value(self, value: ValueLike) -> Optional[np.ndarray]:
        """Returns the value feeding ``value`` if it is produced by a Constant."""
        ref = self._resolve(value)
        producer = self._nodes.get(ref.node_id)
        if producer is None or producer.kind != OpKind.CONSTANT:
            return None
        return np.asarray(producer.attrs["value"])

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _insert(self, node: Node) -> Node:
        self._nodes[node.id] = node
        for index, ref in enumerate(node.inputs):
            self._consumers[ref].append((node.id, index))
        return node

    def _new_id(self) -> int:
        node_id = self._next_id
        self._next_id += 1
        return node_id

    def infer_outputs(
        self,
        kind: OpKind,
        inputs: Sequence[OutputRef],
        attrs: Optional[Dict[str, Any]] = None,
    ) -> Optional[List[TensorType]]:
        """Runs output type inference for a (possibly hypothetical) node."""
        input_types = [self.tensor_type(ref) for ref in inputs]
        input_values = [self.constant_value(ref) for ref in inputs]
        return infer_output_types(kind, attrs or {}, input_types, input_values)

    def add_node(
        self,
        kind: OpKind,
        inputs: Iterable[ValueLike] = (),
        attrs: Optional[Dict[str, Any]] = None,
        outputs: Optional[Sequence[TensorType]] = None,
        name: Optional[str] = None,
    ) -> Node:
        """
        Creates a node and wires it to its producers.

        Args:
            kind: Operator kind
            inputs: Producers (Node with a single output, or OutputRef)
            attrs: Attribute map
            outputs: Output types; inferred from the inputs when omitted
            name: Friendly name (defaults to ``<kind>_<id>``)

        Returns:
            The new Node.
        """
        if kind in (OpKind.PARAMETER, OpKind.RESULT):
            raise GraphError(f"Use add_parameter/add_result to create {kind.value} nodes")
        refs = [self._resolve(value) for value in inputs]
        for ref in refs:
            self.tensor_type(ref)
        attrs = dict(attrs or {})
        if outputs is None:
            outputs = self.infer_outputs(kind, refs, attrs)
            if outputs is None:
                raise GraphError(
                    f"Cannot infer outputs of {kind.value}; declare them explicitly"
                )
        node = Node(self._new_id(), kind, refs, [TensorType(*t) for t in outputs], attrs, name)
        return self._insert(node)

    def add_parameter(
        self,
        element_type,
        shape: Sequence[int],
        name: Optional[str] = None,
        attrs: Optional[Dict[str, Any]] = None,
    ) -> Node:
        node_id = self._new_id()
        node = Node(
            node_id,
            OpKind.PARAMETER,
            [],
            [TensorType(element_type, shape)],
            attrs,
            name,
        )
        self.parameters.append(node_id)
        return self._insert(node)

    def add_constant(self, value, element_type=None, name: Optional[str] = None) -> Node:
        array = np.array(value, dtype=element_type)
        return self.add_node(OpKind.CONSTANT, attrs={"value": array}, name=name)

    def add_result(
        self,
        source: ValueLike,
        name: Optional[str] = None,
        attrs: Optional[Dict[str, Any]] = None,
    ) -> Node:
        """Marks ``source`` as a graph output. The result's type is fixed here."""
        ref = self._resolve(source)
        node_id = self._new_id()
        node = Node(node_id, OpKind.RESULT, [ref], [self.tensor_type(ref)], attrs, name)
        self.results.append(node_id)
        return self._insert(node)

    # ------------------------------------------------------------------
    # Consumers and splicing
    # ------------------------------------------------------------------

    def consumers(self, value: ValueLike) -> List[Tuple[int, int]]:
        """Returns ``(consumer id, input index)`` pairs reading the given output."""
        return list(self._consumers.get(self._resolve(value), []))

    def node_consumers(self, node_id: int) -> List[Tuple[int, int]]:
        node = self.get_node(node_id)
        found = []
        for ref in node.output_refs:
            found.extend(self._consumers.get(ref, []))
        return found

    def consumer_count(self, node_id: int) -> int:
        return len(self.node_consumers(node_id))

    def set_input(self, node_id: int, index: int, value: ValueLike):
        node = self.get_node(node_id)
        if not 0 <= index < len(node.inputs):
            raise GraphError(f"Node {node_id} has no input {index}", [node_id])
        new_ref = self._resolve(value)
        self.tensor_type(new_ref)
        old_ref = node.inputs[index]
        entries = self._consumers[old_ref]
        entries.remove((node_id, index))
        if not entries:
            del self._consumers[old_ref]
        node.inputs[index] = new_ref
        self._consumers[new_ref].append((node_id, index))

    def replace_output(
        self,
        old: ValueLike,
        new: ValueLike,
        exclude: Optional[Set[int]] = None,
    ) -> int:
        """
        Redirects every consumer of ``old`` to read ``new`` instead.

        Args:
            old: Output being replaced
            new: Replacement output
            exclude: Consumer ids to leave untouched

        Returns:
            Number of rewired inputs.
        """
        old_ref = self._resolve(old)
        new_ref = self._resolve(new)
        if old_ref == new_ref:
            return 0
        exclude = exclude or set()
        rewired = 0
        for consumer_id, index in self.consumers(old_ref):
            if consumer_id in exclude:
                continue
            self.set_input(consumer_id, index, new_ref)
            rewired += 1
        return rewired

    def remove_node(self, node_id: int):
        if self.is_boundary(node_id):
            raise GraphError(f"Cannot remove boundary node {node_id}", [node_id])
        if self.node_consumers(node_id):
            raise GraphError(f"Cannot remove node {node_id}: it still has consumers", [node_id])
        node = self._nodes.pop(node_id)
        for index, ref in enumerate(node.inputs):
            entries = self._consumers[ref]
            entries.remove((node_id, index))
            if not entries:
                del self._consumers[ref]
        for ref in node.output_refs:
            self._consumers.pop(ref, None)

    def collect_garbage(self, candidates: Iterable[int]) -> List[int]:
        """
        Reference-counted removal scoped to ``candidates``.

        A candidate without consumers is removed; its producers are then
        re-examined if they are candidates too, or Constants left unused.
        Parameters and results are never removed.

        Returns:
            Removed node ids, in removal order.
        """
        scope = set(candidates)
        worklist = sorted(scope, reverse=True)
        removed = []
        while worklist:
            node_id = worklist.pop()
            if node_id not in self._nodes or self.is_boundary(node_id):
                continue
            if self.node_consumers(node_id):
                continue
            producers = {ref.node_id for ref in self._nodes[node_id].inputs}
            self.remove_node(node_id)
            removed.append(node_id)
            for producer_id in sorted(producers, reverse=True):
                producer = self._nodes.get(producer_id)
                if producer is None:
                    continue
                if producer_id in scope or producer.kind == OpKind.CONSTANT:
                    worklist.append(producer_id)
        return removed

    def prune_dead_nodes(self) -> List[int]:
        """Removes every non-boundary node whose outputs are unused."""
        return self.collect_garbage(
            node_id for node_id in self._nodes if not self.is_boundary(node_id)
        )

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def _sort(self) -> Tuple[List[int], Set[int]]:
        pending = {}
        for node in self._nodes.values():
            pending[node.id] = sum(1 for ref in node.inputs if ref.node_id in self._nodes)
        ready = [node_id for node_id, count in pending.items() if count == 0]
        heapq.heapify(ready)
        order = []
        while ready:
            node_id = heapq.heappop(ready)
            order.append(node_id)
            for consumer_id, _ in self.node_consumers(node_id):
                pending[consumer_id] -= 1
                if pending[consumer_id] == 0:
                    heapq.heappush(ready, consumer_id)
        blocked = set(self._nodes) - set(order)
        return order, blocked

    def topological_order(self) -> List[int]:
        """Node ids in dependency order; ties are broken by ascending id."""
        order, blocked = self._sort()
        if blocked:
            raise CycleError(
                f"Graph '{self.name}' contains a cycle through nodes {sorted(blocked)}",
                blocked,
            )
        return order

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    def checkpoint(self):
        """
        Captures the graph state for a later ``rollback``.

        Node objects are recorded by reference together with their fields, so
        a rollback restores the same objects callers already hold. Attribute
        values are not copied and must not be mutated in place.
        """
        nodes = [
            (node, node.kind, list(node.inputs), list(node.outputs), dict(node.attrs), node.name)
            for node in self._nodes.values()
        ]
        return nodes, list(self.parameters), list(self.results)

    def rollback(self, state):
        """Restores a checkpoint. Ids handed out since then are not reused."""
        nodes, parameters, results = state
        self._nodes = {}
        for node, kind, inputs, outputs, attrs, name in nodes:
            node.kind = kind
            node.inputs = list(inputs)
            node.outputs = list(outputs)
            node.attrs = dict(attrs)
            node.name = name
            self._nodes[node.id] = node
        self.parameters = list(parameters)
        self.results = list(results)
        self._consumers = collections.defaultdict(list)
        for node in self._nodes.values():
            for index, ref in enumerate(node.inputs):
                self._consumers[ref].append((node.id, index))

    def copy(self) -> "Graph":
        """Independent deep copy; ids are preserved."""
        clone = Graph(self.name)
        clone.rollback(copy.deepcopy(self.checkpoint()))
        clone._next_id = self._next_id
        return clone

    def summary(self) -> str:
        lines = [
            f"Graph(name={self.name!r}, nodes={len(self)}, "
            f"parameters={len(self.parameters)}, results={len(self.results)})"
        ]
        for node_id in self._sort()[0]:
            lines.append(f"- {self._nodes[node_id]!r}")
        return "\n".join(lines)

    def __repr__(self):
        return f"Graph(name={self.name!r}, nodes={len(self)})"

import enum
import traceback
from typing import Any as AnyType, Dict, Iterable, List, Optional

import numpy as np

from .errors import GraphRewriterError, RewriteError
from .ir import Graph, Node, OutputRef
from .ops import OpKind
from .utils.graph_utils import values_equal
from .utils.logger import (
    logger as logging,
    trace_transformation,
    log_optimization,
    log_match,
)

DEFAULT_MAX_ITERATIONS = 100


class MatchContext:
    """
    Binding produced by one match attempt.

    Maps every placeholder (by identity) to the concrete node it matched, and
    every alias to that node (None for an absent optional input, a list of
    nodes for a variadic group).
    """

    def __init__(self, anchor=None):
        self.anchor = anchor
        self.matched_nodes: Dict[str, AnyType] = {}
        self.bindings: Dict[int, Optional[int]] = {}
        self.all_matched_nodes = set()  # set of node ids
        self.next_id_at_match = None

    def __getitem__(self, alias):
        return self.matched_nodes[alias]

    def __contains__(self, alias):
        return alias in self.matched_nodes

    def get(self, alias, default=None):
        return self.matched_nodes.get(alias, default)

    def binding_of(self, pattern: "Pattern") -> Optional[int]:
        return self.bindings.get(id(pattern))

    def bind(self, pattern: "Pattern", node: Node):
        self.bindings[id(pattern)] = node.id
        self.all_matched_nodes.add(node.id)
        if pattern.alias:
            self.matched_nodes[pattern.alias] = node

    def bind_absent(self, pattern: "Pattern"):
        self.bindings[id(pattern)] = None
        for alias in pattern.aliases():
            self.matched_nodes[alias] = None

    def save(self):
        matched = {
            k: list(v) if isinstance(v, list) else v
            for k, v in self.matched_nodes.items()
        }
        return matched, dict(self.bindings), set(self.all_matched_nodes)

    def restore(self, saved):
        matched, bindings, all_nodes = saved
        self.matched_nodes = {
            k: list(v) if isinstance(v, list) else v for k, v in matched.items()
        }
        self.bindings = dict(bindings)
        self.all_matched_nodes = set(all_nodes)


class Pattern:
    def __init__(self, alias=None):
        self.alias = alias

    @log_match
    def match(
        self,
        node: Node,
        graph: Graph,
        context: Optional[MatchContext] = None,
    ) -> Optional[MatchContext]:
        if context is None:
            context = MatchContext(anchor=node.id)
        if self._match_internal(node, graph, context):
            return context
        return None

    def _match_internal(self, node, graph, context):
        saved = context.save()
        if self._do_match(node, graph, context):
            context.bind(self, node)
            return True
        # No partial bindings survive a failed placeholder
        context.restore(saved)
        return False

    def _do_match(self, node, graph, context):
        raise NotImplementedError()

    def get_indexed_op_types(self):
        """Return the kinds an anchor must have, or None for patterns that match any kind."""
        return None  # Default: treat as wildcard

    def aliases(self) -> List[str]:
        """All aliases declared in this pattern's subtree."""
        return [self.alias] if self.alias else []

    def __repr__(self):
        suffix = f", alias={self.alias!r}" if self.alias else ""
        return f"{self.__class__.__name__}({suffix.lstrip(', ')})"


def _as_kind_set(op_kinds):
    if op_kinds is None or op_kinds == "*":
        return None
    if isinstance(op_kinds, OpKind):
        return frozenset({op_kinds})
    return frozenset(op_kinds)


def _is_predicate(expected):
    return callable(expected) and not isinstance(expected, type)


class OpPattern(Pattern):
    def __init__(
        self,
        op_kinds=None,
        inputs=None,
        attrs=None,
        shape=None,
        element_type=None,
        predicate=None,
        alias=None,
    ):
        super().__init__(alias)
        self.op_kinds = _as_kind_set(op_kinds)  # None matches any kind
        self.inputs = list(inputs or [])  # List of Pattern
        self.attrs = attrs or {}  # Map of attr_name -> attr_value (or predicate)
        self.shape = shape  # Expected output shape (None dims are wildcards)
        self.element_type = np.dtype(element_type) if element_type is not None else None
        self.predicate = predicate  # Callable[[Node], bool]
        self.consumer_count = None  # Expected number of consumers

    def get_indexed_op_types(self):
        return self.op_kinds

    def aliases(self):
        found = super().aliases()
        for pattern in self.inputs:
            found.extend(pattern.aliases())
        return found

    def _do_match(self, node, graph, context):
        if self.op_kinds is not None and node.kind not in self.op_kinds:
            return False

        for attr_name, expected in self.attrs.items():
            if attr_name not in node.attrs:
                return False
            actual = node.attrs[attr_name]
            if _is_predicate(expected):
                if not expected(actual):
                    return False
            elif not values_equal(actual, expected):
                return False

        if self.shape is not None and not self._match_shape(node):
            return False

        if self.element_type is not None:
            if not node.outputs or node.outputs[0].element_type != self.element_type:
                return False

        if self.predicate is not None and not self.predicate(node):
            return False

        if self.consumer_count is not None:
            if graph.consumer_count(node.id) != self.consumer_count:
                return False

        if self.inputs and not self._match_inputs(node, graph, context):
            return False

        return True

    def _match_shape(self, node):
        """Checks if the node's first output shape matches self.shape."""
        if not node.outputs:
            return False
        actual_shape = node.outputs[0].shape
        if len(actual_shape) != len(self.shape):
            return False
        for actual_dim, expected_dim in zip(actual_shape, self.shape):
            if expected_dim is not None and actual_dim != expected_dim:
                return False
        return True

    def _match_inputs(self, node, graph, context):
        variadic_idx = self._find_variadic_pattern()
        if variadic_idx is None:
            return self._match_fixed_inputs(node.inputs, self.inputs, graph, context)
        return self._match_variadic_inputs(node.inputs, graph, context, variadic_idx)

    def _find_variadic_pattern(self):
        """Find index of variadic pattern in inputs, or None if no variadic."""
        for i, pattern in enumerate(self.inputs):
            if isinstance(pattern, VariadicPattern):
                return i
        return None

    @staticmethod
    def _required_count(patterns):
        required = 0
        for i, pattern in enumerate(patterns):
            if not isinstance(pattern, OptionalPattern):
                required = i + 1
        return required

    def _match_fixed_inputs(self, refs, patterns, graph, context):
        # Slot i of an optional placeholder is absent iff the node has fewer than i+1 inputs
        if not self._required_count(patterns) <= len(refs) <= len(patterns):
            return False
        for i, input_pattern in enumerate(patterns):
            if i >= len(refs):
                context.bind_absent(input_pattern)
                continue
            if not self._match_single_input(refs[i], input_pattern, graph, context):
                return False
        return True

    def _match_single_input(self, ref, input_pattern, graph, context):
        """Match a single input against a pattern."""
        if ref.node_id not in graph:
            return False
        input_node = graph.get_node(ref.node_id)
        return input_pattern._match_internal(input_node, graph, context)

    def _match_variadic_inputs(self, refs, graph, context, variadic_idx):
        """Match inputs when a variadic pattern is present."""
        variadic_pattern = self.inputs[variadic_idx]
        min_count = variadic_pattern.min_count
        max_count = (
            variadic_pattern.max_count
            if variadic_pattern.max_count is not None
            else float("inf")
        )

        # Calculate expected input counts
        fixed_before = variadic_idx
        fixed_after = len(self.inputs) - variadic_idx - 1
        min_total = fixed_before + min_count + fixed_after
        max_total = fixed_before + max_count + fixed_after

        if not (min_total <= len(refs) <= max_total):
            return False

        if variadic_pattern.alias:
            context.matched_nodes[variadic_pattern.alias] = []

        # Match fixed inputs before variadic
        for i in range(fixed_before):
            if not self._match_single_input(refs[i], self.inputs[i], graph, context):
                return False

        # Match variadic inputs
        variadic_count = len(refs) - fixed_before - fixed_after
        for i in range(variadic_count):
            ref = refs[fixed_before + i]
            if ref.node_id not in graph:
                return False
            input_node = graph.get_node(ref.node_id)
            if not variadic_pattern.pattern._match_internal(input_node, graph, context):
                return False
            if variadic_pattern.alias:
                context.matched_nodes[variadic_pattern.alias].append(input_node)

        # Match fixed inputs after variadic
        for i in range(fixed_after):
            if not self._match_single_input(
                refs[fixed_before + variadic_count + i],
                self.inputs[variadic_idx + 1 + i],
                graph,
                context,
            ):
                return False

        return True

    def __repr__(self):
        kinds = "*" if self.op_kinds is None else "|".join(sorted(k.value for k in self.op_kinds))
        inputs = ", ".join(repr(p) for p in self.inputs)
        alias = f", alias={self.alias!r}" if self.alias else ""
        return f"Op({kinds}{', ' if inputs else ''}{inputs}{alias})"


class WildcardPattern(Pattern):
    """Matches any single node; its inputs are not inspected."""

    def __init__(self, alias=None):
        super().__init__(alias)
        self.consumer_count = None

    def _do_match(self, node, graph, context):
        if self.consumer_count is not None:
            if graph.consumer_count(node.id) != self.consumer_count:
                return False
        return True

    def __repr__(self):
        return f"Any({self.alias!r})" if self.alias else "Any()"


class OptionalPattern(Pattern):
    """An input placeholder that may be absent.

    When the node has no input at this slot, the placeholder (and every alias
    below it) binds to None. When the input exists it must match ``pattern``.
    """

    def __init__(self, pattern, alias=None):
        super().__init__(alias)
        self.pattern = pattern

    def _do_match(self, node, graph, context):
        return self.pattern._match_internal(node, graph, context)

    def aliases(self):
        return super().aliases() + self.pattern.aliases()

    def __repr__(self):
        return f"Optional({self.pattern!r})"


class VariadicPattern(Pattern):
    """Matches zero or more consecutive inputs matching the same pattern.

    This is used within OpPattern.inputs to indicate that the operator
    can accept a variable number of inputs matching the specified pattern.
    """

    def __init__(self, pattern, min_count=0, max_count=None, alias=None):
        super().__init__(alias)
        self.pattern = pattern  # Pattern that each variadic input must match
        self.min_count = min_count  # Minimum number of inputs
        self.max_count = max_count  # Maximum number of inputs (None = unlimited)

    def _do_match(self, node, graph, context):
        # VariadicPattern is only used within OpPattern.inputs
        raise NotImplementedError(
            "VariadicPattern should only be used within OpPattern.inputs"
        )

    def aliases(self):
        return super().aliases() + self.pattern.aliases()

    def __repr__(self):
        return f"Variadic({self.pattern!r})"


class CommutativeOpPattern(OpPattern):
    """Matches an Op whose two inputs may appear in either order.

    The declared order is tried first; the swapped order only if it fails.
    The node itself is never modified.
    """

    def _match_inputs(self, node, graph, context):
        if len(node.inputs) != 2 or len(self.inputs) != 2:
            return super()._match_inputs(node, graph, context)

        for order in ((0, 1), (1, 0)):
            saved = context.save()
            refs = [node.inputs[i] for i in order]
            if self._match_fixed_inputs(refs, self.inputs, graph, context):
                return True
            context.restore(saved)
        return False


def match(pattern: Pattern, anchor: Node, graph: Graph) -> Optional[MatchContext]:
    """Binds ``pattern`` against the subgraph rooted at ``anchor`` (read-only)."""
    return pattern.match(anchor, graph)


# Helper functions to build patterns
def Op(
    op_kinds,
    *inputs,
    alias=None,
    attrs=None,
    shape=None,
    element_type=None,
    predicate=None,
    consumer_count=None,
):
    pattern = OpPattern(op_kinds, list(inputs), attrs, shape, element_type, predicate, alias)
    pattern.consumer_count = consumer_count
    return pattern


def Any(alias=None, consumer_count=None):
    pattern = WildcardPattern(alias)
    pattern.consumer_count = consumer_count
    return pattern


def OptionalInput(pattern, alias=None):
    """Wrap an input pattern so the input slot may be missing."""
    return OptionalPattern(pattern, alias)


def Variadic(pattern, min_count=0, max_count=None, alias=None):
    """Create a variadic pattern for matching multiple inputs.

    Args:
        pattern: Pattern that each variadic input must match
        min_count: Minimum number of inputs (default: 0)
        max_count: Maximum number of inputs (default: unlimited)
        alias: Optional alias for the variadic group

    Returns:
        VariadicPattern instance

    Example:
        # Match Concat with at least 2 constant inputs
        Op(OpKind.CONCAT, Variadic(Op(OpKind.CONSTANT), min_count=2))
    """
    return VariadicPattern(pattern, min_count, max_count, alias)


def CommutativeOp(
    op_kinds, p1, p2, alias=None, attrs=None, shape=None, consumer_count=None
):
    pattern = CommutativeOpPattern(op_kinds, [p1, p2], attrs, shape, alias=alias)
    pattern.consumer_count = consumer_count
    return pattern


def ConstValue(value, alias=None):
    """Matches a Constant node with a specific value."""

    def check_value(actual):
        return bool(np.array_equal(np.asarray(actual), np.asarray(value)))

    return Op(OpKind.CONSTANT, attrs={"value": check_value}, alias=alias)


class ApplyStatus(enum.Enum):
    REPLACED = "replaced"
    NO_MATCH = "no_match"
    REJECTED = "rejected"


class ApplyResult:
    """Outcome of one MatcherPass.apply call."""

    def __init__(
        self,
        status: ApplyStatus,
        anchor_id: int,
        pass_name: str,
        new_nodes: Optional[List[int]] = None,
        removed_nodes: Optional[List[int]] = None,
        reason: Optional[str] = None,
    ):
        self.status = status
        self.anchor_id = anchor_id
        self.pass_name = pass_name
        self.new_nodes = new_nodes or []
        self.removed_nodes = removed_nodes or []
        self.reason = reason

    @property
    def replaced(self) -> bool:
        return self.status == ApplyStatus.REPLACED

    def __repr__(self):
        return (
            f"ApplyResult({self.status.value}, anchor={self.anchor_id}, "
            f"pass={self.pass_name!r})"
        )


class PassStats:
    """Per-pass statistics collected by the PassManager."""

    def __init__(self, name, nodes_before=0):
        self.name = name
        self.iterations = 0
        self.matches = 0
        self.rejected = 0
        self.nodes_before = nodes_before
        self.nodes_after = nodes_before
        self.duration = 0.0
        self.hit_iteration_limit = False

    def __repr__(self):
        return (
            f"PassStats({self.name!r}, iterations={self.iterations}, "
            f"matches={self.matches}, rejected={self.rejected}, "
            f"nodes={self.nodes_before}->{self.nodes_after})"
        )


class BasePass:
    """Base class for all graph rewrite passes."""

    def __init__(self, name=None):
        self.name = name or self.__class__.__name__

    def transform(
        self,
        graph: Graph,
        fixpoint: bool = False,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> PassStats:
        """
        Applies the transformation to ``graph`` in place.

        Args:
            graph: The graph to rewrite
            fixpoint: Repeat until nothing changes instead of running once
            max_iterations: Upper bound on repetitions when ``fixpoint`` is set

        Returns:
            PassStats for this run.
        """
        raise NotImplementedError()


class FunctionPass(BasePass):
    """A whole-graph transformation. Subclasses implement ``run_on_graph``."""

    def run_on_graph(self, graph: Graph) -> bool:
        """Rewrite ``graph``; return True when it was modified."""
        raise NotImplementedError()

    @log_optimization
    def transform(self, graph, fixpoint=False, max_iterations=DEFAULT_MAX_ITERATIONS):
        stats = PassStats(self.name, nodes_before=len(graph))
        while True:
            stats.iterations += 1
            changed = self.run_on_graph(graph)
            if changed:
                stats.matches += 1
            if not fixpoint or not changed:
                break
            if stats.iterations >= max_iterations:
                logging.warning(
                    f"Rewrite pass '{self.name}' reached max iterations ({max_iterations}). Stopping."
                )
                stats.hit_iteration_limit = True
                break
        stats.nodes_after = len(graph)
        return stats


class MatcherPass(BasePass):
    """A rewrite rule: a pattern plus a replacement callback.

    The callback receives ``(match, graph)``, builds the replacement nodes and
    returns what replaces the root's outputs: a Node, an OutputRef, or a list
    of OutputRefs (one per root output). Returning None declines the match.
    Raising RewriteError refuses it.
    """

    def __init__(self, pattern, callback, name=None):
        super().__init__(name)
        self.pattern = pattern
        self.callback = trace_transformation(callback)

    def _result(self, status, node, **kwargs):
        return ApplyResult(status, node.id, self.name, **kwargs)

    def _replacement_refs(self, graph, root, replacement) -> List[OutputRef]:
        if isinstance(replacement, Node):
            refs = replacement.output_refs
        elif isinstance(replacement, tuple):
            refs = [OutputRef(*replacement)]
        else:
            refs = [OutputRef(*ref) if isinstance(ref, tuple) else ref.output() for ref in replacement]
        if len(refs) != len(root.outputs):
            raise RewriteError(
                f"replacement provides {len(refs)} outputs, node {root.id} has {len(root.outputs)}"
            )
        for ref in refs:
            graph.tensor_type(ref)
        return refs

    def apply(self, graph: Graph, anchor) -> ApplyResult:
        """Matches at ``anchor`` and, on success, splices in the replacement."""
        node = anchor if isinstance(anchor, Node) else graph.get_node(anchor)

        # Cheap kind filter before the structural walk
        kinds = self.pattern.get_indexed_op_types()
        if kinds is not None and node.kind not in kinds:
            return self._result(ApplyStatus.NO_MATCH, node)

        match = self.pattern.match(node, graph)
        if match is None:
            return self._result(ApplyStatus.NO_MATCH, node)

        match.next_id_at_match = graph.next_id
        state = graph.checkpoint()
        try:
            replacement = self.callback(match, graph)
            if replacement is None:
                graph.rollback(state)
                return self._result(ApplyStatus.NO_MATCH, node, reason="declined")

            new_refs = self._replacement_refs(graph, node, replacement)
            created = {
                node_id
                for node_id in range(match.next_id_at_match, graph.next_id)
                if node_id in graph
            }
            for old_ref, new_ref in zip(node.output_refs, new_refs):
                # New nodes may legitimately read the old root (wrapping rewrites)
                graph.replace_output(old_ref, new_ref, exclude=created)

            for index, new_ref in enumerate(new_refs):
                if new_ref.node_id in created:
                    producer = graph.get_node(new_ref.node_id)
                    producer.name = node.name if len(new_refs) == 1 else f"{node.name}.{index}"

            removed = graph.collect_garbage(match.all_matched_nodes)
            graph.topological_order()
        except Exception as e:
            # A failed application only rejects this match; the sweep goes on
            graph.rollback(state)
            reason = str(e) if isinstance(e, GraphRewriterError) else f"{type(e).__name__}: {e}"
            logging.warning(
                f"[{self.name}] Rewrite rejected at node {node.id} ({node.kind.value}), "
                f"pattern={self.pattern}: {reason}"
            )
            if not isinstance(e, GraphRewriterError):
                logging.debug(f"Full traceback:\n{traceback.format_exc()}")
            return self._result(ApplyStatus.REJECTED, node, reason=reason)

        new_nodes = sorted(node_id for node_id in created if node_id in graph)
        return self._result(
            ApplyStatus.REPLACED, node, new_nodes=new_nodes, removed_nodes=removed
        )

    def transform(self, graph, fixpoint=False, max_iterations=DEFAULT_MAX_ITERATIONS):
        return GraphRewrite([self], name=self.name).transform(
            graph, fixpoint=fixpoint, max_iterations=max_iterations
        )


class GraphRewrite(BasePass):
    """A group of MatcherPasses applied in a single sweep.

    Anchors are visited in the topological order of the graph as it was when
    the sweep started; nodes created during the sweep are not revisited. For
    each anchor the matchers are tried in registration order and the first
    replacement wins.
    """

    def __init__(self, matchers: Optional[Iterable[MatcherPass]] = None, name=None):
        super().__init__(name)
        self.matchers: List[MatcherPass] = []
        for matcher in matchers or []:
            self.add_matcher(matcher)

    def add_matcher(self, matcher: MatcherPass) -> MatcherPass:
        self.matchers.append(matcher)
        return matcher

    @log_optimization
    def transform(self, graph, fixpoint=False, max_iterations=DEFAULT_MAX_ITERATIONS):
        stats = PassStats(self.name, nodes_before=len(graph))
        while True:
            stats.iterations += 1
            matched = self._sweep(graph, stats)
            if not fixpoint or matched == 0:
                break
            if stats.iterations >= max_iterations:
                logging.warning(
                    f"Rewrite pass '{self.name}' reached max iterations ({max_iterations}). Stopping."
                )
                stats.hit_iteration_limit = True
                break
        stats.nodes_after = len(graph)
        return stats

    def _sweep(self, graph, stats):
        matched = 0
        for node_id in graph.topological_order():
            if node_id not in graph:
                continue  # removed by an earlier rewrite in this sweep
            for matcher in self.matchers:
                result = matcher.apply(graph, node_id)
                if result.status == ApplyStatus.REPLACED:
                    matched += 1
                    stats.matches += 1
                    break
                if result.status == ApplyStatus.REJECTED:
                    stats.rejected += 1
        return matched

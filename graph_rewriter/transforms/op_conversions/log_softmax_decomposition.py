import numpy as np

from ...core import Any, MatcherPass, Op
from ...errors import RewriteError
from ...ops import OpKind
from ...utils.graph_utils import canonicalize_axis


def reduction_axes(graph, axis):
    """i64 constant of shape (1,) holding ``axis``."""
    return graph.add_constant(np.array([axis], dtype=np.int64))


def resolve_axis(graph, node):
    """Non-negative softmax axis of ``node`` (default 1)."""
    rank = graph.tensor_type(node.inputs[0]).rank
    axis = canonicalize_axis(int(node.attrs.get("axis", 1)), rank)
    if not 0 <= axis < rank:
        raise RewriteError(f"axis {node.attrs.get('axis', 1)} out of range for rank {rank}")
    return axis


class LogSoftmaxDecomposition(MatcherPass):
    """
    Decompose LogSoftmax into primitive operators.

    Transform: LogSoftmax(x, axis)
    Into:
        max = ReduceMax(x, [axis], keep_dims=True)
        sub = Subtract(x, max)
        sum = ReduceSum(Exp(sub), [axis], keep_dims=True)
        Subtract(sub, Log(sum))
    """

    source_kind = OpKind.LOG_SOFTMAX

    def __init__(self):
        pattern = Op(OpKind.LOG_SOFTMAX, Any(alias="x"), alias="log_softmax")
        super().__init__(pattern, self._rewrite, name="LogSoftmaxDecomposition")

    def _rewrite(self, match, graph):
        root = match["log_softmax"]
        x = root.inputs[0]
        axis = resolve_axis(graph, root)

        max_node = graph.add_node(
            OpKind.REDUCE_MAX, [x, reduction_axes(graph, axis)], attrs={"keep_dims": True}
        )
        sub = graph.add_node(OpKind.SUBTRACT, [x, max_node])
        exp = graph.add_node(OpKind.EXP, [sub])
        sum_node = graph.add_node(
            OpKind.REDUCE_SUM, [exp, reduction_axes(graph, axis)], attrs={"keep_dims": True}
        )
        log = graph.add_node(OpKind.LOG, [sum_node])
        return graph.add_node(OpKind.SUBTRACT, [sub, log])

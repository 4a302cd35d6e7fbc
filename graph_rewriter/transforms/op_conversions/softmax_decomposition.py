from ...core import Any, MatcherPass, Op
from ...ops import OpKind
from .log_softmax_decomposition import reduction_axes, resolve_axis


class SoftmaxDecomposition(MatcherPass):
    """
    Transform: Softmax(x, axis)
    Into: Divide(Exp(x - ReduceMax(x)), ReduceSum(Exp(x - ReduceMax(x))))

    Both reductions run over [axis] with keep_dims=True.
    """

    source_kind = OpKind.SOFTMAX

    def __init__(self):
        pattern = Op(OpKind.SOFTMAX, Any(alias="x"), alias="softmax")
        super().__init__(pattern, self._rewrite, name="SoftmaxDecomposition")

    def _rewrite(self, match, graph):
        root = match["softmax"]
        x = root.inputs[0]
        axis = resolve_axis(graph, root)

        max_node = graph.add_node(
            OpKind.REDUCE_MAX, [x, reduction_axes(graph, axis)], attrs={"keep_dims": True}
        )
        exp = graph.add_node(OpKind.EXP, [graph.add_node(OpKind.SUBTRACT, [x, max_node])])
        sum_node = graph.add_node(
            OpKind.REDUCE_SUM, [exp, reduction_axes(graph, axis)], attrs={"keep_dims": True}
        )
        return graph.add_node(OpKind.DIVIDE, [exp, sum_node])

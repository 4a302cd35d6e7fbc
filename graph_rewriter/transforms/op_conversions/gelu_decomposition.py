import math

import numpy as np

from ...core import Any, MatcherPass, Op
from ...ops import OpKind


class GeluDecomposition(MatcherPass):
    """
    Express the legacy Gelu with op-set 1 primitives.

    Transform: Gelu-2(x)
    Into: Multiply(Multiply(x, 0.5), Add(Erf(Multiply(x, 1/sqrt(2))), 1))
    """

    source_kind = OpKind.GELU_V2

    def __init__(self):
        pattern = Op(OpKind.GELU_V2, Any(alias="x"), alias="gelu")
        super().__init__(pattern, self._rewrite, name="GeluDecomposition")

    def _rewrite(self, match, graph):
        x = match["gelu"].inputs[0]
        dtype = graph.tensor_type(x).element_type

        half = graph.add_constant(np.array(0.5, dtype=dtype))
        inv_sqrt2 = graph.add_constant(np.array(1.0 / math.sqrt(2.0), dtype=dtype))
        one = graph.add_constant(np.array(1.0, dtype=dtype))

        scaled = graph.add_node(OpKind.MULTIPLY, [x, inv_sqrt2])
        erf = graph.add_node(OpKind.ERF, [scaled])
        shifted = graph.add_node(OpKind.ADD, [erf, one])
        half_x = graph.add_node(OpKind.MULTIPLY, [x, half])
        return graph.add_node(OpKind.MULTIPLY, [half_x, shifted])

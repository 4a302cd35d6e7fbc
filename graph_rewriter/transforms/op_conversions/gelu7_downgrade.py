from ...core import Any, MatcherPass, Op
from ...ops import OpKind
from ...utils.logger import logger as logging


def _is_erf_mode(node):
    return node.attrs.get("approximation_mode", "erf") == "erf"


class Gelu7Downgrade(MatcherPass):
    """
    Replace the op-set 7 Gelu by the legacy op-set 2 Gelu.

    Transform: Gelu-7(x, approximation_mode="erf")
    Into: Gelu-2(x)

    The tanh approximation has no op-set 2 counterpart and is left untouched.
    """

    source_kind = OpKind.GELU_V7

    def __init__(self):
        pattern = Op(OpKind.GELU_V7, Any(alias="x"), predicate=_is_erf_mode, alias="gelu")
        super().__init__(pattern, self._rewrite, name="Gelu7Downgrade")

    def _rewrite(self, match, graph):
        gelu = match["gelu"]
        logging.debug(f"[Gelu7Downgrade] Downgrading {gelu.name}")
        return graph.add_node(OpKind.GELU_V2, [gelu.inputs[0]])

from ...core import GraphRewrite
from ...utils.logger import logger as logging
from .broadcast_to_tile import BroadcastToTile
from .gelu7_downgrade import Gelu7Downgrade
from .gelu_decomposition import GeluDecomposition
from .log_softmax_decomposition import LogSoftmaxDecomposition

# Conversion rules keyed by the kind they remove, newest op-set first
DOWNGRADE_RULES = [
    Gelu7Downgrade,
    LogSoftmaxDecomposition,
    BroadcastToTile,
    GeluDecomposition,
]


class OpsetDowngrade(GraphRewrite):
    """
    Rewrite a graph so that it only uses operators up to ``target_opset``.

    Bundles every conversion rule whose source kind was introduced after the
    target op-set. Gelu-7 is first lowered to Gelu-2, so reaching op-set 1
    takes a second sweep; run with fixpoint=True to lower chains completely.
    """

    def __init__(self, target_opset: int):
        super().__init__(name=f"OpsetDowngrade(opset{target_opset})")
        self.target_opset = target_opset
        for rule in DOWNGRADE_RULES:
            if rule.source_kind.opset > target_opset:
                self.add_matcher(rule())
        logging.debug(
            f"[{self.name}] Rules: {[matcher.name for matcher in self.matchers]}"
        )

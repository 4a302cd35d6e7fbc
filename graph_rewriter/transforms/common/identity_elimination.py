from ...core import Any, MatcherPass, Op
from ...ops import OpKind
from ...utils.logger import logger as logging


class IdentityElimination(MatcherPass):
    """
    Remove Identity nodes by bypassing them.

    Transform: consumer(Identity(x))
    Into: consumer(x)

    Chains of Identity nodes collapse in a single sweep because anchors are
    visited producer-first.
    """

    def __init__(self):
        pattern = Op(OpKind.IDENTITY, Any(alias="x"), alias="identity")
        super().__init__(pattern, self._rewrite, name="IdentityElimination")

    def _rewrite(self, match, graph):
        identity = match["identity"]
        logging.debug(f"[IdentityElimination] Bypassing {identity.name}")
        return identity.inputs[0]

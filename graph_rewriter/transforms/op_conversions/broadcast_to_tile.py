import numpy as np

from ...core import Any, MatcherPass, Op
from ...ops import OpKind
from ...utils.logger import logger as logging


def tile_repeats(data_shape, target_shape):
    """
    Repeats that turn ``data_shape`` into ``target_shape`` by tiling.

    Returns:
        (padded data shape, repeats), or None when the broadcast is not a
        pure tiling (a target dim that neither equals the data dim nor
        expands a dim of size 1).
    """
    if len(target_shape) < len(data_shape):
        return None
    padded = [1] * (len(target_shape) - len(data_shape)) + list(data_shape)
    repeats = []
    for dim, target in zip(padded, target_shape):
        if dim == target:
            repeats.append(1)
        elif dim == 1 and target > 0:
            repeats.append(target)
        else:
            return None
    return padded, repeats


class BroadcastToTile(MatcherPass):
    """
    Lower a Broadcast with a constant target shape to Tile.

    Transform: Broadcast(x, target_shape)
    Into: Tile(Reshape(x, padded_shape), repeats)

    The Reshape is only inserted when the target has a higher rank than x.
    """

    source_kind = OpKind.BROADCAST

    def __init__(self):
        pattern = Op(
            OpKind.BROADCAST,
            Any(alias="data"),
            Op(OpKind.CONSTANT, alias="target_shape"),
            alias="broadcast",
        )
        super().__init__(pattern, self._rewrite, name="BroadcastToTile")

    def _rewrite(self, match, graph):
        broadcast = match["broadcast"]
        data = broadcast.inputs[0]
        data_shape = graph.tensor_type(data).shape
        target_shape = [int(d) for d in np.asarray(match["target_shape"].attrs["value"]).reshape(-1)]

        tiling = tile_repeats(data_shape, target_shape)
        if tiling is None:
            logging.debug(
                f"[BroadcastToTile] {broadcast.name}: {list(data_shape)} -> {target_shape} is not a tiling"
            )
            return None
        padded, repeats = tiling

        if len(padded) != len(data_shape):
            shape = graph.add_constant(np.array(padded, dtype=np.int64))
            data = graph.add_node(OpKind.RESHAPE, [data, shape]).output()
        repeats_const = graph.add_constant(np.array(repeats, dtype=np.int64))
        return graph.add_node(OpKind.TILE, [data, repeats_const])

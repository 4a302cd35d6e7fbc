"""
Op Conversions - 算子转换
=========================

把融合算子分解为基础算子，或把新版本算子降级到旧的 op-set，
以满足后端的兼容性要求。

包含的 Pass：
- gelu7_downgrade.py            : Gelu-7(erf) -> Gelu-2
- gelu_decomposition.py         : Gelu-2 -> Erf 等基础算子
- log_softmax_decomposition.py  : LogSoftmax -> ReduceMax/Exp/ReduceSum/Log
- softmax_decomposition.py      : Softmax -> ReduceMax/Exp/ReduceSum/Divide
- broadcast_to_tile.py          : Broadcast(常量目标形状) -> Tile
- opset_downgrade.py            : 按目标 op-set 组合上述规则
"""

from .gelu7_downgrade import Gelu7Downgrade
from .gelu_decomposition import GeluDecomposition
from .log_softmax_decomposition import LogSoftmaxDecomposition
from .softmax_decomposition import SoftmaxDecomposition
from .broadcast_to_tile import BroadcastToTile
from .opset_downgrade import OpsetDowngrade

__all__ = [
    'Gelu7Downgrade',
    'GeluDecomposition',
    'LogSoftmaxDecomposition',
    'SoftmaxDecomposition',
    'BroadcastToTile',
    'OpsetDowngrade',
]

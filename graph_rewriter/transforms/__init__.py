"""
Graph Rewrite Transforms
========================

目录结构：
transforms/
├── common/              # 通用清理
│   └── identity_elimination.py
│
└── op_conversions/      # 算子分解与 op-set 降级
    ├── gelu7_downgrade.py
    ├── gelu_decomposition.py
    ├── log_softmax_decomposition.py
    ├── softmax_decomposition.py
    ├── broadcast_to_tile.py
    └── opset_downgrade.py

没有全局注册表：PASS_CATALOG 只是一个名字到 Pass 类的映射，
供 PassPipeline.from_config 使用，调用方也可以传入自己的映射。
"""

from .common import IdentityElimination
from .op_conversions import (
    BroadcastToTile,
    Gelu7Downgrade,
    GeluDecomposition,
    LogSoftmaxDecomposition,
    OpsetDowngrade,
    SoftmaxDecomposition,
)

PASS_CATALOG = {
    'identity_elimination': IdentityElimination,
    'gelu7_downgrade': Gelu7Downgrade,
    'gelu_decomposition': GeluDecomposition,
    'log_softmax_decomposition': LogSoftmaxDecomposition,
    'softmax_decomposition': SoftmaxDecomposition,
    'broadcast_to_tile': BroadcastToTile,
    'opset_downgrade': OpsetDowngrade,
}

__all__ = [
    'IdentityElimination',
    'BroadcastToTile',
    'Gelu7Downgrade',
    'GeluDecomposition',
    'LogSoftmaxDecomposition',
    'OpsetDowngrade',
    'SoftmaxDecomposition',
    'PASS_CATALOG',
]
